"""Registries for monitored feeds and interest topics."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Protocol
from urllib.parse import urlparse

from rssfeed_monitor.errors import DuplicateTopic, FeedFetchError, InvalidFeed
from rssfeed_monitor.models import Feed, Topic

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    async def fetch(self, url: str): ...


class FeedRegistry:
    """Owns the set of monitored feeds, in registration order."""

    def __init__(self, feeds: dict[str, Feed] | None = None):
        self._feeds: dict[str, Feed] = dict(feeds or {})

    async def add(self, name: str, url: str, fetcher: Fetcher) -> Feed:
        """Validate a feed URL with one fetch, then register it."""
        return self.register(await self.validate(name, url, fetcher))

    async def validate(self, name: str, url: str, fetcher: Fetcher) -> Feed:
        """Build a feed from a URL after fetching it once.

        The feed is not registered. Pass it to register() to commit it.

        Args:
            name: Display name for the feed.
            url: Feed URL. A leading "@" is stripped and https:// is assumed
                when no scheme is given.
            fetcher: Used to fetch the feed once before committing.

        Raises:
            InvalidFeed: If the URL is malformed, already registered,
                unreachable or not a feed.
        """
        url = normalize_url(url)
        self._check_unique(url)

        try:
            fetched = await fetcher.fetch(url)
        except FeedFetchError as e:
            logger.warning("Rejected feed %s: %s", url, e)
            raise InvalidFeed(f"Invalid RSS feed URL: {url} ({e})") from e

        return Feed(
            id=uuid.uuid4().hex,
            url=url,
            name=name.strip() or url,
            last_update=fetched.updated_at,
        )

    def register(self, feed: Feed) -> Feed:
        """Commit a validated feed.

        Raises:
            InvalidFeed: If the URL was registered while validating.
        """
        self._check_unique(feed.url)
        self._feeds[feed.id] = feed
        logger.info("Added new feed: %s (%s)", feed.name, feed.url)
        return feed

    def remove(self, feed_id: str) -> bool:
        """Remove a feed. Unknown ids are ignored."""
        feed = self._feeds.pop(feed_id, None)
        if feed is None:
            return False
        logger.info("Removed feed: %s (%s)", feed.name, feed.url)
        return True

    def get(self, feed_id: str) -> Feed | None:
        return self._feeds.get(feed_id)

    def list(self) -> list[Feed]:
        return list(self._feeds.values())

    def mark_checked(
        self,
        feed_id: str,
        checked_at: datetime,
        updated_at: datetime | None = None,
    ) -> None:
        """Record a successful fetch of a feed."""
        feed = self._feeds.get(feed_id)
        if feed is None:
            return
        feed.last_checked = checked_at
        feed.last_update = updated_at or checked_at

    def as_dict(self) -> dict[str, Feed]:
        return dict(self._feeds)

    def _check_unique(self, url: str) -> None:
        if any(feed.url == url for feed in self._feeds.values()):
            raise InvalidFeed(f"Already monitoring {url}")


class TopicRegistry:
    """Owns the set of interest topics, global across all feeds."""

    def __init__(self, topics: dict[str, Topic] | None = None):
        self._topics: dict[str, Topic] = dict(topics or {})

    def add(
        self,
        query: str,
        case_sensitive: bool = False,
        notify_email: bool = False,
        notify_extension: bool = True,
    ) -> Topic:
        """Register a topic.

        Two topics conflict when their case_sensitive flags are equal and
        their queries are equal ignoring case.

        Raises:
            ValueError: If the query is blank.
            DuplicateTopic: If a conflicting topic exists.
        """
        query = query.strip()
        if not query:
            raise ValueError("Topic query must not be empty")

        for existing in self._topics.values():
            if (
                existing.case_sensitive == case_sensitive
                and existing.query.lower() == query.lower()
            ):
                raise DuplicateTopic(
                    f"Topic '{existing.query}' already exists "
                    f"(case sensitive: {case_sensitive})"
                )

        topic = Topic(
            id=uuid.uuid4().hex,
            query=query,
            case_sensitive=case_sensitive,
            notify_email=notify_email,
            notify_extension=notify_extension,
        )
        self._topics[topic.id] = topic
        logger.info(
            "Added new topic: %s (case sensitive: %s)", query, case_sensitive
        )
        return topic

    def remove(self, topic_id: str) -> bool:
        """Remove a topic. Unknown ids are ignored."""
        topic = self._topics.pop(topic_id, None)
        if topic is None:
            return False
        logger.info("Removed topic: %s", topic.query)
        return True

    def get(self, topic_id: str) -> Topic | None:
        return self._topics.get(topic_id)

    def list(self) -> list[Topic]:
        return list(self._topics.values())

    def as_dict(self) -> dict[str, Topic]:
        return dict(self._topics)


def normalize_url(url: str) -> str:
    """Clean up a user-supplied feed URL.

    Raises:
        InvalidFeed: If the result is not an http(s) URL.
    """
    url = url.strip()
    if url.startswith("@"):
        url = url[1:].strip()
    if "://" not in url:
        url = "https://" + url

    try:
        result = urlparse(url)
    except ValueError:
        raise InvalidFeed(f"Invalid URL format: {url}")
    if result.scheme not in ("http", "https") or not result.netloc:
        raise InvalidFeed(f"Invalid URL format: {url}")
    return url
