"""RSS/Atom feed fetching and tolerant item extraction."""

import asyncio
import calendar
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import struct_time

import feedparser
import httpx
from bs4 import BeautifulSoup

from rssfeed_monitor.errors import ParseEmpty, Unreachable
from rssfeed_monitor.models import RawItem

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

FEED_HEADERS = {
    "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml, */*",
    "User-Agent": "Mozilla/5.0 (compatible; rssfeed-monitor/0.1; RSS Reader)",
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
}

_WHITESPACE = re.compile(r"\s+")


@dataclass
class FetchedFeed:
    """Items extracted from one feed document."""

    items: list[RawItem] = field(default_factory=list)
    updated_at: datetime | None = None


class FeedFetcher:
    """Fetches feed documents over HTTP and parses them into items."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers=FEED_HEADERS,
            follow_redirects=True,
            transport=transport,
        )

    async def fetch(self, url: str) -> FetchedFeed:
        """Fetch and parse a feed.

        Args:
            url: The feed URL.

        Returns:
            FetchedFeed with the usable items in document order. An empty
            feed yields an empty item list rather than an error.

        Raises:
            Unreachable: On transport errors, timeouts or non-2xx status.
            ParseEmpty: If the body is not an RSS or Atom document.
        """
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as e:
            raise Unreachable(f"Timed out after {self.timeout}s fetching {url}") from e
        except httpx.HTTPError as e:
            raise Unreachable(f"Could not reach {url}: {e}") from e

        if not response.is_success:
            raise Unreachable(f"Could not reach {url}: HTTP {response.status_code}")

        return await asyncio.to_thread(
            parse_feed, response.content, response.headers.get("content-type")
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def parse_feed(document: str | bytes, content_type: str | None = None) -> FetchedFeed:
    """Extract normalized items from an RSS or Atom document.

    Malformed markup is tolerated. Items lacking a title or a link are
    dropped silently.

    Args:
        document: The feed body. Pass raw bytes so feedparser can honour the
            encoding declared by the HTTP header or the XML prolog.
        content_type: The Content-Type response header, if any.

    Raises:
        ParseEmpty: If the document is not recognisable as a feed.
    """
    headers = {"content-type": content_type} if content_type else None
    parsed = feedparser.parse(document, response_headers=headers)

    if not parsed.entries and not parsed.get("version"):
        if parsed.bozo:
            logger.debug("Feed parse failure: %s", parsed.get("bozo_exception"))
        raise ParseEmpty("Document is not a valid RSS or Atom feed")

    if parsed.bozo:
        logger.debug(
            "Feed has formatting issues: %s", parsed.get("bozo_exception")
        )

    items = []
    for entry in parsed.entries:
        item = _extract_item(entry)
        if item is not None:
            items.append(item)

    return FetchedFeed(
        items=items,
        updated_at=_to_datetime(parsed.feed.get("updated_parsed")),
    )


def _extract_item(entry) -> RawItem | None:
    title = clean_text(entry.get("title", ""))
    link = (entry.get("link") or "").strip()
    if not link:
        for candidate in entry.get("links", []):
            if candidate.get("href"):
                link = candidate["href"].strip()
                break

    if not title or not link:
        return None

    content = entry.get("content") or []
    if content and content[0].get("value"):
        description = content[0]["value"]
    else:
        description = entry.get("summary") or entry.get("description") or ""

    pub_date = entry.get("published") or entry.get("updated")
    guid = (entry.get("id") or "").strip() or None

    return RawItem(
        title=title,
        link=link,
        description=clean_text(description),
        pub_date=pub_date.strip() if pub_date else None,
        guid=guid,
    )


def clean_text(value: str) -> str:
    """Strip markup and collapse whitespace."""
    if not value:
        return ""
    if "<" in value or "&" in value:
        value = BeautifulSoup(value, "html.parser").get_text(" ")
    return _WHITESPACE.sub(" ", value).strip()


def _to_datetime(value: struct_time | None) -> datetime | None:
    if not isinstance(value, struct_time):
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    except (ValueError, OverflowError):
        return None
