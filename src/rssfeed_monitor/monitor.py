"""The feed monitoring engine: registries, matching, match lifecycle and persistence."""

import asyncio
import logging
from datetime import datetime, timezone

from rssfeed_monitor.config import MonitorConfig
from rssfeed_monitor.database import Database
from rssfeed_monitor.errors import FeedFetchError, PersistenceError
from rssfeed_monitor.feed_parser import FeedFetcher, FetchedFeed
from rssfeed_monitor.match_store import MatchStore
from rssfeed_monitor.matcher import match_topics
from rssfeed_monitor.models import Feed, MatchItem, MonitorState, Topic, make_match_id
from rssfeed_monitor.notifications import NotificationDispatcher
from rssfeed_monitor.poller import Poller, PollerStatus
from rssfeed_monitor.registry import FeedRegistry, TopicRegistry

logger = logging.getLogger(__name__)


class FeedMonitor:
    """Single authoritative owner of feeds, topics and matches.

    Construct one per process and hand it to every caller. All mutations
    go through one lock and are followed by a full-state flush before they
    return. Check cycles fetch feeds concurrently but apply their results
    under the same lock.
    """

    def __init__(
        self,
        database: Database,
        fetcher: FeedFetcher,
        dispatcher: NotificationDispatcher | None = None,
        config: MonitorConfig | None = None,
    ):
        self.config = config or MonitorConfig()
        self.database = database
        self.fetcher = fetcher
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.feeds = FeedRegistry()
        self.topics = TopicRegistry()
        self.matches = MatchStore(max_recent=self.config.max_recent)
        self.poller = Poller(
            self._run_cycle,
            interval=self.config.poll_interval,
            grace_period=self.config.shutdown_grace,
        )
        self._lock = asyncio.Lock()
        self._background: set[asyncio.Task] = set()
        self._loaded = False
        self._started = False

    # --- Lifecycle ---

    def load(self) -> None:
        """Restore registries and matches from the database."""
        state = self.database.load()
        self.feeds = FeedRegistry(state.feeds)
        self.topics = TopicRegistry(state.topics)
        self.matches.load(state.recent, state.archived)
        self._loaded = True
        logger.info(
            "Loaded %d feeds, %d topics, %d recent and %d archived matches",
            len(state.feeds),
            len(state.topics),
            len(state.recent),
            len(state.archived),
        )

    async def start(self) -> None:
        """Load state if needed and start periodic checking."""
        if not self._loaded:
            self.load()
        self.poller.start()
        self._started = True

    async def shutdown(self) -> None:
        """Stop checking, flush state and release resources."""
        await self.poller.stop()
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        async with self._lock:
            try:
                self._flush()
            except PersistenceError:
                logger.error("Final state flush failed during shutdown")
        await self.fetcher.aclose()
        self.database.close()

    # --- Feeds ---

    def list_feeds(self) -> list[Feed]:
        return self.feeds.list()

    async def add_feed(self, name: str, url: str) -> Feed:
        """Validate and register a feed.

        Raises:
            InvalidFeed: If the feed cannot be fetched or parsed.
            PersistenceError: If the feed was registered but not saved.
        """
        # The validation fetch must not hold the lock.
        feed = await self.feeds.validate(name, url, self.fetcher)
        async with self._lock:
            self.feeds.register(feed)
            self._flush()
            return feed

    async def remove_feed(self, feed_id: str) -> bool:
        async with self._lock:
            removed = self.feeds.remove(feed_id)
            if removed:
                self._flush()
            return removed

    # --- Topics ---

    def list_topics(self) -> list[Topic]:
        return self.topics.list()

    async def add_topic(
        self,
        query: str,
        case_sensitive: bool = False,
        notify_email: bool = False,
        notify_extension: bool = True,
    ) -> Topic:
        """Register a topic and, once started, check feeds against it.

        Raises:
            DuplicateTopic: If an equivalent topic exists.
            PersistenceError: If the topic was registered but not saved.
        """
        async with self._lock:
            topic = self.topics.add(
                query,
                case_sensitive=case_sensitive,
                notify_email=notify_email,
                notify_extension=notify_extension,
            )
            self._flush()

        if self.config.check_on_new_topic and self._started:
            self._schedule_check()
        return topic

    async def remove_topic(self, topic_id: str) -> bool:
        async with self._lock:
            removed = self.topics.remove(topic_id)
            if removed:
                self._flush()
            return removed

    # --- Matches ---

    async def check_now(self) -> list[MatchItem]:
        """Run a check cycle, or join the one in flight.

        Returns:
            Matches newly inserted by the cycle, in feed order.
        """
        return [item.copy() for item in await self.poller.trigger()]

    async def archive_match(self, match_id: str) -> MatchItem | None:
        async with self._lock:
            item = self.matches.archive(match_id)
            if item is not None:
                logger.info("Archived match: %s", item.title)
                self._flush()
                return item.copy()
            return None

    async def restore_match(self, match_id: str) -> MatchItem | None:
        async with self._lock:
            item = self.matches.restore(match_id)
            if item is not None:
                logger.info("Restored match: %s", item.title)
                self._flush()
                return item.copy()
            return None

    def recent_matches(self) -> list[MatchItem]:
        return self.matches.recent()

    def archived_matches(self) -> list[MatchItem]:
        return self.matches.archived()

    def get_state(self) -> MonitorState:
        """Return a detached snapshot of the whole state."""
        return self._state().copy()

    # --- Internals ---

    async def _run_cycle(self) -> list[MatchItem]:
        feeds = self.feeds.list()
        if not feeds or not self.topics.list():
            logger.info("No feeds or topics configured, skipping check")
            return []

        semaphore = asyncio.Semaphore(self.config.max_concurrent_fetches)

        async def fetch_one(feed: Feed) -> tuple[Feed, FetchedFeed | None]:
            async with semaphore:
                try:
                    return feed, await self.fetcher.fetch(feed.url)
                except FeedFetchError as e:
                    logger.warning("Feed '%s' error: %s", feed.name, e)
                except Exception as e:
                    logger.warning("Feed '%s' unexpected error: %s", feed.name, e)
                return feed, None

        results = await asyncio.gather(*(fetch_one(feed) for feed in feeds))

        flush_error = None
        async with self._lock:
            inserted = self._apply(results)
            try:
                self._flush()
            except PersistenceError as e:
                flush_error = e

        if inserted:
            self.dispatcher.notify(inserted, self.topics.as_dict())
        logger.info(
            "Check complete: %d feeds, %d new matches", len(feeds), len(inserted)
        )
        if flush_error is not None:
            raise flush_error
        return inserted

    def _apply(self, results: list[tuple[Feed, FetchedFeed | None]]) -> list[MatchItem]:
        """Match fetched items and ingest them. Runs under the lock."""
        now = datetime.now(timezone.utc)
        topics = self.topics.list()
        candidates: list[MatchItem] = []

        for feed, fetched in results:
            if fetched is None or self.feeds.get(feed.id) is None:
                continue
            for item in fetched.items:
                matched = match_topics(item, topics)
                if not matched:
                    continue
                candidates.append(
                    MatchItem(
                        id=make_match_id(feed.id, item.identity),
                        feed_id=feed.id,
                        title=item.title,
                        link=item.link,
                        description=item.description,
                        pub_date=item.pub_date or now.isoformat(),
                        matched_topic_ids=[t.id for t in matched],
                    )
                )
            self.feeds.mark_checked(feed.id, now, fetched.updated_at)

        # Ingest oldest-first so the first item of the first feed ends up on top.
        inserted = [c for c in reversed(candidates) if self.matches.ingest(c)]
        inserted.reverse()

        per_feed: dict[str, int] = {}
        for item in inserted:
            per_feed[item.feed_id] = per_feed.get(item.feed_id, 0) + 1
        for feed_id, count in per_feed.items():
            feed = self.feeds.get(feed_id)
            logger.info("Feed '%s': %d new matches", feed.name if feed else feed_id, count)
        return inserted

    def _state(self) -> MonitorState:
        return MonitorState(
            feeds=self.feeds.as_dict(),
            topics=self.topics.as_dict(),
            recent=self.matches.recent(),
            archived=self.matches.archived(),
        )

    def _flush(self) -> None:
        self.database.save(self._state())

    def _schedule_check(self) -> None:
        if self.poller.status is PollerStatus.STOPPED:
            return
        task = asyncio.create_task(self.poller.trigger())
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Background check ended with: %s", task.exception())
