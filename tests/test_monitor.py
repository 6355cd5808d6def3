"""Tests for the monitoring engine: cycles, lifecycle and persistence."""

import asyncio

import pytest

from conftest import make_items
from rssfeed_monitor.config import MonitorConfig
from rssfeed_monitor.database import Database
from rssfeed_monitor.errors import DuplicateTopic, InvalidFeed, PersistenceError, Unreachable
from rssfeed_monitor.feed_parser import FetchedFeed
from rssfeed_monitor.models import RawItem
from rssfeed_monitor.monitor import FeedMonitor
from rssfeed_monitor.notifications import NotificationDispatcher

pytestmark = pytest.mark.anyio

FEED_URL = "https://example.com/feed"


def _two_items() -> FetchedFeed:
    return FetchedFeed(
        items=[
            RawItem(title="Rust 1.80 released", link=f"{FEED_URL}/a", description="Release notes", guid="a"),
            RawItem(title="Python news", link=f"{FEED_URL}/b", description="Nothing relevant", guid="b"),
        ]
    )


async def test_end_to_end_lifecycle(monitor, fetcher, notifications):
    fetcher.responses[FEED_URL] = _two_items()
    await monitor.add_feed("F", FEED_URL)
    await monitor.add_topic("rust")

    new = await monitor.check_now()

    assert [m.title for m in new] == ["Rust 1.80 released"]
    a = new[0]
    assert monitor.recent_matches() == [a]

    archived = await monitor.archive_match(a.id)
    assert monitor.recent_matches() == []
    assert monitor.archived_matches() == [archived]
    assert archived.archived is True and archived.removed_at is not None

    restored = await monitor.restore_match(a.id)
    assert monitor.recent_matches() == [restored]
    assert monitor.archived_matches() == []
    assert restored.archived is False and restored.removed_at is None

    assert len(notifications) == 1
    assert notifications[0].title == "Rust 1.80 released"
    assert notifications[0].link == f"{FEED_URL}/a"
    assert notifications[0].topics == "rust"


async def test_checking_twice_inserts_once(monitor, fetcher, notifications):
    fetcher.responses[FEED_URL] = _two_items()
    await monitor.add_feed("F", FEED_URL)
    await monitor.add_topic("rust")

    assert len(await monitor.check_now()) == 1
    assert await monitor.check_now() == []
    assert len(monitor.recent_matches()) == 1
    assert len(notifications) == 1


async def test_archived_match_is_not_recreated(monitor, fetcher, notifications):
    fetcher.responses[FEED_URL] = _two_items()
    await monitor.add_feed("F", FEED_URL)
    await monitor.add_topic("rust")
    (a,) = await monitor.check_now()
    await monitor.archive_match(a.id)

    assert await monitor.check_now() == []
    assert monitor.recent_matches() == []
    assert len(notifications) == 1


async def test_match_records_every_topic(monitor, fetcher):
    fetcher.responses[FEED_URL] = _two_items()
    await monitor.add_feed("F", FEED_URL)
    rust = await monitor.add_topic("rust")
    release = await monitor.add_topic("RELEASE")

    (a,) = await monitor.check_now()

    assert a.matched_topic_ids == [rust.id, release.id]


async def test_first_feed_item_ends_up_on_top(monitor, fetcher):
    fetcher.responses[FEED_URL] = make_items("rust one", "rust two", "rust three")
    await monitor.add_feed("F", FEED_URL)
    await monitor.add_topic("rust")

    new = await monitor.check_now()

    assert [m.title for m in new] == ["rust one", "rust two", "rust three"]
    assert [m.title for m in monitor.recent_matches()] == ["rust one", "rust two", "rust three"]


async def test_unreachable_feed_is_skipped(monitor, fetcher):
    other = "https://other.example.com/feed"
    fetcher.responses[FEED_URL] = _two_items()
    fetcher.responses[other] = make_items("rust elsewhere", prefix="https://other.example.com/")
    good = await monitor.add_feed("Good", FEED_URL)
    bad = await monitor.add_feed("Bad", other)
    await monitor.add_topic("rust")
    fetcher.responses[other] = Unreachable("HTTP 500")

    new = await monitor.check_now()

    assert [m.feed_id for m in new] == [good.id]
    assert [f.id for f in monitor.list_feeds()] == [good.id, bad.id]
    assert good.last_checked is not None
    assert bad.last_checked is None


async def test_no_topics_skips_fetching(monitor, fetcher):
    fetcher.responses[FEED_URL] = _two_items()
    await monitor.add_feed("F", FEED_URL)
    fetcher.calls.clear()

    assert await monitor.check_now() == []
    assert fetcher.calls == []


async def test_invalid_feed_is_not_registered(monitor):
    with pytest.raises(InvalidFeed):
        await monitor.add_feed("Missing", "https://example.com/missing")
    assert monitor.list_feeds() == []


async def test_duplicate_topic(monitor):
    await monitor.add_topic("AI", case_sensitive=True)
    with pytest.raises(DuplicateTopic):
        await monitor.add_topic("AI", case_sensitive=True)
    await monitor.add_topic("AI", case_sensitive=False)
    assert len(monitor.list_topics()) == 2


async def test_removing_feed_keeps_topics_and_matches(monitor, fetcher):
    fetcher.responses[FEED_URL] = _two_items()
    feed = await monitor.add_feed("F", FEED_URL)
    await monitor.add_topic("rust")
    await monitor.check_now()

    assert await monitor.remove_feed(feed.id) is True
    assert await monitor.remove_feed(feed.id) is False

    assert monitor.list_feeds() == []
    assert len(monitor.list_topics()) == 1
    assert len(monitor.recent_matches()) == 1


async def test_concurrent_checks_apply_once(monitor, fetcher, notifications):
    fetcher.responses[FEED_URL] = _two_items()
    await monitor.add_feed("F", FEED_URL)
    await monitor.add_topic("rust")
    fetcher.calls.clear()
    fetcher.gate = asyncio.Event()

    first = asyncio.create_task(monitor.check_now())
    await asyncio.sleep(0)
    second = asyncio.create_task(monitor.check_now())
    await asyncio.sleep(0)
    fetcher.gate.set()

    first_result, second_result = await asyncio.gather(first, second)

    assert first_result == second_result
    assert len(first_result) == 1
    assert fetcher.calls == [FEED_URL]
    assert len(monitor.recent_matches()) == 1
    assert len(notifications) == 1


async def test_state_survives_restart(monitor, fetcher, tmp_db_path):
    fetcher.responses[FEED_URL] = make_items("rust a", "rust b", "go c")
    await monitor.add_feed("F", FEED_URL)
    await monitor.add_topic("rust")
    await monitor.add_topic("GO", case_sensitive=True)
    new = await monitor.check_now()
    await monitor.archive_match(new[1].id)
    before = monitor.get_state()
    monitor.database.close()

    restarted = FeedMonitor(
        database=Database(tmp_db_path),
        fetcher=fetcher,
        config=MonitorConfig(db_path=tmp_db_path),
    )
    restarted.load()
    try:
        assert restarted.get_state() == before
        assert await restarted.check_now() == []
    finally:
        restarted.database.close()


async def test_persistence_failure_is_surfaced(monitor, fetcher, monkeypatch):
    fetcher.responses[FEED_URL] = _two_items()
    await monitor.add_feed("F", FEED_URL)
    await monitor.add_topic("rust")
    (a,) = await monitor.check_now()

    def broken_save(state):
        raise PersistenceError("disk full")

    monkeypatch.setattr(monitor.database, "save", broken_save)
    with pytest.raises(PersistenceError):
        await monitor.archive_match(a.id)

    # In-memory state stays authoritative and is flushed by the next mutation.
    assert [m.id for m in monitor.archived_matches()] == [a.id]
    monkeypatch.undo()
    await monitor.add_topic("python")
    assert [m.id for m in monitor.database.load().archived] == [a.id]


async def test_cycle_flush_failure_still_notifies(monitor, fetcher, notifications, monkeypatch):
    fetcher.responses[FEED_URL] = _two_items()
    await monitor.add_feed("F", FEED_URL)
    await monitor.add_topic("rust")

    def broken_save(state):
        raise PersistenceError("disk full")

    monkeypatch.setattr(monitor.database, "save", broken_save)
    with pytest.raises(PersistenceError):
        await monitor.check_now()

    assert len(monitor.recent_matches()) == 1
    assert len(notifications) == 1


async def test_failing_notification_sink_does_not_block(tmp_db_path, fetcher):
    def broken_sink(notification):
        raise RuntimeError("sink down")

    delivered = []
    monitor = FeedMonitor(
        database=Database(tmp_db_path),
        fetcher=fetcher,
        dispatcher=NotificationDispatcher([broken_sink, delivered.append]),
        config=MonitorConfig(db_path=tmp_db_path),
    )
    monitor.load()
    fetcher.responses[FEED_URL] = _two_items()
    await monitor.add_feed("F", FEED_URL)
    await monitor.add_topic("rust")

    new = await monitor.check_now()

    assert len(new) == 1
    assert len(delivered) == 1
    assert len(monitor.recent_matches()) == 1
    monitor.database.close()


async def test_get_state_is_detached(monitor, fetcher):
    fetcher.responses[FEED_URL] = _two_items()
    await monitor.add_feed("F", FEED_URL)
    await monitor.add_topic("rust")
    await monitor.check_now()

    snapshot = monitor.get_state()
    snapshot.recent.clear()
    snapshot.feeds.clear()

    assert len(monitor.recent_matches()) == 1
    assert len(monitor.list_feeds()) == 1
    data = monitor.get_state().to_dict()
    assert set(data) == {"feeds", "topics", "recentMatches", "archivedMatches"}
    assert data["recentMatches"][0]["title"] == "Rust 1.80 released"


async def test_new_topic_triggers_check_once_started(monitor, fetcher):
    fetcher.responses[FEED_URL] = _two_items()
    await monitor.add_feed("F", FEED_URL)
    monitor.config.check_on_new_topic = True
    await monitor.start()
    try:
        await monitor.add_topic("rust")
        for _ in range(50):
            if monitor.recent_matches():
                break
            await asyncio.sleep(0.01)
        assert [m.title for m in monitor.recent_matches()] == ["Rust 1.80 released"]
    finally:
        await monitor.shutdown()

    assert fetcher.closed is True


async def test_feed_validation_does_not_block_other_mutations(monitor, fetcher):
    other = "https://other.example.com/feed"
    fetcher.responses[FEED_URL] = _two_items()
    fetcher.responses[other] = make_items("go news", prefix="https://other.example.com/")
    await monitor.add_feed("F", FEED_URL)
    await monitor.add_topic("rust")
    (a,) = await monitor.check_now()
    fetcher.gate = asyncio.Event()

    pending = asyncio.create_task(monitor.add_feed("Other", other))
    await asyncio.sleep(0)
    archived = await asyncio.wait_for(monitor.archive_match(a.id), timeout=1)

    assert archived is not None and archived.archived is True
    assert not pending.done()
    fetcher.gate.set()
    feed = await pending
    assert [f.id for f in monitor.list_feeds()][-1] == feed.id


async def test_same_url_added_concurrently_registers_once(monitor, fetcher):
    fetcher.responses[FEED_URL] = _two_items()
    fetcher.gate = asyncio.Event()

    first = asyncio.create_task(monitor.add_feed("One", FEED_URL))
    second = asyncio.create_task(monitor.add_feed("Two", FEED_URL))
    await asyncio.sleep(0)
    fetcher.gate.set()
    results = await asyncio.gather(first, second, return_exceptions=True)

    assert len(fetcher.calls) == 2
    assert sum(isinstance(r, InvalidFeed) for r in results) == 1
    assert len(monitor.list_feeds()) == 1
    assert len(monitor.database.load().feeds) == 1


async def test_returned_matches_are_detached(monitor, fetcher):
    fetcher.responses[FEED_URL] = _two_items()
    await monitor.add_feed("F", FEED_URL)
    await monitor.add_topic("rust")
    (a,) = await monitor.check_now()

    a.archived = True
    a.matched_topic_ids.clear()
    monitor.recent_matches()[0].title = "changed"

    (current,) = monitor.recent_matches()
    assert current.archived is False
    assert current.title == "Rust 1.80 released"
    assert len(current.matched_topic_ids) == 1
    assert await monitor.archive_match(a.id) is not None
