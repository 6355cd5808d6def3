"""Shared test fixtures for RSS Feed Monitor tests."""

import asyncio
import os
import tempfile

import pytest

from rssfeed_monitor.config import MonitorConfig
from rssfeed_monitor.database import Database
from rssfeed_monitor.errors import Unreachable
from rssfeed_monitor.feed_parser import FetchedFeed
from rssfeed_monitor.models import RawItem
from rssfeed_monitor.monitor import FeedMonitor
from rssfeed_monitor.notifications import NotificationDispatcher


SAMPLE_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/">
  <channel>
    <title>Test Feed</title>
    <link>https://example.com</link>
    <description>A test RSS feed</description>
    <lastBuildDate>Thu, 13 Feb 2026 10:30:00 GMT</lastBuildDate>
    <item>
      <title><![CDATA[Rust 2026 roadmap]]></title>
      <link>https://example.com/article-1</link>
      <guid>article-1</guid>
      <description><![CDATA[<p>What is next for <b>Rust</b></p>]]></description>
      <pubDate>Thu, 13 Feb 2026 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Second Article</title>
      <link>https://example.com/article-2</link>
      <description>Short summary</description>
      <content:encoded><![CDATA[<div>The   full
        <em>body</em> of the second article</div>]]></content:encoded>
      <pubDate>Thu, 13 Feb 2026 09:00:00 GMT</pubDate>
    </item>
    <item>
      <title></title>
      <link>https://example.com/untitled</link>
    </item>
    <item>
      <title>No link here</title>
      <description>Dropped</description>
    </item>
  </channel>
</rss>"""

SAMPLE_ATOM_XML = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Test Atom Feed</title>
  <link href="https://example.com"/>
  <subtitle>A test Atom feed</subtitle>
  <updated>2026-02-13T10:00:00Z</updated>
  <entry>
    <title>Atom Entry 1</title>
    <link href="https://example.com/entry-1"/>
    <id>urn:uuid:entry-1</id>
    <summary>Summary of entry 1</summary>
    <updated>2026-02-13T10:00:00Z</updated>
  </entry>
</feed>"""

SAMPLE_EMPTY_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Quiet Feed</title>
    <link>https://example.com</link>
  </channel>
</rss>"""

SAMPLE_MALFORMED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Malformed Feed</title>
    <link>https://example.com</link>
    <item>
      <title>Good Item</title>
      <link>https://example.com/good</link>
      <guid>good-item</guid>
    </item>
    <item>
      <title>Bad Item</title>
      <!-- Missing closing tags intentionally -->
"""

SAMPLE_NOT_A_FEED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<html>
  <body>This is not a feed</body>
</html>"""


class FakeFetcher:
    """In-memory stand-in for FeedFetcher keyed by URL.

    Values are FetchedFeed results or exceptions to raise. When ``gate`` is
    set, every fetch waits on it before returning.
    """

    def __init__(self, responses: dict | None = None):
        self.responses = dict(responses or {})
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def fetch(self, url: str) -> FetchedFeed:
        self.calls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        result = self.responses.get(url)
        if result is None:
            raise Unreachable(f"Could not reach {url}: HTTP 404")
        if isinstance(result, Exception):
            raise result
        return result

    async def aclose(self) -> None:
        self.closed = True


def make_items(*titles: str, prefix: str = "https://example.com/") -> FetchedFeed:
    return FetchedFeed(
        items=[
            RawItem(
                title=title,
                link=f"{prefix}{i}",
                description=f"About {title}",
                guid=f"{prefix}{i}",
            )
            for i, title in enumerate(titles)
        ]
    )


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def tmp_db_path():
    """Provide a temporary SQLite database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    os.unlink(path)
    yield path
    for suffix in ("", "-wal", "-shm", ".corrupt"):
        try:
            os.unlink(path + suffix)
        except OSError:
            pass


@pytest.fixture
def sample_rss_xml():
    """Sample valid RSS 2.0 XML."""
    return SAMPLE_RSS_XML


@pytest.fixture
def sample_atom_xml():
    """Sample valid Atom XML."""
    return SAMPLE_ATOM_XML


@pytest.fixture
def sample_malformed_xml():
    """Sample malformed RSS XML."""
    return SAMPLE_MALFORMED_XML


@pytest.fixture
def sample_not_a_feed_xml():
    """Sample XML that is not a feed."""
    return SAMPLE_NOT_A_FEED_XML


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def notifications():
    """Collects every notification delivered by the monitor fixture."""
    return []


@pytest.fixture
def monitor(tmp_db_path, fetcher, notifications):
    """A loaded, not-started monitor backed by a temporary database."""
    config = MonitorConfig(db_path=tmp_db_path, check_on_new_topic=False)
    mon = FeedMonitor(
        database=Database(tmp_db_path),
        fetcher=fetcher,
        dispatcher=NotificationDispatcher([notifications.append]),
        config=config,
    )
    mon.load()
    yield mon
    mon.database.close()
