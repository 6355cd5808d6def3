"""Data models for RSS Feed Monitor."""

import copy
import hashlib
from dataclasses import asdict, dataclass, field
from datetime import datetime


@dataclass
class Feed:
    """Represents a monitored RSS/Atom source."""

    id: str
    url: str
    name: str
    last_checked: datetime | None = None
    last_update: datetime | None = None


@dataclass
class Topic:
    """A user-defined interest query evaluated against feed items."""

    id: str
    query: str
    case_sensitive: bool = False
    notify_email: bool = False
    notify_extension: bool = True


@dataclass
class RawItem:
    """A single parsed feed item, before matching."""

    title: str
    link: str
    description: str = ""
    pub_date: str | None = None
    guid: str | None = None

    @property
    def identity(self) -> str:
        """Feed-provided unique token if present, else the item link."""
        return self.guid or self.link


@dataclass
class MatchItem:
    """A feed item that matched at least one topic."""

    id: str
    feed_id: str
    title: str
    link: str
    description: str = ""
    pub_date: str = ""
    matched_topic_ids: list[str] = field(default_factory=list)
    archived: bool = False
    removed_at: datetime | None = None

    def copy(self) -> "MatchItem":
        return copy.deepcopy(self)


@dataclass
class MonitorState:
    """Full snapshot of feeds, topics and matches."""

    feeds: dict[str, Feed] = field(default_factory=dict)
    topics: dict[str, Topic] = field(default_factory=dict)
    recent: list[MatchItem] = field(default_factory=list)
    archived: list[MatchItem] = field(default_factory=list)

    def copy(self) -> "MonitorState":
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        """Render the snapshot with ISO timestamps, ready for json.dumps."""
        return {
            "feeds": {k: _jsonable(asdict(v)) for k, v in self.feeds.items()},
            "topics": {k: asdict(v) for k, v in self.topics.items()},
            "recentMatches": [_jsonable(asdict(m)) for m in self.recent],
            "archivedMatches": [_jsonable(asdict(m)) for m in self.archived],
        }


def make_match_id(feed_id: str, identity: str) -> str:
    """Derive the dedup key for an item of a feed.

    The same (feed, item identity) pair always yields the same id, so
    re-checking a feed never materialises a second match for an item.
    """
    digest = hashlib.sha1(f"{feed_id}\x00{identity}".encode("utf-8"))
    return digest.hexdigest()


def _jsonable(data: dict) -> dict:
    return {
        k: v.isoformat() if isinstance(v, datetime) else v
        for k, v in data.items()
    }
