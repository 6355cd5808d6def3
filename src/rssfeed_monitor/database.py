"""SQLite persistence of the monitor state."""

import json
import logging
import os
import sqlite3
from datetime import datetime

from rssfeed_monitor.errors import PersistenceError
from rssfeed_monitor.models import Feed, MatchItem, MonitorState, Topic

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS feeds (
    id TEXT PRIMARY KEY,
    position INTEGER NOT NULL,
    url TEXT NOT NULL,
    name TEXT NOT NULL,
    last_checked TEXT,
    last_update TEXT
);

CREATE TABLE IF NOT EXISTS topics (
    id TEXT PRIMARY KEY,
    position INTEGER NOT NULL,
    query TEXT NOT NULL,
    case_sensitive INTEGER DEFAULT 0,
    notify_email INTEGER DEFAULT 0,
    notify_extension INTEGER DEFAULT 1
);

CREATE TABLE IF NOT EXISTS matches (
    id TEXT PRIMARY KEY,
    position INTEGER NOT NULL,
    feed_id TEXT NOT NULL,
    title TEXT NOT NULL,
    link TEXT NOT NULL,
    description TEXT,
    pub_date TEXT,
    matched_topic_ids TEXT NOT NULL,
    archived INTEGER DEFAULT 0,
    removed_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_matches_archived ON matches(archived, position);
"""


class Database:
    """Durable single-record store for feeds, topics and matches.

    Every save is a full-state flush in one transaction, so the file always
    holds a complete snapshot.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open database connection and initialize schema."""
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        try:
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(SCHEMA_SQL)
            self._conn.commit()
        except sqlite3.DatabaseError:
            self.close()
            raise

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    def load(self) -> MonitorState:
        """Read the persisted state.

        A missing or corrupt store yields an empty state, which is written
        back immediately so later saves have a store to write to. A corrupt
        file is moved aside to ``<db_path>.corrupt``. Rows that cannot be
        decoded count as corruption too.

        Raises:
            PersistenceError: If the empty store cannot be established.
        """
        existed = self.db_path == ":memory:" or os.path.exists(self.db_path)
        try:
            if self._conn is None:
                self.connect()
            state = self._read_state()
        except (sqlite3.DatabaseError, ValueError) as e:
            logger.warning("State store %s is corrupt (%s), starting empty", self.db_path, e)
            self.close()
            self._quarantine()
            existed = False
            try:
                self.connect()
            except sqlite3.Error as err:
                raise PersistenceError(f"Could not create state store: {err}") from err
            state = MonitorState()

        if not existed:
            self.save(state)
        return state

    def save(self, state: MonitorState) -> None:
        """Replace the persisted state with ``state``.

        Raises:
            PersistenceError: If the write fails. Nothing is committed.
        """
        try:
            with self.conn:
                self.conn.execute("DELETE FROM feeds")
                self.conn.execute("DELETE FROM topics")
                self.conn.execute("DELETE FROM matches")
                self.conn.executemany(
                    """INSERT INTO feeds (id, position, url, name, last_checked, last_update)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    [
                        (
                            feed.id,
                            pos,
                            feed.url,
                            feed.name,
                            _dt_to_str(feed.last_checked),
                            _dt_to_str(feed.last_update),
                        )
                        for pos, feed in enumerate(state.feeds.values())
                    ],
                )
                self.conn.executemany(
                    """INSERT INTO topics (id, position, query, case_sensitive,
                       notify_email, notify_extension)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    [
                        (
                            topic.id,
                            pos,
                            topic.query,
                            int(topic.case_sensitive),
                            int(topic.notify_email),
                            int(topic.notify_extension),
                        )
                        for pos, topic in enumerate(state.topics.values())
                    ],
                )
                self.conn.executemany(
                    """INSERT INTO matches (id, position, feed_id, title, link,
                       description, pub_date, matched_topic_ids, archived, removed_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    [_match_to_row(pos, m) for pos, m in enumerate(state.recent)]
                    + [_match_to_row(pos, m) for pos, m in enumerate(state.archived)],
                )
        except (sqlite3.Error, RuntimeError) as e:
            logger.error("Failed to save state to %s: %s", self.db_path, e)
            raise PersistenceError(f"Failed to save state: {e}") from e

    def _read_state(self) -> MonitorState:
        feeds = {
            r["id"]: _row_to_feed(r)
            for r in self.conn.execute("SELECT * FROM feeds ORDER BY position")
        }
        topics = {
            r["id"]: _row_to_topic(r)
            for r in self.conn.execute("SELECT * FROM topics ORDER BY position")
        }
        recent = [
            _row_to_match(r)
            for r in self.conn.execute(
                "SELECT * FROM matches WHERE archived = 0 ORDER BY position"
            )
        ]
        archived = [
            _row_to_match(r)
            for r in self.conn.execute(
                "SELECT * FROM matches WHERE archived = 1 ORDER BY position"
            )
        ]
        return MonitorState(
            feeds=feeds, topics=topics, recent=recent, archived=archived
        )

    def _quarantine(self) -> None:
        if self.db_path == ":memory:":
            return
        for suffix in ("-wal", "-shm"):
            try:
                os.unlink(self.db_path + suffix)
            except FileNotFoundError:
                pass
        os.replace(self.db_path, self.db_path + ".corrupt")


# --- Helper functions ---


def _dt_to_str(dt: datetime | None) -> str | None:
    """Convert datetime to ISO string for storage."""
    return dt.isoformat() if dt else None


def _str_to_dt(s: str | None) -> datetime | None:
    """Convert stored ISO string back to datetime."""
    if not s:
        return None
    return datetime.fromisoformat(s)


def _match_to_row(position: int, match: MatchItem) -> tuple:
    return (
        match.id,
        position,
        match.feed_id,
        match.title,
        match.link,
        match.description,
        match.pub_date,
        json.dumps(match.matched_topic_ids),
        int(match.archived),
        _dt_to_str(match.removed_at),
    )


def _row_to_feed(row: sqlite3.Row) -> Feed:
    """Convert a database row to a Feed dataclass."""
    return Feed(
        id=row["id"],
        url=row["url"],
        name=row["name"],
        last_checked=_str_to_dt(row["last_checked"]),
        last_update=_str_to_dt(row["last_update"]),
    )


def _row_to_topic(row: sqlite3.Row) -> Topic:
    """Convert a database row to a Topic dataclass."""
    return Topic(
        id=row["id"],
        query=row["query"],
        case_sensitive=bool(row["case_sensitive"]),
        notify_email=bool(row["notify_email"]),
        notify_extension=bool(row["notify_extension"]),
    )


def _row_to_match(row: sqlite3.Row) -> MatchItem:
    """Convert a database row to a MatchItem dataclass."""
    topic_ids = json.loads(row["matched_topic_ids"])
    if not isinstance(topic_ids, list):
        raise ValueError(f"Match {row['id']} has malformed topic ids")
    return MatchItem(
        id=row["id"],
        feed_id=row["feed_id"],
        title=row["title"],
        link=row["link"],
        description=row["description"] or "",
        pub_date=row["pub_date"] or "",
        matched_topic_ids=topic_ids,
        archived=bool(row["archived"]),
        removed_at=_str_to_dt(row["removed_at"]),
    )
