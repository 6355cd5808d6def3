"""Deduplicated store of matches with a recent/archived lifecycle."""

import logging
from datetime import datetime, timezone

from rssfeed_monitor.models import MatchItem

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECENT = 100


class MatchStore:
    """Owns every MatchItem and is the only writer of archived/removed_at.

    Recent matches are kept newest first and bounded to ``max_recent``;
    matches pushed past the bound are evicted outright. Archived matches are
    never evicted. An id lives in at most one of the two sets.

    The store is not thread-safe. Callers serialise mutations.
    """

    def __init__(self, max_recent: int = DEFAULT_MAX_RECENT):
        if max_recent < 1:
            raise ValueError("max_recent must be at least 1")
        self.max_recent = max_recent
        self._recent: list[MatchItem] = []
        self._archived: list[MatchItem] = []
        self._index: dict[str, MatchItem] = {}

    def load(self, recent: list[MatchItem], archived: list[MatchItem]) -> None:
        """Replace the store contents with previously persisted matches."""
        self._recent = []
        self._archived = []
        self._index = {}
        for item in archived:
            if item.id in self._index:
                continue
            item.archived = True
            self._archived.append(item)
            self._index[item.id] = item
        for item in recent:
            if item.id in self._index:
                continue
            item.archived = False
            item.removed_at = None
            self._recent.append(item)
            self._index[item.id] = item
        self._evict()

    def ingest(self, candidate: MatchItem) -> bool:
        """Insert a candidate at the head of recent unless its id is known.

        Returns:
            True if the candidate was inserted, False if it was a duplicate
            of a recent or archived match.
        """
        if not candidate.matched_topic_ids:
            raise ValueError("A match needs at least one matched topic")
        if candidate.id in self._index:
            logger.debug("Duplicate match %s skipped", candidate.id)
            return False

        candidate.archived = False
        candidate.removed_at = None
        self._recent.insert(0, candidate)
        self._index[candidate.id] = candidate
        self._evict()
        return True

    def archive(self, match_id: str, now: datetime | None = None) -> MatchItem | None:
        """Move a recent match to archived. Returns None if not recent."""
        item = self._index.get(match_id)
        if item is None or item.archived:
            return None

        self._recent.remove(item)
        item.archived = True
        item.removed_at = now or datetime.now(timezone.utc)
        self._archived.insert(0, item)
        return item

    def restore(self, match_id: str) -> MatchItem | None:
        """Move an archived match back to the head of recent.

        Returns None if the match is not archived.
        """
        item = self._index.get(match_id)
        if item is None or not item.archived:
            return None

        self._archived.remove(item)
        item.archived = False
        item.removed_at = None
        self._recent.insert(0, item)
        self._evict()
        return item

    def recent(self) -> list[MatchItem]:
        """Detached copies of the recent matches, newest first."""
        return [item.copy() for item in self._recent]

    def archived(self) -> list[MatchItem]:
        """Detached copies of the archived matches, latest archived first."""
        return [item.copy() for item in self._archived]

    def __contains__(self, match_id: object) -> bool:
        return match_id in self._index

    def __len__(self) -> int:
        return len(self._index)

    def _evict(self) -> None:
        while len(self._recent) > self.max_recent:
            dropped = self._recent.pop()
            del self._index[dropped.id]
            logger.debug("Evicted match %s (%s)", dropped.id, dropped.title)
