"""Fire-and-forget notifications for newly confirmed matches."""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from rssfeed_monitor.models import MatchItem, Topic

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = "New RSS Match Found!"


@dataclass(frozen=True)
class Notification:
    """One user-facing event for a new match."""

    match_id: str
    title: str
    link: str
    topics: str
    channels: tuple[str, ...] = ()

    @property
    def message(self) -> str:
        return f"{self.title}\nMatched topics: {self.topics}"


Sink = Callable[[Notification], None]


def log_sink(notification: Notification) -> None:
    """Default sink: write the notification to the log."""
    logger.info(
        "%s %s <%s> [topics: %s]",
        NOTIFICATION_TITLE,
        notification.title,
        notification.link,
        notification.topics,
    )


class NotificationDispatcher:
    """Delivers one notification per new match to every registered sink.

    A failing sink is logged and skipped; it never affects the cycle that
    produced the match.
    """

    def __init__(self, sinks: Iterable[Sink] | None = None):
        self._sinks: list[Sink] = list(sinks) if sinks is not None else [log_sink]

    def add_sink(self, sink: Sink) -> None:
        self._sinks.append(sink)

    def notify(
        self, matches: list[MatchItem], topics: dict[str, Topic]
    ) -> list[Notification]:
        """Build and deliver notifications for newly inserted matches.

        Args:
            matches: Matches inserted in this cycle.
            topics: Current topics by id, used to resolve names and channels.

        Returns:
            The notifications that were built, delivered or not.
        """
        notifications = [build_notification(m, topics) for m in matches]
        for notification in notifications:
            for sink in self._sinks:
                try:
                    sink(notification)
                except Exception:
                    logger.exception(
                        "Notification sink %r failed for match %s",
                        sink,
                        notification.match_id,
                    )
        return notifications


def build_notification(match: MatchItem, topics: dict[str, Topic]) -> Notification:
    matched = [topics[tid] for tid in match.matched_topic_ids if tid in topics]
    channels = []
    if any(t.notify_extension for t in matched):
        channels.append("extension")
    if any(t.notify_email for t in matched):
        channels.append("email")
    return Notification(
        match_id=match.id,
        title=match.title,
        link=match.link,
        topics=", ".join(t.query for t in matched),
        channels=tuple(channels),
    )
