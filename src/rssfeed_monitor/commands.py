"""Typed commands accepted by the monitor and their dispatcher.

Outer layers (HTTP routes, agent tools, a UI bridge) build one of the
command dataclasses below and hand it to ``dispatch``. Each command maps to
exactly one monitor operation and either returns its typed result or raises
the operation's typed error.
"""

from dataclasses import dataclass
from typing import Union

from rssfeed_monitor.models import Feed, MatchItem, MonitorState, Topic
from rssfeed_monitor.monitor import FeedMonitor


@dataclass(frozen=True)
class ListFeeds:
    pass


@dataclass(frozen=True)
class AddFeed:
    name: str
    url: str


@dataclass(frozen=True)
class RemoveFeed:
    feed_id: str


@dataclass(frozen=True)
class ListTopics:
    pass


@dataclass(frozen=True)
class AddTopic:
    query: str
    case_sensitive: bool = False
    notify_email: bool = False
    notify_extension: bool = True


@dataclass(frozen=True)
class RemoveTopic:
    topic_id: str


@dataclass(frozen=True)
class CheckNow:
    pass


@dataclass(frozen=True)
class ArchiveMatch:
    match_id: str


@dataclass(frozen=True)
class RestoreMatch:
    match_id: str


@dataclass(frozen=True)
class GetState:
    pass


Command = Union[
    ListFeeds,
    AddFeed,
    RemoveFeed,
    ListTopics,
    AddTopic,
    RemoveTopic,
    CheckNow,
    ArchiveMatch,
    RestoreMatch,
    GetState,
]

Result = Union[
    list[Feed], Feed, list[Topic], Topic, list[MatchItem], MatchItem, MonitorState, bool, None
]


async def dispatch(monitor: FeedMonitor, command: Command) -> Result:
    """Run one command against the monitor.

    Raises:
        TypeError: If the command type is unknown.
        MonitorError: Whatever the underlying operation raises.
    """
    match command:
        case ListFeeds():
            return monitor.list_feeds()
        case AddFeed(name=name, url=url):
            return await monitor.add_feed(name, url)
        case RemoveFeed(feed_id=feed_id):
            return await monitor.remove_feed(feed_id)
        case ListTopics():
            return monitor.list_topics()
        case AddTopic():
            return await monitor.add_topic(
                command.query,
                case_sensitive=command.case_sensitive,
                notify_email=command.notify_email,
                notify_extension=command.notify_extension,
            )
        case RemoveTopic(topic_id=topic_id):
            return await monitor.remove_topic(topic_id)
        case CheckNow():
            return await monitor.check_now()
        case ArchiveMatch(match_id=match_id):
            return await monitor.archive_match(match_id)
        case RestoreMatch(match_id=match_id):
            return await monitor.restore_match(match_id)
        case GetState():
            return monitor.get_state()
        case _:
            raise TypeError(f"Unknown command: {command!r}")
