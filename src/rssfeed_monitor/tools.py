"""Agent tool wrappers around the monitor's operations."""

import json

from langchain_core.tools import BaseTool, tool

from rssfeed_monitor.commands import (
    AddFeed,
    AddTopic,
    ArchiveMatch,
    CheckNow,
    ListFeeds,
    ListTopics,
    RemoveFeed,
    RemoveTopic,
    RestoreMatch,
    dispatch,
)
from rssfeed_monitor.errors import MonitorError
from rssfeed_monitor.models import Feed, MatchItem, Topic
from rssfeed_monitor.monitor import FeedMonitor


def build_tools(monitor: FeedMonitor) -> list[BaseTool]:
    """Create the tools bound to one monitor instance."""

    async def run(command) -> tuple[object, str | None]:
        try:
            return await dispatch(monitor, command), None
        except (MonitorError, ValueError) as e:
            return None, json.dumps({"status": "error", "message": str(e)})

    @tool
    async def add_feed(name: str, url: str) -> str:
        """Add a new RSS feed to monitor.

        Args:
            name: Display name for the feed.
            url: URL of the RSS or Atom feed.
        """
        feed, error = await run(AddFeed(name=name, url=url))
        if error:
            return error
        return json.dumps({"status": "success", "feed": _feed_json(feed)})

    @tool
    async def remove_feed(feed_id: str) -> str:
        """Stop monitoring a feed.

        Args:
            feed_id: The id of the feed, as returned by list_feeds.
        """
        removed, error = await run(RemoveFeed(feed_id=feed_id))
        if error:
            return error
        return json.dumps({"status": "success", "removed": removed})

    @tool
    async def list_feeds() -> str:
        """List all monitored feeds with when they were last checked."""
        feeds, _ = await run(ListFeeds())
        return json.dumps({
            "feeds": [_feed_json(feed) for feed in feeds],
            "total": len(feeds),
        })

    @tool
    async def add_topic(query: str, case_sensitive: bool = False) -> str:
        """Add a new search topic to monitor across all RSS feeds.

        Args:
            query: Text to look for in item titles and descriptions.
            case_sensitive: Whether the match must respect letter case.
        """
        topic, error = await run(AddTopic(query=query, case_sensitive=case_sensitive))
        if error:
            return error
        return json.dumps({"status": "success", "topic": _topic_json(topic)})

    @tool
    async def remove_topic(topic_id: str) -> str:
        """Remove a search topic.

        Args:
            topic_id: The id of the topic, as returned by list_topics.
        """
        removed, error = await run(RemoveTopic(topic_id=topic_id))
        if error:
            return error
        return json.dumps({"status": "success", "removed": removed})

    @tool
    async def list_topics() -> str:
        """List all search topics."""
        topics, _ = await run(ListTopics())
        return json.dumps({
            "topics": [_topic_json(topic) for topic in topics],
            "total": len(topics),
        })

    @tool
    async def check_feeds() -> str:
        """Check all feeds against all topics for news items.

        Run this when someone asks for the news, and after adding a feed or topic.
        """
        matches, error = await run(CheckNow())
        if error:
            return error
        return json.dumps({
            "status": "success",
            "matches_found": len(matches),
            "message": f"Found {len(matches)} new matches"
            if matches
            else "No new matches found",
            "matches": [_match_json(match) for match in matches],
        })

    @tool
    async def archive_match(match_id: str) -> str:
        """Archive a recent match so it no longer shows as recent.

        Args:
            match_id: The id of the match.
        """
        item, error = await run(ArchiveMatch(match_id=match_id))
        if error:
            return error
        if item is None:
            return json.dumps({
                "status": "error",
                "message": f"No recent match with id '{match_id}'",
            })
        return json.dumps({"status": "success", "match": _match_json(item)})

    @tool
    async def restore_match(match_id: str) -> str:
        """Restore an archived match to the top of the recent matches.

        Args:
            match_id: The id of the match.
        """
        item, error = await run(RestoreMatch(match_id=match_id))
        if error:
            return error
        if item is None:
            return json.dumps({
                "status": "error",
                "message": f"No archived match with id '{match_id}'",
            })
        return json.dumps({"status": "success", "match": _match_json(item)})

    return [
        add_feed,
        remove_feed,
        list_feeds,
        add_topic,
        remove_topic,
        list_topics,
        check_feeds,
        archive_match,
        restore_match,
    ]


def _feed_json(feed: Feed) -> dict:
    return {
        "id": feed.id,
        "name": feed.name,
        "url": feed.url,
        "last_checked": feed.last_checked.isoformat() if feed.last_checked else None,
    }


def _topic_json(topic: Topic) -> dict:
    return {
        "id": topic.id,
        "query": topic.query,
        "case_sensitive": topic.case_sensitive,
    }


def _match_json(match: MatchItem) -> dict:
    return {
        "id": match.id,
        "title": match.title,
        "link": match.link,
        "description": match.description[:200],
        "pub_date": match.pub_date,
        "matched_topics": match.matched_topic_ids,
        "archived": match.archived,
    }
