"""Substring matching of feed items against topics."""

from rssfeed_monitor.models import RawItem, Topic


def match_topics(item: RawItem, topics: list[Topic]) -> list[Topic]:
    """Return every topic whose query occurs in the item's title or description.

    Matching is case-insensitive unless the topic is case sensitive.
    """
    content = f"{item.title} {item.description}"
    folded = content.lower()

    matched = []
    for topic in topics:
        if not topic.query:
            continue
        if topic.case_sensitive:
            if topic.query in content:
                matched.append(topic)
        elif topic.query.lower() in folded:
            matched.append(topic)
    return matched
