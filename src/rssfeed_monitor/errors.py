"""Error taxonomy for RSS Feed Monitor."""


class MonitorError(Exception):
    """Base class for all monitor errors."""


class InvalidFeed(MonitorError):
    """Raised when a feed URL cannot be fetched or parsed at registration."""


class DuplicateTopic(MonitorError):
    """Raised when an equivalent topic is already registered."""


class FeedFetchError(MonitorError):
    """Raised when a feed cannot be fetched or parsed."""


class Unreachable(FeedFetchError):
    """Raised on transport errors, timeouts, and non-success HTTP status."""


class ParseEmpty(FeedFetchError):
    """Raised when a document is not a feed at all."""


class PersistenceError(MonitorError):
    """Raised when the state store cannot be written."""


class SchedulerStopped(MonitorError):
    """Raised when a check is requested after shutdown."""
