"""Environment-driven configuration for RSS Feed Monitor."""

import os
from dataclasses import dataclass

from rssfeed_monitor.feed_parser import DEFAULT_TIMEOUT
from rssfeed_monitor.match_store import DEFAULT_MAX_RECENT
from rssfeed_monitor.poller import DEFAULT_POLL_INTERVAL, DEFAULT_SHUTDOWN_GRACE

DEFAULT_DB_PATH = "rssfeed_monitor.db"
DEFAULT_MAX_CONCURRENT = 5


@dataclass
class MonitorConfig:
    db_path: str = DEFAULT_DB_PATH
    poll_interval: float = DEFAULT_POLL_INTERVAL
    fetch_timeout: float = DEFAULT_TIMEOUT
    max_recent: int = DEFAULT_MAX_RECENT
    max_concurrent_fetches: int = DEFAULT_MAX_CONCURRENT
    shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE
    check_on_new_topic: bool = True

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "MonitorConfig":
        """Build a config from RSS_* environment variables.

        Raises:
            ValueError: If a numeric variable cannot be parsed.
        """
        env = os.environ if environ is None else environ
        return cls(
            db_path=env.get("RSS_DB_PATH", DEFAULT_DB_PATH),
            poll_interval=_number(env, "RSS_POLL_INTERVAL", float, DEFAULT_POLL_INTERVAL),
            fetch_timeout=_number(env, "RSS_FETCH_TIMEOUT", float, DEFAULT_TIMEOUT),
            max_recent=_number(env, "RSS_MAX_RECENT", int, DEFAULT_MAX_RECENT),
            max_concurrent_fetches=_number(
                env, "RSS_MAX_CONCURRENT", int, DEFAULT_MAX_CONCURRENT
            ),
            shutdown_grace=_number(
                env, "RSS_SHUTDOWN_GRACE", float, DEFAULT_SHUTDOWN_GRACE
            ),
            check_on_new_topic=env.get("RSS_CHECK_ON_NEW_TOPIC", "true").strip().lower()
            not in ("0", "false", "no", "off"),
        )


def _number(env, name: str, kind: type, default):
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"{name} must be a {kind.__name__}, got {raw!r}")
