"""Entry point for RSS Feed Monitor: python -m rssfeed_monitor"""

import asyncio
import logging

from rssfeed_monitor.config import MonitorConfig
from rssfeed_monitor.database import Database
from rssfeed_monitor.feed_parser import FeedFetcher
from rssfeed_monitor.monitor import FeedMonitor
from rssfeed_monitor.notifications import NotificationDispatcher, log_sink

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
# Quiet noisy loggers
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger("rssfeed_monitor")


async def main() -> None:
    """Initialize and run the monitor until interrupted."""
    config = MonitorConfig.from_env()

    monitor = FeedMonitor(
        database=Database(config.db_path),
        fetcher=FeedFetcher(timeout=config.fetch_timeout),
        dispatcher=NotificationDispatcher([log_sink]),
        config=config,
    )
    await monitor.start()
    logger.info(
        "Monitoring %d feeds for %d topics (Ctrl+C to quit)",
        len(monitor.list_feeds()),
        len(monitor.list_topics()),
    )

    try:
        await asyncio.Event().wait()
    finally:
        await monitor.shutdown()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    run()
