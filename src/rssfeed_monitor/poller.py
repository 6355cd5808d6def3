"""Periodic, non-reentrant scheduling of feed check cycles."""

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from rssfeed_monitor.errors import SchedulerStopped

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 300  # 5 minutes
DEFAULT_SHUTDOWN_GRACE = 5.0


class PollerStatus(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class Poller:
    """Runs a check cycle on a timer and on demand, never two at once.

    A timer tick that fires while a cycle is still running is dropped. A
    manual trigger during a running cycle joins that cycle and returns its
    result instead of starting another.
    """

    def __init__(
        self,
        cycle: Callable[[], Awaitable[Any]],
        interval: float = DEFAULT_POLL_INTERVAL,
        grace_period: float = DEFAULT_SHUTDOWN_GRACE,
    ):
        if interval <= 0:
            raise ValueError("Poll interval must be positive")
        self._cycle = cycle
        self.interval = interval
        self.grace_period = grace_period
        self._timer: asyncio.Task | None = None
        self._current: asyncio.Task | None = None
        self._stopped = False

    @property
    def status(self) -> PollerStatus:
        if self._stopped:
            return PollerStatus.STOPPED
        if self._current is not None and not self._current.done():
            return PollerStatus.RUNNING
        return PollerStatus.IDLE

    def start(self) -> None:
        """Start the timer. The first cycle runs immediately."""
        if self._stopped:
            raise SchedulerStopped("Poller has been stopped")
        if self._timer is None:
            self._timer = asyncio.create_task(self._run())

    async def trigger(self) -> Any:
        """Run a cycle now, or wait for the one already in flight.

        Returns:
            The result of the cycle that ran.

        Raises:
            SchedulerStopped: If the poller has been stopped.
            Exception: Whatever the cycle raised.
        """
        if self._stopped:
            raise SchedulerStopped("Poller has been stopped")
        task = self._current
        if task is None or task.done():
            task = self._begin()
        else:
            logger.debug("Check already running, joining in-flight cycle")
        return await asyncio.shield(task)

    async def stop(self) -> None:
        """Cancel the timer and let an in-flight cycle finish within the grace period."""
        if self._stopped:
            return
        self._stopped = True

        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None

        task = self._current
        if task is not None and not task.done():
            await asyncio.wait({task}, timeout=self.grace_period)
            if not task.done():
                logger.warning(
                    "Check cycle still running after %.1fs, cancelling",
                    self.grace_period,
                )
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        logger.info("Poller stopped")

    async def _run(self) -> None:
        logger.info("Poller started (interval: %ss)", self.interval)
        while True:
            if self.status is PollerStatus.RUNNING:
                logger.debug("Check cycle still running, tick dropped")
            else:
                self._begin()
            await asyncio.sleep(self.interval)

    def _begin(self) -> asyncio.Task:
        self._current = asyncio.create_task(self._cycle())
        self._current.add_done_callback(self._cycle_done)
        return self._current

    @staticmethod
    def _cycle_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Check cycle failed: %s", exc, exc_info=exc)
