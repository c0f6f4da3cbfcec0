"""Periodic refresh of stale cache entries."""

import asyncio
import contextlib
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from jira_timekeeper.tracker.client import TrackerClient

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Poll cache freshness on a fixed interval and refresh what went stale.

    Checks the task list and the current month's aggregated worklogs. The
    staleness policy lives here, not in the client. The running poll is an
    asyncio task that :meth:`stop` cancels; the scheduler can also be used
    as an async context manager.

    Example:
        >>> async with RefreshScheduler(client, interval=300):
        ...     await do_other_work()
    """

    def __init__(
        self,
        client: TrackerClient,
        interval: float = 300,
        tasks_max_age: float = 30 * 60,
        worklogs_max_age: float = 15 * 60,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize scheduler.

        Args:
            client: Client whose cache is kept fresh
            interval: Seconds between checks
            tasks_max_age: Seconds after which the task list is refreshed
            worklogs_max_age: Seconds after which this month's worklogs are refreshed
            clock: Returns the current local time
        """
        self.client = client
        self.interval = interval
        self.tasks_max_age = timedelta(seconds=tasks_max_age)
        self.worklogs_max_age = timedelta(seconds=worklogs_max_age)
        self.clock = clock
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        """Whether the poll loop is active."""
        return self._task is not None and not self._task.done()

    def _is_stale(self, key: str, max_age: timedelta, now: datetime) -> bool:
        last = self.client.last_refreshed(key)
        return last is None or now - last > max_age

    async def check_once(self) -> list[str]:
        """Refresh every stale entry once.

        Returns:
            Names of what was refreshed ("tasks", "worklogs")
        """
        refreshed = []
        now = self.clock()

        if self._is_stale(self.client.tasks_cache_key(), self.tasks_max_age, now):
            logger.info("Tasks cache is stale, refreshing")
            await self.client.refresh_user_tasks()
            refreshed.append("tasks")

        worklogs_key = self.client.all_worklogs_cache_key(now.month, now.year)
        if self._is_stale(worklogs_key, self.worklogs_max_age, now):
            logger.info("Worklogs cache is stale, refreshing")
            await self.client.refresh_all_worklogs(now.month, now.year)
            refreshed.append("worklogs")

        return refreshed

    async def _run(self) -> None:
        while True:
            try:
                await self.check_once()
            except Exception as e:
                logger.error(f"Background refresh failed: {e}")
            await asyncio.sleep(self.interval)

    def start(self) -> "asyncio.Task[None]":
        """Start polling on the running event loop.

        Returns:
            The polling task

        Raises:
            RuntimeError: If already running
        """
        if self.running:
            raise RuntimeError("Refresh scheduler is already running")

        self._task = asyncio.create_task(self._run())
        logger.debug(f"Refresh scheduler started (interval: {self.interval}s)")
        return self._task

    async def stop(self) -> None:
        """Cancel the polling task and wait for it to finish."""
        if self._task is None:
            return

        task, self._task = self._task, None
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("Refresh scheduler stopped")

    async def __aenter__(self) -> "RefreshScheduler":
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()
