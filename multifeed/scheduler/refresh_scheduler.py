"""
MultiFeed Refresh Scheduler
===========================

Runs the aggregator once at startup and then on every wall-clock aligned
interval (``*/15`` minutes by default) for as long as the service runs.

Refreshes run in the background on the event loop so serving is never
blocked; the server keeps answering from the previous snapshot meanwhile.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional, Set

from ..models import Cache
from ..processing.aggregator import Aggregator
from ..utils.logging import get_logger_for_component


class RefreshScheduler:
    """Drives periodic refresh cycles of an Aggregator."""

    def __init__(
        self,
        aggregator: Aggregator,
        interval_minutes: int = 15,
        refresh_on_startup: bool = True,
    ):
        if interval_minutes < 1:
            raise ValueError("Refresh interval must be at least one minute")

        self.aggregator = aggregator
        self.interval_minutes = interval_minutes
        self.refresh_on_startup = refresh_on_startup
        self.logger = get_logger_for_component("scheduler")

        self.running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._refresh_tasks: Set[asyncio.Task] = set()

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def _sleep(self, seconds: float):
        await asyncio.sleep(seconds)

    def next_run_time(self, now: Optional[datetime] = None) -> datetime:
        """First interval boundary of the day strictly after ``now``.

        With a 15 minute interval the boundaries are :00, :15, :30 and :45.
        Intervals that do not divide the day evenly are aligned to midnight UTC.
        """
        now = now or self._now()
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        interval = timedelta(minutes=self.interval_minutes)

        elapsed = now - midnight
        periods = elapsed // interval + 1
        next_run = midnight + periods * interval

        # Boundaries restart at midnight; never overshoot into the next day
        next_midnight = midnight + timedelta(days=1)
        if next_run > next_midnight:
            next_run = next_midnight

        return next_run

    def seconds_until_next_run(self, now: Optional[datetime] = None) -> float:
        """Seconds from ``now`` to the next interval boundary."""
        now = now or self._now()
        return (self.next_run_time(now) - now).total_seconds()

    def trigger(self) -> asyncio.Task:
        """Start a refresh in the background and return its task.

        The aggregator itself skips the cycle if one is already in flight.
        """
        task = asyncio.create_task(self._run_refresh())
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)
        return task

    async def _run_refresh(self) -> Optional[Cache]:
        try:
            return await self.aggregator.refresh()
        except Exception as e:
            # A failed cycle must not end the schedule
            self.logger.error(f"Scheduled refresh failed: {e}", exc_info=True)
            return None

    async def _run_loop(self):
        self.logger.info(
            f"Refresh scheduler started, interval {self.interval_minutes} minutes"
        )

        target = self.next_run_time()
        while self.running:
            # Sleeping runs on the monotonic clock, so a wake-up can land
            # slightly before the wall-clock target
            delay = (target - self._now()).total_seconds()
            if delay > 0:
                self.logger.debug(f"Next scheduled refresh at {target.isoformat()} in {delay:.0f}s")
                await self._sleep(delay)
                continue

            self.trigger()
            # Boundaries missed while asleep are skipped, never run twice
            target = self.next_run_time(max(target, self._now()))

    def start(self):
        """Start the schedule; must be called from a running event loop."""
        if self.running:
            self.logger.warning("Refresh scheduler already running")
            return

        self.running = True
        if self.refresh_on_startup:
            self.trigger()
        self._loop_task = asyncio.create_task(self._run_loop())

    async def stop(self):
        """Stop the schedule and cancel any in-flight refresh."""
        self.running = False

        tasks = list(self._refresh_tasks)
        if self._loop_task:
            tasks.append(self._loop_task)
            self._loop_task = None

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self.logger.info("Refresh scheduler stopped")
