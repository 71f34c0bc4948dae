"""Scheduler for periodic sync cycles.

This module provides:
- SyncScheduler: Cancellable recurring sync timer plus online/offline tracking

The timer is a single APScheduler interval job with a fixed id, so
restarting it replaces the existing job instead of adding a second one.
Stopping removes the job: no further tick starts, but a cycle that is
already running is left to finish.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from recordsync.core.config import DEFAULT_INTERVAL_MS, validate_interval
from recordsync.sync.types import SchedulerState

if TYPE_CHECKING:
    from apscheduler.job import Job

logger = logging.getLogger(__name__)

# Coroutine functions invoked on each tick / on reconnection
TickCallback = Callable[[], Awaitable[Any]]

SYNC_JOB_ID = "sync_cycle"


class SyncScheduler:
    """Owns the recurring sync timer.

    States: STOPPED -> start() -> RUNNING -> stop() -> STOPPED.
    """

    def __init__(
        self,
        on_tick: TickCallback,
        on_reconnect: TickCallback | None = None,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        online: bool = True,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            on_tick: Coroutine function run on every tick.
            on_reconnect: Coroutine function run once when going back online.
            interval_ms: Initial interval in milliseconds.
            online: Initial connectivity.
            scheduler: APScheduler instance (a new AsyncIOScheduler if None).

        Raises:
            ValidationError: If interval_ms is out of range.
        """
        self._on_tick = on_tick
        self._on_reconnect = on_reconnect
        self._interval_ms = validate_interval(interval_ms)
        self._online = online
        self._scheduler = scheduler or AsyncIOScheduler()
        self._job: Job | None = None

    @property
    def state(self) -> SchedulerState:
        """Current scheduler state."""
        return SchedulerState.RUNNING if self._job is not None else SchedulerState.STOPPED

    @property
    def interval_ms(self) -> int:
        """Interval currently in effect."""
        return self._interval_ms

    @property
    def online(self) -> bool:
        """Last known connectivity."""
        return self._online

    @property
    def job(self) -> Job | None:
        """The scheduled sync job, if running."""
        return self._job

    def _trigger(self) -> IntervalTrigger:
        return IntervalTrigger(seconds=self._interval_ms / 1000)

    def start(self, interval_ms: int | None = None) -> None:
        """Start (or restart) the recurring timer.

        Args:
            interval_ms: New interval; keeps the current one if None.

        Raises:
            ValidationError: If interval_ms is out of range. The previous
                timer and interval are left untouched.
        """
        if interval_ms is not None:
            validate_interval(interval_ms)

        if self._job is not None:
            self._remove_job()
        if interval_ms is not None:
            self._interval_ms = interval_ms

        if not self._scheduler.running:
            self._scheduler.start()

        self._job = self._scheduler.add_job(
            self._on_tick,
            trigger=self._trigger(),
            id=SYNC_JOB_ID,
            name="Periodic sync cycle",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Sync scheduler started (every %.0fs)", self._interval_ms / 1000)

    def stop(self) -> None:
        """Cancel the timer. No-op when already stopped."""
        if self._job is None:
            return
        self._remove_job()
        logger.info("Sync scheduler stopped")

    def _remove_job(self) -> None:
        try:
            self._scheduler.remove_job(SYNC_JOB_ID)
        except JobLookupError:
            logger.debug("Sync job already removed")
        self._job = None

    def set_interval(self, interval_ms: int) -> None:
        """Change the interval, rescheduling the timer if running.

        Raises:
            ValidationError: If interval_ms is out of range (previous
                interval stays in effect).
        """
        validate_interval(interval_ms)
        self._interval_ms = interval_ms
        if self._job is not None:
            self._job = self._scheduler.reschedule_job(SYNC_JOB_ID, trigger=self._trigger())
            logger.info("Sync interval changed to %.0fs", interval_ms / 1000)

    async def set_online(self, online: bool) -> bool:
        """Record connectivity.

        Going from offline to online runs on_reconnect once, on top of the
        normal timer cadence. Going offline only records the state.

        Returns:
            True if on_reconnect was run.
        """
        was_online = self._online
        self._online = online

        if online and not was_online:
            logger.info("Back online")
            if self._on_reconnect is not None:
                await self._on_reconnect()
                return True
        elif was_online and not online:
            logger.info("Gone offline, mutations will be queued")
        return False

    def shutdown(self) -> None:
        """Stop the timer and release the underlying scheduler."""
        self.stop()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
