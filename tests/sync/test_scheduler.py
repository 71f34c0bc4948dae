"""Tests for the periodic sync scheduler."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from recordsync.core.errors import ValidationError
from recordsync.sync.scheduler import SYNC_JOB_ID, SyncScheduler
from recordsync.sync.types import SchedulerState


class Callbacks:
    """Counts tick and reconnect invocations."""

    def __init__(self) -> None:
        self.ticks = 0
        self.reconnects = 0

    async def on_tick(self) -> None:
        self.ticks += 1

    async def on_reconnect(self) -> None:
        self.reconnects += 1


@pytest.fixture
def callbacks() -> Callbacks:
    return Callbacks()


@pytest.fixture
def aps() -> AsyncIOScheduler:
    """Create the underlying APScheduler instance."""
    return AsyncIOScheduler(timezone=UTC)


@pytest.fixture
def scheduler(callbacks: Callbacks, aps: AsyncIOScheduler) -> SyncScheduler:
    """Create a sync scheduler (not started)."""
    return SyncScheduler(
        on_tick=callbacks.on_tick,
        on_reconnect=callbacks.on_reconnect,
        scheduler=aps,
    )


async def shutdown(scheduler: SyncScheduler) -> None:
    """Shut down and let the deferred APScheduler shutdown run."""
    scheduler.shutdown()
    await asyncio.sleep(0)


class TestSchedulerInit:
    """Tests for construction."""

    def test_initial_state(self, scheduler: SyncScheduler) -> None:
        """A new scheduler is stopped, online, with the default interval."""
        assert scheduler.state == SchedulerState.STOPPED
        assert scheduler.online is True
        assert scheduler.interval_ms == 30_000
        assert scheduler.job is None

    def test_rejects_bad_interval(self, callbacks: Callbacks) -> None:
        """Out-of-range intervals are rejected at construction."""
        with pytest.raises(ValidationError):
            SyncScheduler(on_tick=callbacks.on_tick, interval_ms=1_000)


class TestSchedulerTimer:
    """Tests for start, stop and set_interval."""

    @pytest.mark.asyncio
    async def test_start_creates_one_job(
        self, scheduler: SyncScheduler, aps: AsyncIOScheduler, callbacks: Callbacks
    ) -> None:
        """Starting schedules a single interval job running on_tick."""
        scheduler.start(60_000)

        assert scheduler.state == SchedulerState.RUNNING
        jobs = aps.get_jobs()
        assert [job.id for job in jobs] == [SYNC_JOB_ID]
        assert jobs[0].trigger.interval == timedelta(seconds=60)

        await jobs[0].func()
        assert callbacks.ticks == 1
        await shutdown(scheduler)

    @pytest.mark.asyncio
    async def test_trigger_fires_every_interval(
        self, scheduler: SyncScheduler
    ) -> None:
        """The trigger fires once per interval."""
        scheduler.start(60_000)
        trigger = scheduler.job.trigger
        t0 = datetime(2024, 1, 1, tzinfo=UTC)
        first = trigger.get_next_fire_time(None, t0)
        assert trigger.get_next_fire_time(first, first) == first + timedelta(seconds=60)
        await shutdown(scheduler)

    @pytest.mark.asyncio
    async def test_restart_replaces_job(
        self, scheduler: SyncScheduler, aps: AsyncIOScheduler
    ) -> None:
        """Starting twice never leaves two timers."""
        scheduler.start(60_000)
        scheduler.start(120_000)

        jobs = aps.get_jobs()
        assert len(jobs) == 1
        assert jobs[0].trigger.interval == timedelta(seconds=120)
        assert scheduler.interval_ms == 120_000
        await shutdown(scheduler)

    @pytest.mark.asyncio
    async def test_invalid_interval_keeps_previous_timer(
        self, scheduler: SyncScheduler, aps: AsyncIOScheduler
    ) -> None:
        """A rejected interval leaves the running timer untouched."""
        scheduler.start(60_000)
        with pytest.raises(ValidationError):
            scheduler.start(5_000)

        assert scheduler.state == SchedulerState.RUNNING
        assert scheduler.interval_ms == 60_000
        assert len(aps.get_jobs()) == 1
        await shutdown(scheduler)

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(
        self, scheduler: SyncScheduler, aps: AsyncIOScheduler
    ) -> None:
        """Stopping removes the job; stopping again is a no-op."""
        scheduler.start()
        scheduler.stop()
        scheduler.stop()

        assert scheduler.state == SchedulerState.STOPPED
        assert aps.get_jobs() == []
        await shutdown(scheduler)

    @pytest.mark.asyncio
    async def test_set_interval_reschedules(
        self, scheduler: SyncScheduler, aps: AsyncIOScheduler
    ) -> None:
        """Changing the interval while running reschedules the job."""
        scheduler.start(60_000)
        scheduler.set_interval(10_000)

        assert aps.get_job(SYNC_JOB_ID).trigger.interval == timedelta(seconds=10)
        assert len(aps.get_jobs()) == 1
        await shutdown(scheduler)

    def test_set_interval_while_stopped(self, scheduler: SyncScheduler) -> None:
        """Changing the interval while stopped only records it."""
        scheduler.set_interval(300_000)
        assert scheduler.interval_ms == 300_000
        assert scheduler.state == SchedulerState.STOPPED

    def test_set_interval_rejects_out_of_range(self, scheduler: SyncScheduler) -> None:
        """Out-of-range intervals are rejected and the old one kept."""
        with pytest.raises(ValidationError):
            scheduler.set_interval(300_001)
        assert scheduler.interval_ms == 30_000

    @pytest.mark.asyncio
    async def test_shutdown(self, scheduler: SyncScheduler, aps: AsyncIOScheduler) -> None:
        """Shutdown stops the timer and the APScheduler instance."""
        scheduler.start()
        await shutdown(scheduler)

        assert scheduler.state == SchedulerState.STOPPED
        assert not aps.running


class TestOnlineTracking:
    """Tests for set_online."""

    @pytest.mark.asyncio
    async def test_reconnect_runs_once(
        self, scheduler: SyncScheduler, callbacks: Callbacks
    ) -> None:
        """Going offline then online runs on_reconnect once."""
        assert await scheduler.set_online(False) is False
        assert await scheduler.set_online(True) is True
        assert await scheduler.set_online(True) is False

        assert callbacks.reconnects == 1
        assert scheduler.online is True

    @pytest.mark.asyncio
    async def test_going_offline_only_records(
        self, scheduler: SyncScheduler, callbacks: Callbacks
    ) -> None:
        """Going offline runs nothing."""
        await scheduler.set_online(False)
        assert scheduler.online is False
        assert callbacks.reconnects == 0
        assert callbacks.ticks == 0
