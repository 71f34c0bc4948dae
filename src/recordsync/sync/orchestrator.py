"""Sync orchestrator: one sync cycle and the caller-facing API.

Cycle steps:
    fetch remote -> detect -> merge (no conflicts) or flag/auto-resolve
    -> persist -> record last sync -> drain offline queue

A fetch failure aborts the cycle before anything local changes. Post
failures during the drain stay per item and never fail the cycle.

Only one cycle runs at a time. A trigger that arrives while a cycle is in
flight (timer tick or manual) joins that cycle and receives its report.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from recordsync.client.backends import SETTINGS_KEY, read_json, write_json
from recordsync.core.config import SyncSettings, validate_interval
from recordsync.core.errors import (
    NetworkError,
    PersistenceError,
    SyncError,
    ValidationError,
)
from recordsync.core.types import MutationKind, Record, RecordSource, SyncStatus
from recordsync.sync.conflicts import auto_resolution_choice, detect, resolve
from recordsync.sync.events import (
    ConflictsDetected,
    EventBus,
    OnlineStatusChanged,
    QueueDrained,
    SyncCompleted,
    SyncFailed,
)
from recordsync.sync.merge import merge, merge_new
from recordsync.sync.scheduler import SyncScheduler
from recordsync.sync.types import (
    Conflict,
    DrainResult,
    ResolutionChoice,
    SyncReport,
    SyncState,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from apscheduler.schedulers.asyncio import AsyncIOScheduler

    from recordsync.client.api import RemoteGateway
    from recordsync.client.backends import KeyValueBackend
    from recordsync.client.store import RecordStore
    from recordsync.sync.queue import OfflineQueue

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_TIMEOUT = 10.0  # seconds


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SyncOrchestrator:
    """Runs sync cycles and exposes the engine to the host.

    Usage:
        orchestrator = SyncOrchestrator(store, queue, gateway, backend)
        orchestrator.start()

        orchestrator.events.subscribe(ConflictsDetected, show_conflicts)
        await orchestrator.add_record("Stay hungry.", "Motivation")
        report = await orchestrator.run_cycle()

        orchestrator.shutdown()
    """

    def __init__(
        self,
        store: RecordStore,
        queue: OfflineQueue,
        gateway: RemoteGateway,
        backend: KeyValueBackend,
        *,
        events: EventBus | None = None,
        timeout: float = DEFAULT_GATEWAY_TIMEOUT,
        online: bool = True,
        scheduler: AsyncIOScheduler | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Local record store.
            queue: Offline mutation queue.
            gateway: Remote gateway.
            backend: Key-value backend holding the sync settings.
            events: Event bus (a new one if None).
            timeout: Bound in seconds for every gateway call.
            online: Initial connectivity.
            scheduler: APScheduler instance for the sync timer.
            clock: Returns the current time (injectable for tests).
        """
        self._store = store
        self._queue = queue
        self._gateway = gateway
        self._backend = backend
        self._timeout = timeout
        self._clock = clock
        self.events = events or EventBus()

        self._settings = SyncSettings.from_dict(read_json(backend, SETTINGS_KEY))
        self._status = SyncStatus.IDLE
        self._pending_conflicts: list[Conflict] = []
        self._inflight: asyncio.Future[SyncReport] | None = None

        self._scheduler = SyncScheduler(
            on_tick=self._scheduled_cycle,
            on_reconnect=self._drain_on_reconnect,
            interval_ms=self._settings.interval_ms,
            online=online,
            scheduler=scheduler,
        )

    # === Lifecycle ===

    @property
    def scheduler(self) -> SyncScheduler:
        """The sync scheduler."""
        return self._scheduler

    @property
    def settings(self) -> SyncSettings:
        """Current sync settings."""
        return self._settings

    @property
    def online(self) -> bool:
        """Last known connectivity."""
        return self._scheduler.online

    def start(self) -> None:
        """Load local records and restore auto-sync from persisted settings."""
        self._store.load()
        if self._settings.auto_sync_enabled:
            self._scheduler.start(self._settings.interval_ms)

    def shutdown(self) -> None:
        """Cancel the sync timer. An in-flight cycle is not interrupted."""
        self._scheduler.shutdown()
        logger.info("Sync orchestrator shut down")

    def _persist_settings(self) -> None:
        try:
            write_json(self._backend, SETTINGS_KEY, self._settings.to_dict())
        except PersistenceError as e:
            logger.error(f"Failed to persist sync settings: {e}")

    # === Sync cycle ===

    async def run_cycle(self) -> SyncReport:
        """Run one sync cycle, or join the one already running.

        Returns:
            SyncReport of the cycle.

        Raises:
            SyncError: If the cycle failed. Unexpected errors are wrapped,
                with the original exception as ``cause``.
        """
        if self._inflight is not None and not self._inflight.done():
            logger.debug("Sync cycle already in flight, joining it")
            return await asyncio.shield(self._inflight)

        self._inflight = asyncio.ensure_future(self._run_cycle())
        return await asyncio.shield(self._inflight)

    async def _run_cycle(self) -> SyncReport:
        try:
            return await self._cycle()
        except SyncError:
            raise
        except Exception as e:
            raise self._failure(f"Sync cycle failed: {e!r}", e) from e

    async def _cycle(self) -> SyncReport:
        report = SyncReport(started_at=self._clock())
        self._status = SyncStatus.SYNCING
        logger.info("Sync cycle started")

        try:
            remote = await asyncio.wait_for(self._gateway.fetch_all(), self._timeout)
        except (NetworkError, TimeoutError) as e:
            reason = str(e) or "timed out"
            raise self._failure(f"Fetching remote records failed: {reason}", e) from e

        report.fetched = len(remote)
        self._store.cache_remote(remote)

        local = self._store.records
        conflicts = detect(local, remote)
        report.conflicts = conflicts

        try:
            if not conflicts:
                self._store.replace_all(merge(local, remote))
                self._pending_conflicts = []
                report.merged = True
                logger.info("Merged %d remote records, no conflicts", len(remote))
            else:
                self._handle_conflicts(conflicts, remote, report)
        except PersistenceError as e:
            raise self._failure(f"Persisting sync result failed: {e}", e) from e

        self._settings.last_sync_at = self._clock()
        self._persist_settings()

        report.drain = await self._drain()
        report.finished_at = self._clock()
        self._status = SyncStatus.IDLE
        self.events.publish(SyncCompleted(report=report))
        logger.info(
            "Sync cycle finished: %d fetched, %d conflicts, %d delivered",
            report.fetched,
            len(report.conflicts),
            len(report.drain.delivered),
        )
        return report

    def _failure(self, message: str, cause: Exception) -> SyncError:
        """Mark the cycle failed and build the error to raise."""
        error = SyncError(message, cause=cause)
        self._status = SyncStatus.ERROR
        logger.warning(f"Sync cycle aborted: {message}")
        self.events.publish(SyncFailed(error=error, at=self._clock()))
        return error

    def _handle_conflicts(
        self,
        conflicts: list[Conflict],
        remote: Sequence[Record],
        report: SyncReport,
    ) -> None:
        auto = self._settings.auto_sync_enabled
        logger.info(
            "Detected %d conflicts (%s)",
            len(conflicts),
            "auto-resolving" if auto else "awaiting resolution",
        )
        self._pending_conflicts = list(conflicts)
        self.events.publish(ConflictsDetected(conflicts=tuple(conflicts), auto_resolved=auto))
        if auto:
            report.auto_resolved = self._auto_resolve(conflicts, remote)

    def _auto_resolve(self, conflicts: Sequence[Conflict], remote: Sequence[Record]) -> int:
        """Resolve all conflicts with the fixed policy, then pull remote-only records."""
        records = self._store.records
        keep: list[Record] = []
        for conflict in conflicts:
            choice = auto_resolution_choice(conflict)
            records = resolve(records, conflict, choice)
            if choice == ResolutionChoice.KEEP_LOCAL:
                keep.append(conflict.local)

        self._store.replace_all(merge_new(records, remote))
        for record in keep:
            self._enqueue_for_delivery(record)
        self._pending_conflicts = []
        return len(conflicts)

    def _enqueue_for_delivery(self, record: Record) -> None:
        if self._queue.contains(record):
            return
        self._queue.enqueue(MutationKind.ADD, record.tagged(RecordSource.LOCAL_KEPT))

    async def _drain(self) -> DrainResult:
        result = await self._queue.drain(self._gateway, timeout=self._timeout)
        if result.attempted:
            self.events.publish(QueueDrained(result=result, remaining=len(self._queue)))
        return result

    async def _scheduled_cycle(self) -> None:
        """Timer callback. Failures are logged; the timer keeps ticking."""
        if not self.online:
            logger.debug("Offline, skipping scheduled sync")
            return
        try:
            await self.run_cycle()
        except SyncError as e:
            logger.warning(f"Scheduled sync failed: {e}")
        except Exception:
            logger.exception("Unexpected error during scheduled sync")

    async def _drain_on_reconnect(self) -> None:
        await self._drain()

    # === Connectivity and settings ===

    async def set_online(self, online: bool) -> None:
        """Record connectivity; reconnecting drains the offline queue once."""
        changed = online != self.online
        await self._scheduler.set_online(online)
        if changed:
            self.events.publish(OnlineStatusChanged(online=online))

    def set_offline_mode(self, enabled: bool) -> None:
        """Force queuing of new mutations even while online."""
        self._settings.offline_mode = enabled
        self._persist_settings()
        logger.info("Offline mode %s", "enabled" if enabled else "disabled")

    def enable_auto_sync(self, interval_ms: int | None = None) -> None:
        """Start periodic sync.

        Raises:
            ValidationError: If interval_ms is out of range.
        """
        interval = self._settings.interval_ms
        if interval_ms is not None:
            interval = validate_interval(interval_ms)
        self._scheduler.start(interval)
        self._settings.auto_sync_enabled = True
        self._settings.interval_ms = interval
        self._persist_settings()

    def disable_auto_sync(self) -> None:
        """Stop periodic sync. An in-flight cycle still completes."""
        self._scheduler.stop()
        self._settings.auto_sync_enabled = False
        self._persist_settings()

    def set_sync_interval(self, interval_ms: int) -> None:
        """Change the auto-sync interval.

        Raises:
            ValidationError: If interval_ms is out of range.
        """
        self._scheduler.set_interval(interval_ms)
        self._settings.interval_ms = interval_ms
        self._persist_settings()

    # === Mutations ===

    async def record_mutation(self, record: Record) -> MutationKind:
        """Apply a local mutation and deliver or queue it.

        Offline (or in offline mode) the mutation is queued. Otherwise it is
        posted right away and queued only if delivery fails.

        Returns:
            Whether the record was added or updated.

        Raises:
            ValidationError: If the record is malformed (nothing applied).
            PersistenceError: If the store could not persist it (rolled back).
        """
        record.validate()
        kind = self._store.apply_mutation(record)

        if self._settings.offline_mode or not self.online:
            self._queue.enqueue(kind, record)
            return kind

        try:
            await asyncio.wait_for(self._gateway.post_one(record), self._timeout)
        except (NetworkError, TimeoutError) as e:
            logger.warning(f"Immediate delivery of {record.id} failed, queuing: {e}")
            self._queue.enqueue(kind, record)
        return kind

    async def add_record(self, text: str, category: str) -> Record:
        """Create a new local record and record the mutation.

        Raises:
            ValidationError: If text or category is empty.
        """
        record = Record.from_dict(
            {"text": text, "category": category},
            id_factory=self._store.id_factory,
        )
        record.source = RecordSource.LOCAL
        record.last_modified = self._clock()
        await self.record_mutation(record)
        return record

    # === Conflicts ===

    def get_pending_conflicts(self) -> list[Conflict]:
        """Conflicts from the last cycle still awaiting resolution."""
        return list(self._pending_conflicts)

    def resolve_conflict(
        self,
        conflict_index: int,
        choice: ResolutionChoice | str,
    ) -> Conflict:
        """Resolve one pending conflict.

        Once the last pending conflict is resolved, remote-only records from
        the last fetch are added to the store.

        Args:
            conflict_index: Index into get_pending_conflicts().
            choice: keep_local, use_remote or remove.

        Returns:
            The resolved conflict.

        Raises:
            ValidationError: Bad index or choice.
            PersistenceError: If the store could not persist (conflict stays
                pending).
        """
        if not 0 <= conflict_index < len(self._pending_conflicts):
            raise ValidationError(f"No pending conflict at index {conflict_index}")
        try:
            choice = ResolutionChoice(choice)
        except ValueError as e:
            raise ValidationError(f"Unknown resolution choice: {choice!r}") from e

        conflict = self._pending_conflicts[conflict_index]
        records = resolve(self._store.records, conflict, choice)
        if len(self._pending_conflicts) == 1:
            records = merge_new(records, self._store.cached_remote())
        self._store.replace_all(records)

        if choice == ResolutionChoice.KEEP_LOCAL:
            self._enqueue_for_delivery(conflict.local)
        del self._pending_conflicts[conflict_index]
        logger.info("Resolved conflict on %s: %s", conflict.local.id, choice.value)
        return conflict

    # === State ===

    def get_sync_state(self) -> SyncState:
        """Snapshot of the sync state."""
        status = self._status
        if not self.online and status != SyncStatus.SYNCING:
            status = SyncStatus.OFFLINE
        return SyncState(
            auto_sync_enabled=self._settings.auto_sync_enabled,
            interval_ms=self._scheduler.interval_ms,
            last_sync_at=self._settings.last_sync_at,
            online=self.online,
            offline_mode=self._settings.offline_mode,
            status=status,
            pending_mutations=len(self._queue),
        )
