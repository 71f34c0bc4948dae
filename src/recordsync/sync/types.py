"""Shared types and dataclasses for sync operations.

This module provides:
- ConflictKind, Conflict: Typed conflicts produced by detection
- ResolutionChoice: Per-conflict resolution options
- QueueItem: A pending mutation in the offline queue
- DrainResult: Outcome of an offline queue drain
- SyncReport: Outcome of one sync cycle
- SyncState: Snapshot of the engine's sync state
- SchedulerState: Sync scheduler state machine
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from recordsync.core.errors import ValidationError
from recordsync.core.types import MutationKind, Record, SyncStatus


class ConflictKind(str, Enum):
    """Kind of conflict between the local and remote replicas."""

    CONTENT_MISMATCH = "content_mismatch"  # Same logical record, different text
    LOCAL_ONLY = "local_only"  # Record absent remotely


class ResolutionChoice(str, Enum):
    """How to resolve one conflict."""

    KEEP_LOCAL = "keep_local"
    USE_REMOTE = "use_remote"
    REMOVE = "remove"


@dataclass
class Conflict:
    """A conflict found by detection.

    Conflicts live for a single cycle and are never persisted.
    """

    kind: ConflictKind
    local: Record
    remote: Record | None
    detail: str

    def __repr__(self) -> str:
        return f"Conflict({self.kind.value}, local={self.local.id!r}, detail={self.detail!r})"


@dataclass
class QueueItem:
    """A mutation waiting for delivery to the remote."""

    queue_id: str
    kind: MutationKind
    payload: Record
    enqueued_at: datetime

    @classmethod
    def create(cls, kind: MutationKind, payload: Record) -> QueueItem:
        """Create a new item with a fresh id and timestamp."""
        return cls(
            queue_id=str(uuid.uuid4()),
            kind=kind,
            payload=payload,
            enqueued_at=datetime.now(UTC),
        )

    @classmethod
    def from_dict(cls, data: Any) -> QueueItem:
        """Create from the persisted document.

        Raises:
            ValidationError: If the entry is malformed.
        """
        if not isinstance(data, dict):
            raise ValidationError("Queue item must be an object")
        queue_id = data.get("queueId")
        if not isinstance(queue_id, str) or not queue_id:
            raise ValidationError("Queue item is missing queueId")
        try:
            kind = MutationKind(data.get("kind"))
            enqueued_at = datetime.fromisoformat(data["enqueuedAt"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed queue item {queue_id}: {e}") from e
        return cls(
            queue_id=queue_id,
            kind=kind,
            payload=Record.from_dict(data.get("payload")),
            enqueued_at=enqueued_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted document shape."""
        return {
            "queueId": self.queue_id,
            "kind": self.kind.value,
            "payload": self.payload.to_dict(),
            "enqueuedAt": self.enqueued_at.isoformat(),
        }


@dataclass
class DrainResult:
    """Result of draining the offline queue."""

    delivered: list[QueueItem] = field(default_factory=list)
    failed: list[QueueItem] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        """Number of items posted (successfully or not)."""
        return len(self.delivered) + len(self.failed)


@dataclass
class SyncReport:
    """Result of one sync cycle."""

    started_at: datetime
    finished_at: datetime | None = None
    fetched: int = 0
    conflicts: list[Conflict] = field(default_factory=list)
    merged: bool = False
    auto_resolved: int = 0
    drain: DrainResult = field(default_factory=DrainResult)

    @property
    def has_conflicts(self) -> bool:
        """Check if detection reported conflicts."""
        return bool(self.conflicts)


class SchedulerState(str, Enum):
    """State of the sync scheduler."""

    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class SyncState:
    """Snapshot of the engine's sync state.

    Attributes:
        auto_sync_enabled: Whether periodic sync is on.
        interval_ms: Auto-sync interval in milliseconds.
        last_sync_at: Completion time of the last cycle, if any.
        online: Whether the remote is believed reachable.
        offline_mode: Mutations are queued even when online.
        status: Current sync status.
        pending_mutations: Number of queued mutations.
    """

    auto_sync_enabled: bool
    interval_ms: int
    last_sync_at: datetime | None
    online: bool
    offline_mode: bool = False
    status: SyncStatus = SyncStatus.IDLE
    pending_mutations: int = 0
