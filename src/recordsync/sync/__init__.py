"""Synchronization engine.

Architecture:
    RecordStore → SyncOrchestrator → RemoteGateway
                        ↕
            OfflineQueue, SyncScheduler

Components:
- **detect** (conflicts): Compare local and remote replicas
- **merge**: Reconcile replicas when there are no conflicts
- **OfflineQueue**: Durable FIFO of undelivered mutations
- **SyncScheduler**: Cancellable periodic timer and connectivity tracking
- **SyncOrchestrator**: Runs sync cycles, caller-facing API
- **EventBus**: Typed notifications for the presentation layer
"""

from recordsync.sync.conflicts import auto_resolution_choice, detect, resolve
from recordsync.sync.events import (
    ConflictsDetected,
    EventBus,
    OnlineStatusChanged,
    QueueDrained,
    SyncCompleted,
    SyncFailed,
)
from recordsync.sync.merge import find_match, merge, merge_new
from recordsync.sync.orchestrator import SyncOrchestrator
from recordsync.sync.queue import OfflineQueue
from recordsync.sync.scheduler import SyncScheduler
from recordsync.sync.types import (
    Conflict,
    ConflictKind,
    DrainResult,
    QueueItem,
    ResolutionChoice,
    SchedulerState,
    SyncReport,
    SyncState,
)

__all__ = [
    # Conflicts
    "auto_resolution_choice",
    "detect",
    "resolve",
    # Events
    "ConflictsDetected",
    "EventBus",
    "OnlineStatusChanged",
    "QueueDrained",
    "SyncCompleted",
    "SyncFailed",
    # Merge
    "find_match",
    "merge",
    "merge_new",
    # Components
    "OfflineQueue",
    "SyncOrchestrator",
    "SyncScheduler",
    # Types
    "Conflict",
    "ConflictKind",
    "DrainResult",
    "QueueItem",
    "ResolutionChoice",
    "SchedulerState",
    "SyncReport",
    "SyncState",
]
