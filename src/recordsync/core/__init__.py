"""Core module - Shared types, errors, and configuration."""

from recordsync.core.config import (
    DEFAULT_INTERVAL_MS,
    MAX_INTERVAL_MS,
    MIN_INTERVAL_MS,
    GatewayConfig,
    SyncSettings,
    validate_interval,
)
from recordsync.core.errors import (
    NetworkError,
    PersistenceError,
    RecordSyncError,
    SyncError,
    ValidationError,
)
from recordsync.core.types import (
    DEFAULT_RECORDS,
    IdGenerator,
    MutationKind,
    Record,
    RecordSource,
    SyncStatus,
    default_records,
    generate_local_id,
)

__all__ = [
    # Config
    "DEFAULT_INTERVAL_MS",
    "MAX_INTERVAL_MS",
    "MIN_INTERVAL_MS",
    "GatewayConfig",
    "SyncSettings",
    "validate_interval",
    # Errors
    "NetworkError",
    "PersistenceError",
    "RecordSyncError",
    "SyncError",
    "ValidationError",
    # Types
    "DEFAULT_RECORDS",
    "IdGenerator",
    "MutationKind",
    "Record",
    "RecordSource",
    "SyncStatus",
    "default_records",
    "generate_local_id",
]
