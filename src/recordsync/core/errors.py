"""Exception hierarchy for recordsync.

This module provides:
- RecordSyncError: Base class for every error raised by the engine
- ValidationError: Malformed record, invalid interval, bad conflict index
- PersistenceError: Key-value backend write failure
- NetworkError: Remote gateway fetch/post failure
- SyncError: Cycle-level failure wrapping its underlying cause
"""

from __future__ import annotations


class RecordSyncError(Exception):
    """Base exception for recordsync errors."""


class ValidationError(RecordSyncError):
    """Input rejected before anything was applied."""


class PersistenceError(RecordSyncError):
    """Writing to the persistence backend failed."""

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class NetworkError(RecordSyncError):
    """Remote gateway request failed (transport error, timeout or non-2xx)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SyncError(RecordSyncError):
    """A sync cycle was aborted.

    Attributes:
        cause: The underlying exception (usually a NetworkError).
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
