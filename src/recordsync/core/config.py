"""Shared configuration classes for recordsync.

This module defines the remote gateway configuration and the persisted
sync settings document.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from recordsync.core.errors import ValidationError

logger = logging.getLogger(__name__)

# Auto-sync interval bounds (milliseconds)
MIN_INTERVAL_MS = 10_000
MAX_INTERVAL_MS = 300_000
DEFAULT_INTERVAL_MS = 30_000


def validate_interval(interval_ms: int) -> int:
    """Validate an auto-sync interval.

    Args:
        interval_ms: Interval in milliseconds.

    Returns:
        The interval, unchanged.

    Raises:
        ValidationError: If the interval is not an int in [10_000, 300_000].
    """
    if isinstance(interval_ms, bool) or not isinstance(interval_ms, int):
        raise ValidationError(f"Sync interval must be an integer, got {interval_ms!r}")
    if not MIN_INTERVAL_MS <= interval_ms <= MAX_INTERVAL_MS:
        raise ValidationError(
            f"Sync interval must be between {MIN_INTERVAL_MS} and "
            f"{MAX_INTERVAL_MS} ms, got {interval_ms}"
        )
    return interval_ms


@dataclass
class GatewayConfig:
    """Configuration for connecting to the remote record source.

    Attributes:
        base_url: Base URL of the remote API (e.g., "https://api.example.com").
        collection: Collection path records are fetched from and posted to.
        owner_ref: Owner reference sent with every posted record.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    base_url: str
    collection: str = "posts"
    owner_ref: int = 1
    timeout: float = 10.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize URL and collection path."""
        self.base_url = self.base_url.rstrip("/")
        self.collection = self.collection.strip("/")

    @property
    def collection_url(self) -> str:
        """Full URL of the record collection."""
        return f"{self.base_url}/{self.collection}"

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS."""
        return self.base_url.startswith("https://")


@dataclass
class SyncSettings:
    """Persisted sync settings (the syncSettings document).

    Attributes:
        auto_sync_enabled: Whether periodic sync is on.
        interval_ms: Auto-sync interval in milliseconds.
        offline_mode: Force queuing of mutations even when online.
        last_sync_at: Completion time of the last sync cycle.
    """

    auto_sync_enabled: bool = False
    interval_ms: int = DEFAULT_INTERVAL_MS
    offline_mode: bool = False
    last_sync_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: Any) -> SyncSettings:
        """Create settings from a parsed document, falling back to defaults.

        Unknown or malformed fields are replaced by their default value
        rather than rejected.
        """
        settings = cls()
        if not isinstance(data, dict):
            return settings

        if isinstance(data.get("autoSyncEnabled"), bool):
            settings.auto_sync_enabled = data["autoSyncEnabled"]
        if isinstance(data.get("offlineMode"), bool):
            settings.offline_mode = data["offlineMode"]

        interval = data.get("intervalMs")
        if interval is not None:
            try:
                settings.interval_ms = validate_interval(interval)
            except ValidationError:
                logger.warning(f"Ignoring persisted sync interval {interval!r}")

        last_sync = data.get("lastSyncAt")
        if isinstance(last_sync, str):
            try:
                settings.last_sync_at = datetime.fromisoformat(last_sync)
            except ValueError:
                logger.warning(f"Ignoring malformed lastSyncAt {last_sync!r}")

        return settings

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted document shape."""
        return {
            "autoSyncEnabled": self.auto_sync_enabled,
            "intervalMs": self.interval_ms,
            "offlineMode": self.offline_mode,
            "lastSyncAt": self.last_sync_at.isoformat() if self.last_sync_at else None,
        }
