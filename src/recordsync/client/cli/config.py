"""Configuration utilities for the recordsync CLI.

This module provides shared configuration and wiring helpers used across
CLI commands.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from recordsync.client.api import HTTPGateway
from recordsync.client.backends import (
    SETTINGS_KEY,
    SQLiteBackend,
    read_json,
    write_json,
)
from recordsync.client.store import RecordStore
from recordsync.core.config import GatewayConfig, SyncSettings
from recordsync.sync.orchestrator import SyncOrchestrator
from recordsync.sync.queue import OfflineQueue

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from recordsync.client.api import RemoteGateway

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_config_dir() -> Path:
    """Get the configuration directory.

    Returns:
        $RECORDSYNC_HOME if set, otherwise ~/.recordsync.
    """
    override = os.environ.get("RECORDSYNC_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".recordsync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_state_db() -> Path:
    """Get the path to the local state database."""
    return get_config_dir() / "state.db"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def load_gateway_config() -> GatewayConfig:
    """Build the gateway configuration from the config file.

    Raises:
        click.ClickException: If no server is configured.
    """
    config = load_config()
    if not config.get("server_url"):
        raise click.ClickException("No remote configured. Run 'recordsync configure' first.")
    return GatewayConfig(
        base_url=config["server_url"],
        collection=config.get("collection", "posts"),
        owner_ref=int(config.get("owner_ref", 1)),
        timeout=float(config.get("timeout", 10.0)),
    )


def build_gateway(config: GatewayConfig) -> RemoteGateway:
    """Create the remote gateway for a configuration."""
    return HTTPGateway(config)


def setup_logging(verbose: bool) -> None:
    """Configure logging for the recordsync logger.

    Args:
        verbose: Log INFO and above instead of WARNING and above.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root_logger = logging.getLogger("recordsync")
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO if verbose else logging.WARNING)


@contextlib.contextmanager
def open_backend() -> Iterator[SQLiteBackend]:
    """Open the local state database."""
    backend = SQLiteBackend(get_state_db())
    try:
        yield backend
    finally:
        backend.close()


@contextlib.contextmanager
def open_store() -> Iterator[RecordStore]:
    """Open and load the local record store."""
    with open_backend() as backend:
        store = RecordStore(backend)
        store.load()
        yield store


def load_settings(backend: SQLiteBackend) -> SyncSettings:
    """Read persisted sync settings."""
    return SyncSettings.from_dict(read_json(backend, SETTINGS_KEY))


def save_settings(backend: SQLiteBackend, settings: SyncSettings) -> None:
    """Persist sync settings."""
    write_json(backend, SETTINGS_KEY, settings.to_dict())


@contextlib.asynccontextmanager
async def open_engine(online: bool = True) -> AsyncIterator[SyncOrchestrator]:
    """Wire store, queue, gateway and orchestrator for one CLI invocation.

    Records are loaded; the auto-sync timer is not started.

    Args:
        online: Initial connectivity (False queues every mutation).
    """
    gateway_config = load_gateway_config()
    gateway = build_gateway(gateway_config)
    with open_backend() as backend:
        store = RecordStore(backend)
        store.load()
        orchestrator = SyncOrchestrator(
            store,
            OfflineQueue(backend),
            gateway,
            backend,
            timeout=gateway_config.timeout,
            online=online,
        )
        try:
            yield orchestrator
        finally:
            orchestrator.shutdown()
            aclose = getattr(gateway, "aclose", None)
            if aclose is not None:
                await aclose()
