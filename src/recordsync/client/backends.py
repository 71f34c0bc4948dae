"""Key-value persistence backends.

This module provides:
- KeyValueBackend: Protocol for the host-supplied blob store
- MemoryBackend: In-process dict (tests, ephemeral hosts)
- JSONFileBackend: One JSON file per key in a directory
- SQLiteBackend: Single-table SQLite store (used by the CLI)

Values are serialized JSON documents stored as strings. Backends do not
interpret them; decoding and fallback to defaults is the caller's job.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from pathlib import Path
from typing import Any, Protocol

from recordsync.core.errors import PersistenceError

logger = logging.getLogger(__name__)

# Well-known keys
RECORDS_KEY = "records"
SERVER_CACHE_KEY = "serverRecordsCache"
SETTINGS_KEY = "syncSettings"
QUEUE_KEY = "syncQueue"
FILTER_KEY = "lastSelectedFilter"


class KeyValueBackend(Protocol):
    """Protocol for the persistence backend supplied by the host."""

    def get(self, key: str) -> str | None:
        """Return the stored value, or None if absent."""
        ...

    def set(self, key: str, value: str) -> None:
        """Store a value. May raise on write failure."""
        ...

    def delete(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""
        ...


class MemoryBackend:
    """Dict-backed store. Nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        """List stored keys."""
        return list(self._data)


class JSONFileBackend:
    """Stores each key as <directory>/<key>.json.

    Writes go to a temporary file first and are renamed into place, so a
    reader never sees a half-written document.
    """

    def __init__(self, directory: Path) -> None:
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Failed to read {path}: {e}")
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(value, encoding="utf-8")
        os.replace(tmp_path, path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class SQLiteBackend:
    """SQLite-based key-value store."""

    def __init__(self, db_path: Path) -> None:
        """Initialize the database.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        logger.debug("Initialized key-value store at %s", self._db_path)

    def get(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        return None if row is None else row[0]

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                (key, value),
            )

    def delete(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()


def read_json(backend: KeyValueBackend, key: str) -> Any:
    """Read and decode a JSON document.

    Returns:
        The decoded value, or None if the key is absent, unreadable or
        not valid JSON.
    """
    try:
        raw = backend.get(key)
    except Exception as e:
        logger.warning(f"Failed to read '{key}' from backend: {e}")
        return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Discarding malformed JSON stored under '{key}'")
        return None


def write_json(backend: KeyValueBackend, key: str, value: Any) -> None:
    """Encode and store a JSON document.

    Raises:
        PersistenceError: If the backend write fails.
    """
    payload = json.dumps(value)
    try:
        backend.set(key, payload)
    except Exception as e:
        raise PersistenceError(f"Failed to persist '{key}': {e}", key=key) from e
