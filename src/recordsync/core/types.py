"""Shared types for recordsync.

This module defines the Record model, its provenance tags and the
sync status enum used by the client and the sync engine.
"""

from __future__ import annotations

import random
import string
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from recordsync.core.errors import ValidationError

# Type alias for pluggable id generation
IdGenerator = Callable[[], str]

_ID_ALPHABET = string.ascii_lowercase + string.digits


class RecordSource(str, Enum):
    """Provenance tag of a record."""

    LOCAL = "local"
    SERVER = "server"
    MERGED = "merged"
    SERVER_RESOLVED = "server_resolved"
    LOCAL_KEPT = "local_kept"


class MutationKind(str, Enum):
    """Kind of local mutation."""

    ADD = "add"
    UPDATE = "update"


class SyncStatus(str, Enum):
    """Current synchronization status of the engine."""

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"


def generate_local_id() -> str:
    """Generate a local record id: local_<epoch-ms>_<9 random chars>."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"local_{int(time.time() * 1000)}_{suffix}"


def _require_text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Record field '{key}' must be a non-empty string")
    return value.strip()


def _parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or an epoch-milliseconds number."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError) as e:
            raise ValidationError(f"Invalid timestamp: {value!r}") from e
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as e:
            raise ValidationError(f"Invalid timestamp: {value!r}") from e
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    raise ValidationError(f"Invalid timestamp: {value!r}")


@dataclass
class Record:
    """A single record (a quote and its category).

    Attributes:
        id: Stable identifier, local_<ts>_<rand> or assigned by the remote.
        text: Record content, non-empty.
        category: Record category, non-empty.
        source: Optional provenance tag.
        last_modified: Optional modification timestamp.
    """

    id: str
    text: str
    category: str
    source: RecordSource | None = None
    last_modified: datetime | None = None

    @classmethod
    def from_dict(
        cls,
        data: Any,
        id_factory: IdGenerator | None = None,
    ) -> Record:
        """Validate a record-like mapping into a Record.

        Args:
            data: Parsed JSON value.
            id_factory: Used to assign an id to legacy entries without one.

        Returns:
            The validated record.

        Raises:
            ValidationError: If the entry is malformed.
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Record must be an object, got {type(data).__name__}")

        text = _require_text(data, "text")
        category = _require_text(data, "category")

        record_id = data.get("id")
        if record_id is None or record_id == "":
            if id_factory is None:
                raise ValidationError("Record is missing an id")
            record_id = id_factory()
        elif not isinstance(record_id, (str, int)) or isinstance(record_id, bool):
            raise ValidationError(f"Invalid record id: {record_id!r}")

        source = data.get("source")
        if source is not None:
            try:
                source = RecordSource(source)
            except ValueError as e:
                raise ValidationError(f"Unknown record source: {source!r}") from e

        return cls(
            id=str(record_id),
            text=text,
            category=category,
            source=source,
            last_modified=_parse_timestamp(data.get("lastModified")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted JSON shape."""
        data: dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "category": self.category,
        }
        if self.source is not None:
            data["source"] = self.source.value
        if self.last_modified is not None:
            data["lastModified"] = self.last_modified.isoformat()
        return data

    def matches(self, other: Record) -> bool:
        """Check whether two records are the same logical record.

        Ids match OR texts match exactly. The text fallback covers records
        created before ids existed and can match unrelated records that
        happen to share text.
        """
        return self.id == other.id or self.text == other.text

    def validate(self) -> Record:
        """Check the record shape.

        Raises:
            ValidationError: If id, text or category is empty.
        """
        if not isinstance(self.id, str) or not self.id:
            raise ValidationError("Record id must be a non-empty string")
        for name in ("text", "category"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"Record field '{name}' must be a non-empty string")
        return self

    def tagged(self, source: RecordSource) -> Record:
        """Return a copy with a different provenance tag."""
        return replace(self, source=source)


# Built-in records used when nothing (valid) is persisted yet
DEFAULT_RECORDS: tuple[tuple[str, str], ...] = (
    ("The only way to do great work is to love what you do.", "Motivation"),
    ("Innovation distinguishes between a leader and a follower.", "Leadership"),
    ("Life is what happens to you while you're busy making other plans.", "Life"),
    ("The future belongs to those who believe in the beauty of their dreams.", "Dreams"),
    ("It is during our darkest moments that we must focus to see the light.", "Hope"),
    (
        "Success is not final, failure is not fatal: "
        "it is the courage to continue that counts.",
        "Success",
    ),
    ("The way to get started is to quit talking and begin doing.", "Action"),
    ("Don't be afraid to give up the good to go for the great.", "Growth"),
)


def default_records(id_factory: IdGenerator = generate_local_id) -> list[Record]:
    """Build the default record set with fresh local ids."""
    return [
        Record(id=id_factory(), text=text, category=category, source=RecordSource.LOCAL)
        for text, category in DEFAULT_RECORDS
    ]
