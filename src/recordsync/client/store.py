"""Local record store (the local replica).

This module provides:
- RecordStore: Ordered in-memory record collection backed by a key-value store

The store is the only owner of the in-memory collection. Every mutating
operation persists first and only then swaps the in-memory view, so a
failed write never leaves memory and backend disagreeing.
"""

from __future__ import annotations

import logging
import random
from collections import Counter
from typing import TYPE_CHECKING, Any

from recordsync.client.backends import (
    FILTER_KEY,
    RECORDS_KEY,
    SERVER_CACHE_KEY,
    read_json,
    write_json,
)
from recordsync.core.errors import PersistenceError, ValidationError
from recordsync.core.types import (
    IdGenerator,
    MutationKind,
    Record,
    default_records,
    generate_local_id,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from recordsync.client.backends import KeyValueBackend

logger = logging.getLogger(__name__)

DEFAULT_FILTER = "all"


def parse_records(
    data: Any,
    id_factory: IdGenerator | None = None,
    label: str = "records",
) -> list[Record] | None:
    """Validate a persisted record list, dropping malformed entries.

    Args:
        data: Decoded JSON value.
        id_factory: Assigns ids to legacy entries without one.
        label: Name used in log messages.

    Returns:
        Valid records in stored order, or None if data is not a list or
        every entry of a non-empty list was rejected.
    """
    if not isinstance(data, list):
        return None

    records: list[Record] = []
    seen_ids: set[str] = set()
    for index, entry in enumerate(data):
        try:
            record = Record.from_dict(entry, id_factory=id_factory)
        except ValidationError as e:
            logger.warning(f"Dropping malformed {label} entry #{index}: {e}")
            continue
        if record.id in seen_ids:
            logger.warning(f"Dropping {label} entry #{index}: duplicate id {record.id}")
            continue
        seen_ids.add(record.id)
        records.append(record)

    if data and not records:
        return None
    return records


class RecordStore:
    """Ordered collection of records persisted under the 'records' key."""

    def __init__(
        self,
        backend: KeyValueBackend,
        id_factory: IdGenerator = generate_local_id,
    ) -> None:
        """Initialize the store.

        Args:
            backend: Key-value persistence backend.
            id_factory: Id generator for defaults and legacy entries.
        """
        self._backend = backend
        self._id_factory = id_factory
        self._records: list[Record] = []

    @property
    def id_factory(self) -> IdGenerator:
        """Id generator used for new local records."""
        return self._id_factory

    @property
    def records(self) -> list[Record]:
        """Snapshot of the current records."""
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Record]:
        return iter(list(self._records))

    def get(self, record_id: str) -> Record | None:
        """Get a record by id."""
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    # === Load / save ===

    def load(self) -> list[Record]:
        """Load records from the backend.

        Missing or corrupt data yields the default record set. Never raises.

        Returns:
            The loaded records.
        """
        data = read_json(self._backend, RECORDS_KEY)
        records = parse_records(data, id_factory=self._id_factory)

        if records is None:
            if data is not None:
                logger.warning("Stored records are corrupt, using defaults")
            records = default_records(self._id_factory)
            self._persist_best_effort(records)
        elif any(isinstance(e, dict) and not e.get("id") for e in data):
            # Legacy entries were assigned ids; keep them stable
            self._persist_best_effort(records)

        self._records = records
        logger.info("Loaded %d records", len(records))
        return list(records)

    def save(self, records: Iterable[Record]) -> None:
        """Persist a record list.

        Raises:
            PersistenceError: If the backend write fails.
        """
        write_json(self._backend, RECORDS_KEY, [r.to_dict() for r in records])

    def _persist_best_effort(self, records: list[Record]) -> None:
        try:
            self.save(records)
        except PersistenceError as e:
            logger.warning(f"Could not persist records: {e}")

    def _commit(self, records: list[Record]) -> None:
        """Persist then swap the in-memory collection."""
        self.save(records)
        self._records = records

    # === Mutations ===

    def apply_mutation(self, record: Record) -> MutationKind:
        """Add a record, or replace the record with the same id.

        Args:
            record: Validated record.

        Returns:
            MutationKind.UPDATE if a record with this id existed, ADD otherwise.

        Raises:
            PersistenceError: If persisting fails. The in-memory collection
                is left unchanged.
        """
        updated = list(self._records)
        kind = MutationKind.ADD
        for index, existing in enumerate(updated):
            if existing.id == record.id:
                updated[index] = record
                kind = MutationKind.UPDATE
                break
        else:
            updated.append(record)

        try:
            self._commit(updated)
        except PersistenceError:
            logger.error(f"Rolled back {kind.value} of record {record.id}")
            raise

        logger.debug("Applied %s of record %s", kind.value, record.id)
        return kind

    def replace_all(self, records: Iterable[Record]) -> None:
        """Replace the whole collection.

        Raises:
            PersistenceError: If persisting fails (nothing changes).
        """
        self._commit(list(records))

    def remove(self, record_id: str) -> Record | None:
        """Remove a record by id.

        Returns:
            The removed record, or None if not found.

        Raises:
            PersistenceError: If persisting fails (nothing changes).
        """
        removed = self.get(record_id)
        if removed is None:
            return None
        self._commit([r for r in self._records if r.id != record_id])
        return removed

    # === Queries ===

    def categories(self) -> list[str]:
        """Distinct categories, in first-seen order."""
        return list(dict.fromkeys(r.category for r in self._records))

    def filter_by_category(self, category: str) -> list[Record]:
        """Records whose category contains the given string (case-insensitive)."""
        needle = category.lower()
        if needle in ("", DEFAULT_FILTER):
            return list(self._records)
        return [r for r in self._records if needle in r.category.lower()]

    def search(self, term: str) -> list[Record]:
        """Records whose text contains the term (case-insensitive)."""
        needle = term.lower()
        return [r for r in self._records if needle in r.text.lower()]

    def random_record(self, category: str | None = None) -> Record | None:
        """Pick a random record, optionally within a category."""
        pool = self.filter_by_category(category) if category else self._records
        if not pool:
            return None
        return random.choice(pool)

    def stats(self) -> dict[str, Any]:
        """Record count and per-category counts."""
        counts = Counter(r.category for r in self._records)
        return {
            "total": len(self._records),
            "categories": len(counts),
            "by_category": dict(counts),
        }

    # === Remote cache and filter ===

    def cache_remote(self, records: Iterable[Record]) -> None:
        """Keep a copy of the last fetched remote set. Failures are logged."""
        try:
            write_json(self._backend, SERVER_CACHE_KEY, [r.to_dict() for r in records])
        except PersistenceError as e:
            logger.warning(f"Could not cache remote records: {e}")

    def cached_remote(self) -> list[Record]:
        """Last cached remote set (empty if absent or corrupt)."""
        data = read_json(self._backend, SERVER_CACHE_KEY)
        return parse_records(data, label="server cache") or []

    def save_filter(self, value: str) -> None:
        """Remember the last selected category filter.

        Raises:
            PersistenceError: If the backend write fails.
        """
        write_json(self._backend, FILTER_KEY, value)

    def load_filter(self) -> str:
        """Last selected category filter ('all' if none)."""
        value = read_json(self._backend, FILTER_KEY)
        return value if isinstance(value, str) and value else DEFAULT_FILTER
