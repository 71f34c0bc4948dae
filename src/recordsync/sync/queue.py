"""Offline mutation queue.

This module provides:
- OfflineQueue: Durable FIFO of mutations awaiting delivery to the remote

Items are persisted under the 'syncQueue' key after every change. A write
failure is logged and never propagated: the mutation itself is already in
the record store, only its delivery is at stake.

Draining posts items strictly in enqueue order. A failed item stays in the
queue and the drain moves on; the queue afterwards holds exactly the failed
items (original relative order) followed by anything enqueued while the
drain was waiting on the network. Drains are serialized, so no item is
posted by two overlapping drains.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from recordsync.client.backends import QUEUE_KEY, read_json, write_json
from recordsync.core.errors import PersistenceError, ValidationError
from recordsync.sync.types import DrainResult, QueueItem

if TYPE_CHECKING:
    from collections.abc import Iterator

    from recordsync.client.api import RemoteGateway
    from recordsync.client.backends import KeyValueBackend
    from recordsync.core.types import MutationKind, Record

logger = logging.getLogger(__name__)


class OfflineQueue:
    """FIFO queue of pending mutations, persisted in the key-value backend."""

    def __init__(self, backend: KeyValueBackend) -> None:
        """Initialize the queue and load persisted items.

        Args:
            backend: Key-value persistence backend.
        """
        self._backend = backend
        self._items: list[QueueItem] = []
        self._drain_lock = asyncio.Lock()
        self._load()

    def _load(self) -> None:
        data = read_json(self._backend, QUEUE_KEY)
        if data is None:
            return
        if not isinstance(data, list):
            logger.warning("Stored sync queue is not a list, starting empty")
            return

        for entry in data:
            try:
                self._items.append(QueueItem.from_dict(entry))
            except ValidationError as e:
                logger.warning(f"Dropping malformed queue entry: {e}")

        if self._items:
            logger.info("Loaded %d pending mutations from persistence", len(self._items))

    def _persist(self) -> None:
        try:
            write_json(self._backend, QUEUE_KEY, [item.to_dict() for item in self._items])
        except PersistenceError as e:
            logger.error(f"Failed to persist sync queue ({len(self._items)} items): {e}")

    def enqueue(self, kind: MutationKind, record: Record) -> QueueItem:
        """Append a mutation. Never raises on persistence failure.

        Args:
            kind: ADD or UPDATE.
            record: The mutated record.

        Returns:
            The queued item.
        """
        item = QueueItem.create(kind, record)
        self._items.append(item)
        self._persist()
        logger.info(
            "Queued %s of record %s (queue size: %d)",
            kind.value,
            record.id,
            len(self._items),
        )
        return item

    def contains(self, record: Record) -> bool:
        """Check if a mutation for the same logical record is pending."""
        return any(item.payload.matches(record) for item in self._items)

    async def drain(
        self,
        gateway: RemoteGateway,
        timeout: float | None = None,
    ) -> DrainResult:
        """Deliver queued items in FIFO order.

        Args:
            gateway: Remote gateway used to post each item.
            timeout: Optional per-item timeout in seconds.

        Returns:
            DrainResult with delivered and failed items.
        """
        async with self._drain_lock:
            snapshot = list(self._items)
            result = DrainResult()
            if not snapshot:
                return result

            logger.info("Draining %d queued mutations", len(snapshot))
            for item in snapshot:
                try:
                    await asyncio.wait_for(gateway.post_one(item.payload), timeout)
                except Exception as e:
                    logger.warning(f"Delivery of {item.payload.id} failed, keeping it queued: {e}")
                    result.failed.append(item)
                else:
                    result.delivered.append(item)

            # Items cleared mid-drain are not restored
            current_ids = {item.queue_id for item in self._items}
            drained_ids = {item.queue_id for item in snapshot}
            failed = [item for item in result.failed if item.queue_id in current_ids]
            added = [item for item in self._items if item.queue_id not in drained_ids]
            self._items = failed + added
            self._persist()

            logger.info(
                "Queue drain finished: %d delivered, %d failed",
                len(result.delivered),
                len(result.failed),
            )
            return result

    def clear(self) -> int:
        """Remove all items.

        Returns:
            Number of items removed.
        """
        count = len(self._items)
        self._items = []
        self._persist()
        logger.info("Cleared %d items from sync queue", count)
        return count

    @property
    def items(self) -> list[QueueItem]:
        """Snapshot of pending items in FIFO order."""
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[QueueItem]:
        return iter(list(self._items))

    def __bool__(self) -> bool:
        return bool(self._items)
