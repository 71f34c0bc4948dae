"""Shared fixtures: in-memory backends and a scriptable remote gateway."""

from __future__ import annotations

import asyncio
import itertools
from datetime import UTC, datetime

import pytest

from recordsync.client.backends import MemoryBackend
from recordsync.core.errors import NetworkError
from recordsync.core.types import Record, RecordSource


class FakeGateway:
    """In-process stand-in for the remote record source.

    Attributes:
        remote: Records returned by fetch_all.
        posted: Records passed to post_one that were accepted, in order.
        fetch_error: Raised by fetch_all when set.
        reject: Texts whose post fails with NetworkError.
        offline: Every call fails with NetworkError.
        delay: Seconds each call waits before answering.
    """

    def __init__(self, remote: list[Record] | None = None) -> None:
        self.remote = list(remote or [])
        self.posted: list[Record] = []
        self.fetch_calls = 0
        self.fetch_error: Exception | None = None
        self.reject: set[str] = set()
        self.offline = False
        self.delay = 0.0
        self._ids = itertools.count(101)

    async def fetch_all(self) -> list[Record]:
        self.fetch_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.offline:
            raise NetworkError("Remote unreachable")
        if self.fetch_error is not None:
            raise self.fetch_error
        return [r.tagged(RecordSource.SERVER) for r in self.remote]

    async def post_one(self, record: Record) -> Record:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.offline or record.text in self.reject:
            raise NetworkError("Remote unreachable", 503)
        self.posted.append(record)
        return Record(
            id=str(next(self._ids)),
            text=record.text,
            category=record.category,
            source=RecordSource.SERVER,
            last_modified=datetime.now(UTC),
        )


class FailingBackend(MemoryBackend):
    """Memory backend whose writes to selected keys fail."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        super().__init__(initial)
        self.fail_keys: set[str] = set()

    def set(self, key: str, value: str) -> None:
        if key in self.fail_keys:
            raise OSError(f"disk full while writing {key}")
        super().set(key, value)


def make_record(
    record_id: str,
    text: str,
    category: str = "General",
    source: RecordSource | None = RecordSource.LOCAL,
) -> Record:
    """Build a record for tests."""
    return Record(id=record_id, text=text, category=category, source=source)


@pytest.fixture
def backend() -> MemoryBackend:
    """Create an empty in-memory backend."""
    return MemoryBackend()


@pytest.fixture
def failing_backend() -> FailingBackend:
    """Create a backend whose writes can be made to fail."""
    return FailingBackend()


@pytest.fixture
def gateway() -> FakeGateway:
    """Create a fake remote gateway with no records."""
    return FakeGateway()


@pytest.fixture
def id_factory():
    """Deterministic id generator: local_1, local_2, ..."""
    counter = itertools.count(1)
    return lambda: f"local_{next(counter)}"
