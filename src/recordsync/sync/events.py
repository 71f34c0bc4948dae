"""Typed sync events and the bus that delivers them.

This module provides:
- ConflictsDetected, SyncCompleted, SyncFailed, QueueDrained,
  OnlineStatusChanged: Event payloads
- EventBus: Subscribe callbacks per event type and publish events

Subscribers are plain callables. A failing subscriber is logged and does
not stop delivery to the others or affect the sync cycle.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar

from recordsync.sync.types import Conflict, DrainResult, SyncReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncEventBase:
    """Base class for events emitted by the engine."""


@dataclass(frozen=True)
class ConflictsDetected(SyncEventBase):
    """Detection found conflicts during a cycle."""

    conflicts: tuple[Conflict, ...]
    auto_resolved: bool


@dataclass(frozen=True)
class SyncCompleted(SyncEventBase):
    """A sync cycle ran to completion."""

    report: SyncReport


@dataclass(frozen=True)
class SyncFailed(SyncEventBase):
    """A sync cycle was aborted."""

    error: Exception
    at: datetime


@dataclass(frozen=True)
class QueueDrained(SyncEventBase):
    """The offline queue was drained."""

    result: DrainResult
    remaining: int


@dataclass(frozen=True)
class OnlineStatusChanged(SyncEventBase):
    """Connectivity changed."""

    online: bool


E = TypeVar("E", bound=SyncEventBase)


class EventBus:
    """Delivers engine events to subscribers."""

    def __init__(self) -> None:
        self._subscribers: dict[type[SyncEventBase], list[Callable[[SyncEventBase], None]]] = {}

    def subscribe(self, event_type: type[E], callback: Callable[[E], None]) -> None:
        """Subscribe to an event type.

        Args:
            event_type: Event class to listen for.
            callback: Called with each published event of that type.
        """
        self._subscribers.setdefault(event_type, []).append(callback)  # type: ignore[arg-type]
        logger.debug(f"Added subscriber for {event_type.__name__}")

    def unsubscribe(self, event_type: type[E], callback: Callable[[E], None]) -> None:
        """Remove a subscription. Unknown callbacks are ignored."""
        callbacks = self._subscribers.get(event_type)
        if not callbacks:
            return
        try:
            callbacks.remove(callback)  # type: ignore[arg-type]
        except ValueError:
            return
        if not callbacks:
            del self._subscribers[event_type]

    def publish(self, event: SyncEventBase) -> None:
        """Deliver an event to the subscribers of its type."""
        for callback in list(self._subscribers.get(type(event), ())):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Error in subscriber for {type(event).__name__}")
