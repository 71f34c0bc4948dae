"""Conflict detection and resolution.

Detection rules, applied to every local record in order:
1. A remote record matches by id OR exact text (first remote match wins).
   If its text differs -> CONTENT_MISMATCH.
2. No remote match at all -> LOCAL_ONLY.

Remote-only records are new data, not conflicts; merge picks them up.

Automatic policy (auto-sync only): CONTENT_MISMATCH -> remote wins,
LOCAL_ONLY -> local kept. Manual resolution may pick any ResolutionChoice.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from recordsync.core.errors import ValidationError
from recordsync.core.types import RecordSource
from recordsync.sync.merge import find_match, overlay
from recordsync.sync.types import Conflict, ConflictKind, ResolutionChoice

if TYPE_CHECKING:
    from collections.abc import Sequence

    from recordsync.core.types import Record

logger = logging.getLogger(__name__)


def detect(local: Sequence[Record], remote: Sequence[Record]) -> list[Conflict]:
    """Compare two replicas.

    Args:
        local: Local replica.
        remote: Remote replica.

    Returns:
        Conflicts in local order.
    """
    conflicts: list[Conflict] = []
    for local_record in local:
        index = find_match(local_record, remote)
        if index is None:
            conflicts.append(
                Conflict(
                    kind=ConflictKind.LOCAL_ONLY,
                    local=local_record,
                    remote=None,
                    detail=f"Record {local_record.id} exists locally but not on the server",
                )
            )
            continue

        remote_record = remote[index]
        if remote_record.text != local_record.text:
            conflicts.append(
                Conflict(
                    kind=ConflictKind.CONTENT_MISMATCH,
                    local=local_record,
                    remote=remote_record,
                    detail=(
                        f'Local text "{local_record.text}" differs from '
                        f'server text "{remote_record.text}"'
                    ),
                )
            )

    if conflicts:
        logger.debug("Detected %d conflicts", len(conflicts))
    return conflicts


def auto_resolution_choice(conflict: Conflict) -> ResolutionChoice:
    """Choice made by the automatic policy."""
    if conflict.kind == ConflictKind.CONTENT_MISMATCH:
        return ResolutionChoice.USE_REMOTE
    return ResolutionChoice.KEEP_LOCAL


def _locate(records: Sequence[Record], conflict: Conflict) -> int | None:
    for index, record in enumerate(records):
        if record.id == conflict.local.id:
            return index
    return find_match(conflict.local, records)


def resolve(
    records: Sequence[Record],
    conflict: Conflict,
    choice: ResolutionChoice,
) -> list[Record]:
    """Apply one resolution to a local record set.

    Args:
        records: Current local records.
        conflict: The conflict to resolve.
        choice: What to keep.

    Returns:
        A new record list. If the conflicting local record is no longer
        present, the list is returned unchanged.

    Raises:
        ValidationError: If USE_REMOTE is chosen for a conflict without a
            remote record.
    """
    resolved = list(records)
    index = _locate(resolved, conflict)
    if index is None:
        logger.warning(f"Record {conflict.local.id} is gone, nothing to resolve")
        return resolved

    if choice == ResolutionChoice.USE_REMOTE:
        if conflict.remote is None:
            raise ValidationError(
                f"Cannot use the server version of {conflict.local.id}: it has none"
            )
        resolved[index] = overlay(resolved[index], conflict.remote, RecordSource.SERVER_RESOLVED)
    elif choice == ResolutionChoice.KEEP_LOCAL:
        resolved[index] = resolved[index].tagged(RecordSource.LOCAL_KEPT)
    else:
        del resolved[index]

    logger.debug("Resolved %s for %s: %s", conflict.kind.value, conflict.local.id, choice.value)
    return resolved
