"""Merge of the local and remote replicas.

This module provides:
- find_match: Locate the same logical record (id OR exact text)
- overlay: Remote fields over local fields
- merge: Full reconciliation, used when detection found no conflicts
- merge_new: Append remote-only records, used after conflict resolution

Merging with the same remote set twice yields the same result as merging
once: the second pass finds the merged records as matches and overlays
identical data.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from recordsync.core.types import Record, RecordSource

if TYPE_CHECKING:
    from collections.abc import Sequence


def find_match(record: Record, candidates: Sequence[Record]) -> int | None:
    """Find the first candidate that is the same logical record.

    Returns:
        Index of the first match in candidates, or None.
    """
    for index, candidate in enumerate(candidates):
        if record.matches(candidate):
            return index
    return None


def overlay(local: Record, remote: Record, source: RecordSource) -> Record:
    """Overlay remote fields onto a local record.

    Remote values win; a missing remote last_modified keeps the local one.
    """
    return replace(
        local,
        id=remote.id,
        text=remote.text,
        category=remote.category,
        last_modified=remote.last_modified or local.last_modified,
        source=source,
    )


def merge(local: Sequence[Record], remote: Sequence[Record]) -> list[Record]:
    """Reconcile two replicas.

    Starting from a copy of local, each remote record either replaces its
    local match (tagged MERGED, or kept SERVER if the match already came
    from the server) or is appended (tagged SERVER).

    Args:
        local: Local replica.
        remote: Remote replica.

    Returns:
        The merged replica. Inputs are not modified.
    """
    merged = list(local)
    for remote_record in remote:
        index = find_match(remote_record, merged)
        if index is None:
            merged.append(remote_record.tagged(RecordSource.SERVER))
        else:
            existing = merged[index]
            # Records that came from the server stay tagged as such
            source = (
                RecordSource.SERVER
                if existing.source == RecordSource.SERVER
                else RecordSource.MERGED
            )
            merged[index] = overlay(existing, remote_record, source)
    return merged


def merge_new(local: Sequence[Record], remote: Sequence[Record]) -> list[Record]:
    """Append remote records that have no local match, tagged SERVER.

    Matched local records are left as they are.
    """
    merged = list(local)
    for remote_record in remote:
        if find_match(remote_record, merged) is None:
            merged.append(remote_record.tagged(RecordSource.SERVER))
    return merged
