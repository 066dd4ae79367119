"""Two-way conflict resolution for records rejected by a version check."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..policy import ConflictPolicy
from ..records import RecordState

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ..records import ConflictedRecord


def resolve_conflict(conflict: ConflictedRecord, policy: ConflictPolicy) -> None:
    """Rewrite the conflicted pending record so it can be re-submitted.

    Only ``conflict.record`` is mutated. Resolving the same conflict twice
    with the same policy leaves the record in the same state.

    - Record deleted in storage: ``FORCE_OVERWRITE`` turns the write into an
      insert, ``SKIP_CONFLICTING`` accepts the deletion.
    - Record changed in storage: ``FORCE_OVERWRITE`` keeps every proposed
      value, ``SKIP_CONFLICTING`` takes the stored value for every field.
      Either way the version token is refreshed to the stored one.

    ``ConflictPolicy.DEFAULT`` resolves nothing.
    """
    if policy == ConflictPolicy.DEFAULT:
        return

    record = conflict.record
    if not conflict.exists:
        record.state = (
            RecordState.ADDED
            if policy == ConflictPolicy.FORCE_OVERWRITE
            else RecordState.UNCHANGED
        )
        return

    if policy == ConflictPolicy.SKIP_CONFLICTING:
        stored = conflict.stored_values or {}
        for name in record.values:
            if name in stored:
                record.values[name] = stored[name]

    # Refresh the token so the retry passes the version check.
    record.version = conflict.stored_version


def resolve_conflicts(
    conflicts: Iterable[ConflictedRecord], policy: ConflictPolicy
) -> int:
    """Resolve a whole conflict set; returns how many records were resolved."""
    count = 0
    for conflict in conflicts:
        resolve_conflict(conflict, policy)
        count += 1
    return count
