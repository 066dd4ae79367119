"""InMemoryVersionedStore — dict-backed first-writer-wins store for tests."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from ...exceptions import StorageError
from ...ports.store import VersionedStore
from ...records import ConflictedRecord, RecordState, StoredRecord, new_version_token
from ...results import SaveConflicted, SaveFailed, SaveSucceeded

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from ...records import PendingRecord
    from ...results import SaveResult


class InMemoryVersionedStore(VersionedStore):
    """In-memory implementation of :class:`VersionedStore`.

    A batch is checked in full before anything is applied, so a conflicted
    write changes nothing and reports every conflicting record.
    """

    def __init__(self, version_factory: Callable[[], Any] | None = None) -> None:
        self._rows: dict[Any, StoredRecord] = {}
        self._lock = asyncio.Lock()
        self._version_factory = version_factory or new_version_token
        self.write_count: int = 0

    def seed(self, key: Any, values: Mapping[str, Any]) -> StoredRecord:
        """Insert a row directly, bypassing version checks."""
        stored = StoredRecord(
            key=key, values=dict(values), version=self._version_factory()
        )
        self._rows[key] = stored
        return stored

    async def read(self, key: Any) -> StoredRecord | None:
        return self._rows.get(key)

    async def write(self, records: Sequence[PendingRecord]) -> SaveResult:
        async with self._lock:
            self.write_count += 1
            conflicts: list[ConflictedRecord] = []
            for record in records:
                if record.state == RecordState.ADDED:
                    if record.key in self._rows:
                        return SaveFailed(
                            StorageError(f"Record {record.key!r} already exists")
                        )
                elif record.state in (RecordState.MODIFIED, RecordState.DELETED):
                    current = self._rows.get(record.key)
                    if current is None or current.version != record.version:
                        conflicts.append(ConflictedRecord.from_stored(record, current))
            if conflicts:
                return SaveConflicted(tuple(conflicts))
            return self._apply(records)

    def _apply(self, records: Sequence[PendingRecord]) -> SaveSucceeded:
        versions: dict[Any, Any] = {}
        for record in records:
            if record.state == RecordState.UNCHANGED:
                continue
            if record.state == RecordState.DELETED:
                del self._rows[record.key]
                continue
            token = self._version_factory()
            values = dict(record.values)
            current = self._rows.get(record.key)
            if record.state == RecordState.MODIFIED and current is not None:
                # Fields the record does not carry keep their stored value.
                values = {**current.values, **values}
            self._rows[record.key] = StoredRecord(
                key=record.key, values=values, version=token
            )
            versions[record.key] = token
        affected = sum(1 for r in records if r.state != RecordState.UNCHANGED)
        return SaveSucceeded(affected=affected, versions=versions)
