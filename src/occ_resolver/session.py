"""TrackingSession — in-memory change tracking over a VersionedStore."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .ports.saveable import SaveableEntities
from .records import PendingRecord, RecordState
from .results import SaveConflicted, SaveSucceeded

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .ports.store import VersionedStore
    from .results import SaveResult

logger = logging.getLogger("occ_resolver.session")


class TrackingSession(SaveableEntities):
    """
    Tracks records read from or queued for a :class:`VersionedStore`.

    Usage::

        session = TrackingSession(store)
        record = await session.load(42)
        record.set("name", "new")
        await session.save_changes_with_resolution(ConflictPolicy.FORCE_OVERWRITE)

    After a successful save the written records take the tokens issued by
    storage and return to ``UNCHANGED``; deleted records are untracked.
    A session belongs to one task at a time.
    """

    def __init__(self, store: VersionedStore) -> None:
        self._store = store
        self._records: dict[Any, PendingRecord] = {}
        # Keys last reported as deleted in storage by a conflicting write.
        self._gone: set[Any] = set()

    @property
    def records(self) -> list[PendingRecord]:
        return list(self._records.values())

    @property
    def pending(self) -> list[PendingRecord]:
        """Records with something to write."""
        return [r for r in self._records.values() if r.state != RecordState.UNCHANGED]

    def get(self, key: Any) -> PendingRecord | None:
        return self._records.get(key)

    async def load(self, key: Any) -> PendingRecord | None:
        """Track the stored record *key*; returns the tracked copy if already loaded."""
        if key in self._records:
            return self._records[key]
        stored = await self._store.read(key)
        if stored is None:
            return None
        record = PendingRecord(
            key=stored.key, values=dict(stored.values), version=stored.version
        )
        self._records[key] = record
        return record

    def add(self, key: Any, values: Mapping[str, Any]) -> PendingRecord:
        """Queue a new record for insertion."""
        if key in self._records:
            raise ValueError(f"Record {key!r} is already tracked")
        record = PendingRecord(key=key, values=dict(values), state=RecordState.ADDED)
        self._records[key] = record
        return record

    def remove(self, key: Any) -> None:
        """Queue *key* for deletion; an unsaved insert is simply dropped."""
        record = self._records.get(key)
        if record is None:
            raise KeyError(key)
        if record.state == RecordState.ADDED:
            del self._records[key]
            return
        record.mark_deleted()

    def detach(self, key: Any) -> PendingRecord | None:
        return self._records.pop(key, None)

    async def save_changes(self) -> SaveResult:
        self._forget_deleted_elsewhere()
        pending = self.pending
        if not pending:
            return SaveSucceeded(affected=0)
        result = await self._store.write(pending)
        match result:
            case SaveSucceeded(versions=versions):
                self._accept_changes(pending, versions)
            case SaveConflicted(conflicts=conflicts):
                self._gone = {c.record.key for c in conflicts if not c.exists}
        return result

    def _forget_deleted_elsewhere(self) -> None:
        """Untrack records whose deletion by another writer was accepted."""
        for key in self._gone:
            record = self._records.get(key)
            if record is not None and record.state == RecordState.UNCHANGED:
                del self._records[key]
                logger.debug("Untracked %r, deleted in storage.", key)
        self._gone = set()

    def _accept_changes(
        self, records: list[PendingRecord], versions: Mapping[Any, Any]
    ) -> None:
        for record in records:
            if record.state == RecordState.DELETED:
                self._records.pop(record.key, None)
                continue
            if record.key in versions:
                record.version = versions[record.key]
            record.state = RecordState.UNCHANGED
        logger.debug("Accepted changes for %d record(s).", len(records))
