"""SQLAlchemy implementation of the VersionedStore port."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from ...exceptions import StorageError
from ...ports.store import VersionedStore
from ...records import ConflictedRecord, RecordState, StoredRecord, new_version_token
from ...results import SaveConflicted, SaveFailed, SaveSucceeded

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from sqlalchemy import Table
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

    from ...records import PendingRecord
    from ...results import SaveResult

logger = logging.getLogger("occ_resolver.sqlalchemy")


class SQLAlchemyVersionedStore(VersionedStore):
    """
    First-writer-wins store over one table, using SQLAlchemy Core.

    Every ``write`` runs in its own transaction:

    - ``ADDED`` records are inserted with a fresh token;
    - ``MODIFIED`` records are updated ``WHERE key = :key AND version = :read``;
    - ``DELETED`` records are deleted under the same condition.

    A statement matching no row is a conflict; the current row is read back
    (or reported missing) and the whole transaction is rolled back once every
    record has been tried.

    Usage::

        store = SQLAlchemyVersionedStore(engine, items_table)
        session = TrackingSession(store)
    """

    def __init__(
        self,
        engine: AsyncEngine,
        table: Table,
        *,
        key_column: str = "id",
        version_column: str = "version",
        version_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._engine = engine
        self._table = table
        self._key = table.c[key_column]
        self._version = table.c[version_column]
        self._version_factory = version_factory or new_version_token

    async def read(self, key: Any) -> StoredRecord | None:
        try:
            async with self._engine.connect() as conn:
                return await self._fetch(conn, key)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read record {key!r}: {e}") from e

    async def write(self, records: Sequence[PendingRecord]) -> SaveResult:
        try:
            async with self._engine.connect() as conn:
                trans = await conn.begin()
                result = await self._write_all(conn, records)
                if isinstance(result, SaveSucceeded):
                    await trans.commit()
                else:
                    await trans.rollback()
                return result
        except SQLAlchemyError as e:
            # Leaving the connection context rolls back the open transaction.
            logger.error("Write of %d record(s) failed: %s", len(records), e)
            error = StorageError(f"Failed to persist records: {e}")
            error.__cause__ = e
            return SaveFailed(error)

    async def _write_all(
        self, conn: AsyncConnection, records: Sequence[PendingRecord]
    ) -> SaveResult:
        conflicts: list[ConflictedRecord] = []
        versions: dict[Any, Any] = {}
        for record in records:
            match record.state:
                case RecordState.ADDED:
                    token = self._version_factory()
                    await conn.execute(
                        insert(self._table).values(
                            self._row(record, token, with_key=True)
                        )
                    )
                    versions[record.key] = token
                case RecordState.MODIFIED:
                    token = self._version_factory()
                    outcome = await conn.execute(
                        update(self._table)
                        .where(self._key == record.key)
                        .where(self._version == record.version)
                        .values(self._row(record, token))
                    )
                    if outcome.rowcount == 0:
                        conflicts.append(await self._conflict(conn, record))
                    else:
                        versions[record.key] = token
                case RecordState.DELETED:
                    outcome = await conn.execute(
                        delete(self._table)
                        .where(self._key == record.key)
                        .where(self._version == record.version)
                    )
                    if outcome.rowcount == 0:
                        conflicts.append(await self._conflict(conn, record))
                case _:
                    continue

        if conflicts:
            logger.debug(
                "Version check failed for %s.", [c.record.key for c in conflicts]
            )
            return SaveConflicted(tuple(conflicts))
        affected = sum(1 for r in records if r.state != RecordState.UNCHANGED)
        return SaveSucceeded(affected=affected, versions=versions)

    async def _conflict(
        self, conn: AsyncConnection, record: PendingRecord
    ) -> ConflictedRecord:
        return ConflictedRecord.from_stored(record, await self._fetch(conn, record.key))

    async def _fetch(self, conn: AsyncConnection, key: Any) -> StoredRecord | None:
        result = await conn.execute(select(self._table).where(self._key == key))
        row = result.mappings().first()
        if row is None:
            return None
        values = {
            name: value
            for name, value in row.items()
            if name not in (self._key.name, self._version.name)
        }
        return StoredRecord(
            key=row[self._key.name], values=values, version=row[self._version.name]
        )

    def _row(
        self, record: PendingRecord, token: Any, *, with_key: bool = False
    ) -> dict[str, Any]:
        row = dict(record.values)
        if with_key:
            row[self._key.name] = record.key
        row[self._version.name] = token
        return row
