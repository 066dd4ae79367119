"""Records exchanged between a change-tracking session and the storage engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def new_version_token() -> str:
    """Default version token factory."""
    return uuid4().hex


class RecordState(str, Enum):
    """Lifecycle state of a tracked record."""

    UNCHANGED = "UNCHANGED"
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


class PendingRecord(BaseModel):
    """A unit of change queued for persistence.

    ``version`` is the token this writer last read; ``None`` for a record
    that was never persisted. Only the owning session and the conflict
    resolver mutate it.

    Usage::

        record = PendingRecord(key=1, values={"name": "a"}, version=token)
        record.set("name", "b")  # UNCHANGED -> MODIFIED
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    key: Any
    values: dict[str, Any] = Field(default_factory=dict)
    version: Any = None
    state: RecordState = RecordState.UNCHANGED

    def set(self, name: str, value: Any) -> None:
        self.values[name] = value
        self._touch()

    def update(self, **values: Any) -> None:
        self.values.update(values)
        self._touch()

    def mark_deleted(self) -> None:
        self.state = RecordState.DELETED

    def _touch(self) -> None:
        if self.state == RecordState.UNCHANGED:
            self.state = RecordState.MODIFIED


class StoredRecord(BaseModel):
    """Immutable snapshot of a record as currently held by storage."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    key: Any
    values: dict[str, Any] = Field(default_factory=dict)
    version: Any = None


@dataclass(frozen=True)
class ConflictedRecord:
    """A pending record that failed version checking.

    ``stored_values is None`` means the record no longer exists in storage.
    Created per failed attempt and consumed by the resolver straight away.
    """

    record: PendingRecord
    stored_values: dict[str, Any] | None = None
    stored_version: Any = None

    @property
    def exists(self) -> bool:
        return self.stored_values is not None

    @classmethod
    def from_stored(
        cls, record: PendingRecord, stored: StoredRecord | None
    ) -> ConflictedRecord:
        if stored is None:
            return cls(record=record)
        return cls(
            record=record,
            stored_values=dict(stored.values),
            stored_version=stored.version,
        )
