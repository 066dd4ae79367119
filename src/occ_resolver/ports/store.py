"""VersionedStore — port for first-writer-wins storage engines."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..records import PendingRecord, StoredRecord
    from ..results import SaveResult


class VersionedStore(ABC):
    """Storage engine that checks a version token on every write."""

    @abstractmethod
    async def read(self, key: Any) -> StoredRecord | None:
        """Return the stored record, or ``None`` if it does not exist."""
        ...

    @abstractmethod
    async def write(self, records: Sequence[PendingRecord]) -> SaveResult:
        """Persist *records* as one write operation.

        Must not mutate *records*. Returns:

        - ``SaveSucceeded`` with the new token of every written key;
        - ``SaveConflicted`` listing every record whose token did not match
          (nothing is written);
        - ``SaveFailed`` wrapping a ``StorageError`` for anything else.
        """
        ...
