"""Tagged results reported by a persist attempt, and the coordinator outcome."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .exceptions import ConflictError
    from .records import ConflictedRecord


@dataclass(frozen=True)
class SaveSucceeded:
    """The write went through.

    ``versions`` maps each written key to the token storage issued for it.
    """

    affected: int
    versions: dict[Any, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SaveConflicted:
    """Every record that failed version checking in one attempt.

    ``error`` holds the exception when the attempt raised ``ConflictError``
    rather than returning this result.
    """

    conflicts: tuple[ConflictedRecord, ...]
    error: ConflictError | None = field(default=None, compare=False)


@dataclass(frozen=True)
class SaveFailed:
    """Any non-conflict failure. Never retried."""

    error: Exception


SaveResult = SaveSucceeded | SaveConflicted | SaveFailed


@dataclass(frozen=True)
class RetryOutcome:
    """Result of one coordinator run."""

    affected: int
    attempts: int
    exhausted: bool = False
    conflicts: tuple[ConflictedRecord, ...] = ()
