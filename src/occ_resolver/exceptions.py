"""Exception hierarchy for occ-resolver."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .records import ConflictedRecord
    from .results import RetryOutcome


class OCCResolverError(Exception):
    """Root exception for the entire occ-resolver package."""


class ConcurrencyError(OCCResolverError):
    """Base class for optimistic-concurrency failures."""


class ConflictError(ConcurrencyError):
    """Raised when a write fails its version check.

    Carries every record that failed version checking in the attempt.
    Fatal under ``ConflictPolicy.DEFAULT``; storage adapters may also raise
    it from a persist callback instead of returning ``SaveConflicted``.
    """

    def __init__(
        self,
        conflicts: Sequence[ConflictedRecord],
        message: str | None = None,
    ) -> None:
        self.conflicts: tuple[ConflictedRecord, ...] = tuple(conflicts)
        if message is None:
            keys = ", ".join(repr(c.record.key) for c in self.conflicts)
            message = (
                f"Version conflict on {len(self.conflicts)} record(s): {keys or '-'}"
            )
        super().__init__(message)


class RetriesExhaustedError(ConcurrencyError):
    """Raised when the retry budget runs out before a clean save.

    The pending records are left in their resolved-but-unpersisted state.
    """

    def __init__(self, outcome: RetryOutcome) -> None:
        self.outcome = outcome
        super().__init__(
            f"Conflict resolution gave up after {outcome.attempts} attempt(s); "
            f"{len(outcome.conflicts)} record(s) still conflicted"
        )

    @property
    def conflicts(self) -> tuple[ConflictedRecord, ...]:
        return self.outcome.conflicts


class InfrastructureError(OCCResolverError):
    """Base class for all infrastructure-related errors."""


class PersistenceError(InfrastructureError):
    """Base class for all persistence-related errors."""


class StorageError(PersistenceError):
    """Raised for any non-conflict persistence failure.

    Connectivity problems, constraint violations and the like. Never retried.
    """


class ResolutionCancelledError(OCCResolverError):
    """Raised when the caller's cancellation signal is observed between attempts."""


class ConfigurationError(OCCResolverError):
    """Raised when resolution settings are invalid."""


__all__ = [
    "ConcurrencyError",
    "ConfigurationError",
    "ConflictError",
    "InfrastructureError",
    "OCCResolverError",
    "PersistenceError",
    "ResolutionCancelledError",
    "RetriesExhaustedError",
    "StorageError",
]
