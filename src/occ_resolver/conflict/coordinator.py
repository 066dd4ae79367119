"""Retry coordinator — bounded re-submission of conflicted writes."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import TYPE_CHECKING

from ..config import ResolutionConfig, build_config
from ..exceptions import ConflictError, ResolutionCancelledError, RetriesExhaustedError
from ..instrumentation import AttemptEvent, ResolutionEvent, get_observer_registry
from ..policy import ConflictPolicy, ExhaustionMode
from ..results import (
    RetryOutcome,
    SaveConflicted,
    SaveFailed,
    SaveResult,
    SaveSucceeded,
)
from .resolver import resolve_conflicts

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ..config import BackoffPolicy
    from ..records import ConflictedRecord

    Attempt = Callable[[], Awaitable[SaveResult | int]]

logger = logging.getLogger("occ_resolver.coordinator")


class RetryCoordinator:
    """
    Runs a persist attempt and resolves conflicts until it goes through.

    Makes at most ``config.max_retries + 1`` attempts, strictly one after the
    other. Between attempts every conflicted record is handed to the
    resolver, which rewrites it in place; the caller owns those records and
    must not share them with other tasks while a run is in progress.

    Usage::

        coordinator = RetryCoordinator(
            ResolutionConfig(policy=ConflictPolicy.FORCE_OVERWRITE, max_retries=2)
        )
        outcome = await coordinator.run(session.save_changes)
    """

    def __init__(self, config: ResolutionConfig | None = None) -> None:
        self.config = config or ResolutionConfig()

    async def run(
        self,
        attempt: Attempt,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> RetryOutcome:
        """Run attempts until success or the budget is spent.

        Raises:
            ConflictError: On the first conflict when the policy is DEFAULT.
            ResolutionCancelledError: If *cancel_event* is set before an attempt.
            Exception: Any non-conflict failure of *attempt*, unchanged.
        """
        policy = self.config.policy
        max_attempts = self.config.max_retries + 1
        observers = get_observer_registry()
        conflicts: tuple[ConflictedRecord, ...] = ()
        attempts = 0

        while attempts < max_attempts:
            _ensure_not_cancelled(cancel_event, attempts)
            attempts += 1
            result = await observers.run_attempt(
                AttemptEvent(policy, attempts, max_attempts),
                functools.partial(_invoke, attempt),
            )

            match result:
                case SaveSucceeded(affected=affected):
                    if attempts > 1:
                        logger.info(
                            "Save succeeded after %d attempt(s); %d record(s) written.",
                            attempts,
                            affected,
                        )
                    return RetryOutcome(affected=affected, attempts=attempts)
                case SaveFailed(error=error):
                    raise error
                case SaveConflicted(conflicts=conflicts, error=raised):
                    if policy == ConflictPolicy.DEFAULT:
                        raise raised or ConflictError(conflicts)
                    logger.warning(
                        "Conflict detected on %d record(s) (attempt %d/%d). "
                        "Resolving with %s...",
                        len(conflicts),
                        attempts,
                        max_attempts,
                        policy.value,
                    )
                    resolve_conflicts(conflicts, policy)
                    for conflict in conflicts:
                        logger.debug(
                            "Resolved %r (exists=%s) -> %s",
                            conflict.record.key,
                            conflict.exists,
                            conflict.record.state.value,
                        )
                    observers.notify_resolved(
                        ResolutionEvent(policy, attempts, conflicts)
                    )
                    if attempts < max_attempts:
                        await self._pause(attempts)
                case _:
                    raise TypeError(
                        f"Persist attempt returned {type(result).__name__}, "
                        "expected a SaveResult or an int"
                    )

        logger.error(
            "Giving up after %d attempt(s); %d record(s) still conflicted.",
            attempts,
            len(conflicts),
        )
        return RetryOutcome(
            affected=0, attempts=attempts, exhausted=True, conflicts=conflicts
        )

    async def save(
        self,
        attempt: Attempt,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> int:
        """Like :meth:`run`, returning the affected count.

        Raises:
            RetriesExhaustedError: If the budget ran out and the exhaustion
                mode is ``RAISE``.
        """
        outcome = await self.run(attempt, cancel_event=cancel_event)
        if outcome.exhausted and self.config.on_exhausted == ExhaustionMode.RAISE:
            raise RetriesExhaustedError(outcome)
        return outcome.affected

    async def _pause(self, attempt: int) -> None:
        delay = self.config.backoff.delay_for(attempt)
        if delay > 0:
            logger.debug("Retrying in %dms.", delay)
            await asyncio.sleep(delay / 1000.0)


async def save_with_resolution(
    attempt: Attempt,
    policy: ConflictPolicy | str = ConflictPolicy.DEFAULT,
    max_retries: int = 0,
    *,
    cancel_event: asyncio.Event | None = None,
    on_exhausted: ExhaustionMode | str | None = None,
    backoff: BackoffPolicy | None = None,
) -> int:
    """Persist through *attempt*, resolving version conflicts per *policy*.

    Args:
        attempt: Zero-argument async persist callback. Returns a
            ``SaveResult`` (or a plain affected count) and may raise
            ``ConflictError`` instead of returning ``SaveConflicted``.
        policy: How conflicts are resolved; ``DEFAULT`` re-raises them.
        max_retries: Retries after the first attempt.
        cancel_event: Checked before every attempt.
        on_exhausted: ``RAISE`` (default) or ``RETURN_ZERO``.
        backoff: Pause between a resolved conflict and the next attempt.

    Returns:
        The number of records written.

    Raises:
        ConflictError: A conflict under the ``DEFAULT`` policy.
        RetriesExhaustedError: Budget spent with ``on_exhausted=RAISE``.
        ResolutionCancelledError: *cancel_event* was set.
        ConfigurationError: Invalid settings.
    """
    config = build_config(
        policy, max_retries, on_exhausted=on_exhausted, backoff=backoff
    )
    return await RetryCoordinator(config).save(attempt, cancel_event=cancel_event)


async def _invoke(attempt: Attempt) -> SaveResult:
    try:
        result = await attempt()
    except ConflictError as e:
        return SaveConflicted(e.conflicts, error=e)
    if isinstance(result, int) and not isinstance(result, bool):
        return SaveSucceeded(affected=result)
    return result  # type: ignore[return-value]


def _ensure_not_cancelled(cancel_event: asyncio.Event | None, attempts: int) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ResolutionCancelledError(
            f"Save cancelled by caller after {attempts} attempt(s)"
        )
