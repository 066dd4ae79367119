from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from occ_resolver import (
    ConfigurationError,
    ConflictedRecord,
    ConflictError,
    ConflictPolicy,
    ExhaustionMode,
    FixedBackoff,
    PendingRecord,
    RecordState,
    ResolutionCancelledError,
    ResolutionConfig,
    RetriesExhaustedError,
    RetryCoordinator,
    SaveableEntities,
    SaveConflicted,
    SaveFailed,
    SaveSucceeded,
    StorageError,
    save_with_resolution,
)

# --- Helpers ---


def _conflicted(record: PendingRecord, *, exists: bool = True) -> SaveConflicted:
    if not exists:
        return SaveConflicted((ConflictedRecord(record=record),))
    return SaveConflicted(
        (
            ConflictedRecord(
                record=record, stored_values={"name": "theirs"}, stored_version="v2"
            ),
        )
    )


class ScriptedEntities(SaveableEntities):
    """Replays a fixed sequence of save results."""

    def __init__(self, *results) -> None:
        self.save_changes = AsyncMock(side_effect=list(results))

    async def save_changes(self):  # replaced per instance
        raise NotImplementedError


# --- Success & normalisation ---


@pytest.mark.asyncio
async def test_success_returns_affected_count_after_one_attempt() -> None:
    attempt = AsyncMock(return_value=SaveSucceeded(affected=3))

    result = await save_with_resolution(attempt, ConflictPolicy.FORCE_OVERWRITE, 5)

    assert result == 3
    attempt.assert_awaited_once()


@pytest.mark.asyncio
async def test_plain_int_result_is_accepted() -> None:
    attempt = AsyncMock(return_value=2)

    assert await save_with_resolution(attempt) == 2


@pytest.mark.asyncio
async def test_unexpected_result_type_is_rejected() -> None:
    attempt = AsyncMock(return_value="done")

    with pytest.raises(TypeError):
        await save_with_resolution(attempt)


@pytest.mark.asyncio
async def test_conflict_is_resolved_before_the_retry(pending_record) -> None:
    seen: list[tuple[str, str]] = []

    async def _attempt():
        seen.append((pending_record.values["name"], pending_record.version))
        if len(seen) == 1:
            return _conflicted(pending_record)
        return SaveSucceeded(affected=1)

    result = await save_with_resolution(_attempt, ConflictPolicy.SKIP_CONFLICTING, 1)

    assert result == 1
    assert seen == [("mine", "v1"), ("theirs", "v2")]


@pytest.mark.asyncio
async def test_raised_conflict_error_is_resolved_like_a_reported_one(
    pending_record,
) -> None:
    conflict = _conflicted(pending_record, exists=False).conflicts
    attempt = AsyncMock(side_effect=[ConflictError(conflict), SaveSucceeded(1)])

    result = await save_with_resolution(attempt, ConflictPolicy.FORCE_OVERWRITE, 1)

    assert result == 1
    assert pending_record.state == RecordState.ADDED
    assert attempt.await_count == 2


@pytest.mark.asyncio
async def test_run_reports_attempt_count(pending_record) -> None:
    attempt = AsyncMock(
        side_effect=[_conflicted(pending_record), _conflicted(pending_record), 1]
    )
    coordinator = RetryCoordinator(
        ResolutionConfig(policy=ConflictPolicy.FORCE_OVERWRITE, max_retries=2)
    )

    outcome = await coordinator.run(attempt)

    assert outcome.affected == 1
    assert outcome.attempts == 3
    assert not outcome.exhausted
    assert outcome.conflicts == ()


# --- DEFAULT policy ---


@pytest.mark.asyncio
@pytest.mark.parametrize("max_retries", [0, 3])
async def test_default_policy_reraises_first_conflict(
    pending_record, max_retries
) -> None:
    reported = _conflicted(pending_record)
    attempt = AsyncMock(side_effect=[reported, SaveSucceeded(1)])

    with pytest.raises(ConflictError) as excinfo:
        await save_with_resolution(attempt, ConflictPolicy.DEFAULT, max_retries)

    assert excinfo.value.conflicts == reported.conflicts
    assert attempt.await_count == 1
    assert pending_record.values["name"] == "mine"
    assert pending_record.version == "v1"


@pytest.mark.asyncio
async def test_default_policy_reraises_raised_conflict_unchanged(
    pending_record,
) -> None:
    class EngineConflict(ConflictError):
        pass

    error = EngineConflict(_conflicted(pending_record).conflicts, "engine said no")
    attempt = AsyncMock(side_effect=error)

    with pytest.raises(EngineConflict, match="engine said no") as excinfo:
        await save_with_resolution(attempt, max_retries=3)

    assert excinfo.value is error
    assert attempt.await_count == 1


# --- Retry budget ---


@pytest.mark.asyncio
@pytest.mark.parametrize("max_retries", [0, 1, 3])
async def test_always_conflicting_attempt_runs_max_retries_plus_one_times(
    pending_record, max_retries
) -> None:
    attempt = AsyncMock(return_value=_conflicted(pending_record))

    with pytest.raises(RetriesExhaustedError) as excinfo:
        await save_with_resolution(
            attempt, ConflictPolicy.FORCE_OVERWRITE, max_retries
        )

    assert attempt.await_count == max_retries + 1
    assert excinfo.value.outcome.attempts == max_retries + 1
    assert excinfo.value.outcome.affected == 0
    assert excinfo.value.conflicts == attempt.return_value.conflicts


@pytest.mark.asyncio
@pytest.mark.parametrize("max_retries", [0, 2])
async def test_return_zero_mode_swallows_exhaustion(
    pending_record, max_retries
) -> None:
    attempt = AsyncMock(return_value=_conflicted(pending_record))

    result = await save_with_resolution(
        attempt,
        ConflictPolicy.SKIP_CONFLICTING,
        max_retries,
        on_exhausted=ExhaustionMode.RETURN_ZERO,
    )

    assert result == 0
    assert attempt.await_count == max_retries + 1
    # Left resolved but unpersisted for the caller to inspect.
    assert pending_record.values["name"] == "theirs"
    assert pending_record.version == "v2"


@pytest.mark.asyncio
async def test_exhausted_outcome_carries_last_conflict_set(pending_record) -> None:
    first = _conflicted(pending_record)
    last = _conflicted(pending_record, exists=False)
    coordinator = RetryCoordinator(
        ResolutionConfig(policy=ConflictPolicy.SKIP_CONFLICTING, max_retries=1)
    )

    outcome = await coordinator.run(AsyncMock(side_effect=[first, last]))

    assert outcome.exhausted
    assert outcome.conflicts == last.conflicts


# --- Non-conflict failures ---


@pytest.mark.asyncio
async def test_reported_storage_failure_is_raised_unchanged() -> None:
    error = StorageError("disk full")
    attempt = AsyncMock(side_effect=[SaveFailed(error), SaveSucceeded(1)])

    with pytest.raises(StorageError) as excinfo:
        await save_with_resolution(attempt, ConflictPolicy.FORCE_OVERWRITE, 3)

    assert excinfo.value is error
    assert attempt.await_count == 1


@pytest.mark.asyncio
async def test_raised_failure_propagates_without_retry(pending_record) -> None:
    attempt = AsyncMock(
        side_effect=[_conflicted(pending_record), ValueError("bad row")]
    )

    with pytest.raises(ValueError, match="bad row"):
        await save_with_resolution(attempt, ConflictPolicy.FORCE_OVERWRITE, 5)

    assert attempt.await_count == 2


# --- Cancellation ---


@pytest.mark.asyncio
async def test_cancel_event_set_up_front_prevents_any_attempt() -> None:
    attempt = AsyncMock(return_value=1)
    cancel = asyncio.Event()
    cancel.set()

    with pytest.raises(ResolutionCancelledError):
        await save_with_resolution(attempt, cancel_event=cancel)

    attempt.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancel_event_is_observed_between_attempts(pending_record) -> None:
    cancel = asyncio.Event()

    async def _attempt():
        cancel.set()
        return _conflicted(pending_record)

    attempt = AsyncMock(side_effect=_attempt)

    with pytest.raises(ResolutionCancelledError):
        await save_with_resolution(
            attempt, ConflictPolicy.FORCE_OVERWRITE, 5, cancel_event=cancel
        )

    assert attempt.await_count == 1


@pytest.mark.asyncio
async def test_task_cancellation_is_not_swallowed() -> None:
    attempt = AsyncMock(side_effect=asyncio.CancelledError())

    with pytest.raises(asyncio.CancelledError):
        await save_with_resolution(attempt, ConflictPolicy.FORCE_OVERWRITE, 3)

    assert attempt.await_count == 1


# --- Backoff ---


@pytest.mark.asyncio
async def test_backoff_pauses_between_attempts_only(pending_record) -> None:
    attempt = AsyncMock(return_value=_conflicted(pending_record))

    with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
        result = await save_with_resolution(
            attempt,
            ConflictPolicy.FORCE_OVERWRITE,
            2,
            on_exhausted="RETURN_ZERO",
            backoff=FixedBackoff(delay_ms=20),
        )

    assert result == 0
    assert attempt.await_count == 3
    assert sleep.await_count == 2
    sleep.assert_awaited_with(0.02)


# --- Configuration ---


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_retries": -1},
        {"policy": "LAST_ONE_WINS"},
        {"on_exhausted": "IGNORE"},
    ],
)
async def test_invalid_settings_raise_configuration_error(kwargs) -> None:
    attempt = AsyncMock(return_value=1)

    with pytest.raises(ConfigurationError):
        await save_with_resolution(attempt, **kwargs)

    attempt.assert_not_awaited()


# --- SaveableEntities façade ---


@pytest.mark.asyncio
async def test_saveable_entities_defaults_to_default_policy(pending_record) -> None:
    entities = ScriptedEntities(_conflicted(pending_record))

    with pytest.raises(ConflictError):
        await entities.save_changes_with_resolution()

    assert entities.save_changes.await_count == 1


@pytest.mark.asyncio
async def test_saveable_entities_with_policy_only(pending_record) -> None:
    entities = ScriptedEntities(_conflicted(pending_record))

    with pytest.raises(RetriesExhaustedError):
        await entities.save_changes_with_resolution(ConflictPolicy.FORCE_OVERWRITE)

    assert entities.save_changes.await_count == 1


@pytest.mark.asyncio
async def test_saveable_entities_with_policy_and_retries(pending_record) -> None:
    entities = ScriptedEntities(
        _conflicted(pending_record), _conflicted(pending_record), SaveSucceeded(1)
    )

    result = await entities.save_changes_with_resolution(
        ConflictPolicy.SKIP_CONFLICTING, 2
    )

    assert result == 1
    assert entities.save_changes.await_count == 3
