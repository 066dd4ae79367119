"""Shared fixtures for occ-resolver tests."""

from __future__ import annotations

import pytest

from occ_resolver import InMemoryVersionedStore, PendingRecord, RecordState


@pytest.fixture
def store() -> InMemoryVersionedStore:
    return InMemoryVersionedStore()


@pytest.fixture
def pending_record() -> PendingRecord:
    """A record this writer read at version ``v1`` and then changed."""
    return PendingRecord(
        key=1,
        values={"name": "mine", "qty": 5},
        version="v1",
        state=RecordState.MODIFIED,
    )
