"""Conflict policies — what wins when a version check fails."""

from __future__ import annotations

from enum import Enum


class ConflictPolicy(str, Enum):
    """Policies for resolving records rejected by the storage version check.

    - **DEFAULT**: No resolution; the conflict is raised to the caller.
    - **FORCE_OVERWRITE**: The writer's proposed values win. A record deleted
      by another writer is recreated.
    - **SKIP_CONFLICTING**: The currently stored values win. A deletion by
      another writer is accepted and the writer's change is dropped.
    """

    DEFAULT = "DEFAULT"
    FORCE_OVERWRITE = "FORCE_OVERWRITE"
    SKIP_CONFLICTING = "SKIP_CONFLICTING"


class ExhaustionMode(str, Enum):
    """What happens when every permitted attempt ended in a conflict.

    - **RAISE**: Raise ``RetriesExhaustedError`` with the last conflict set.
    - **RETURN_ZERO**: Report zero affected records and return normally.
    """

    RAISE = "RAISE"
    RETURN_ZERO = "RETURN_ZERO"
