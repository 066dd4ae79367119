"""Configuration models for conflict resolution runs."""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigurationError
from .policy import ConflictPolicy, ExhaustionMode


class BackoffPolicy(BaseModel, ABC):
    """Base class for the pause taken between a resolved conflict and the retry."""

    jitter: bool = False

    @abstractmethod
    def calculate_delay(self, attempt: int) -> int:
        """Return delay in milliseconds before the retry following *attempt*."""
        ...

    def delay_for(self, attempt: int) -> int:
        delay = self.calculate_delay(attempt)
        if self.jitter and delay > 0:
            # Simple jitter: +/- 50% of delay
            delay = int(delay * (0.5 + random.random()))  # noqa: S311
        return delay


class NoBackoff(BackoffPolicy):
    """Retry immediately."""

    def calculate_delay(self, _attempt: int) -> int:
        return 0


class FixedBackoff(BackoffPolicy):
    """Retry after a fixed delay."""

    delay_ms: int = Field(default=50, ge=0)

    def calculate_delay(self, _attempt: int) -> int:
        return self.delay_ms


class ExponentialBackoff(BackoffPolicy):
    """Retry with increasing delay."""

    initial_delay_ms: int = Field(default=25, ge=0)
    multiplier: float = Field(default=2.0, ge=1.0)
    max_delay_ms: int = Field(default=2000, ge=0)

    def calculate_delay(self, attempt: int) -> int:
        delay = self.initial_delay_ms * (self.multiplier ** (attempt - 1))
        return min(int(delay), self.max_delay_ms)


class ResolutionConfig(BaseModel):
    """Settings for one conflict-resolving save."""

    policy: ConflictPolicy = ConflictPolicy.DEFAULT

    # Retries after the first attempt; total attempts = max_retries + 1.
    max_retries: int = Field(default=0, ge=0)

    on_exhausted: ExhaustionMode = ExhaustionMode.RAISE
    backoff: BackoffPolicy = Field(default_factory=NoBackoff)


def build_config(
    policy: ConflictPolicy | str = ConflictPolicy.DEFAULT,
    max_retries: int = 0,
    **options: Any,
) -> ResolutionConfig:
    """Build a :class:`ResolutionConfig`, dropping options left as ``None``.

    Raises:
        ConfigurationError: If any value fails validation.
    """
    data = {k: v for k, v in options.items() if v is not None}
    try:
        return ResolutionConfig(policy=policy, max_retries=max_retries, **data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid conflict resolution settings: {e}") from e
