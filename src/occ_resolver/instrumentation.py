"""Observers of save attempts and conflict resolution.

The coordinator reports two things to every observer in the current context:

- each persist attempt, through :meth:`ResolutionObserver.around_attempt`,
  which wraps the attempt like a middleware and may time or trace it;
- each resolved conflict set, through :meth:`ResolutionObserver.on_resolved`,
  scheduled in the background so a slow or failing observer never holds up
  the retry.

Usage::

    class ConflictCounter(ResolutionObserver):
        async def on_resolved(self, event: ResolutionEvent) -> None:
            metrics.increment("occ.conflicts", len(event.conflicts))

    get_observer_registry().add(ConflictCounter())
"""

from __future__ import annotations

import asyncio
import functools
import logging
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .policy import ConflictPolicy
    from .records import ConflictedRecord
    from .results import SaveResult

logger = logging.getLogger("occ_resolver.instrumentation")


@dataclass(frozen=True)
class AttemptEvent:
    """One persist attempt, numbered from 1."""

    policy: ConflictPolicy
    attempt: int
    max_attempts: int

    @property
    def is_retry(self) -> bool:
        return self.attempt > 1

    @property
    def is_last(self) -> bool:
        return self.attempt >= self.max_attempts


@dataclass(frozen=True)
class ResolutionEvent:
    """A conflict set after the resolver rewrote its records."""

    policy: ConflictPolicy
    attempt: int
    conflicts: tuple[ConflictedRecord, ...]

    @property
    def keys(self) -> list[Any]:
        return [c.record.key for c in self.conflicts]

    @property
    def missing_keys(self) -> list[Any]:
        """Keys whose row had been deleted by another writer."""
        return [c.record.key for c in self.conflicts if not c.exists]


class ResolutionObserver:
    """Base class for observers; override only the callbacks you need."""

    async def around_attempt(
        self,
        event: AttemptEvent,
        proceed: Callable[[], Awaitable[SaveResult]],
    ) -> SaveResult:
        return await proceed()

    async def on_resolved(self, event: ResolutionEvent) -> None:
        return None


class ObserverRegistry:
    """Ordered set of observers; the first one added wraps all the others."""

    def __init__(self) -> None:
        self._observers: list[ResolutionObserver] = []
        self._pending: set[asyncio.Task[None]] = set()

    def add(self, observer: ResolutionObserver) -> ResolutionObserver:
        self._observers.append(observer)
        return observer

    def remove(self, observer: ResolutionObserver) -> None:
        self._observers.remove(observer)

    def __len__(self) -> int:
        return len(self._observers)

    async def run_attempt(
        self,
        event: AttemptEvent,
        proceed: Callable[[], Awaitable[SaveResult]],
    ) -> SaveResult:
        handler = proceed
        for observer in reversed(self._observers):
            handler = functools.partial(observer.around_attempt, event, handler)
        return await handler()

    def notify_resolved(self, event: ResolutionEvent) -> None:
        """Schedule ``on_resolved`` on every observer without awaiting it.

        Does nothing outside a running event loop. Failures are logged.
        """
        if not self._observers:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        for observer in self._observers:
            task = loop.create_task(observer.on_resolved(event))
            self._pending.add(task)
            task.add_done_callback(self._finished)

    async def drain(self) -> None:
        """Wait for every scheduled notification to finish."""
        while self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Resolution observer failed: %s", exc, exc_info=exc)


_registry_var: ContextVar[ObserverRegistry | None] = ContextVar(
    "occ_observer_registry", default=None
)


def get_observer_registry() -> ObserverRegistry:
    """Return the registry of the current context, creating it on first use."""
    registry = _registry_var.get()
    if registry is None:
        registry = ObserverRegistry()
        _registry_var.set(registry)
    return registry


def set_observer_registry(registry: ObserverRegistry) -> None:
    _registry_var.set(registry)
