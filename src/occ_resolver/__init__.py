"""occ-resolver — optimistic-concurrency conflict resolution.

A bounded retry coordinator and a two-way conflict resolver for writes
guarded by per-record version tokens. Storage engines plug in through
:class:`~occ_resolver.ports.VersionedStore` or by implementing
:class:`~occ_resolver.ports.SaveableEntities` directly.
"""

from __future__ import annotations

from .adapters.memory import InMemoryVersionedStore
from .config import (
    BackoffPolicy,
    ExponentialBackoff,
    FixedBackoff,
    NoBackoff,
    ResolutionConfig,
)
from .conflict import (
    RetryCoordinator,
    resolve_conflict,
    resolve_conflicts,
    save_with_resolution,
)
from .exceptions import (
    ConcurrencyError,
    ConfigurationError,
    ConflictError,
    InfrastructureError,
    OCCResolverError,
    PersistenceError,
    ResolutionCancelledError,
    RetriesExhaustedError,
    StorageError,
)
from .instrumentation import (
    AttemptEvent,
    ObserverRegistry,
    ResolutionEvent,
    ResolutionObserver,
    get_observer_registry,
    set_observer_registry,
)
from .policy import ConflictPolicy, ExhaustionMode
from .ports import SaveableEntities, VersionedStore
from .records import (
    ConflictedRecord,
    PendingRecord,
    RecordState,
    StoredRecord,
    new_version_token,
)
from .results import (
    RetryOutcome,
    SaveConflicted,
    SaveFailed,
    SaveResult,
    SaveSucceeded,
)
from .session import TrackingSession

__all__ = [
    # Policy & config
    "ConflictPolicy",
    "ExhaustionMode",
    "ResolutionConfig",
    "BackoffPolicy",
    "NoBackoff",
    "FixedBackoff",
    "ExponentialBackoff",
    # Resolution
    "RetryCoordinator",
    "resolve_conflict",
    "resolve_conflicts",
    "save_with_resolution",
    # Records & results
    "RecordState",
    "PendingRecord",
    "StoredRecord",
    "ConflictedRecord",
    "new_version_token",
    "SaveResult",
    "SaveSucceeded",
    "SaveConflicted",
    "SaveFailed",
    "RetryOutcome",
    # Ports & adapters
    "SaveableEntities",
    "VersionedStore",
    "TrackingSession",
    "InMemoryVersionedStore",
    # Instrumentation
    "AttemptEvent",
    "ResolutionEvent",
    "ResolutionObserver",
    "ObserverRegistry",
    "get_observer_registry",
    "set_observer_registry",
    # Exceptions
    "OCCResolverError",
    "ConcurrencyError",
    "ConflictError",
    "RetriesExhaustedError",
    "InfrastructureError",
    "PersistenceError",
    "StorageError",
    "ResolutionCancelledError",
    "ConfigurationError",
]
