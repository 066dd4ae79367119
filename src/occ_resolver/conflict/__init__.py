from .coordinator import RetryCoordinator, save_with_resolution
from .resolver import resolve_conflict, resolve_conflicts

__all__ = [
    "RetryCoordinator",
    "resolve_conflict",
    "resolve_conflicts",
    "save_with_resolution",
]
