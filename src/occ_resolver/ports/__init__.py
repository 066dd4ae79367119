"""Ports — the boundary between the resolver and the storage collaborator."""

from .saveable import SaveableEntities
from .store import VersionedStore

__all__ = [
    "SaveableEntities",
    "VersionedStore",
]
