from .store import InMemoryVersionedStore

__all__ = ["InMemoryVersionedStore"]
