"""SQLAlchemy storage adapter."""

from .store import SQLAlchemyVersionedStore

__all__ = ["SQLAlchemyVersionedStore"]
