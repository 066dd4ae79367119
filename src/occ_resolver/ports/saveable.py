"""SaveableEntities — the "has changes to persist" capability."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from ..conflict.coordinator import save_with_resolution
from ..policy import ConflictPolicy

if TYPE_CHECKING:
    import asyncio

    from ..config import BackoffPolicy
    from ..policy import ExhaustionMode
    from ..results import SaveResult


class SaveableEntities(ABC):
    """
    Marks an object as able to persist its tracked changes.

    Implementations report version-check failures as ``SaveConflicted``
    listing every failed record (or raise ``ConflictError``). In exchange
    they get :meth:`save_changes_with_resolution` for free.

    Example:
        ```python
        class OrdersContext(SaveableEntities):
            async def save_changes(self) -> SaveResult:
                return await self._store.write(self.pending)

        written = await ctx.save_changes_with_resolution(
            ConflictPolicy.SKIP_CONFLICTING, 2
        )
        ```

    Not safe for concurrent use: await every save before starting another.
    """

    @abstractmethod
    async def save_changes(self) -> SaveResult | int:
        """Write all tracked changes once, without resolving conflicts."""
        ...

    async def save_changes_with_resolution(
        self,
        policy: ConflictPolicy | str = ConflictPolicy.DEFAULT,
        max_retries: int = 0,
        *,
        cancel_event: asyncio.Event | None = None,
        on_exhausted: ExhaustionMode | str | None = None,
        backoff: BackoffPolicy | None = None,
    ) -> int:
        """Save changes and resolve any conflicts per *policy*.

        See :func:`occ_resolver.conflict.save_with_resolution`.
        """
        return await save_with_resolution(
            self.save_changes,
            policy,
            max_retries,
            cancel_event=cancel_event,
            on_exhausted=on_exhausted,
            backoff=backoff,
        )
