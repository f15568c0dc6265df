"""Re-synchronize the entities that reference a changed entity, one level deep."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from catalogsync.domain.model import ChangeEvent, ChangeType

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from catalogsync.domain.ports.unit_of_work import CatalogUnitOfWork

log = getLogger(__name__)


@dataclass(slots=True)
class CascadePropagator:
    """Fan out to direct dependents only.

    Dependents are re-run through ``handler`` with a context one level deeper;
    events at ``max_depth`` or beyond never fan out again, so a taxonomy edit
    touches its dependents and nothing further.
    """

    unit_of_work_factory: Callable[[], CatalogUnitOfWork]
    handler: Callable[[ChangeEvent], Awaitable[object]]
    max_depth: int = 1

    async def propagate(self, event: ChangeEvent) -> list[object]:
        if event.context.depth >= self.max_depth:
            return []

        with self.unit_of_work_factory() as uow:
            dependents = [
                dependent.snapshot()
                for dependent in uow.repositories.entities.dependents_of(event.entity)
            ]
        if not dependents:
            return []

        log.info(
            "Cascading %s of %r to %d dependents (event %s)",
            event.change,
            event.entity,
            len(dependents),
            event.context.event_id,
        )
        results: list[object] = []
        for dependent in dependents:
            child = ChangeEvent(ChangeType.UPDATE, dependent, event.context.cascaded())
            results.append(await self.handler(child))
        return results
