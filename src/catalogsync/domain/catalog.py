"""Canonical-store write path.

Every mutation commits to the primary store first and only then raises a
change event, so a synchronization failure can never roll back the write that
triggered it.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from logging import getLogger
from typing import TYPE_CHECKING

from catalogsync.domain.model import (
    CanonicalEntity,
    ChangeEvent,
    ChangeType,
    PublicationState,
    SyncContext,
    Tombstone,
)
from catalogsync.domain.reconciliation.registry import ExternalIdRegistry

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from catalogsync.domain.model import EntityDetails, EntityKind, ExternalId
    from catalogsync.domain.ports.unit_of_work import CatalogUnitOfWork
    from catalogsync.domain.reconciliation.orchestrator import (
        ReconciliationOrchestrator,
        ReconciliationReport,
    )

log = getLogger(__name__)


class EntityNotFoundError(LookupError):
    def __init__(self, document_id: str) -> None:
        super().__init__(f"no canonical entity with document id {document_id}")
        self.document_id = document_id


@dataclass(frozen=True, slots=True, kw_only=True)
class InboundRecord:
    """A platform resource translated into canonical terms."""

    kind: EntityKind
    external_id: ExternalId
    natural_key: str
    name: str
    publication_state: PublicationState
    details: EntityDetails


@dataclass(frozen=True, slots=True)
class InboundResult:
    entity: CanonicalEntity | None
    created: bool = False
    duplicate: bool = False
    report: ReconciliationReport | None = None


def _content(entity: CanonicalEntity) -> tuple[object, ...]:
    return (entity.name, entity.natural_key, entity.details, entity.publication_state)


def merge_details(current: EntityDetails, incoming: EntityDetails) -> EntityDetails:
    """Overlay the non-empty values of ``incoming`` on ``current``."""

    if type(current) is not type(incoming):
        return incoming
    changes = {
        item.name: getattr(incoming, item.name)
        for item in fields(incoming)
        if getattr(incoming, item.name) not in (None, (), "")
    }
    return replace(current, **changes)


class CatalogService:
    def __init__(
        self,
        *,
        unit_of_work_factory: Callable[[], CatalogUnitOfWork],
        orchestrator: ReconciliationOrchestrator,
        registry: ExternalIdRegistry | None = None,
    ) -> None:
        self.unit_of_work_factory = unit_of_work_factory
        self.orchestrator = orchestrator
        self.registry = registry or ExternalIdRegistry()

    async def create(
        self,
        entity: CanonicalEntity,
        *,
        references: Iterable[str] = (),
        context: SyncContext | None = None,
    ) -> ReconciliationReport | None:
        """Store a new entity, link it to the given referenced document ids and propagate."""

        with self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            repositories.entities.add(entity)
            for document_id in references:
                repositories.relations.link(entity, self._require(uow, document_id))
            uow.commit()
            snapshot = entity.snapshot()
        event = ChangeEvent(ChangeType.CREATE, snapshot, context or SyncContext())
        return await self._propagate(event)

    async def update(
        self,
        document_id: str,
        *,
        name: str | None = None,
        natural_key: str | None = None,
        details: EntityDetails | None = None,
        channels: Iterable[str] | None = None,
        context: SyncContext | None = None,
    ) -> ReconciliationReport | None:
        with self.unit_of_work_factory() as uow:
            entity = self._require(uow, document_id)
            if name is not None:
                entity.name = name
            if natural_key is not None:
                entity.natural_key = natural_key
            if details is not None:
                entity.details = details
            if channels is not None:
                entity.channels = frozenset(channels)
            entity.touch()
            uow.commit()
            snapshot = entity.snapshot()
        event = ChangeEvent(ChangeType.UPDATE, snapshot, context or SyncContext())
        return await self._propagate(event)

    async def publish(
        self, document_id: str, *, context: SyncContext | None = None
    ) -> ReconciliationReport | None:
        return await self._set_state(document_id, PublicationState.PUBLISHED, context)

    async def unpublish(
        self, document_id: str, *, context: SyncContext | None = None
    ) -> ReconciliationReport | None:
        """Move back to draft; this is reversible and never deletes anything remotely."""

        return await self._set_state(document_id, PublicationState.DRAFT, context)

    async def delete(
        self, document_id: str, *, context: SyncContext | None = None
    ) -> ReconciliationReport | None:
        """Hard delete: drop the row and its relations and leave a tombstone, atomically."""

        effective = context or SyncContext()
        with self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            entity = self._require(uow, document_id)
            snapshot = entity.snapshot()
            repositories.relations.remove_all(entity)
            repositories.entities.remove(entity)
            repositories.tombstones.add(Tombstone.of(snapshot, effective.event_id))
            uow.commit()
        return await self._propagate(ChangeEvent(ChangeType.DELETE, snapshot, effective))

    async def link(
        self,
        dependent_id: str,
        referenced_id: str,
        *,
        context: SyncContext | None = None,
    ) -> ReconciliationReport | None:
        with self.unit_of_work_factory() as uow:
            dependent = self._require(uow, dependent_id)
            uow.repositories.relations.link(dependent, self._require(uow, referenced_id))
            dependent.touch()
            uow.commit()
            snapshot = dependent.snapshot()
        event = ChangeEvent(ChangeType.UPDATE, snapshot, context or SyncContext())
        return await self._propagate(event)

    async def unlink(
        self,
        dependent_id: str,
        referenced_id: str,
        *,
        context: SyncContext | None = None,
    ) -> ReconciliationReport | None:
        with self.unit_of_work_factory() as uow:
            dependent = self._require(uow, dependent_id)
            uow.repositories.relations.unlink(dependent, self._require(uow, referenced_id))
            dependent.touch()
            uow.commit()
            snapshot = dependent.snapshot()
        event = ChangeEvent(ChangeType.UPDATE, snapshot, context or SyncContext())
        return await self._propagate(event)

    async def resync(
        self, document_id: str, *, context: SyncContext | None = None
    ) -> ReconciliationReport | None:
        """Re-run the pipeline for an unchanged entity (manual retry after a failure)."""

        with self.unit_of_work_factory() as uow:
            snapshot = self._require(uow, document_id).snapshot()
        event = ChangeEvent(ChangeType.UPDATE, snapshot, context or SyncContext())
        return await self._propagate(event)

    async def apply_inbound(
        self,
        record: InboundRecord,
        platform: str,
        *,
        delivery_id: str | None = None,
    ) -> InboundResult:
        """Write a platform-originated change, tagged so it is not echoed back to ``platform``."""

        context = SyncContext.from_platform(platform, event_id=delivery_id)
        with self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            if delivery_id and not repositories.processed_events.claim(
                delivery_id, f"webhook:{platform}"
            ):
                log.info("Webhook delivery %s from %s already applied", delivery_id, platform)
                return InboundResult(entity=None, duplicate=True)

            entity = repositories.entities.get_by_external_id(
                record.kind, platform, record.external_id
            )
            if entity is None and record.natural_key:
                entity = repositories.entities.get_by_natural_key(record.kind, record.natural_key)

            created = entity is None
            changed = True
            if entity is None:
                entity = CanonicalEntity(
                    kind=record.kind,
                    natural_key=record.natural_key or f"{platform}:{record.external_id}",
                    name=record.name,
                    details=record.details,
                    publication_state=record.publication_state,
                    channels=frozenset({platform}),
                )
                repositories.entities.add(entity)
            else:
                before = _content(entity)
                entity.name = record.name or entity.name
                if record.natural_key:
                    entity.natural_key = record.natural_key
                entity.details = merge_details(entity.details, record.details)
                entity.publication_state = record.publication_state
                changed = _content(entity) != before
                if changed:
                    entity.touch()
            # the id comes from the platform itself, so adopting it is safe
            self.registry.set(entity, platform, record.external_id)
            uow.commit()
            snapshot = entity.snapshot()

        if not created and not changed:
            log.info(
                "Inbound %s from %s matches %r; nothing to propagate",
                record.kind,
                platform,
                snapshot,
            )
            return InboundResult(entity=snapshot)

        change = ChangeType.CREATE if created else ChangeType.UPDATE
        log.info(
            "Applied inbound %s from %s to %r (%s)", record.kind, platform, snapshot, change
        )
        report = await self._propagate(ChangeEvent(change, snapshot, context))
        return InboundResult(entity=snapshot, created=created, report=report)

    async def _set_state(
        self,
        document_id: str,
        state: PublicationState,
        context: SyncContext | None,
    ) -> ReconciliationReport | None:
        with self.unit_of_work_factory() as uow:
            entity = self._require(uow, document_id)
            entity.publication_state = state
            entity.touch()
            uow.commit()
            snapshot = entity.snapshot()
        event = ChangeEvent(ChangeType.UPDATE, snapshot, context or SyncContext())
        return await self._propagate(event)

    async def _propagate(self, event: ChangeEvent) -> ReconciliationReport | None:
        try:
            return await self.orchestrator.handle(event)
        except Exception:  # noqa: BLE001
            log.exception(
                "Reconciliation of %s %r crashed; store write kept",
                event.change,
                event.entity,
            )
            return None

    @staticmethod
    def _require(uow: CatalogUnitOfWork, document_id: str) -> CanonicalEntity:
        entity = uow.repositories.entities.get_by_document_id(document_id)
        if entity is None:
            raise EntityNotFoundError(document_id)
        return entity
