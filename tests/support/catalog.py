"""Fakes and builders for catalog reconciliation tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from catalogsync.domain.model import (
    CanonicalEntity,
    EntityKind,
    ProductDetails,
    PublicationState,
    TermDetails,
    TermKind,
    Tombstone,
)
from catalogsync.domain.ports.platform import PlatformApiError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from catalogsync.domain.model import ExternalId
    from catalogsync.domain.ports.unit_of_work import CatalogUnitOfWork

PLATFORMS = ("woo_moraleja", "woo_escolar")


def make_product(
    sku: str = "9789560001",
    *,
    name: str = "Cien años de soledad",
    published: bool = True,
    channels: Sequence[str] = PLATFORMS,
    external_ids: Mapping[str, ExternalId] | None = None,
    price: str | None = "12990",
) -> CanonicalEntity:
    return CanonicalEntity(
        kind=EntityKind.PRODUCT,
        natural_key=sku,
        name=name,
        details=ProductDetails(price=price),
        publication_state=PublicationState.PUBLISHED if published else PublicationState.DRAFT,
        channels=frozenset(channels),
        external_ids=dict(external_ids or {}),
    )


def make_term(
    name: str = "Gabriel García Márquez",
    *,
    term_kind: TermKind = TermKind.AUTHOR,
    published: bool = True,
    channels: Sequence[str] = PLATFORMS,
    external_ids: Mapping[str, ExternalId] | None = None,
) -> CanonicalEntity:
    return CanonicalEntity(
        kind=EntityKind.TERM,
        natural_key=name,
        name=name,
        details=TermDetails(term_kind=term_kind),
        publication_state=PublicationState.PUBLISHED if published else PublicationState.DRAFT,
        channels=frozenset(channels),
        external_ids=dict(external_ids or {}),
    )


@dataclass(frozen=True, slots=True)
class GatewayCall:
    operation: str
    natural_key: str
    name: str
    external_id: ExternalId | None = None


@dataclass
class FakeGateway:
    """In-memory platform that behaves like a store keyed by natural key."""

    platform: str
    delay: float = 0.0
    resources: dict[ExternalId, tuple[EntityKind, str]] = field(default_factory=dict)
    calls: list[GatewayCall] = field(default_factory=list)
    failures: list[BaseException] = field(default_factory=list)
    closed: bool = False
    _next_id: int = 100

    @property
    def name(self) -> str:
        return self.platform

    def seed(self, entity: CanonicalEntity, external_id: ExternalId) -> None:
        self.resources[external_id] = (entity.kind, entity.natural_key)

    def fail_next(self, exc: BaseException, *, times: int = 1) -> None:
        self.failures.extend([exc] * times)

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call.operation == operation)

    async def find(
        self, entity: CanonicalEntity, references: Sequence[CanonicalEntity]
    ) -> ExternalId | None:
        await self._enter("find", entity)
        for external_id, (kind, key) in self.resources.items():
            if kind is entity.kind and key == entity.natural_key:
                return external_id
        return None

    async def create(
        self, entity: CanonicalEntity, references: Sequence[CanonicalEntity]
    ) -> ExternalId:
        await self._enter("create", entity)
        self._next_id += 1
        self.resources[self._next_id] = (entity.kind, entity.natural_key)
        self.calls[-1] = GatewayCall("create", entity.natural_key, entity.name, self._next_id)
        return self._next_id

    async def update(
        self,
        entity: CanonicalEntity,
        external_id: ExternalId,
        references: Sequence[CanonicalEntity],
    ) -> None:
        await self._enter("update", entity, external_id)
        if external_id not in self.resources:
            raise PlatformApiError(
                f"{self.platform}: no resource {external_id}",
                platform=self.platform,
                status_code=404,
                endpoint="fake",
            )

    async def delete(self, entity: CanonicalEntity, external_id: ExternalId) -> bool:
        await self._enter("delete", entity, external_id)
        return self.resources.pop(external_id, None) is not None

    async def aclose(self) -> None:
        self.closed = True

    async def _enter(
        self, operation: str, entity: CanonicalEntity, external_id: ExternalId | None = None
    ) -> None:
        self.calls.append(GatewayCall(operation, entity.natural_key, entity.name, external_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            raise self.failures.pop(0)


@dataclass
class RecordingSender:
    sent: list[tuple[str, tuple[str, ...]]] = field(default_factory=list)
    failures: list[BaseException] = field(default_factory=list)
    delay: float = 0.0

    async def send(
        self,
        *,
        template_key: str,
        recipients: tuple[str, ...],
        variables: Mapping[str, object],
    ) -> None:
        _ = variables
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            raise self.failures.pop(0)
        self.sent.append((template_key, recipients))


def persist(
    unit_of_work_factory: Callable[[], CatalogUnitOfWork], *entities: CanonicalEntity
) -> list[CanonicalEntity]:
    """Store entities without raising change events; returns detached snapshots."""

    with unit_of_work_factory() as uow:
        for entity in entities:
            uow.repositories.entities.add(entity)
        uow.commit()
        return [entity.snapshot() for entity in entities]


def stored(
    unit_of_work_factory: Callable[[], CatalogUnitOfWork], document_id: str
) -> CanonicalEntity | None:
    with unit_of_work_factory() as uow:
        entity = uow.repositories.entities.get_by_document_id(document_id)
        return None if entity is None else entity.snapshot()


def bury(
    unit_of_work_factory: Callable[[], CatalogUnitOfWork],
    entity: CanonicalEntity,
    *,
    event_id: str = "evt-delete",
) -> None:
    """Remove a stored entity and leave its tombstone, as a hard delete does."""

    with unit_of_work_factory() as uow:
        repositories = uow.repositories
        current = repositories.entities.get_by_document_id(entity.document_id)
        assert current is not None
        repositories.relations.remove_all(current)
        repositories.entities.remove(current)
        repositories.tombstones.add(Tombstone.of(entity, event_id))
        uow.commit()
