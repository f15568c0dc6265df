"""Idempotent upsert and reference-counted delete against one platform.

The adapter owns the protocol around a ``PlatformGateway``: which id to use,
when to search before creating, when a delete is safe. Gateways only know how
to talk to their platform.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from catalogsync.domain.model import ChangeType, SyncAttempt, SyncOutcome
from catalogsync.domain.ports.platform import PlatformApiError, PlatformError

from .registry import ExternalIdRegistry

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from catalogsync.domain.model import CanonicalEntity, ExternalId, SyncContext
    from catalogsync.domain.ports.platform import PlatformGateway
    from catalogsync.domain.ports.unit_of_work import CatalogRepositories, CatalogUnitOfWork

log = getLogger(__name__)


class UpsertAction(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    ADOPTED = "adopted"
    SKIPPED = "skipped"


class DeleteOutcome(StrEnum):
    DELETED = "deleted"
    ALREADY_GONE = "already_gone"
    SHARED = "shared"
    STILL_EXISTS = "still_exists"
    ALREADY_PROCESSED = "already_processed"
    NOT_SYNCED = "not_synced"

    @property
    def removed(self) -> bool:
        return self in {DeleteOutcome.DELETED, DeleteOutcome.ALREADY_GONE}


@dataclass(frozen=True, slots=True)
class UpsertResult:
    platform: str
    action: UpsertAction
    external_id: ExternalId | None = None


@dataclass(frozen=True, slots=True)
class DeleteResult:
    platform: str
    outcome: DeleteOutcome
    external_id: ExternalId | None = None


class UnknownPlatformError(PlatformError):
    """No gateway is configured for the requested platform."""


def _delete_scope(platform: str) -> str:
    return f"delete:{platform}"


@dataclass(slots=True)
class PlatformAdapter:
    gateways: Mapping[str, PlatformGateway]
    unit_of_work_factory: Callable[[], CatalogUnitOfWork]
    registry: ExternalIdRegistry = field(default_factory=ExternalIdRegistry)

    def gateway(self, platform: str) -> PlatformGateway:
        try:
            return self.gateways[platform]
        except KeyError:
            raise UnknownPlatformError(
                f"no gateway configured for {platform}", platform=platform
            ) from None

    async def upsert(
        self, entity: CanonicalEntity, platform: str, context: SyncContext
    ) -> UpsertResult:
        """Update by registry id, else adopt a natural-key match, else create.

        The store is re-read first so that an id written by an earlier event for
        the same entity is honoured even if ``entity`` is an older snapshot.
        """

        gateway = self.gateway(platform)
        with self.unit_of_work_factory() as uow:
            current = uow.repositories.entities.get_by_document_id(entity.document_id)
            if current is None:
                log.info("Skipping upsert of %r to %s: no longer stored", entity, platform)
                return UpsertResult(platform, UpsertAction.SKIPPED)
            snapshot = current.snapshot()
            references = [
                ref.snapshot() for ref in uow.repositories.entities.references_of(current)
            ]

        external_id = self.registry.get(snapshot, platform)
        if external_id is not None:
            try:
                await gateway.update(snapshot, external_id, references)
            except PlatformApiError as exc:
                if not exc.is_not_found:
                    raise
                log.warning(
                    "%s no longer has %r (%s); clearing stale id", platform, snapshot, external_id
                )
                self._forget(snapshot, platform)
            else:
                self._record_success(snapshot, platform, ChangeType.UPDATE, context, external_id)
                self.registry.set(entity, platform, external_id)
                return UpsertResult(platform, UpsertAction.UPDATED, external_id)

        found = await gateway.find(snapshot, references)
        if found is not None:
            log.info("Adopting existing %s resource %s for %r", platform, found, snapshot)
            await gateway.update(snapshot, found, references)
            action, external_id = UpsertAction.ADOPTED, found
        else:
            external_id = await gateway.create(snapshot, references)
            action = UpsertAction.CREATED

        self._record_success(snapshot, platform, ChangeType.CREATE, context, external_id)
        self.registry.set(entity, platform, external_id)
        return UpsertResult(platform, action, external_id)

    async def delete(
        self, entity: CanonicalEntity, platform: str, context: SyncContext
    ) -> DeleteResult:
        """Delete the remote counterpart once the entity is provably gone and unshared."""

        gateway = self.gateway(platform)
        external_id = self.registry.get(entity, platform)
        if external_id is None:
            return DeleteResult(platform, DeleteOutcome.NOT_SYNCED)

        scope = _delete_scope(platform)
        with self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            if repositories.processed_events.is_processed(context.event_id, scope):
                log.info("Delete event %s already handled for %s", context.event_id, platform)
                return DeleteResult(platform, DeleteOutcome.ALREADY_PROCESSED, external_id)

            if not self._is_gone(repositories, entity):
                log.warning(
                    "Refusing to delete %s resource %s: %r still stored or not tombstoned",
                    platform,
                    external_id,
                    entity,
                )
                return DeleteResult(platform, DeleteOutcome.STILL_EXISTS, external_id)

            sharing = [
                other
                for other in repositories.entities.sharing_external_id(
                    entity.kind, platform, external_id, exclude_document_id=entity.document_id
                )
                if other.term_kind == entity.term_kind
            ]
            repositories.processed_events.claim(context.event_id, scope)
            if sharing:
                log.info(
                    "Keeping %s resource %s: still referenced by %d other entities",
                    platform,
                    external_id,
                    len(sharing),
                )
                repositories.sync_attempts.add(
                    self._attempt(
                        entity,
                        platform,
                        ChangeType.DELETE,
                        context,
                        SyncOutcome.SKIPPED,
                        external_id=external_id,
                        detail="shared external id",
                    )
                )
                uow.commit()
                return DeleteResult(platform, DeleteOutcome.SHARED, external_id)
            uow.commit()

        try:
            removed = await gateway.delete(entity, external_id)
        except PlatformError:
            self._release(context.event_id, scope)
            raise
        outcome = DeleteOutcome.DELETED if removed else DeleteOutcome.ALREADY_GONE
        log.info("%s resource %s for %r: %s", platform, external_id, entity, outcome)
        self._record_success(entity, platform, ChangeType.DELETE, context, external_id)
        return DeleteResult(platform, outcome, external_id)

    def _is_gone(self, repositories: CatalogRepositories, entity: CanonicalEntity) -> bool:
        if repositories.entities.get_by_document_id(entity.document_id) is not None:
            return False
        return repositories.tombstones.get(entity.document_id) is not None

    def _release(self, event_id: str, scope: str) -> None:
        with self.unit_of_work_factory() as uow:
            uow.repositories.processed_events.release(event_id, scope)
            uow.commit()

    def _forget(self, entity: CanonicalEntity, platform: str) -> None:
        with self.unit_of_work_factory() as uow:
            current = uow.repositories.entities.get_by_document_id(entity.document_id)
            if current is not None:
                self.registry.clear(current, platform)
                uow.commit()
        self.registry.clear(entity, platform)

    def _record_success(
        self,
        entity: CanonicalEntity,
        platform: str,
        change: ChangeType,
        context: SyncContext,
        external_id: ExternalId,
    ) -> None:
        """Persist the registry write and the attempt in one transaction."""

        with self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            if change is not ChangeType.DELETE:
                current = repositories.entities.get_by_document_id(entity.document_id)
                if current is None:
                    log.warning(
                        "%r vanished while syncing to %s; remote id %s is orphaned",
                        entity,
                        platform,
                        external_id,
                    )
                else:
                    self.registry.set(current, platform, external_id)
            repositories.sync_attempts.add(
                self._attempt(
                    entity, platform, change, context, SyncOutcome.SUCCESS, external_id=external_id
                )
            )
            uow.commit()

    @staticmethod
    def _attempt(
        entity: CanonicalEntity,
        platform: str,
        change: ChangeType,
        context: SyncContext,
        outcome: SyncOutcome,
        *,
        external_id: ExternalId | None = None,
        detail: str | None = None,
    ) -> SyncAttempt:
        return SyncAttempt(
            event_id=context.event_id,
            platform=platform,
            kind=entity.kind,
            document_id=entity.document_id,
            change=change,
            outcome=outcome,
            external_id=None if external_id is None else str(external_id),
            detail=detail,
        )
