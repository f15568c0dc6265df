"""Ports for persisting canonical entities and synchronization bookkeeping."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, TypeVar, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from catalogsync.domain.model import (
        CanonicalEntity,
        DedupKey,
        EntityKind,
        ExternalId,
        NotificationLog,
        SyncAttempt,
        Tombstone,
    )

TEntity = TypeVar("TEntity", contravariant=True)


@runtime_checkable
class Repository(Protocol[TEntity]):
    """Minimal repository contract for a persistent aggregate store."""

    def add(self, entity: TEntity) -> None: ...


@runtime_checkable
class CanonicalEntityRepository(Repository["CanonicalEntity"], Protocol):
    """Primary content store for canonical entities."""

    def get(self, entity_id: int) -> CanonicalEntity | None: ...

    def get_by_document_id(self, document_id: str) -> CanonicalEntity | None: ...

    def get_by_natural_key(self, kind: EntityKind, natural_key: str) -> CanonicalEntity | None: ...

    def get_by_external_id(
        self, kind: EntityKind, platform: str, external_id: ExternalId
    ) -> CanonicalEntity | None: ...

    def sharing_external_id(
        self,
        kind: EntityKind,
        platform: str,
        external_id: ExternalId,
        *,
        exclude_document_id: str | None = None,
    ) -> list[CanonicalEntity]: ...

    def references_of(self, entity: CanonicalEntity) -> list[CanonicalEntity]: ...

    def dependents_of(self, entity: CanonicalEntity) -> list[CanonicalEntity]: ...

    def list_for_platform(self, platform: str) -> list[CanonicalEntity]: ...

    def remove(self, entity: CanonicalEntity) -> None: ...


@runtime_checkable
class RelationRepository(Protocol):
    def link(self, dependent: CanonicalEntity, referenced: CanonicalEntity) -> None: ...

    def unlink(self, dependent: CanonicalEntity, referenced: CanonicalEntity) -> None: ...

    def remove_all(self, entity: CanonicalEntity) -> None: ...


@runtime_checkable
class TombstoneRepository(Repository["Tombstone"], Protocol):
    def get(self, document_id: str) -> Tombstone | None: ...


@runtime_checkable
class ProcessedEventRepository(Protocol):
    """Durable "already handled" markers scoped to a single event."""

    def claim(self, event_key: str, scope: str) -> bool:
        """Record the marker; ``False`` if it already existed."""
        ...

    def is_processed(self, event_key: str, scope: str) -> bool: ...

    def release(self, event_key: str, scope: str) -> None:
        """Drop the marker so the event can be handled again."""
        ...


@runtime_checkable
class SyncAttemptRepository(Repository["SyncAttempt"], Protocol):
    def latest_failures(self) -> Sequence[SyncAttempt]: ...


@runtime_checkable
class NotificationLogRepository(Repository["NotificationLog"], Protocol):
    def get(self, log_id: int) -> NotificationLog | None: ...

    def find_blocking_since(self, key: DedupKey, since: datetime) -> NotificationLog | None:
        """A delivered or in-flight send of ``key`` at or after ``since``."""
        ...
