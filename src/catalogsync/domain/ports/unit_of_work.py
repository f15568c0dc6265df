"""Unit-of-work abstractions for coordinating repositories."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from types import TracebackType

    from catalogsync.domain.ports.persistence import (
        CanonicalEntityRepository,
        NotificationLogRepository,
        ProcessedEventRepository,
        RelationRepository,
        SyncAttemptRepository,
        TombstoneRepository,
    )


@dataclass(slots=True)
class CatalogRepositories:
    """Repositories sharing one transaction in the primary store."""

    entities: CanonicalEntityRepository
    relations: RelationRepository
    tombstones: TombstoneRepository
    processed_events: ProcessedEventRepository
    sync_attempts: SyncAttemptRepository
    notifications: NotificationLogRepository


@runtime_checkable
class CatalogUnitOfWork(Protocol):
    """Transaction boundary around the catalog repositories."""

    @property
    def repositories(self) -> CatalogRepositories: ...

    def __enter__(self) -> CatalogUnitOfWork: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...
