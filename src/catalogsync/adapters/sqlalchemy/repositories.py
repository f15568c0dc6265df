"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import and_, delete, func, or_, select

from catalogsync.adapters.sqlalchemy.mappings import (
    canonical_entity_table,
    notification_log_table,
    processed_event_table,
    relation_edge_table,
    sync_attempt_table,
    tombstone_table,
)
from catalogsync.domain.model import (
    CanonicalEntity,
    NotificationLog,
    NotificationStatus,
    ProcessedEvent,
    RelationEdge,
    SyncAttempt,
    SyncOutcome,
    Tombstone,
)

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.orm import Session

    from catalogsync.domain.model import DedupKey, EntityKind, ExternalId


def _same_id(left: ExternalId | None, right: ExternalId) -> bool:
    return left is not None and str(left) == str(right)


class SqlAlchemyCanonicalEntityRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: CanonicalEntity) -> None:
        self.session.add(entity)

    def get(self, entity_id: int) -> CanonicalEntity | None:
        return self.session.get(CanonicalEntity, entity_id)

    def get_by_document_id(self, document_id: str) -> CanonicalEntity | None:
        stmt = select(CanonicalEntity).where(canonical_entity_table.c.document_id == document_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_by_natural_key(self, kind: EntityKind, natural_key: str) -> CanonicalEntity | None:
        stmt = (
            select(CanonicalEntity)
            .where(canonical_entity_table.c.kind == kind)
            .where(canonical_entity_table.c.natural_key == natural_key)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def get_by_external_id(
        self, kind: EntityKind, platform: str, external_id: ExternalId
    ) -> CanonicalEntity | None:
        for entity in self._of_kind(kind):
            if _same_id(entity.external_ids.get(platform), external_id):
                return entity
        return None

    def sharing_external_id(
        self,
        kind: EntityKind,
        platform: str,
        external_id: ExternalId,
        *,
        exclude_document_id: str | None = None,
    ) -> list[CanonicalEntity]:
        # JSON equality differs between backends, so match in Python
        return [
            entity
            for entity in self._of_kind(kind)
            if entity.document_id != exclude_document_id
            and _same_id(entity.external_ids.get(platform), external_id)
        ]

    def references_of(self, entity: CanonicalEntity) -> list[CanonicalEntity]:
        if entity.id is None:
            return []
        stmt = (
            select(CanonicalEntity)
            .join(
                relation_edge_table,
                relation_edge_table.c.referenced_id == canonical_entity_table.c.id,
            )
            .where(relation_edge_table.c.dependent_id == entity.id)
            .order_by(canonical_entity_table.c.id)
        )
        return list(self.session.execute(stmt).scalars())

    def dependents_of(self, entity: CanonicalEntity) -> list[CanonicalEntity]:
        if entity.id is None:
            return []
        stmt = (
            select(CanonicalEntity)
            .join(
                relation_edge_table,
                relation_edge_table.c.dependent_id == canonical_entity_table.c.id,
            )
            .where(relation_edge_table.c.referenced_id == entity.id)
            .order_by(canonical_entity_table.c.id)
        )
        return list(self.session.execute(stmt).scalars())

    def list_for_platform(self, platform: str) -> list[CanonicalEntity]:
        """Entities routed to ``platform`` or already known there, oldest first."""

        stmt = select(CanonicalEntity).order_by(canonical_entity_table.c.id)
        return [
            entity
            for entity in self.session.execute(stmt).scalars()
            if platform in entity.channels or platform in entity.external_ids
        ]

    def remove(self, entity: CanonicalEntity) -> None:
        self.session.delete(entity)

    def _of_kind(self, kind: EntityKind) -> list[CanonicalEntity]:
        stmt = (
            select(CanonicalEntity)
            .where(canonical_entity_table.c.kind == kind)
            .order_by(canonical_entity_table.c.id)
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyRelationRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def link(self, dependent: CanonicalEntity, referenced: CanonicalEntity) -> None:
        if dependent.id is None or referenced.id is None:
            self.session.flush()
        if dependent.id is None or referenced.id is None:
            raise ValueError(f"{dependent!r} and {referenced!r} must be stored before linking")
        if dependent.id == referenced.id:
            raise ValueError(f"{dependent!r} cannot reference itself")
        stmt = (
            select(RelationEdge)
            .where(relation_edge_table.c.dependent_id == dependent.id)
            .where(relation_edge_table.c.referenced_id == referenced.id)
        )
        if self.session.execute(stmt).scalar_one_or_none() is None:
            self.session.add(RelationEdge(dependent_id=dependent.id, referenced_id=referenced.id))

    def unlink(self, dependent: CanonicalEntity, referenced: CanonicalEntity) -> None:
        if dependent.id is None or referenced.id is None:
            return
        self.session.execute(
            delete(relation_edge_table)
            .where(relation_edge_table.c.dependent_id == dependent.id)
            .where(relation_edge_table.c.referenced_id == referenced.id)
        )

    def remove_all(self, entity: CanonicalEntity) -> None:
        if entity.id is None:
            return
        self.session.execute(
            delete(relation_edge_table).where(
                or_(
                    relation_edge_table.c.dependent_id == entity.id,
                    relation_edge_table.c.referenced_id == entity.id,
                )
            )
        )


class SqlAlchemyTombstoneRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Tombstone) -> None:
        self.session.add(entity)

    def get(self, document_id: str) -> Tombstone | None:
        stmt = select(Tombstone).where(tombstone_table.c.document_id == document_id)
        return self.session.execute(stmt).scalar_one_or_none()


class SqlAlchemyProcessedEventRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def claim(self, event_key: str, scope: str) -> bool:
        if self.is_processed(event_key, scope):
            return False
        self.session.add(ProcessedEvent(event_key=event_key, scope=scope))
        self.session.flush()
        return True

    def is_processed(self, event_key: str, scope: str) -> bool:
        stmt = (
            select(processed_event_table.c.event_key)
            .where(processed_event_table.c.event_key == event_key)
            .where(processed_event_table.c.scope == scope)
        )
        return self.session.execute(stmt).first() is not None

    def release(self, event_key: str, scope: str) -> None:
        marker = self.session.get(ProcessedEvent, (event_key, scope))
        if marker is not None:
            self.session.delete(marker)
            self.session.flush()


class SqlAlchemySyncAttemptRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: SyncAttempt) -> None:
        self.session.add(entity)

    def latest_failures(self) -> list[SyncAttempt]:
        """Attempts whose most recent outcome for a (platform, document) pair is a failure."""

        stmt = select(SyncAttempt).order_by(
            sync_attempt_table.c.attempted_at, sync_attempt_table.c.id
        )
        latest: dict[tuple[str, str], SyncAttempt] = {}
        for attempt in self.session.execute(stmt).scalars():
            latest[(attempt.platform, attempt.document_id)] = attempt
        return [attempt for attempt in latest.values() if attempt.outcome is SyncOutcome.FAILED]


class SqlAlchemyNotificationLogRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: NotificationLog) -> None:
        self.session.add(entity)
        self.session.flush()

    def get(self, log_id: int) -> NotificationLog | None:
        return self.session.get(NotificationLog, log_id)

    def find_blocking_since(self, key: DedupKey, since: datetime) -> NotificationLog | None:
        """Latest send of ``key`` inside the window, delivered or still in flight."""

        table = notification_log_table
        stmt = (
            select(NotificationLog)
            .where(table.c.template_key == key.template_key)
            .where(table.c.to_primary == key.primary_recipient)
            .where(
                or_(
                    and_(table.c.status == NotificationStatus.SENT, table.c.sent_at >= since),
                    and_(
                        table.c.status == NotificationStatus.PENDING, table.c.created_at >= since
                    ),
                )
            )
        )
        if key.campaign_id is not None:
            stmt = stmt.where(table.c.campaign_id == key.campaign_id)
        stmt = stmt.order_by(func.coalesce(table.c.sent_at, table.c.created_at).desc()).limit(1)
        return self.session.execute(stmt).scalars().first()
