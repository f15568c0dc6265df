"""SQLAlchemy mapping metadata for the catalog domain model."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import UTC, datetime
from functools import cache
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    orm,
)

from catalogsync.domain.model import (
    DETAILS_BY_KIND,
    CanonicalEntity,
    ChangeType,
    CouponDetails,
    CustomerDetails,
    EntityDetails,
    EntityKind,
    NotificationLog,
    NotificationStatus,
    OrderDetails,
    OrderLine,
    ProcessedEvent,
    ProductDetails,
    PublicationState,
    RelationEdge,
    SyncAttempt,
    SyncOutcome,
    TermDetails,
    TermKind,
    Tombstone,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class ChannelSetType(TypeDecorator[frozenset[str]]):
    impl = String
    cache_ok = True

    def process_bind_param(self, value: frozenset[str] | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps(sorted(value))

    def process_result_value(self, value: str | None, dialect: Dialect) -> frozenset[str]:
        _ = dialect
        if value is None:
            return frozenset()
        loaded = json.loads(value)
        if not isinstance(loaded, list):
            return frozenset()
        items = cast(list[Any], loaded)
        return frozenset(item for item in items if isinstance(item, str))


def _encode_details(details: EntityDetails) -> dict[str, Any]:
    payload = asdict(details)
    if isinstance(details, TermDetails):
        payload["term_kind"] = details.term_kind.value
    elif isinstance(details, CouponDetails):
        payload["expires_at"] = details.expires_at.isoformat() if details.expires_at else None
        payload["product_ids"] = list(details.product_ids)
    elif isinstance(details, OrderDetails):
        payload["lines"] = [asdict(line) for line in details.lines]
    return payload


def _decode_details(kind: EntityKind, payload: dict[str, Any]) -> EntityDetails:
    match kind:
        case EntityKind.PRODUCT:
            return ProductDetails(**payload)
        case EntityKind.TERM:
            return TermDetails(
                term_kind=TermKind(payload["term_kind"]),
                description=payload.get("description"),
            )
        case EntityKind.CUSTOMER:
            return CustomerDetails(**payload)
        case EntityKind.COUPON:
            expires_at = payload.get("expires_at")
            return CouponDetails(
                **{
                    **payload,
                    "expires_at": datetime.fromisoformat(expires_at) if expires_at else None,
                    "product_ids": tuple(payload.get("product_ids") or ()),
                }
            )
        case EntityKind.ORDER:
            lines = tuple(OrderLine(**line) for line in payload.get("lines") or ())
            return OrderDetails(**{**payload, "lines": lines})


class EntityDetailsType(TypeDecorator[EntityDetails]):
    """Kind-tagged JSON document holding one of the entity detail variants."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: EntityDetails | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        kind = next(k for k, cls in DETAILS_BY_KIND.items() if isinstance(value, cls))
        return json.dumps({"kind": kind.value, "data": _encode_details(value)})

    def process_result_value(self, value: str | None, dialect: Dialect) -> EntityDetails | None:
        _ = dialect
        if value is None:
            return None
        loaded = cast(dict[str, Any], json.loads(value))
        return _decode_details(EntityKind(loaded["kind"]), loaded["data"])


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Primary store ---------------------------------------------------------------

canonical_entity_table = Table(
    "canonical_entity",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("document_id", String(64), nullable=False, unique=True),
    Column("kind", Enum(EntityKind, native_enum=False), nullable=False),
    Column("natural_key", String, nullable=False),
    Column("name", String, nullable=False),
    Column("details", EntityDetailsType(), nullable=False),
    Column(
        "publication_state",
        Enum(PublicationState, native_enum=False),
        nullable=False,
    ),
    Column("external_ids", JSON, nullable=False, default=dict),
    Column("channels", ChannelSetType(), nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
    UniqueConstraint("kind", "natural_key", name="uq_canonical_entity_kind_natural_key"),
)

relation_edge_table = Table(
    "relation_edge",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "dependent_id",
        Integer,
        ForeignKey("canonical_entity.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "referenced_id",
        Integer,
        ForeignKey("canonical_entity.id", ondelete="CASCADE"),
        nullable=False,
    ),
    UniqueConstraint("dependent_id", "referenced_id", name="uq_relation_edge_pair"),
    Index("ix_relation_edge_referenced", "referenced_id"),
)

tombstone_table = Table(
    "tombstone",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("document_id", String(64), nullable=False, unique=True),
    Column("kind", Enum(EntityKind, native_enum=False), nullable=False),
    Column("event_id", String, nullable=False),
    Column("natural_key", String, nullable=False, default=""),
    Column("term_kind", Enum(TermKind, native_enum=False), nullable=True),
    Column("external_ids", JSON, nullable=False, default=dict),
    Column("deleted_at", UTCDateTime(), nullable=False),
)

# Synchronization bookkeeping -------------------------------------------------

processed_event_table = Table(
    "processed_event",
    mapper_registry.metadata,
    Column("event_key", String, primary_key=True),
    Column("scope", String, primary_key=True),
    Column("processed_at", UTCDateTime(), nullable=False),
)

sync_attempt_table = Table(
    "sync_attempt",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("event_id", String, nullable=False),
    Column("platform", String(64), nullable=False),
    Column("kind", Enum(EntityKind, native_enum=False), nullable=False),
    Column("document_id", String(64), nullable=False),
    Column("change", Enum(ChangeType, native_enum=False), nullable=False),
    Column("outcome", Enum(SyncOutcome, native_enum=False), nullable=False),
    Column("detail", Text, nullable=True),
    Column("external_id", String, nullable=True),
    Column("attempted_at", UTCDateTime(), nullable=False),
    Index("ix_sync_attempt_target", "platform", "document_id"),
)

notification_log_table = Table(
    "notification_log",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("template_key", String, nullable=False),
    Column("to_primary", String, nullable=False),
    Column("campaign_id", String, nullable=True),
    Column("status", Enum(NotificationStatus, native_enum=False), nullable=False),
    Column("error", Text, nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("sent_at", UTCDateTime(), nullable=True),
    Index("ix_notification_log_key", "template_key", "to_primary"),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(CanonicalEntity, canonical_entity_table)
    mapper_registry.map_imperatively(RelationEdge, relation_edge_table)
    mapper_registry.map_imperatively(Tombstone, tombstone_table)
    mapper_registry.map_imperatively(ProcessedEvent, processed_event_table)
    mapper_registry.map_imperatively(SyncAttempt, sync_attempt_table)
    mapper_registry.map_imperatively(NotificationLog, notification_log_table)
    orm.configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
