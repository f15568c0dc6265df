"""Domain model for the catalog reconciliation engine."""

from __future__ import annotations

from .entity import (
    DETAILS_BY_KIND,
    CanonicalEntity,
    CouponDetails,
    CustomerDetails,
    EntityDetails,
    ExternalId,
    OrderDetails,
    OrderLine,
    ProductDetails,
    RelationEdge,
    TermDetails,
    Tombstone,
    new_document_id,
    utcnow,
)
from .enums import (
    ChangeType,
    EntityKind,
    NotificationStatus,
    PublicationState,
    SyncOutcome,
    TermKind,
)
from .events import ChangeEvent, SyncContext, new_event_id
from .notification import DedupKey, NotificationLog
from .sync import ProcessedEvent, SyncAttempt

__all__ = [
    "DETAILS_BY_KIND",
    "CanonicalEntity",
    "ChangeEvent",
    "ChangeType",
    "CouponDetails",
    "CustomerDetails",
    "DedupKey",
    "EntityDetails",
    "EntityKind",
    "ExternalId",
    "NotificationLog",
    "NotificationStatus",
    "OrderDetails",
    "OrderLine",
    "ProcessedEvent",
    "ProductDetails",
    "PublicationState",
    "RelationEdge",
    "SyncAttempt",
    "SyncContext",
    "SyncOutcome",
    "TermDetails",
    "TermKind",
    "Tombstone",
    "new_document_id",
    "new_event_id",
    "utcnow",
]
