"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class EntityKind(StrEnum):
    PRODUCT = "product"
    TERM = "term"
    CUSTOMER = "customer"
    COUPON = "coupon"
    ORDER = "order"


class PublicationState(StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"


class TermKind(StrEnum):
    """Taxonomy flavours; the attribute-backed ones become product attributes remotely."""

    CATEGORY = "category"
    TAG = "tag"
    BRAND = "brand"
    AUTHOR = "author"
    WORK = "work"
    PUBLISHER = "publisher"
    IMPRINT = "imprint"
    COLLECTION = "collection"

    @property
    def is_attribute(self) -> bool:
        return self not in {TermKind.CATEGORY, TermKind.TAG, TermKind.BRAND}


class ChangeType(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncOutcome(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class NotificationStatus(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
