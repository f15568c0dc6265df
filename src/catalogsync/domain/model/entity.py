"""Canonical catalog records and their kind-specific detail variants.

A canonical entity is the authoritative record in the primary store. The
``details`` field holds exactly one variant per ``EntityKind``; platform
payloads are derived from it by pure mapping functions, never by probing
optional attributes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TypeAlias
from uuid import uuid4

from .enums import EntityKind, PublicationState, TermKind

ExternalId: TypeAlias = str | int


def new_document_id() -> str:
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True, kw_only=True)
class ProductDetails:
    price: str | None = None
    sale_price: str | None = None
    stock_quantity: int | None = None
    description: str | None = None
    cover_url: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class TermDetails:
    term_kind: TermKind
    description: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class CustomerDetails:
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    city: str | None = None
    region: str | None = None
    postcode: str | None = None
    country: str = "CL"


@dataclass(frozen=True, slots=True, kw_only=True)
class CouponDetails:
    discount_type: str = "fixed_cart"
    amount: str | None = None
    description: str | None = None
    expires_at: datetime | None = None
    usage_limit: int | None = None
    product_ids: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True, kw_only=True)
class OrderLine:
    sku: str
    quantity: int
    product_id: int | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class OrderDetails:
    status: str = "pending"
    total: str = "0"
    currency: str | None = None
    customer_email: str | None = None
    lines: tuple[OrderLine, ...] = ()


EntityDetails: TypeAlias = (
    ProductDetails | TermDetails | CustomerDetails | CouponDetails | OrderDetails
)

DETAILS_BY_KIND: dict[EntityKind, type[EntityDetails]] = {
    EntityKind.PRODUCT: ProductDetails,
    EntityKind.TERM: TermDetails,
    EntityKind.CUSTOMER: CustomerDetails,
    EntityKind.COUPON: CouponDetails,
    EntityKind.ORDER: OrderDetails,
}


@dataclass(eq=False, kw_only=True)
class CanonicalEntity:
    """A content record of one kind, plus the identifiers it has on each platform."""

    kind: EntityKind
    natural_key: str
    name: str
    details: EntityDetails
    publication_state: PublicationState = PublicationState.DRAFT
    external_ids: dict[str, ExternalId] = field(default_factory=dict)
    channels: frozenset[str] = frozenset()
    document_id: str = field(default_factory=new_document_id)
    id: int | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        expected = DETAILS_BY_KIND[self.kind]
        if not isinstance(self.details, expected):
            raise TypeError(
                f"{self.kind} entity requires {expected.__name__}, "
                f"got {type(self.details).__name__}"
            )

    @property
    def is_published(self) -> bool:
        return self.publication_state is PublicationState.PUBLISHED

    @property
    def term_kind(self) -> TermKind | None:
        details = self.details
        return details.term_kind if isinstance(details, TermDetails) else None

    def touch(self) -> None:
        self.updated_at = utcnow()

    def snapshot(self) -> CanonicalEntity:
        """Return a detached copy safe to carry in a change event after the session closes."""

        return CanonicalEntity(
            id=self.id,
            kind=self.kind,
            natural_key=self.natural_key,
            name=self.name,
            details=self.details,
            publication_state=self.publication_state,
            external_ids=dict(self.external_ids),
            channels=frozenset(self.channels),
            document_id=self.document_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def __repr__(self) -> str:
        return f"CanonicalEntity({self.kind}:{self.natural_key!r}, doc={self.document_id})"


@dataclass(eq=False, kw_only=True)
class RelationEdge:
    """A dependent entity referencing another one (a product pointing at its author)."""

    dependent_id: int
    referenced_id: int
    id: int | None = None


@dataclass(eq=False, kw_only=True)
class Tombstone:
    """Written together with a hard delete; an unpublish never writes one.

    It keeps enough of the entity to address its remote counterparts after the
    row is gone, so a failed remote delete can be retried.
    """

    document_id: str
    kind: EntityKind
    event_id: str
    natural_key: str = ""
    term_kind: TermKind | None = None
    external_ids: dict[str, ExternalId] = field(default_factory=dict)
    deleted_at: datetime = field(default_factory=utcnow)
    id: int | None = None

    @classmethod
    def of(cls, entity: CanonicalEntity, event_id: str) -> Tombstone:
        return cls(
            document_id=entity.document_id,
            kind=entity.kind,
            event_id=event_id,
            natural_key=entity.natural_key,
            term_kind=entity.term_kind,
            external_ids=dict(entity.external_ids),
        )

    def remnant(self) -> CanonicalEntity:
        """A detached stand-in for the deleted entity, carrying its remote ids."""

        details: EntityDetails
        if self.kind is EntityKind.TERM:
            if self.term_kind is None:
                raise ValueError(f"term tombstone {self.document_id} has no term kind")
            details = TermDetails(term_kind=self.term_kind)
        else:
            details = DETAILS_BY_KIND[self.kind]()
        return CanonicalEntity(
            kind=self.kind,
            natural_key=self.natural_key,
            name=self.natural_key,
            details=details,
            external_ids=dict(self.external_ids),
            document_id=self.document_id,
        )
