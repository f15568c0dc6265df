"""Pure mappings between canonical entities and WooCommerce payloads.

Outbound functions take a canonical entity (plus the already-resolved remote
ids it references) and return a payload model; they never perform I/O.
Inbound functions turn a validated webhook resource into an ``InboundRecord``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Final

from catalogsync.domain.catalog import InboundRecord
from catalogsync.domain.model import (
    CouponDetails,
    CustomerDetails,
    EntityKind,
    OrderDetails,
    OrderLine,
    ProductDetails,
    PublicationState,
    TermDetails,
    TermKind,
)

from .schema import (
    AddressPayload,
    CouponPayload,
    CustomerPayload,
    IdRef,
    ImagePayload,
    LineItemPayload,
    MetaData,
    OrderPayload,
    ProductAttributePayload,
    ProductPayload,
    TermPayload,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from catalogsync.domain.model import CanonicalEntity

log = getLogger(__name__)

ATTRIBUTE_NAMES: Final[dict[TermKind, str]] = {
    TermKind.AUTHOR: "Autor",
    TermKind.WORK: "Obra",
    TermKind.PUBLISHER: "Editorial",
    TermKind.IMPRINT: "Sello",
    TermKind.COLLECTION: "Colección",
}
TERM_SLUG_LENGTH: Final[int] = 28

ORDER_STATUSES: Final[frozenset[str]] = frozenset(
    {
        "auto-draft",
        "pending",
        "processing",
        "on-hold",
        "completed",
        "cancelled",
        "refunded",
        "failed",
        "checkout-draft",
    }
)
_ORDER_STATUS_ALIASES: Final[dict[str, str]] = {
    "draft": "auto-draft",
    "canceled": "cancelled",
    "cancel": "cancelled",
    "refund": "refunded",
    "error": "failed",
}
_DISCOUNT_ALIASES: Final[dict[str, str]] = {
    "percent": "percent",
    "porcentaje": "percent",
    "percentage": "percent",
    "fixed_cart": "fixed_cart",
    "fijo_carro": "fixed_cart",
    "fijo": "fixed_cart",
    "carro": "fixed_cart",
    "fixed_product": "fixed_product",
    "producto_fijo": "fixed_product",
    "producto": "fixed_product",
}


@dataclass(frozen=True, slots=True, kw_only=True)
class ProductReferences:
    """Remote ids of the taxonomy a product points at, resolved for one platform."""

    categories: tuple[int, ...] = ()
    tags: tuple[int, ...] = ()
    brands: tuple[int, ...] = ()
    attributes: tuple[ProductAttributePayload, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True, kw_only=True)
class OrderReferences:
    customer_id: int | None = None
    product_ids_by_sku: Mapping[str, int] = field(default_factory=dict)


def normalize_discount_type(value: str | None) -> str:
    if not value:
        return "fixed_cart"
    return _DISCOUNT_ALIASES.get(value.strip().lower(), "fixed_cart")


def normalize_order_status(value: str | None) -> str:
    if not value:
        return "pending"
    status = value.strip().lower()
    if status in ORDER_STATUSES:
        return status
    if status in _ORDER_STATUS_ALIASES:
        return _ORDER_STATUS_ALIASES[status]
    log.warning("Unknown order status %r, falling back to pending", value)
    return "pending"


def split_full_name(full_name: str) -> tuple[str | None, str | None]:
    parts = full_name.split()
    if not parts:
        return None, None
    if len(parts) == 1:
        return parts[0], None
    return parts[0], " ".join(parts[1:])


def term_slug(entity: CanonicalEntity) -> str:
    return entity.document_id[:TERM_SLUG_LENGTH].lower()


def _require_key(entity: CanonicalEntity) -> str:
    key = entity.natural_key.strip()
    if not key:
        raise ValueError(f"{entity.kind} {entity.document_id} has no natural key")
    return key


def _format_expiry(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S")


# Outbound -------------------------------------------------------------------


def product_payload(
    entity: CanonicalEntity,
    references: ProductReferences | None = None,
) -> ProductPayload:
    details = entity.details
    if not isinstance(details, ProductDetails):
        raise TypeError(f"expected product details, got {type(details).__name__}")
    sku = _require_key(entity)
    refs = references or ProductReferences()
    images = [ImagePayload(src=details.cover_url, alt=entity.name)] if details.cover_url else []
    return ProductPayload(
        name=entity.name,
        sku=sku,
        status="publish" if entity.is_published else "draft",
        regular_price=details.price,
        sale_price=details.sale_price,
        description=details.description,
        manage_stock=details.stock_quantity is not None,
        stock_quantity=details.stock_quantity,
        images=images,
        categories=[IdRef(id=value) for value in refs.categories],
        tags=[IdRef(id=value) for value in refs.tags],
        brands=[IdRef(id=value) for value in refs.brands],
        attributes=list(refs.attributes),
        meta_data=[MetaData(key="isbn", value=sku)],
    )


def term_payload(entity: CanonicalEntity) -> TermPayload:
    details = entity.details
    if not isinstance(details, TermDetails):
        raise TypeError(f"expected term details, got {type(details).__name__}")
    name = entity.name.strip()
    if not name:
        raise ValueError(f"term {entity.document_id} has no name")
    return TermPayload(
        name=name,
        slug=term_slug(entity) if details.term_kind.is_attribute else None,
        description=details.description,
    )


def _address(
    details: CustomerDetails, *, first: str | None, last: str | None
) -> AddressPayload | None:
    if not any((details.city, details.region, details.postcode, details.phone)):
        return None
    return AddressPayload(
        first_name=first,
        last_name=last,
        city=details.city,
        state=details.region,
        postcode=details.postcode,
        country=details.country,
        phone=details.phone,
    )


def customer_payload(entity: CanonicalEntity) -> CustomerPayload:
    details = entity.details
    if not isinstance(details, CustomerDetails):
        raise TypeError(f"expected customer details, got {type(details).__name__}")
    email = _require_key(entity).lower()
    first, last = details.first_name, details.last_name
    if first is None and last is None:
        first, last = split_full_name(entity.name)
    billing = _address(details, first=first, last=last)
    if billing is not None:
        billing = billing.model_copy(update={"email": email})
    return CustomerPayload(
        email=email,
        first_name=first,
        last_name=last,
        billing=billing,
        shipping=_address(details, first=first, last=last),
    )


def coupon_payload(entity: CanonicalEntity) -> CouponPayload:
    details = entity.details
    if not isinstance(details, CouponDetails):
        raise TypeError(f"expected coupon details, got {type(details).__name__}")
    code = _require_key(entity)
    return CouponPayload(
        code=code,
        discount_type=normalize_discount_type(details.discount_type),
        amount=details.amount,
        description=details.description,
        date_expires=_format_expiry(details.expires_at) if details.expires_at else None,
        usage_limit=details.usage_limit,
        product_ids=list(details.product_ids),
        meta_data=[MetaData(key="codigo_cupon", value=code)],
    )


def order_payload(
    entity: CanonicalEntity,
    references: OrderReferences | None = None,
) -> OrderPayload:
    details = entity.details
    if not isinstance(details, OrderDetails):
        raise TypeError(f"expected order details, got {type(details).__name__}")
    refs = references or OrderReferences()
    line_items = [
        LineItemPayload(
            product_id=line.product_id or refs.product_ids_by_sku.get(line.sku),
            quantity=line.quantity,
            sku=line.sku,
        )
        for line in details.lines
    ]
    return OrderPayload(
        number=_require_key(entity),
        status=normalize_order_status(details.status),
        total=details.total,
        currency=details.currency,
        customer_id=refs.customer_id,
        billing=AddressPayload(email=details.customer_email) if details.customer_email else None,
        line_items=line_items,
        meta_data=[MetaData(key="numero_pedido", value=entity.natural_key)],
    )


# Inbound --------------------------------------------------------------------


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        log.warning("Ignoring unparseable date %r", value)
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def inbound_product(raw: Mapping[str, object]) -> InboundRecord:
    payload = ProductPayload.model_validate(raw)
    if payload.id is None:
        raise ValueError("product resource without id")
    cover = payload.images[0].src if payload.images else None
    return InboundRecord(
        kind=EntityKind.PRODUCT,
        external_id=payload.id,
        natural_key=payload.sku or "",
        name=payload.name,
        publication_state=(
            PublicationState.PUBLISHED if payload.status == "publish" else PublicationState.DRAFT
        ),
        details=ProductDetails(
            price=payload.regular_price,
            sale_price=payload.sale_price,
            stock_quantity=payload.stock_quantity,
            description=payload.description,
            cover_url=cover,
        ),
    )


def inbound_customer(raw: Mapping[str, object]) -> InboundRecord:
    payload = CustomerPayload.model_validate(raw)
    if payload.id is None:
        raise ValueError("customer resource without id")
    email = payload.email.strip().lower()
    billing = payload.billing or AddressPayload()
    name = " ".join(part for part in (payload.first_name, payload.last_name) if part) or email
    return InboundRecord(
        kind=EntityKind.CUSTOMER,
        external_id=payload.id,
        natural_key=email,
        name=name,
        publication_state=PublicationState.PUBLISHED,
        details=CustomerDetails(
            first_name=payload.first_name or None,
            last_name=payload.last_name or None,
            phone=billing.phone,
            city=billing.city,
            region=billing.state,
            postcode=billing.postcode,
            country=billing.country or "CL",
        ),
    )


def inbound_coupon(raw: Mapping[str, object]) -> InboundRecord:
    payload = CouponPayload.model_validate(raw)
    if payload.id is None:
        raise ValueError("coupon resource without id")
    return InboundRecord(
        kind=EntityKind.COUPON,
        external_id=payload.id,
        natural_key=payload.code,
        name=payload.code,
        publication_state=PublicationState.PUBLISHED,
        details=CouponDetails(
            discount_type=normalize_discount_type(payload.discount_type),
            amount=payload.amount,
            description=payload.description,
            expires_at=_parse_datetime(payload.date_expires),
            usage_limit=payload.usage_limit,
            product_ids=tuple(payload.product_ids),
        ),
    )


def inbound_order(raw: Mapping[str, object]) -> InboundRecord:
    payload = OrderPayload.model_validate(raw)
    if payload.id is None:
        raise ValueError("order resource without id")
    number = payload.number or str(payload.id)
    lines = tuple(
        OrderLine(sku=item.sku or "", quantity=item.quantity, product_id=item.product_id)
        for item in payload.line_items
    )
    return InboundRecord(
        kind=EntityKind.ORDER,
        external_id=payload.id,
        natural_key=number,
        name=f"Order {number}",
        publication_state=PublicationState.PUBLISHED,
        details=OrderDetails(
            status=normalize_order_status(payload.status),
            total=payload.total or "0",
            currency=payload.currency,
            customer_email=payload.billing.email if payload.billing else None,
            lines=lines,
        ),
    )


INBOUND_TRANSLATORS = {
    EntityKind.PRODUCT: inbound_product,
    EntityKind.CUSTOMER: inbound_customer,
    EntityKind.COUPON: inbound_coupon,
    EntityKind.ORDER: inbound_order,
}
