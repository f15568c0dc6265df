"""Public interface for the WooCommerce adapter."""

from __future__ import annotations

from .client import WooCommerceClient
from .gateway import WooCommerceGateway
from .schema import CouponPayload, CustomerPayload, OrderPayload, ProductPayload, TermPayload
from .translator import INBOUND_TRANSLATORS, ProductReferences, product_payload

__all__ = [
    "INBOUND_TRANSLATORS",
    "CouponPayload",
    "CustomerPayload",
    "OrderPayload",
    "ProductPayload",
    "ProductReferences",
    "TermPayload",
    "WooCommerceClient",
    "WooCommerceGateway",
    "product_payload",
]
