"""Pydantic models describing the WooCommerce REST v3 payloads we send and receive."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ProductStatus = Literal["publish", "draft", "pending", "private"]
DiscountType = Literal["percent", "fixed_cart", "fixed_product"]


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def _money_to_str(value: object) -> object:
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    return _blank_to_none(value)


class WooBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    def to_request(self) -> dict[str, object]:
        return self.model_dump(mode="json", exclude_none=True, exclude={"id"})


class IdRef(WooBaseModel):
    id: int


class MetaData(WooBaseModel):
    key: str
    value: object = None


class ImagePayload(WooBaseModel):
    src: str
    alt: str | None = None


class ProductAttributePayload(WooBaseModel):
    id: int
    name: str | None = None
    options: list[str] = Field(default_factory=list)
    visible: bool = True


class ProductPayload(WooBaseModel):
    id: int | None = None
    name: str = ""
    type: str = "simple"
    sku: str | None = None
    status: ProductStatus = "publish"
    regular_price: str | None = None
    sale_price: str | None = None
    description: str | None = None
    manage_stock: bool = False
    stock_quantity: int | None = None
    images: list[ImagePayload] = Field(default_factory=list)
    categories: list[IdRef] = Field(default_factory=list)
    tags: list[IdRef] = Field(default_factory=list)
    brands: list[IdRef] = Field(default_factory=list)
    attributes: list[ProductAttributePayload] = Field(default_factory=list)
    meta_data: list[MetaData] = Field(default_factory=list)

    normalize_prices = field_validator("regular_price", "sale_price", mode="before")(
        _money_to_str
    )
    normalize_sku = field_validator("sku", "description", mode="before")(_blank_to_none)


class TermPayload(WooBaseModel):
    id: int | None = None
    name: str
    slug: str | None = None
    description: str | None = None


class AttributePayload(WooBaseModel):
    id: int | None = None
    name: str
    slug: str | None = None
    type: str = "select"


class AddressPayload(WooBaseModel):
    first_name: str | None = None
    last_name: str | None = None
    city: str | None = None
    state: str | None = None
    postcode: str | None = None
    country: str | None = None
    email: str | None = None
    phone: str | None = None

    normalize = field_validator("*", mode="before")(_blank_to_none)


class CustomerPayload(WooBaseModel):
    id: int | None = None
    email: str
    first_name: str | None = None
    last_name: str | None = None
    billing: AddressPayload | None = None
    shipping: AddressPayload | None = None


class CouponPayload(WooBaseModel):
    id: int | None = None
    code: str
    discount_type: str = "fixed_cart"
    amount: str | None = None
    description: str | None = None
    date_expires: str | None = None
    usage_limit: int | None = None
    product_ids: list[int] = Field(default_factory=list)
    meta_data: list[MetaData] = Field(default_factory=list)

    normalize_amount = field_validator("amount", mode="before")(_money_to_str)
    normalize_text = field_validator("description", "date_expires", mode="before")(
        _blank_to_none
    )


class LineItemPayload(WooBaseModel):
    product_id: int | None = None
    quantity: int = 1
    sku: str | None = None

    normalize_sku = field_validator("sku", mode="before")(_blank_to_none)


class OrderPayload(WooBaseModel):
    id: int | None = None
    number: str | None = None
    status: str = "pending"
    total: str | None = None
    currency: str | None = None
    customer_id: int | None = None
    billing: AddressPayload | None = None
    line_items: list[LineItemPayload] = Field(default_factory=list)
    meta_data: list[MetaData] = Field(default_factory=list)

    normalize_total = field_validator("total", mode="before")(_money_to_str)

    @field_validator("number", mode="before")
    @classmethod
    def _number_to_str(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return _blank_to_none(value)


class ErrorResponse(WooBaseModel):
    code: str | None = None
    message: str | None = None
