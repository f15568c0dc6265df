"""WooCommerce implementation of the platform gateway port."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Final

from catalogsync.adapters.cache import LookupKey, TTLCache
from catalogsync.domain.model import EntityKind, TermDetails, TermKind
from catalogsync.domain.ports.platform import PlatformApiError, PlatformPayloadError

from .schema import AttributePayload, ProductAttributePayload
from .translator import (
    ATTRIBUTE_NAMES,
    OrderReferences,
    ProductReferences,
    coupon_payload,
    customer_payload,
    order_payload,
    product_payload,
    term_payload,
    term_slug,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from catalogsync.domain.model import CanonicalEntity, ExternalId

    from .client import JSONObject, WooCommerceClient
    from .schema import WooBaseModel

log = getLogger(__name__)

RESOURCE_COLLECTIONS: Final[dict[EntityKind, str]] = {
    EntityKind.PRODUCT: "products",
    EntityKind.CUSTOMER: "customers",
    EntityKind.COUPON: "coupons",
    EntityKind.ORDER: "orders",
}
TAXONOMY_COLLECTIONS: Final[dict[TermKind, str]] = {
    TermKind.CATEGORY: "products/categories",
    TermKind.TAG: "products/tags",
    TermKind.BRAND: "products/brands",
}
ATTRIBUTES_COLLECTION: Final[str] = "products/attributes"


def _as_external_id(value: object) -> ExternalId:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value)
    return int(text) if text.isdigit() else text


def _first_match(items: Sequence[JSONObject], field: str, expected: str) -> ExternalId | None:
    wanted = expected.strip().lower()
    for item in items:
        value = item.get(field)
        if value is not None and str(value).strip().lower() == wanted and "id" in item:
            return _as_external_id(item["id"])
    return None


class WooCommerceGateway:
    """Resolves endpoints, payloads and natural-key lookups for one WooCommerce store."""

    def __init__(
        self, client: WooCommerceClient, cache: TTLCache[ExternalId] | None = None
    ) -> None:
        self.client = client
        self.cache: TTLCache[ExternalId] = cache or TTLCache.from_config(
            client.config.resilience.cache
        )

    @property
    def name(self) -> str:
        return self.client.platform

    async def aclose(self) -> None:
        await self.client.aclose()

    # PlatformGateway -------------------------------------------------------

    async def find(
        self, entity: CanonicalEntity, references: Sequence[CanonicalEntity]
    ) -> ExternalId | None:
        _ = references
        key = entity.natural_key.strip()
        if not key:
            return None
        if entity.kind is EntityKind.TERM:
            return await self._find_term(entity)

        endpoint = RESOURCE_COLLECTIONS[entity.kind]
        if entity.kind is EntityKind.PRODUCT:
            items = await self.client.find_all(endpoint, {"sku": key})
            return _first_match(items, "sku", key)
        if entity.kind is EntityKind.CUSTOMER:
            items = await self.client.find_all(endpoint, {"email": key.lower(), "role": "all"})
            return _first_match(items, "email", key)
        if entity.kind is EntityKind.COUPON:
            items = await self.client.find_all(endpoint, {"code": key})
            return _first_match(items, "code", key)
        items = await self.client.find_all(endpoint, {"search": key})
        return _first_match(items, "number", key)

    async def create(
        self, entity: CanonicalEntity, references: Sequence[CanonicalEntity]
    ) -> ExternalId:
        endpoint = await self._endpoint(entity)
        payload = await self._payload(entity, references)
        data = await self.client.create(endpoint, payload)
        external_id = _as_external_id(data["id"])
        if entity.kind is EntityKind.TERM:
            cache_key = self._term_cache_key(entity)
            self.cache.invalidate(cache_key)
            self.cache.set(cache_key, external_id)
        log.info("%s: created %s %r as %s", self.name, entity.kind, entity.natural_key, external_id)
        return external_id

    async def update(
        self,
        entity: CanonicalEntity,
        external_id: ExternalId,
        references: Sequence[CanonicalEntity],
    ) -> None:
        endpoint = await self._endpoint(entity)
        payload = await self._payload(entity, references)
        await self.client.update(endpoint, external_id, payload)
        log.info("%s: updated %s %r (%s)", self.name, entity.kind, entity.natural_key, external_id)

    async def delete(self, entity: CanonicalEntity, external_id: ExternalId) -> bool:
        term_kind = entity.term_kind
        if term_kind is not None and term_kind.is_attribute:
            attribute_id = await self._existing_attribute_id(term_kind)
            if attribute_id is None:
                log.info(
                    "%s: no %s attribute, so term %s is already gone",
                    self.name,
                    ATTRIBUTE_NAMES[term_kind],
                    external_id,
                )
                return False
            endpoint = f"{ATTRIBUTES_COLLECTION}/{attribute_id}/terms"
        else:
            endpoint = await self._endpoint(entity)
        removed = await self.client.delete(endpoint, external_id)
        if entity.kind is EntityKind.TERM:
            self.cache.invalidate(self._term_cache_key(entity))
        return removed

    # Endpoints and payloads ------------------------------------------------

    async def _endpoint(self, entity: CanonicalEntity) -> str:
        term_kind = entity.term_kind
        if term_kind is None:
            return RESOURCE_COLLECTIONS[entity.kind]
        if term_kind.is_attribute:
            attribute_id = await self._attribute_id(term_kind)
            return f"{ATTRIBUTES_COLLECTION}/{attribute_id}/terms"
        return TAXONOMY_COLLECTIONS[term_kind]

    async def _payload(
        self, entity: CanonicalEntity, references: Sequence[CanonicalEntity]
    ) -> JSONObject:
        payload: WooBaseModel
        try:
            if entity.kind is EntityKind.PRODUCT:
                product_refs = await self._product_references(references)
                payload = product_payload(entity, product_refs)
            elif entity.kind is EntityKind.TERM:
                payload = term_payload(entity)
            elif entity.kind is EntityKind.CUSTOMER:
                payload = customer_payload(entity)
            elif entity.kind is EntityKind.COUPON:
                payload = coupon_payload(entity)
            else:
                payload = order_payload(entity, self._order_references(references))
        except ValueError as exc:
            raise PlatformPayloadError(str(exc), platform=self.name) from exc
        return payload.to_request()

    async def _product_references(
        self, references: Sequence[CanonicalEntity]
    ) -> ProductReferences:
        ids: dict[TermKind, set[int]] = {kind: set() for kind in TAXONOMY_COLLECTIONS}
        options: dict[TermKind, set[str]] = {}
        for ref in references:
            term_kind = ref.term_kind
            if term_kind is None:
                continue
            if term_kind.is_attribute:
                await self._ensure_attribute_term(ref)
                options.setdefault(term_kind, set()).add(ref.name)
                continue
            external_id = ref.external_ids.get(self.name)
            if external_id is None:
                log.info(
                    "%s: %s %r not synced yet, left off product", self.name, term_kind, ref.name
                )
                continue
            ids[term_kind].add(int(external_id))

        attributes: list[ProductAttributePayload] = []
        for term_kind in sorted(options):
            attributes.append(
                ProductAttributePayload(
                    id=int(await self._attribute_id(term_kind)),
                    name=ATTRIBUTE_NAMES[term_kind],
                    options=sorted(options[term_kind]),
                )
            )
        return ProductReferences(
            categories=tuple(sorted(ids[TermKind.CATEGORY])),
            tags=tuple(sorted(ids[TermKind.TAG])),
            brands=tuple(sorted(ids[TermKind.BRAND])),
            attributes=tuple(attributes),
        )

    def _order_references(self, references: Sequence[CanonicalEntity]) -> OrderReferences:
        customer_id: int | None = None
        product_ids: dict[str, int] = {}
        for ref in references:
            external_id = ref.external_ids.get(self.name)
            if external_id is None:
                continue
            if ref.kind is EntityKind.CUSTOMER and customer_id is None:
                customer_id = int(external_id)
            elif ref.kind is EntityKind.PRODUCT:
                product_ids[ref.natural_key] = int(external_id)
        return OrderReferences(customer_id=customer_id, product_ids_by_sku=product_ids)

    # Taxonomy lookups ------------------------------------------------------

    def _term_cache_key(self, entity: CanonicalEntity) -> LookupKey:
        return (self.name, str(entity.term_kind), entity.natural_key.strip().lower())

    async def _existing_attribute_id(self, term_kind: TermKind) -> ExternalId | None:
        name = ATTRIBUTE_NAMES[term_kind]
        cache_key: LookupKey = (self.name, "attribute", name.lower())
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        attribute_id = _first_match(
            await self.client.find_all(ATTRIBUTES_COLLECTION), "name", name
        )
        if attribute_id is not None:
            self.cache.set(cache_key, attribute_id)
        return attribute_id

    async def _attribute_id(self, term_kind: TermKind) -> ExternalId:
        attribute_id = await self._existing_attribute_id(term_kind)
        if attribute_id is not None:
            return attribute_id

        name = ATTRIBUTE_NAMES[term_kind]
        cache_key: LookupKey = (self.name, "attribute", name.lower())
        data = await self.client.create(
            ATTRIBUTES_COLLECTION, AttributePayload(name=name).to_request()
        )
        attribute_id = _as_external_id(data["id"])
        log.info("%s: created attribute %r as %s", self.name, name, attribute_id)
        self.cache.invalidate(cache_key)
        self.cache.set(cache_key, attribute_id)
        return attribute_id

    async def _find_term(self, entity: CanonicalEntity) -> ExternalId | None:
        cache_key = self._term_cache_key(entity)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        details = entity.details
        if not isinstance(details, TermDetails):
            raise PlatformPayloadError(
                f"term {entity.document_id} carries {type(details).__name__}", platform=self.name
            )
        endpoint = await self._endpoint(entity)
        found: ExternalId | None = None
        if details.term_kind.is_attribute:
            slug = term_slug(entity)
            found = _first_match(await self.client.find_all(endpoint, {"slug": slug}), "slug", slug)
        if found is None:
            key = entity.natural_key.strip()
            found = _first_match(await self.client.find_all(endpoint, {"search": key}), "name", key)
        if found is not None:
            self.cache.set(cache_key, found)
        return found

    async def _ensure_attribute_term(self, term: CanonicalEntity) -> None:
        if term.external_ids.get(self.name) is not None:
            return
        if await self._find_term(term) is not None:
            return
        try:
            await self.create(term, ())
        except PlatformApiError as exc:
            # term_exists: another writer created it between lookup and create
            if exc.status_code != 400:
                raise
            self.cache.invalidate(self._term_cache_key(term))
            log.info("%s: attribute term %r already exists", self.name, term.name)
