from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING

import httpx
import pytest

from catalogsync.adapters.woocommerce import WooCommerceGateway
from catalogsync.app import (
    build_application,
    build_gateways,
    build_notifications,
    resync_entity,
    resync_platform,
    retry_failed,
)
from catalogsync.config import PlatformConfig, ResilienceConfig, SyncConfig
from catalogsync.domain.ports.platform import PlatformUnavailableError
from tests.support.catalog import RecordingSender, make_product

if TYPE_CHECKING:
    from collections.abc import Callable

    from catalogsync.adapters.sqlalchemy import SqlAlchemyUnitOfWork
    from catalogsync.app import CatalogApplication
    from tests.support.catalog import FakeGateway


def _config(name: str, *, eligible: bool = True) -> PlatformConfig:
    return PlatformConfig(
        name=name,
        base_url=f"https://{name}.test",
        consumer_key="ck" if eligible else "",
        consumer_secret="cs" if eligible else "",
        eligible=eligible,
        resilience=ResilienceConfig(name=name, base_url=f"https://{name}.test/wp-json/wc/v3/"),
    )


def test_build_gateways_skips_ineligible_platforms() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=[]))

    gateways = build_gateways(
        [_config("woo_moraleja"), _config("woo_escolar", eligible=False)], transport=transport
    )

    assert list(gateways) == ["woo_moraleja"]
    assert isinstance(gateways["woo_moraleja"], WooCommerceGateway)
    asyncio.run(gateways["woo_moraleja"].aclose())


def test_resync_platform_touches_only_that_platform(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    catalog = catalog_app.catalog
    shared = make_product("9789560001")
    school_only = make_product("9789560002", channels=("woo_escolar",))
    draft = make_product("9789560003", published=False)
    for product in (shared, school_only, draft):
        asyncio.run(catalog.create(product))
    for gateway in gateways.values():
        gateway.calls.clear()

    reports = asyncio.run(resync_platform(catalog_app, "woo_moraleja"))

    assert [report.document_id for report in reports] == [shared.document_id]
    assert [call.natural_key for call in gateways["woo_moraleja"].calls] == ["9789560001"]
    assert gateways["woo_escolar"].calls == []


def test_resync_platform_rejects_unknown_platforms(catalog_app: CatalogApplication) -> None:
    with pytest.raises(ValueError):
        asyncio.run(resync_platform(catalog_app, "woo_missing"))


def test_retry_failed_repairs_only_the_failed_platform(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    gateways["woo_escolar"].fail_next(PlatformUnavailableError("down", platform="woo_escolar"))
    product = make_product()
    asyncio.run(catalog_app.catalog.create(product))
    gateways["woo_moraleja"].calls.clear()

    reports = asyncio.run(retry_failed(catalog_app))

    assert len(reports) == 1
    assert reports[0].succeeded == ["woo_escolar"]
    assert gateways["woo_moraleja"].calls == []
    assert gateways["woo_escolar"].count("create") == 1
    assert asyncio.run(retry_failed(catalog_app)) == []


def test_retry_failed_never_recreates_deleted_entities(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    gateways["woo_escolar"].fail_next(PlatformUnavailableError("down", platform="woo_escolar"))
    product = make_product()
    asyncio.run(catalog_app.catalog.create(product))
    asyncio.run(catalog_app.catalog.delete(product.document_id))

    assert asyncio.run(retry_failed(catalog_app)) == []
    assert gateways["woo_escolar"].count("create") == 0


def test_resync_entity_pushes_current_state(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    product = make_product()
    asyncio.run(catalog_app.catalog.create(product))

    report = asyncio.run(resync_entity(catalog_app, product.document_id))

    assert report is not None
    assert all(gateway.count("update") == 1 for gateway in gateways.values())


def test_kill_switch_from_config(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
    gateways: dict[str, FakeGateway],
) -> None:
    app = build_application(
        gateways=gateways,
        unit_of_work_factory=sqlite_unit_of_work,
        sync_config=SyncConfig(enabled=False),
    )

    report = asyncio.run(app.catalog.create(make_product()))

    assert report is not None
    assert not report.decision.propagate
    assert all(gateway.calls == [] for gateway in gateways.values())


def test_notifications_use_the_configured_window(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
    gateways: dict[str, FakeGateway],
) -> None:
    app = build_application(
        gateways=gateways,
        unit_of_work_factory=sqlite_unit_of_work,
        sync_config=SyncConfig(notification_dedup_window=timedelta(days=7)),
    )

    service = build_notifications(app, RecordingSender())

    assert service.window == timedelta(days=7)


def test_retry_failed_completes_a_failed_remote_delete(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    product = make_product()
    asyncio.run(catalog_app.catalog.create(product))
    gateways["woo_moraleja"].fail_next(PlatformUnavailableError("down", platform="woo_moraleja"))

    report = asyncio.run(catalog_app.catalog.delete(product.document_id))

    assert report is not None
    assert report.failed == ["woo_moraleja"]
    assert gateways["woo_moraleja"].resources

    reports = asyncio.run(retry_failed(catalog_app))

    assert [retry.succeeded for retry in reports] == [["woo_moraleja"]]
    assert reports[0].event_id != report.event_id
    assert gateways["woo_moraleja"].resources == {}
    assert gateways["woo_escolar"].count("delete") == 1
    assert asyncio.run(retry_failed(catalog_app)) == []
