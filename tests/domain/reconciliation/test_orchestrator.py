from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from catalogsync.domain.catalog import InboundRecord
from catalogsync.domain.model import (
    ChangeEvent,
    ChangeType,
    EntityKind,
    ProductDetails,
    PublicationState,
    SyncContext,
    SyncOutcome,
)
from catalogsync.domain.ports.platform import PlatformPayloadError, PlatformUnavailableError
from catalogsync.domain.reconciliation import ChangeGate
from tests.support.catalog import make_product, stored

if TYPE_CHECKING:
    from catalogsync.app import CatalogApplication
    from tests.support.catalog import FakeGateway


def _inbound(name: str, external_id: int = 101) -> InboundRecord:
    return InboundRecord(
        kind=EntityKind.PRODUCT,
        external_id=external_id,
        natural_key="9789560001",
        name=name,
        publication_state=PublicationState.PUBLISHED,
        details=ProductDetails(price="12990"),
    )


def test_drafts_wait_until_published(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    product = make_product(published=False)

    created = asyncio.run(catalog_app.catalog.create(product))

    assert created is not None
    assert not created.decision.propagate
    assert all(gateway.calls == [] for gateway in gateways.values())

    published = asyncio.run(catalog_app.catalog.publish(product.document_id))

    assert published is not None
    assert sorted(published.succeeded) == ["woo_escolar", "woo_moraleja"]
    current = stored(catalog_app.unit_of_work_factory, product.document_id)
    assert current is not None
    assert current.external_ids == {"woo_moraleja": 101, "woo_escolar": 101}


def test_unpublish_never_deletes_remotely(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    product = make_product()
    asyncio.run(catalog_app.catalog.create(product))

    report = asyncio.run(catalog_app.catalog.unpublish(product.document_id))

    assert report is not None
    assert not report.decision.propagate
    assert all(gateway.count("delete") == 0 for gateway in gateways.values())
    current = stored(catalog_app.unit_of_work_factory, product.document_id)
    assert current is not None
    assert current.publication_state is PublicationState.DRAFT
    assert set(current.external_ids) == {"woo_moraleja", "woo_escolar"}


def test_channels_limit_the_target_platforms(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    product = make_product(channels=("woo_escolar", "woo_unconfigured"))

    report = asyncio.run(catalog_app.catalog.create(product))

    assert report is not None
    assert report.succeeded == ["woo_escolar"]
    assert gateways["woo_moraleja"].calls == []


def test_hard_delete_removes_every_remote_copy(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    product = make_product()
    asyncio.run(catalog_app.catalog.create(product))

    report = asyncio.run(catalog_app.catalog.delete(product.document_id))

    assert report is not None
    assert sorted(report.succeeded) == ["woo_escolar", "woo_moraleja"]
    assert all(gateway.resources == {} for gateway in gateways.values())
    assert stored(catalog_app.unit_of_work_factory, product.document_id) is None


def test_inbound_change_is_not_echoed_and_the_loop_ends(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    product = make_product()
    asyncio.run(catalog_app.catalog.create(product))
    for gateway in gateways.values():
        gateway.calls.clear()

    catalog = catalog_app.catalog
    first = asyncio.run(catalog.apply_inbound(_inbound("Nuevo título"), "woo_moraleja"))

    assert first.report is not None
    outcomes = {report.platform: report.outcome for report in first.report.platforms}
    assert outcomes == {"woo_moraleja": SyncOutcome.SKIPPED, "woo_escolar": SyncOutcome.SUCCESS}
    assert gateways["woo_moraleja"].calls == []
    assert gateways["woo_escolar"].count("update") == 1

    # woo_escolar reports the write it just received back through its own webhook
    echo = asyncio.run(catalog.apply_inbound(_inbound("Nuevo título"), "woo_escolar"))

    assert echo.report is None
    assert not echo.created
    assert gateways["woo_moraleja"].calls == []
    assert gateways["woo_escolar"].count("update") == 1


def test_inbound_resource_unknown_locally_is_created(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    result = asyncio.run(
        catalog_app.catalog.apply_inbound(_inbound("Del sitio", external_id=77), "woo_escolar")
    )

    assert result.created
    assert result.entity is not None
    assert result.entity.channels == frozenset({"woo_escolar"})
    assert result.entity.external_ids == {"woo_escolar": 77}
    assert all(gateway.calls == [] for gateway in gateways.values())


def test_duplicate_delivery_is_applied_once(catalog_app: CatalogApplication) -> None:
    catalog = catalog_app.catalog

    first = asyncio.run(catalog.apply_inbound(_inbound("X"), "woo_escolar", delivery_id="d-1"))
    second = asyncio.run(catalog.apply_inbound(_inbound("Y"), "woo_escolar", delivery_id="d-1"))

    assert first.created
    assert second.duplicate
    assert first.entity is not None
    current = stored(catalog_app.unit_of_work_factory, first.entity.document_id)
    assert current is not None
    assert current.name == "X"


def test_platform_failure_is_isolated_and_recorded(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    gateways["woo_escolar"].fail_next(PlatformUnavailableError("down", platform="woo_escolar"))
    product = make_product()

    report = asyncio.run(catalog_app.catalog.create(product))

    assert report is not None
    assert report.failed == ["woo_escolar"]
    assert report.succeeded == ["woo_moraleja"]
    assert stored(catalog_app.unit_of_work_factory, product.document_id) is not None
    with catalog_app.unit_of_work_factory() as uow:
        failures = uow.repositories.sync_attempts.latest_failures()
    assert [(item.platform, item.document_id) for item in failures] == [
        ("woo_escolar", product.document_id)
    ]


def test_payload_errors_are_skipped_not_failed(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    gateways["woo_moraleja"].fail_next(
        PlatformPayloadError("product without sku", platform="woo_moraleja")
    )

    report = asyncio.run(catalog_app.catalog.create(make_product()))

    assert report is not None
    outcomes = {item.platform: item.outcome for item in report.platforms}
    assert outcomes["woo_moraleja"] is SyncOutcome.SKIPPED
    assert report.failed == []


def test_kill_switch_still_stores_the_write(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    catalog_app.orchestrator.gate = ChangeGate(enabled=False)
    product = make_product()

    report = asyncio.run(catalog_app.catalog.create(product))

    assert report is not None
    assert not report.decision.propagate
    assert stored(catalog_app.unit_of_work_factory, product.document_id) is not None
    assert all(gateway.calls == [] for gateway in gateways.values())


def test_changes_to_one_entity_reach_platforms_in_order(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    product = make_product()
    asyncio.run(catalog_app.catalog.create(product))
    for gateway in gateways.values():
        gateway.calls.clear()
        gateway.delay = 0.01

    async def edit_twice() -> None:
        await asyncio.gather(
            catalog_app.catalog.update(product.document_id, name="A"),
            catalog_app.catalog.update(product.document_id, name="B"),
        )

    asyncio.run(edit_twice())

    for gateway in gateways.values():
        names = [call.name for call in gateway.calls if call.operation == "update"]
        assert len(names) == 2
        assert names[-1] == "B"
    assert [call.name for call in gateways["woo_moraleja"].calls] == ["A", "B"]


def test_platform_restriction(
    catalog_app: CatalogApplication, gateways: dict[str, FakeGateway]
) -> None:
    product = make_product()
    asyncio.run(catalog_app.catalog.create(product))
    for gateway in gateways.values():
        gateway.calls.clear()

    event = ChangeEvent(ChangeType.UPDATE, product, SyncContext())
    report = asyncio.run(catalog_app.orchestrator.handle(event, platforms={"woo_escolar"}))

    assert [item.platform for item in report.platforms] == ["woo_escolar"]
    assert gateways["woo_moraleja"].calls == []
