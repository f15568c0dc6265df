"""Application wiring and orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from catalogsync.adapters.http_resilience import PlatformRateLimiter
from catalogsync.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, is_started, startup
from catalogsync.adapters.woocommerce import WooCommerceClient, WooCommerceGateway
from catalogsync.config import get_platform_configs, get_sync_config
from catalogsync.domain.catalog import CatalogService, EntityNotFoundError
from catalogsync.domain.model import ChangeEvent, ChangeType, EntityKind, SyncContext
from catalogsync.domain.notifications import NotificationService
from catalogsync.domain.ports.unit_of_work import CatalogUnitOfWork
from catalogsync.domain.reconciliation import (
    ChangeGate,
    ExternalIdRegistry,
    LoopGuard,
    PlatformAdapter,
    ReconciliationOrchestrator,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    import httpx

    from catalogsync.config import PlatformConfig, SyncConfig
    from catalogsync.domain.ports.notifications import NotificationSender
    from catalogsync.domain.ports.platform import PlatformGateway
    from catalogsync.domain.reconciliation import ReconciliationReport

UnitOfWorkFactory = Callable[[], CatalogUnitOfWork]

log = getLogger(__name__)


@dataclass(slots=True)
class CatalogApplication:
    """Everything a process needs to accept writes and reconcile them."""

    gateways: Mapping[str, PlatformGateway]
    unit_of_work_factory: UnitOfWorkFactory
    orchestrator: ReconciliationOrchestrator
    catalog: CatalogService
    sync_config: SyncConfig
    owned_gateways: list[WooCommerceGateway] = field(default_factory=list)

    async def aclose(self) -> None:
        for gateway in self.owned_gateways:
            await gateway.aclose()


def build_gateways(
    configs: Iterable[PlatformConfig] | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, WooCommerceGateway]:
    """One gateway per eligible platform, all sharing per-platform rate limits."""

    if configs is None:
        configs = get_platform_configs().values()
    effective = list(configs)
    eligible = [config for config in effective if config.eligible]
    for config in effective:
        if not config.eligible:
            log.warning("Platform %s has no credentials; it will not be synchronised", config.name)
    limiter = PlatformRateLimiter(
        {
            config.name: config.resilience.ratelimit
            for config in eligible
            if config.resilience.ratelimit is not None
        }
    )
    return {
        config.name: WooCommerceGateway(
            WooCommerceClient(
                config, limiter=limiter.limiter_for(config.name), transport=transport
            )
        )
        for config in eligible
    }


def build_application(
    *,
    gateways: Mapping[str, PlatformGateway] | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    sync_config: SyncConfig | None = None,
    database_uri: str | None = None,
) -> CatalogApplication:
    if unit_of_work_factory is None and not is_started():
        startup(database_uri=database_uri)
    effective_uow = unit_of_work_factory or SqlAlchemyUnitOfWork
    effective_sync = sync_config or get_sync_config()

    owned: list[WooCommerceGateway] = []
    if gateways is None:
        built = build_gateways()
        owned = list(built.values())
        gateways = built

    registry = ExternalIdRegistry()
    orchestrator = ReconciliationOrchestrator(
        gateways=gateways,
        unit_of_work_factory=effective_uow,
        gate=ChangeGate(enabled=effective_sync.enabled),
        loop_guard=LoopGuard(),
        adapter=PlatformAdapter(gateways, effective_uow, registry),
        cascade_kinds=frozenset(EntityKind(kind) for kind in effective_sync.cascade_kinds),
    )
    catalog = CatalogService(
        unit_of_work_factory=effective_uow,
        orchestrator=orchestrator,
        registry=registry,
    )
    log.info(
        "Catalog application ready: platforms=%s, sync_enabled=%s",
        sorted(gateways),
        effective_sync.enabled,
    )
    return CatalogApplication(
        gateways=gateways,
        unit_of_work_factory=effective_uow,
        orchestrator=orchestrator,
        catalog=catalog,
        sync_config=effective_sync,
        owned_gateways=owned,
    )


async def resync_entity(app: CatalogApplication, document_id: str) -> ReconciliationReport | None:
    """Manually re-run the pipeline for one stored entity."""

    return await app.catalog.resync(document_id)


async def resync_by_key(
    app: CatalogApplication, kind: EntityKind, natural_key: str
) -> ReconciliationReport | None:
    """Like ``resync_entity``, addressing the entity by ISBN/SKU, email, code or name."""

    with app.unit_of_work_factory() as uow:
        entity = uow.repositories.entities.get_by_natural_key(kind, natural_key)
        if entity is None:
            raise EntityNotFoundError(f"{kind}:{natural_key}")
        document_id = entity.document_id
    return await resync_entity(app, document_id)


async def resync_platform(app: CatalogApplication, platform: str) -> list[ReconciliationReport]:
    """Push every entity routed to ``platform`` again, touching no other platform."""

    if platform not in app.gateways:
        raise ValueError(f"Platform {platform} is not configured or has no credentials")
    with app.unit_of_work_factory() as uow:
        entities = [
            entity.snapshot() for entity in uow.repositories.entities.list_for_platform(platform)
        ]
    log.info("Resyncing %d entities to %s", len(entities), platform)

    reports: list[ReconciliationReport] = []
    for entity in entities:
        if not entity.is_published:
            continue
        event = ChangeEvent(ChangeType.UPDATE, entity, SyncContext())
        reports.append(await app.orchestrator.handle(event, platforms={platform}))
    failed = sum(1 for report in reports if report.failed)
    log.info("Finished resync of %s: pushed=%d, failed=%d", platform, len(reports), failed)
    return reports


async def retry_failed(app: CatalogApplication) -> list[ReconciliationReport]:
    """Retry every (entity, platform) pair whose last attempt failed.

    A stored entity is pushed again. An entity that has since been deleted gets
    its remote delete re-issued from the tombstone, under a fresh event id, on
    the platforms where it still has an id. It is never re-created.
    """

    with app.unit_of_work_factory() as uow:
        repositories = uow.repositories
        pending: dict[str, set[str]] = {}
        for attempt in repositories.sync_attempts.latest_failures():
            pending.setdefault(attempt.document_id, set()).add(attempt.platform)
        retries: list[tuple[ChangeEvent, set[str]]] = []
        for document_id, platforms in pending.items():
            entity = repositories.entities.get_by_document_id(document_id)
            if entity is not None:
                event = ChangeEvent(ChangeType.UPDATE, entity.snapshot(), SyncContext())
                retries.append((event, platforms))
                continue
            tombstone = repositories.tombstones.get(document_id)
            if tombstone is None:
                log.warning(
                    "Cannot retry %s on %s: neither stored nor tombstoned",
                    document_id,
                    sorted(platforms),
                )
                continue
            remote = platforms & set(tombstone.external_ids)
            if not remote:
                log.info(
                    "Not retrying deleted %s: nothing left on %s", document_id, sorted(platforms)
                )
                continue
            event = ChangeEvent(ChangeType.DELETE, tombstone.remnant(), SyncContext())
            retries.append((event, remote))

    reports: list[ReconciliationReport] = []
    for event, platforms in retries:
        reports.append(await app.orchestrator.handle(event, platforms=platforms))
    log.info("Retried %d failed entities", len(reports))
    return reports


def build_notifications(
    app: CatalogApplication, sender: NotificationSender
) -> NotificationService:
    """Deduplicating notification service sharing the application store and window setting."""

    return NotificationService(
        sender,
        app.unit_of_work_factory,
        window=app.sync_config.notification_dedup_window,
    )


def initialise_database(database_uri: str | None = None) -> None:
    startup(database_uri=database_uri, force=True)
