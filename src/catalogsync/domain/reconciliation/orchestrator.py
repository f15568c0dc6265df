"""Entry point for change events: gate, then adapters per platform, then cascade."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING
from weakref import WeakValueDictionary

from catalogsync.domain.model import ChangeType, EntityKind, SyncAttempt, SyncOutcome
from catalogsync.domain.ports.platform import PlatformError, PlatformPayloadError

from .adapter import PlatformAdapter, UpsertAction
from .cascade import CascadePropagator
from .gate import ChangeGate, GateDecision
from .loop_guard import LoopGuard

if TYPE_CHECKING:
    from collections.abc import Callable, Collection, Mapping

    from catalogsync.domain.model import ChangeEvent
    from catalogsync.domain.ports.platform import PlatformGateway
    from catalogsync.domain.ports.unit_of_work import CatalogUnitOfWork

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PlatformReport:
    platform: str
    outcome: SyncOutcome
    detail: str | None = None


@dataclass(slots=True)
class ReconciliationReport:
    event_id: str
    change: ChangeType
    document_id: str
    decision: GateDecision
    platforms: list[PlatformReport] = field(default_factory=list)
    cascaded: list[ReconciliationReport] = field(default_factory=list)

    @property
    def failed(self) -> list[str]:
        return [
            report.platform for report in self.platforms if report.outcome is SyncOutcome.FAILED
        ]

    @property
    def succeeded(self) -> list[str]:
        return [
            report.platform for report in self.platforms if report.outcome is SyncOutcome.SUCCESS
        ]


class ReconciliationOrchestrator:
    """Runs one change event through the pipeline; never raises platform failures.

    Pipelines for the same entity are serialised, so two changes to one entity
    reach the platforms in the order they were raised. Platform calls inside a
    pipeline are sequential.
    """

    def __init__(
        self,
        *,
        gateways: Mapping[str, PlatformGateway],
        unit_of_work_factory: Callable[[], CatalogUnitOfWork],
        gate: ChangeGate | None = None,
        loop_guard: LoopGuard | None = None,
        adapter: PlatformAdapter | None = None,
        cascade_kinds: frozenset[EntityKind] = frozenset({EntityKind.TERM}),
        max_cascade_depth: int = 1,
    ) -> None:
        self.gateways = gateways
        self.unit_of_work_factory = unit_of_work_factory
        self.gate = gate or ChangeGate()
        self.loop_guard = loop_guard or LoopGuard()
        self.adapter = adapter or PlatformAdapter(gateways, unit_of_work_factory)
        self.cascade_kinds = cascade_kinds
        self.cascade = CascadePropagator(unit_of_work_factory, self.handle, max_cascade_depth)
        self._locks: WeakValueDictionary[tuple[str, str], asyncio.Lock] = WeakValueDictionary()

    async def handle(
        self, event: ChangeEvent, *, platforms: Collection[str] | None = None
    ) -> ReconciliationReport:
        """Run ``event`` through the pipeline, optionally restricted to ``platforms``."""

        async with self._lock_for(event):
            report = await self._reconcile(event, platforms)

        if (
            report.decision.propagate
            and event.change is ChangeType.UPDATE
            and event.entity.kind in self.cascade_kinds
        ):
            for result in await self.cascade.propagate(event):
                if isinstance(result, ReconciliationReport):
                    report.cascaded.append(result)
        return report

    def _lock_for(self, event: ChangeEvent) -> asyncio.Lock:
        lock = self._locks.get(event.lock_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[event.lock_key] = lock
        return lock

    async def _reconcile(
        self, event: ChangeEvent, platforms: Collection[str] | None = None
    ) -> ReconciliationReport:
        decision = self.gate.evaluate(event)
        report = ReconciliationReport(
            event_id=event.context.event_id,
            change=event.change,
            document_id=event.entity.document_id,
            decision=decision,
        )
        if not decision.propagate:
            log.info("Not propagating %s of %r: %s", event.change, event.entity, decision.reason)
            return report

        eligible = self._eligible_platforms(event)
        if platforms is not None:
            eligible = [platform for platform in eligible if platform in platforms]
        targets = self.loop_guard.targets(event, eligible)
        for platform in eligible:
            if platform not in targets:
                report.platforms.append(
                    PlatformReport(platform, SyncOutcome.SKIPPED, "originated on this platform")
                )
                continue
            report.platforms.append(await self._propagate(event, platform))
        return report

    def _eligible_platforms(self, event: ChangeEvent) -> list[str]:
        entity = event.entity
        if event.change is ChangeType.DELETE:
            wanted = set(entity.external_ids)
        else:
            wanted = set(entity.channels)
        eligible = [platform for platform in self.gateways if platform in wanted]
        for platform in sorted(wanted - set(self.gateways)):
            log.info("Platform %s is not configured; %r not synced there", platform, entity)
        return eligible

    async def _propagate(self, event: ChangeEvent, platform: str) -> PlatformReport:
        try:
            if event.change is ChangeType.DELETE:
                deleted = await self.adapter.delete(event.entity, platform, event.context)
                outcome = SyncOutcome.SUCCESS if deleted.outcome.removed else SyncOutcome.SKIPPED
                return PlatformReport(platform, outcome, deleted.outcome.value)
            upserted = await self.adapter.upsert(event.entity, platform, event.context)
        except PlatformPayloadError as exc:
            log.warning("Cannot build %s payload for %r: %s", platform, event.entity, exc)
            self._record(event, platform, SyncOutcome.SKIPPED, str(exc))
            return PlatformReport(platform, SyncOutcome.SKIPPED, str(exc))
        except PlatformError as exc:
            log.error(
                "Sync of %r to %s failed: %s (detail: %s)",
                event.entity,
                platform,
                exc,
                getattr(exc, "response", None),
            )
            self._record(event, platform, SyncOutcome.FAILED, str(exc))
            return PlatformReport(platform, SyncOutcome.FAILED, str(exc))

        if upserted.action is UpsertAction.SKIPPED:
            return PlatformReport(platform, SyncOutcome.SKIPPED, upserted.action.value)
        return PlatformReport(platform, SyncOutcome.SUCCESS, upserted.action.value)

    def _record(
        self, event: ChangeEvent, platform: str, outcome: SyncOutcome, detail: str
    ) -> None:
        with self.unit_of_work_factory() as uow:
            uow.repositories.sync_attempts.add(
                SyncAttempt(
                    event_id=event.context.event_id,
                    platform=platform,
                    kind=event.entity.kind,
                    document_id=event.entity.document_id,
                    change=event.change,
                    outcome=outcome,
                    detail=detail,
                )
            )
            uow.commit()
