from __future__ import annotations

from catalogsync.domain.model import ChangeEvent, ChangeType, SyncContext
from catalogsync.domain.reconciliation import ChangeGate, LoopGuard
from tests.support.catalog import PLATFORMS, make_product


def test_published_update_propagates() -> None:
    decision = ChangeGate().evaluate(ChangeEvent(ChangeType.UPDATE, make_product()))

    assert decision.propagate


def test_kill_switch_blocks_everything() -> None:
    gate = ChangeGate(enabled=False)
    product = make_product(external_ids={"woo_moraleja": 55})

    for change in ChangeType:
        decision = gate.evaluate(ChangeEvent(change, product))
        assert not decision.propagate
        assert "kill switch" in decision.reason


def test_skip_marker_blocks_propagation() -> None:
    event = ChangeEvent(ChangeType.UPDATE, make_product(), SyncContext.internal())

    assert not ChangeGate().evaluate(event).propagate


def test_drafts_are_not_propagated() -> None:
    event = ChangeEvent(ChangeType.CREATE, make_product(published=False))

    decision = ChangeGate().evaluate(event)

    assert not decision.propagate
    assert "draft" in decision.reason


def test_delete_needs_a_remote_counterpart() -> None:
    gate = ChangeGate()
    never_synced = make_product(published=False)
    synced_draft = make_product(published=False, external_ids={"woo_escolar": 9})

    assert not gate.evaluate(ChangeEvent(ChangeType.DELETE, never_synced)).propagate
    assert gate.evaluate(ChangeEvent(ChangeType.DELETE, synced_draft)).propagate


def test_loop_guard_drops_only_the_origin() -> None:
    guard = LoopGuard()
    inbound = ChangeEvent(
        ChangeType.UPDATE, make_product(), SyncContext.from_platform("woo_moraleja")
    )
    local = ChangeEvent(ChangeType.UPDATE, make_product())

    assert guard.targets(inbound, PLATFORMS) == ["woo_escolar"]
    assert guard.targets(local, PLATFORMS) == list(PLATFORMS)


def test_cascaded_context_forgets_the_origin() -> None:
    context = SyncContext.from_platform("woo_moraleja", event_id="delivery-1")

    child = context.cascaded()

    assert child.origin_platform is None
    assert child.depth == 1
    assert child.event_id.startswith("delivery-1:cascade:")
    assert child.event_id != context.cascaded().event_id
