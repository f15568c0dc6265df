"""Decide whether a change should be propagated at all."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from catalogsync.domain.model import ChangeType

if TYPE_CHECKING:
    from catalogsync.domain.model import ChangeEvent


@dataclass(frozen=True, slots=True)
class GateDecision:
    propagate: bool
    reason: str

    @classmethod
    def allow(cls) -> GateDecision:
        return cls(True, "eligible")

    @classmethod
    def deny(cls, reason: str) -> GateDecision:
        return cls(False, reason)


@dataclass(slots=True)
class ChangeGate:
    """Kill switch, skip marker and publication rules, evaluated before any network call.

    Creates and updates propagate only for published entities. A delete
    propagates only if the entity made it to some platform, which is what a
    non-empty ``external_ids`` records.
    """

    enabled: bool = True

    def evaluate(self, event: ChangeEvent) -> GateDecision:
        if not self.enabled:
            return GateDecision.deny("synchronization disabled by kill switch")
        if event.context.skip_sync:
            return GateDecision.deny("write marked to skip synchronization")

        entity = event.entity
        if event.change is ChangeType.DELETE:
            if not entity.external_ids:
                return GateDecision.deny("never synchronized to any platform")
            return GateDecision.allow()
        if not entity.is_published:
            return GateDecision.deny(f"publication state is {entity.publication_state}")
        return GateDecision.allow()
