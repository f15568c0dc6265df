"""Change events and the context that travels with them through the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING
from uuid import uuid4

from .enums import ChangeType

if TYPE_CHECKING:
    from .entity import CanonicalEntity


def new_event_id() -> str:
    return uuid4().hex


@dataclass(frozen=True, slots=True, kw_only=True)
class SyncContext:
    """Explicit per-event state.

    ``origin_platform`` is set when the write came in through that platform's
    webhook; ``skip_sync`` marks internal writes that must never propagate;
    ``depth`` counts cascade hops from the originating change.
    """

    event_id: str = field(default_factory=new_event_id)
    origin_platform: str | None = None
    skip_sync: bool = False
    depth: int = 0

    @classmethod
    def from_platform(cls, platform: str, *, event_id: str | None = None) -> SyncContext:
        return cls(event_id=event_id or new_event_id(), origin_platform=platform)

    @classmethod
    def internal(cls) -> SyncContext:
        return cls(skip_sync=True)

    def cascaded(self) -> SyncContext:
        """Context for a dependent re-sync; dependents were not written by the origin platform."""

        event_id = f"{self.event_id}:cascade:{uuid4().hex[:8]}"
        return replace(self, event_id=event_id, origin_platform=None, depth=self.depth + 1)


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    change: ChangeType
    entity: CanonicalEntity
    context: SyncContext = field(default_factory=SyncContext)

    @property
    def lock_key(self) -> tuple[str, str]:
        return (self.entity.kind.value, self.entity.document_id)
