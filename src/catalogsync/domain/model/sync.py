"""Records of synchronization outcomes and durable idempotency markers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .entity import utcnow
from .enums import ChangeType, EntityKind, SyncOutcome

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(eq=False, kw_only=True)
class SyncAttempt:
    event_id: str
    platform: str
    kind: EntityKind
    document_id: str
    change: ChangeType
    outcome: SyncOutcome
    detail: str | None = None
    external_id: str | None = None
    attempted_at: datetime = field(default_factory=utcnow)
    id: int | None = None


@dataclass(eq=False, kw_only=True)
class ProcessedEvent:
    """Marker row; its presence means ``(event_key, scope)`` has been handled."""

    event_key: str
    scope: str
    processed_at: datetime = field(default_factory=utcnow)
