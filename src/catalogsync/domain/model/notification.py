"""Outbound notification records used for at-most-once-per-window delivery."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .entity import utcnow
from .enums import NotificationStatus

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True, slots=True)
class DedupKey:
    template_key: str
    primary_recipient: str
    campaign_id: str | None = None

    @classmethod
    def build(
        cls, template_key: str, primary_recipient: str, campaign_id: str | None = None
    ) -> DedupKey:
        recipient = primary_recipient.strip().lower()
        if not template_key.strip() or not recipient:
            raise ValueError("template key and primary recipient are required")
        return cls(template_key.strip(), recipient, campaign_id or None)


@dataclass(eq=False, kw_only=True)
class NotificationLog:
    template_key: str
    to_primary: str
    status: NotificationStatus
    campaign_id: str | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    sent_at: datetime | None = None
    id: int | None = None

    @classmethod
    def pending(cls, key: DedupKey) -> NotificationLog:
        return cls(
            template_key=key.template_key,
            to_primary=key.primary_recipient,
            campaign_id=key.campaign_id,
            status=NotificationStatus.PENDING,
        )

    def mark_sent(self, at: datetime) -> None:
        self.status = NotificationStatus.SENT
        self.sent_at = at
        self.error = None

    def mark_failed(self, error: str) -> None:
        self.status = NotificationStatus.FAILED
        self.error = error
