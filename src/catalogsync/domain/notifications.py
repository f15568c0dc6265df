"""At-most-once-per-window delivery of outbound notifications."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from catalogsync.domain.model import DedupKey, NotificationLog, utcnow

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from datetime import datetime

    from catalogsync.domain.ports.notifications import NotificationSender
    from catalogsync.domain.ports.unit_of_work import CatalogUnitOfWork

log = getLogger(__name__)

DEFAULT_DEDUP_WINDOW = timedelta(days=180)
BLOCKED_ERROR = "duplicate within dedup window"


class NotificationOutcome(StrEnum):
    SENT = "sent"
    CONFLICT = "conflict"
    FAILED = "failed"


@dataclass(frozen=True, slots=True, kw_only=True)
class NotificationRequest:
    template_key: str
    recipients: tuple[str, ...]
    variables: Mapping[str, object] = field(default_factory=dict)
    campaign_id: str | None = None

    @property
    def dedup_key(self) -> DedupKey:
        """The first recipient is the primary one."""

        if not self.recipients:
            raise ValueError("at least one recipient is required")
        return DedupKey.build(self.template_key, self.recipients[0], self.campaign_id)


@dataclass(frozen=True, slots=True)
class NotificationResult:
    outcome: NotificationOutcome
    log_id: int | None = None
    previous_sent_at: datetime | None = None
    error: str | None = None


class NotificationService:
    def __init__(
        self,
        sender: NotificationSender,
        unit_of_work_factory: Callable[[], CatalogUnitOfWork],
        *,
        window: timedelta = DEFAULT_DEDUP_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if window <= timedelta(0):
            raise ValueError("dedup window must be positive")
        self.sender = sender
        self.unit_of_work_factory = unit_of_work_factory
        self.window = window
        self.clock = clock

    async def send(self, request: NotificationRequest) -> NotificationResult:
        key = request.dedup_key
        now = self.clock()

        # no await between the lookup and adding the pending row
        with self.unit_of_work_factory() as uow:
            repository = uow.repositories.notifications
            previous = repository.find_blocking_since(key, now - self.window)
            entry = NotificationLog.pending(key)
            entry.created_at = now
            if previous is not None:
                entry.mark_failed(BLOCKED_ERROR)
                repository.add(entry)
                uow.commit()
                log.warning(
                    "Blocked %s to %s: already %s at %s",
                    key.template_key,
                    key.primary_recipient,
                    previous.status,
                    previous.sent_at or previous.created_at,
                )
                return NotificationResult(
                    NotificationOutcome.CONFLICT,
                    log_id=entry.id,
                    previous_sent_at=previous.sent_at,
                    error=BLOCKED_ERROR,
                )
            repository.add(entry)
            uow.commit()
            log_id = entry.id

        try:
            await self.sender.send(
                template_key=request.template_key,
                recipients=request.recipients,
                variables=request.variables,
            )
        except Exception as exc:  # noqa: BLE001
            log.exception("Sending %s to %s failed", key.template_key, key.primary_recipient)
            self._finish(log_id, sent_at=None, error=str(exc) or type(exc).__name__)
            return NotificationResult(NotificationOutcome.FAILED, log_id=log_id, error=str(exc))

        self._finish(log_id, sent_at=self.clock(), error=None)
        return NotificationResult(NotificationOutcome.SENT, log_id=log_id)

    def _finish(self, log_id: int | None, *, sent_at: datetime | None, error: str | None) -> None:
        with self.unit_of_work_factory() as uow:
            repository = uow.repositories.notifications
            entry = repository.get(log_id) if log_id is not None else None
            if entry is None:
                log.error("Notification log %s vanished before it could be updated", log_id)
                return
            if sent_at is not None:
                entry.mark_sent(sent_at)
            else:
                entry.mark_failed(error or "unknown error")
            uow.commit()
