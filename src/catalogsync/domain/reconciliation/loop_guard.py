"""Keep webhook-originated writes from echoing back to the platform that sent them."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from catalogsync.domain.model import ChangeEvent

log = getLogger(__name__)


class LoopGuard:
    def is_echo(self, event: ChangeEvent, platform: str) -> bool:
        return event.context.origin_platform == platform

    def targets(self, event: ChangeEvent, platforms: Iterable[str]) -> list[str]:
        """Drop the origin platform; every other eligible platform still receives the change."""

        targets: list[str] = []
        for platform in platforms:
            if self.is_echo(event, platform):
                log.info(
                    "Not echoing %s of %r back to %s (event %s)",
                    event.change,
                    event.entity,
                    platform,
                    event.context.event_id,
                )
                continue
            targets.append(platform)
        return targets
