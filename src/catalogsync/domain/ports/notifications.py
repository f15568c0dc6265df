"""Port for dispatching templated notifications."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping


@runtime_checkable
class NotificationSender(Protocol):
    async def send(
        self,
        *,
        template_key: str,
        recipients: tuple[str, ...],
        variables: Mapping[str, object],
    ) -> None: ...
