"""Port for the external commerce platforms and the errors it may raise."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from catalogsync.domain.model import CanonicalEntity, ExternalId


class PlatformError(RuntimeError):
    """Base class for failures talking to an external platform."""

    def __init__(self, message: str, *, platform: str) -> None:
        super().__init__(message)
        self.platform = platform


class PlatformApiError(PlatformError):
    """The platform answered with a non-success status."""

    def __init__(
        self,
        message: str,
        *,
        platform: str,
        status_code: int,
        endpoint: str,
        response: object = None,
    ) -> None:
        super().__init__(message, platform=platform)
        self.status_code = status_code
        self.endpoint = endpoint
        self.response = response

    @property
    def is_transient(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class PlatformUnavailableError(PlatformError):
    """A network-level failure (reset, timeout, DNS) that survived every retry."""


class PlatformPayloadError(PlatformError):
    """The canonical entity cannot be turned into a valid platform payload."""


@runtime_checkable
class PlatformGateway(Protocol):
    """Resource operations against one platform.

    ``references`` are the canonical entities the given entity points at
    (for products: its taxonomy terms); gateways that do not need them ignore them.
    """

    @property
    def name(self) -> str: ...

    async def find(
        self, entity: CanonicalEntity, references: Sequence[CanonicalEntity]
    ) -> ExternalId | None: ...

    async def create(
        self, entity: CanonicalEntity, references: Sequence[CanonicalEntity]
    ) -> ExternalId: ...

    async def update(
        self,
        entity: CanonicalEntity,
        external_id: ExternalId,
        references: Sequence[CanonicalEntity],
    ) -> None: ...

    async def delete(self, entity: CanonicalEntity, external_id: ExternalId) -> bool:
        """Delete the remote resource; ``False`` means it was already gone."""
        ...

    async def aclose(self) -> None: ...
