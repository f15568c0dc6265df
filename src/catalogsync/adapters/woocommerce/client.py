"""HTTP client for the WooCommerce REST v3 API."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, cast

import httpx
from pydantic import ValidationError

from catalogsync.adapters.http_resilience import ResilientClient
from catalogsync.domain.ports.platform import PlatformApiError, PlatformUnavailableError

from .schema import ErrorResponse

if TYPE_CHECKING:
    from aiolimiter import AsyncLimiter

    from catalogsync.config.platforms import PlatformConfig
    from catalogsync.domain.model import ExternalId

log = getLogger(__name__)

JSONObject = dict[str, object]
DEFAULT_PAGE_SIZE = 100


class WooCommerceClient:
    """Authenticated JSON calls against one platform; errors surface as ``PlatformError``."""

    def __init__(
        self,
        config: PlatformConfig,
        *,
        limiter: AsyncLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._http = ResilientClient(
            config.resilience,
            limiter=limiter,
            auth=httpx.BasicAuth(config.consumer_key, config.consumer_secret),
            transport=transport,
        )

    @property
    def platform(self) -> str:
        return self.config.name

    async def aclose(self) -> None:
        await self._http.aclose()

    async def find_all(
        self, endpoint: str, params: dict[str, str | int] | None = None
    ) -> list[JSONObject]:
        query: dict[str, str | int] = {"per_page": DEFAULT_PAGE_SIZE}
        if params:
            query.update(params)
        data = await self._call("GET", endpoint, params=query)
        if not isinstance(data, list):
            return []
        return [cast(JSONObject, item) for item in data if isinstance(item, dict)]

    async def create(self, endpoint: str, payload: JSONObject) -> JSONObject:
        data = await self._call("POST", endpoint, json=payload)
        if not isinstance(data, dict) or "id" not in data:
            raise PlatformApiError(
                f"{self.platform}: create on {endpoint} returned no id",
                platform=self.platform,
                status_code=502,
                endpoint=endpoint,
                response=data,
            )
        return cast(JSONObject, data)

    async def update(
        self, endpoint: str, external_id: ExternalId, payload: JSONObject
    ) -> JSONObject | None:
        data = await self._call("PUT", f"{endpoint}/{external_id}", json=payload)
        return cast(JSONObject, data) if isinstance(data, dict) else None

    async def delete(self, endpoint: str, external_id: ExternalId) -> bool:
        """Force-delete a resource; ``False`` when the platform no longer had it."""

        try:
            await self._call("DELETE", f"{endpoint}/{external_id}", params={"force": "true"})
        except PlatformApiError as exc:
            if exc.is_not_found:
                log.info("%s: %s/%s already gone", self.platform, endpoint, external_id)
                return False
            raise
        return True

    async def _call(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, str | int] | None = None,
        json: JSONObject | None = None,
    ) -> object:
        try:
            response = await self._http.request(method, endpoint, params=params, json=json)
        except httpx.HTTPStatusError as exc:
            raise self._api_error(method, endpoint, exc.response) from exc
        except httpx.TransportError as exc:
            raise PlatformUnavailableError(
                f"{self.platform}: {method} {endpoint} failed: {exc!r}",
                platform=self.platform,
            ) from exc

        if response.is_error:
            raise self._api_error(method, endpoint, response)
        if response.status_code == httpx.codes.NO_CONTENT or not response.content:
            return None
        return response.json()

    def _api_error(self, method: str, endpoint: str, response: httpx.Response) -> PlatformApiError:
        body: object
        try:
            body = response.json()
        except ValueError:
            body = response.text
        detail = None
        if isinstance(body, dict):
            try:
                detail = ErrorResponse.model_validate(body).message
            except ValidationError:
                detail = None
        message = f"{self.platform}: {method} {endpoint} -> {response.status_code}"
        if detail:
            message = f"{message}: {detail}"
        return PlatformApiError(
            message,
            platform=self.platform,
            status_code=response.status_code,
            endpoint=endpoint,
            response=body,
        )
