"""Rate limiting and retry for outbound platform calls."""

from __future__ import annotations

import logging
from logging import getLogger
from typing import TYPE_CHECKING, TypedDict, TypeVar

import httpx
from aiolimiter import AsyncLimiter
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from catalogsync.config.http_resilience import (
    RateLimit,
    ResilienceConfig,
    RetryableStatusError,
    RetryPolicy,
)
from catalogsync.domain.ports.platform import PlatformApiError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping
    from types import TracebackType

    from httpx._client import UseClientDefault
    from httpx._types import (
        AuthTypes,
        HeaderTypes,
        QueryParamTypes,
        TimeoutTypes,
        URLTypes,
    )
    from typing import Unpack

T = TypeVar("T")

log = getLogger(__name__)


def is_transient(exc: BaseException, policy: RetryPolicy | None = None) -> bool:
    """Classify a failure: 429, 5xx and network-level errors are worth another attempt."""

    effective = policy or RetryPolicy()
    if isinstance(exc, PlatformApiError):
        return exc.is_transient
    if isinstance(exc, httpx.HTTPStatusError) and not isinstance(exc, RetryableStatusError):
        return exc.response.status_code in effective.status_forcelist
    return isinstance(exc, effective.retry_on_exceptions)


async def with_retry(fn: Callable[[], Awaitable[T]], policy: RetryPolicy | None = None) -> T:
    """Run ``fn`` with bounded exponential backoff; the last error is re-raised on exhaustion."""

    effective = policy or RetryPolicy()
    retrying = AsyncRetrying(
        stop=stop_after_attempt(effective.max_attempts),
        wait=wait_exponential(
            multiplier=effective.initial_delay,
            exp_base=effective.multiplier,
            max=effective.max_delay,
        ),
        retry=retry_if_exception(lambda exc: is_transient(exc, effective)),
        before_sleep=before_sleep_log(log, logging.WARNING),
        reraise=True,
    )
    return await retrying(fn)


class PlatformRateLimiter:
    """One leaky bucket per platform, shared by every client talking to it."""

    def __init__(
        self,
        limits: Mapping[str, RateLimit] | None = None,
        *,
        default: RateLimit | None = None,
    ) -> None:
        self._limits = dict(limits or {})
        self._default = default or RateLimit()
        self._limiters: dict[str, AsyncLimiter] = {}

    def limiter_for(self, platform: str) -> AsyncLimiter:
        limiter = self._limiters.get(platform)
        if limiter is None:
            limit = self._limits.get(platform, self._default)
            limiter = AsyncLimiter(limit.capacity, limit.refill_period)
            self._limiters[platform] = limiter
        return limiter

    async def wait_for_slot(self, platform: str) -> None:
        """Suspend until ``platform`` has capacity; waiters are served in arrival order."""

        await self.limiter_for(platform).acquire()


class RequestOptions(TypedDict, total=False):
    json: object
    params: QueryParamTypes | None
    headers: HeaderTypes | None
    auth: AuthTypes | UseClientDefault | None
    timeout: TimeoutTypes | UseClientDefault


class AsyncClientOptions(TypedDict, total=False):
    base_url: str
    timeout: TimeoutTypes
    headers: HeaderTypes
    auth: AuthTypes
    transport: httpx.AsyncBaseTransport


class ResilientClient:
    """``httpx.AsyncClient`` wrapper; each attempt takes a rate-limit slot inside the retry loop."""

    def __init__(
        self,
        config: ResilienceConfig,
        *,
        limiter: AsyncLimiter | None = None,
        auth: AuthTypes | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        if limiter is None and config.ratelimit is not None:
            limiter = AsyncLimiter(config.ratelimit.capacity, config.ratelimit.refill_period)
        self._limiter = limiter

        client_kwargs: AsyncClientOptions = {"timeout": config.timeout_seconds}
        if config.base_url is not None:
            client_kwargs["base_url"] = config.base_url
        if config.default_headers:
            client_kwargs["headers"] = dict(config.default_headers)
        if auth is not None:
            client_kwargs["auth"] = auth
        if transport is not None:
            client_kwargs["transport"] = transport
        self._client = httpx.AsyncClient(**client_kwargs)

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        url: URLTypes,
        **kwargs: Unpack[RequestOptions],
    ) -> httpx.Response:
        async def attempt() -> httpx.Response:
            return await self._send(method, url, **kwargs)

        return await with_retry(attempt, self.config.retry)

    async def get(self, url: URLTypes, **kwargs: Unpack[RequestOptions]) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: URLTypes, **kwargs: Unpack[RequestOptions]) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: URLTypes, **kwargs: Unpack[RequestOptions]) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def delete(self, url: URLTypes, **kwargs: Unpack[RequestOptions]) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def _send(
        self,
        method: str,
        url: URLTypes,
        **kwargs: Unpack[RequestOptions],
    ) -> httpx.Response:
        if self._limiter is None:
            response = await self._client.request(method, url, **kwargs)
        else:
            async with self._limiter:
                response = await self._client.request(method, url, **kwargs)
        if response.status_code in self.config.retry.status_forcelist:
            raise RetryableStatusError(
                f"{self.config.name}: {method} {response.request.url} -> {response.status_code}",
                request=response.request,
                response=response,
            )
        return response
