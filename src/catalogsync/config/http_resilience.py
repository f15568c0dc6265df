"""Configuration types for resilient HTTP clients."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from collections.abc import Mapping


class RetryableStatusError(httpx.HTTPStatusError):
    """Raised inside a retry attempt when the response status is classified transient."""


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    max_attempts: int = 4
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 10.0
    status_forcelist: frozenset[int] = field(
        default_factory=lambda: frozenset({429, 500, 502, 503, 504})
    )
    retry_on_exceptions: tuple[type[BaseException], ...] = (
        httpx.TimeoutException,
        httpx.NetworkError,
        httpx.RemoteProtocolError,
        RetryableStatusError,
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be non-negative")


@dataclass(slots=True, frozen=True)
class RateLimit:
    max_calls: int = 2
    per_seconds: float = 1.0
    burst: int = 2

    @property
    def capacity(self) -> int:
        return self.max_calls + self.burst

    @property
    def refill_period(self) -> float:
        # leaky bucket sized for the burst, draining at max_calls / per_seconds
        return self.per_seconds * self.capacity / self.max_calls


@dataclass(slots=True, frozen=True)
class CacheConfig:
    enabled: bool = True
    ttl_seconds: float = 600.0
    max_entries: int = 512


@dataclass(slots=True, frozen=True)
class ResilienceConfig:
    name: str
    base_url: str | None = None
    timeout_seconds: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = field(default_factory=RateLimit)
    cache: CacheConfig = field(default_factory=CacheConfig)
    default_headers: Mapping[str, str] | None = None
