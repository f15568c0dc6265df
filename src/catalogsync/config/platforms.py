"""Per-platform connection settings for the external commerce platforms."""

from __future__ import annotations

import os
from dataclasses import dataclass
from logging import getLogger
from typing import Final
from urllib.parse import urlparse

from .env import env_number, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig

log = getLogger(__name__)

DEFAULT_PLATFORMS: Final[tuple[str, ...]] = ("woo_moraleja", "woo_escolar")
REST_PREFIX: Final[str] = "wp-json/wc/v3/"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 30.0


@dataclass(frozen=True, slots=True)
class PlatformConfig:
    """Connection details for one platform; ``eligible`` is false when credentials are missing."""

    name: str
    base_url: str
    consumer_key: str
    consumer_secret: str
    eligible: bool
    resilience: ResilienceConfig

    @property
    def api_root(self) -> str:
        return f"{self.base_url.rstrip('/')}/{REST_PREFIX}"


def platform_names() -> tuple[str, ...]:
    raw = os.getenv("CATALOG_PLATFORMS")
    if raw is None or not raw.strip():
        return DEFAULT_PLATFORMS
    names = tuple(dict.fromkeys(part.strip() for part in raw.split(",") if part.strip()))
    if not names:
        raise ConfigurationError("CATALOG_PLATFORMS does not name any platform")
    return names


def _validate_url(name: str, url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ConfigurationError(f"{name} must be an absolute http(s) URL, got {url!r}")
    return url.rstrip("/")


def get_platform_config(name: str) -> PlatformConfig:
    prefix = name.upper()
    url_var = f"{prefix}_URL"
    key_var = f"{prefix}_CONSUMER_KEY"
    secret_var = f"{prefix}_CONSUMER_SECRET"

    rate = env_number(f"{prefix}_RATE_LIMIT", default=2)
    burst = env_number(f"{prefix}_RATE_BURST", default=2)
    timeout = env_number(f"{prefix}_TIMEOUT_SECONDS", default=DEFAULT_TIMEOUT_SECONDS)

    try:
        values = require_env_vars((url_var, key_var, secret_var))
    except MissingConfigurationError as exc:
        log.warning("Platform %s is not eligible for sync: %s", name, exc)
        values = {
            url_var: os.getenv(url_var, "").strip(),
            key_var: "",
            secret_var: "",
        }
        eligible = False
    else:
        eligible = True

    base_url = values[url_var]
    if base_url:
        base_url = _validate_url(url_var, base_url)

    return PlatformConfig(
        name=name,
        base_url=base_url,
        consumer_key=values[key_var],
        consumer_secret=values[secret_var],
        eligible=eligible,
        resilience=ResilienceConfig(
            name=name,
            base_url=f"{base_url}/{REST_PREFIX}" if base_url else None,
            timeout_seconds=timeout,
            ratelimit=RateLimit(max_calls=max(1, int(rate)), burst=int(burst)),
        ),
    )


def get_platform_configs() -> dict[str, PlatformConfig]:
    """Load every configured platform, eligible or not, keyed by name."""

    return {name: get_platform_config(name) for name in platform_names()}
