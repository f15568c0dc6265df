from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from catalogsync.adapters.woocommerce import WooCommerceClient, WooCommerceGateway
from catalogsync.config import PlatformConfig, ResilienceConfig, RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Callable


@pytest.fixture
def platform_config() -> PlatformConfig:
    return PlatformConfig(
        name="woo_moraleja",
        base_url="https://moraleja.test",
        consumer_key="ck_test",
        consumer_secret="cs_test",
        eligible=True,
        resilience=ResilienceConfig(
            name="woo_moraleja",
            base_url="https://moraleja.test/wp-json/wc/v3/",
            retry=RetryPolicy(max_attempts=3, initial_delay=0, max_delay=0),
            ratelimit=None,
        ),
    )


@pytest.fixture
def make_client(
    platform_config: PlatformConfig,
) -> Callable[[Callable[[httpx.Request], httpx.Response]], WooCommerceClient]:
    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> WooCommerceClient:
        return WooCommerceClient(platform_config, transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def make_gateway(
    make_client: Callable[[Callable[[httpx.Request], httpx.Response]], WooCommerceClient],
) -> Callable[[Callable[[httpx.Request], httpx.Response]], WooCommerceGateway]:
    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> WooCommerceGateway:
        return WooCommerceGateway(make_client(handler))

    return factory
