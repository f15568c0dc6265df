"""Application configuration helpers."""

from __future__ import annotations

from catalogsync.common.logging import configure_logging

from .env import env_flag, env_number, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import (
    CacheConfig,
    RateLimit,
    ResilienceConfig,
    RetryableStatusError,
    RetryPolicy,
)
from .platforms import PlatformConfig, get_platform_config, get_platform_configs
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config
from .sync import SyncConfig, get_sync_config

__all__ = [
    "CacheConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "PlatformConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "RetryableStatusError",
    "StorageConfig",
    "SyncConfig",
    "configure_logging",
    "env_flag",
    "env_number",
    "get_database_config",
    "get_platform_config",
    "get_platform_configs",
    "get_storage_config",
    "get_sync_config",
    "require_env_vars",
]
