"""Synchronization switches and windows."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta

from .env import env_flag
from .errors import ConfigurationError

DEFAULT_DEDUP_DAYS = 180
KILL_SWITCH_VARS = ("DISABLE_WOO_SYNC", "SKIP_WOO_SYNC")


@dataclass(frozen=True, slots=True)
class SyncConfig:
    enabled: bool = True
    notification_dedup_window: timedelta = field(
        default_factory=lambda: timedelta(days=DEFAULT_DEDUP_DAYS)
    )
    cascade_kinds: frozenset[str] = frozenset({"term"})


def _dedup_days() -> int:
    raw = os.getenv("EMAIL_DEDUP_DAYS")
    if raw is None or not raw.strip():
        return DEFAULT_DEDUP_DAYS
    try:
        days = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"EMAIL_DEDUP_DAYS must be an integer, got {raw!r}") from exc
    if days < 1:
        raise ConfigurationError("EMAIL_DEDUP_DAYS must be at least 1")
    return days


def get_sync_config() -> SyncConfig:
    disabled = any(env_flag(name) for name in KILL_SWITCH_VARS)
    return SyncConfig(
        enabled=not disabled,
        notification_dedup_window=timedelta(days=_dedup_days()),
    )
