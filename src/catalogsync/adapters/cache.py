"""Bounded in-memory cache with per-entry expiry for platform lookups."""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Generic, TypeAlias, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from catalogsync.config.http_resilience import CacheConfig

log = getLogger(__name__)

# (platform, entity kind, natural key)
LookupKey: TypeAlias = tuple[str, str, str]

V = TypeVar("V")


@dataclass(slots=True)
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TTLCache(Generic[V]):
    """LRU eviction once ``max_entries`` is reached; entries expire after ``ttl``."""

    def __init__(
        self,
        *,
        max_entries: int = 512,
        ttl_seconds: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._max_entries = max_entries
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[LookupKey, _Entry[V]] = OrderedDict()

    @classmethod
    def from_config(cls, config: CacheConfig) -> TTLCache[V]:
        return cls(max_entries=config.max_entries, ttl_seconds=config.ttl_seconds)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: LookupKey) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry.value

    def set(self, key: LookupKey, value: V) -> None:
        self._entries[key] = _Entry(value, self._clock() + self._ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            log.debug("Evicted lookup cache entry %s", evicted)

    def invalidate(self, key: LookupKey) -> None:
        self._entries.pop(key, None)

    def invalidate_platform(self, platform: str) -> None:
        for key in [key for key in self._entries if key[0] == platform]:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()
