"""Time-bounded in-process cache for built trees and derived views."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

import structlog

from src.analytics.models import FilterOptions

LOGGER = structlog.get_logger(__name__)

V = TypeVar("V")


@dataclass(slots=True)
class _Entry(Generic[V]):
    value: V
    stored_at: float


class TTLCache(Generic[V]):
    """Keyed store with lazy expiry and an insertion-ordered capacity bound.

    - A read older than ``ttl_seconds`` counts as a miss and purges the entry.
    - When a new key would push the size past ``max_entries``, the
      oldest-inserted entry is evicted first (FIFO, not LRU: reads do not
      refresh position).

    One instance is owned by each service; nothing is shared implicitly.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._ttl = float(ttl_seconds)
        self._max_entries = max_entries
        self._clock = clock
        self._name = name
        self._entries: dict[str, _Entry[V]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > self._ttl:
            del self._entries[key]
            LOGGER.debug("cache.expired", cache=self._name, key=key)
            return None
        return entry.value

    def set(self, key: str, value: V) -> None:
        now = self._clock()
        existing = self._entries.get(key)
        if existing is not None:
            existing.value = value
            existing.stored_at = now
            return
        if len(self._entries) >= self._max_entries:
            oldest_key = next(iter(self._entries))
            del self._entries[oldest_key]
            LOGGER.debug("cache.evicted", cache=self._name, key=oldest_key)
        self._entries[key] = _Entry(value=value, stored_at=now)

    def clear(self) -> None:
        self._entries.clear()


def make_cache_key(operation: str, filters: FilterOptions | None = None, *extra: Any) -> str:
    """``<operation>-<canonical filters>`` plus any extra positional parts."""
    filter_part = filters.cache_key() if filters is not None else "no-filters"
    parts = [operation, filter_part, *(str(item) for item in extra)]
    return "-".join(parts)


__all__ = ["TTLCache", "make_cache_key"]
