"""TTL-keyed memo of read results."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .config import DEFAULT_CACHE_MAX_ENTRIES

logger = logging.getLogger(__name__)

MISSING: Any = object()


@dataclass
class CacheEntry:
    value: Any
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


class ResultCache:
    """Read-result cache with per-entry lifetimes.

    Expired entries are discarded on read and swept opportunistically once
    the entry count reaches ``max_entries``.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._max_entries = max_entries
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str, default: Any = MISSING) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return default
        return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            return
        if len(self._entries) >= self._max_entries:
            self.sweep()
        self._entries[key] = CacheEntry(value=value, created_at=self._clock(), ttl=ttl)

    def sweep(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``."""
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.debug("Invalidated %s cache entries for prefix %s", len(keys), prefix)
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()
