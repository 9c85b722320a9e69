"""
Result cache for analytics queries over stored readings.

The ingestion pipeline does not use it. It is the contract offered to
query-side collaborators, which wrap their lookups in QueryCache.with_cache.
"""

from __future__ import annotations

import json
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Final, Mapping

# Returned by QueryCache.get when there is no live entry
MISS: Final = object()


@dataclass(frozen=True)
class _Entry:
    value: Any
    stored_at: float


class QueryCache:
    """
    In-memory result cache for analytics queries.

    Entries expire ttl_s after they were stored. When full, the oldest
    inserted entry is evicted. Safe to share between threads; concurrent
    writers to the same key race and the last one wins.
    """

    def __init__(
        self,
        max_size: int = 100,
        ttl_s: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    # ---------------------------------------- #

    @staticmethod
    def make_key(tool: str, params: Mapping[str, Any] | None = None) -> str:
        return f"{tool}:{json.dumps(params or {}, sort_keys=True, default=str)}"

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ---------------------------------------- #

    def get(self, key: str) -> Any:
        """Cached value, or MISS when absent or expired. None is a valid value."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return MISS
            if self._clock() - entry.stored_at > self.ttl_s:
                del self._entries[key]
                self._misses += 1
                return MISS
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[key] = _Entry(value, self._clock())

    def invalidate(self, prefix: str) -> int:
        """Drop every entry whose key starts with prefix; returns how many."""
        with self._lock:
            stale = [k for k in self._entries if k.startswith(prefix)]
            for k in stale:
                del self._entries[k]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    # ---------------------------------------- #

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_s,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total * 100.0, 2) if total else 0.0,
            }

    # ---------------------------------------- #

    def with_cache(
        self,
        tool: str,
        params: Mapping[str, Any] | None,
        fn: Callable[[], Mapping[str, Any]],
    ) -> dict[str, Any]:
        """
        Run fn() through the cache.

        Only results with a truthy "success" are stored. The returned dict
        carries "from_cache" so callers can tell the two paths apart.
        """
        key = self.make_key(tool, params)
        cached = self.get(key)
        if cached is not MISS:
            return {**cached, "from_cache": True}

        result = dict(fn())
        if result.get("success"):
            self.set(key, result)
        return {**result, "from_cache": False}
