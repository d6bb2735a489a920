"""Response cache for the fetch pipeline.

Bounded LRU store with a fixed TTL per entry. Keys are built by
compute_cache_key() and are intentionally NOT normalized.
"""
from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from gateway.logging_utils import log_event


def compute_cache_key(source_url: str, region: str) -> str:
    """
    Cache key for a pipeline response.

    Key = "<source_url>:<region>"

    IMPORTANT INVARIANTS:
    - Byte-for-byte composition: "/a" and "/a/" are different keys, and so are
      differently ordered query strings
    - The region is the resolved region, never the raw hint
    """
    return f"{source_url}:{region}"


def is_cache_expired(expires_at: float, now: float) -> bool:
    """True once now has reached the entry's absolute expiry."""
    return now >= expires_at


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    expires_at: float


class ResponseCache:
    """Thread-safe LRU cache with per-entry TTL."""

    def __init__(
        self,
        max_entries: int = 500,
        ttl_seconds: float = 300,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if is_cache_expired(entry.expires_at, self._clock()):
                del self._entries[key]
                self.misses += 1
                return None
            # Move to the end (most recently used)
            self._entries.move_to_end(key)
            self.hits += 1
            return entry.value

    def put(self, key: str, value: Any) -> None:
        evicted: list[str] = []
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + self.ttl_seconds)
            while len(self._entries) > self.max_entries:
                evicted.append(self._entries.popitem(last=False)[0])
        for old_key in evicted:
            log_event("cache_evict", key=old_key[:120])

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def stats(self) -> dict:
        with self._lock:
            total = self.hits + self.misses
            return {
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl_seconds,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": round(self.hits / total, 3) if total else 0.0,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not is_cache_expired(entry.expires_at, self._clock())
