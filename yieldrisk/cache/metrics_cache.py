"""
In-memory metrics cache with TTL expiry, hit/miss statistics and request counters.

PURPOSE:
- Avoid recomputing MarketMetrics for the same pool within a freshness window.
- Keep long-run hit/miss counters and per-request timings for observability.

CONTEXT:
- Constructed once per service lifetime and handed to MarketMetricsService, so
  tests can build isolated instances.
- Expiry is lazy (checked on get); purge_expired() is an optional active sweep.
- All map mutation and counter updates happen under a single lock.
"""

from __future__ import annotations
import copy
import json
import os
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from yieldrisk.errors import InvalidInputError
from yieldrisk.model_interface.types import CacheStats


DEFAULT_TTL_SEC = float(os.getenv("METRICS_CACHE_TTL_SEC", "300"))
DEFAULT_MAX_ENTRIES = int(os.getenv("METRICS_CACHE_MAX_ENTRIES", "1000"))


@dataclass
class CacheEntry:
    """
    One cached value.

    attributes:
    - key: str – cache key (pool id)
    - value: Any – deep copy of the stored payload
    - inserted_at: float – clock reading at insertion (seconds)
    - ttl: float – time-to-live in seconds
    - size: int – length of the JSON-serialised value (characters)
    - created_ms: int – wall-clock insertion time, epoch milliseconds
    """
    key: str
    value: Any
    inserted_at: float
    ttl: float
    size: int = 0
    created_ms: int = 0

    def is_expired(self, now: float) -> bool:
        return now - self.inserted_at >= self.ttl


class MetricsCache:
    """Bounded, time-expiring key -> value store with hit/miss/eviction counters."""

    def __init__(self, default_ttl: float = DEFAULT_TTL_SEC,
                 max_entries: Optional[int] = DEFAULT_MAX_ENTRIES,
                 clock: Callable[[], float] = time.monotonic,
                 wall_clock: Callable[[], float] = time.time):
        """
        parameters:
        - default_ttl: float – TTL in seconds used when set() is called without one.
        - max_entries: int | None – capacity bound; None means unbounded.
        - clock: callable – monotonic seconds source for expiry, injectable for tests.
        - wall_clock: callable – epoch seconds source for oldestEntry/newestEntry.
        """
        if default_ttl <= 0:
            raise InvalidInputError("default_ttl must be positive")
        if max_entries is not None and max_entries < 1:
            raise InvalidInputError("max_entries must be at least 1")
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock
        self._wall_clock = wall_clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._request_count = 0
        self._error_count = 0
        self._total_response_ms = 0.0

    # -------------------- Core operations -------------------- #

    def get(self, key: str) -> Optional[Any]:
        """
        Look up a live entry.

        returns:
        - a copy of the stored value on a hit.
        - None when the key is absent or expired (expired entries are dropped).
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return copy.deepcopy(entry.value)

    def get_shared(self, key: str) -> Optional[Any]:
        """
        Re-check for a caller whose earlier get() on `key` already counted a miss,
        e.g. a request that waited for another request to compute the value.

        A live entry turns that miss into a hit, so each request counts as exactly
        one lookup. Otherwise the counters are left alone and None is returned.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(self._clock()):
                return None
            if self._misses > 0:
                self._misses -= 1
            self._hits += 1
            return copy.deepcopy(entry.value)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Insert or overwrite an entry, stamping it with the current time.

        notes:
        - The value is deep-copied, so later mutation by the caller cannot leak in.
        - A new key arriving at capacity evicts the least-recently-inserted entry.
        - Hit/miss counters are untouched.
        """
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise InvalidInputError("ttl must be positive")
        stored = copy.deepcopy(value)
        size = len(json.dumps(stored, default=str))
        with self._lock:
            if key in self._entries:
                # Re-insertion counts as the newest insertion.
                del self._entries[key]
            elif self.max_entries is not None and len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
                self._evictions += 1
            self._entries[key] = CacheEntry(key=key, value=stored, inserted_at=self._clock(), ttl=ttl,
                                            size=size, created_ms=int(self._wall_clock() * 1000))

    def clear_cache(self) -> None:
        """Drop every entry. Hit/miss counters survive so hitRate stays a long-run signal."""
        with self._lock:
            self._entries.clear()

    def reset_stats(self) -> None:
        """Zero hit/miss/eviction and request counters without touching entries."""
        with self._lock:
            self._hits = 0
            self._misses = 0
            self._evictions = 0
            self._request_count = 0
            self._error_count = 0
            self._total_response_ms = 0.0

    def purge_expired(self) -> int:
        """Actively remove expired entries; returns how many were dropped. Not counted as misses."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for k in expired:
                del self._entries[k]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # -------------------- Statistics -------------------- #

    def get_cache_stats(self) -> CacheStats:
        """
        Snapshot of the counters; hitRate is 0.0 when nothing has been looked up yet.
        totalSize sums the serialised entry sizes; oldestEntry/newestEntry are epoch ms
        insertion times, None when the cache is empty.
        """
        with self._lock:
            lookups = self._hits + self._misses
            created = [e.created_ms for e in self._entries.values()]
            return {
                "hits": self._hits,
                "misses": self._misses,
                "entries": len(self._entries),
                "hitRate": self._hits / lookups if lookups else 0.0,
                "evictions": self._evictions,
                "maxEntries": self.max_entries,
                "totalSize": sum(e.size for e in self._entries.values()),
                "oldestEntry": min(created) if created else None,
                "newestEntry": max(created) if created else None,
            }

    def record_request(self, processing_time_ms: float, failed: bool = False) -> None:
        """Record one service request for get_metrics()."""
        with self._lock:
            self._request_count += 1
            self._total_response_ms += processing_time_ms
            if failed:
                self._error_count += 1

    def get_metrics(self) -> Dict[str, Any]:
        """
        Operational counters merged with cache size and hit rate.

        returns:
        - dict – requestCount, averageResponseTime (ms), errorCount, errorRate,
          cacheHits, cacheMisses, cacheSize, hitRate, totalDataSize.
        """
        with self._lock:
            stats = self.get_cache_stats()
            n = self._request_count
            return {
                "requestCount": n,
                "averageResponseTime": self._total_response_ms / n if n else 0.0,
                "errorCount": self._error_count,
                "errorRate": self._error_count / n if n else 0.0,
                "cacheHits": stats["hits"],
                "cacheMisses": stats["misses"],
                "cacheSize": stats["entries"],
                "hitRate": stats["hitRate"],
                "totalDataSize": stats["totalSize"],
            }
