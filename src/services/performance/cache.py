"""
Calculation Cache.
Source: Design Document Section 4.7 - Calculation cache
Verified: 2025-12-18

Memoizes coverage calculations keyed by (patient, service, amount, primary
coverage, date). Entries expire after a TTL and the cache holds a bounded
number of items, evicting the least recently used. Correctness never
depends on the cache: a miss simply recomputes.
"""

import asyncio
import threading
from collections import OrderedDict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel, Field

from src.core.config import CoverageSettings, get_coverage_settings


class CacheConfig(BaseModel):
    """Cache configuration."""

    default_ttl: int = 900  # seconds
    max_items: int = 1000
    key_prefix: str = "coverage:"


class CacheStats(BaseModel):
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    total_items: int = 0
    hit_rate: float = 0.0


class CacheEntry(BaseModel):
    """Single cache entry."""

    key: str
    value: Any
    ttl: int
    created_at: datetime
    expires_at: datetime
    access_count: int = 0
    last_accessed: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        """Check if entry is expired."""
        return now >= self.expires_at


class CalculationCache:
    """
    LRU cache with per-entry TTL.

    All operations take an internal lock, so one instance can be shared by
    concurrent calculations and worker threads.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._config = config or CacheConfig()
        self._clock = clock or datetime.now
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

        # Statistics
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    @property
    def config(self) -> CacheConfig:
        """Get cache configuration."""
        return self._config

    def _make_key(self, key: str) -> str:
        """Create prefixed cache key."""
        return f"{self._config.key_prefix}{key}"

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache; None on miss or expiry."""
        full_key = self._make_key(key)
        with self._lock:
            entry = self._entries.get(full_key)
            if entry is None:
                self._misses += 1
                return None

            now = self._clock()
            if entry.is_expired(now):
                del self._entries[full_key]
                self._expirations += 1
                self._misses += 1
                return None

            # Move to end (most recently used)
            self._entries.move_to_end(full_key)
            entry.access_count += 1
            entry.last_accessed = now
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set value in cache, evicting least recently used entries at capacity."""
        full_key = self._make_key(key)
        cache_ttl = ttl or self._config.default_ttl
        now = self._clock()

        with self._lock:
            if full_key in self._entries:
                del self._entries[full_key]

            while len(self._entries) >= self._config.max_items:
                self._entries.popitem(last=False)
                self._evictions += 1

            self._entries[full_key] = CacheEntry(
                key=full_key,
                value=value,
                ttl=cache_ttl,
                created_at=now,
                expires_at=now + timedelta(seconds=cache_ttl),
            )

    def delete(self, key: str) -> bool:
        """Delete key from cache."""
        with self._lock:
            return self._entries.pop(self._make_key(key), None) is not None

    def clear(self) -> None:
        """Clear all entries."""
        with self._lock:
            self._entries.clear()

    def cleanup_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._expirations += len(expired)
        return len(expired)

    async def get_or_compute(
        self,
        key: str,
        factory: Callable[[], Union[Any, Awaitable[Any]]],
        ttl: int | None = None,
    ) -> Any:
        """
        Get from cache or compute and set.

        The lock is not held while the factory runs; concurrent misses on the
        same key compute the same value twice.
        """
        value = self.get(key)

        if value is None:
            if asyncio.iscoroutinefunction(factory):
                value = await factory()
            else:
                value = factory()

            if value is not None:
                self.set(key, value, ttl)

        return value

    def size(self) -> int:
        """Get current cache size."""
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0

            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
                total_items=len(self._entries),
                hit_rate=hit_rate,
            )

    def reset_stats(self) -> None:
        """Reset statistics."""
        with self._lock:
            self._hits = 0
            self._misses = 0
            self._evictions = 0
            self._expirations = 0


# =============================================================================
# Keys
# =============================================================================


def make_calculation_key(
    patient_id: int,
    service_id: int,
    service_amount: Decimal,
    primary_coverage: Decimal,
    calculation_date: date,
) -> str:
    """Cache key for one supplementary calculation."""
    return (
        f"supplementary:{patient_id}:{service_id}:"
        f"{Decimal(service_amount).normalize()}:{Decimal(primary_coverage).normalize()}:"
        f"{calculation_date.isoformat()}"
    )


# =============================================================================
# Factory Functions
# =============================================================================


def create_calculation_cache(settings: CoverageSettings | None = None) -> CalculationCache:
    """Create a CalculationCache sized from settings."""
    settings = settings or get_coverage_settings()
    return CalculationCache(
        CacheConfig(
            default_ttl=settings.CACHE_TTL_SECONDS,
            max_items=settings.CACHE_MAX_ITEMS,
        )
    )
