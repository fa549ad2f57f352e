"""
TTLCache - process-lifetime async cache with lazy expiry and a periodic sweep.

Features:
- Entries expire at ``created_at + ttl``; expired entries are never returned
- Periodic sweep (APScheduler interval job) reclaims expired entries while idle
- Manual full clear returning the number of removed entries
- Injectable clock for tests
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generic, TypeVar

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

T = TypeVar("T")

SWEEP_JOB_ID = "ttl_cache_sweep"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    payload: T
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """Check if entry is past its TTL."""
        return now >= self.expires_at

    def age_seconds(self, now: datetime) -> float:
        return max(0.0, (now - self.created_at).total_seconds())

    def ttl_remaining_seconds(self, now: datetime) -> float:
        return max(0.0, (self.expires_at - now).total_seconds())


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    expired_reads: int = 0
    swept: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "expired_reads": self.expired_reads,
            "swept": self.swept,
            "size": self.size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


class TTLCache:
    """
    Async-compatible in-memory cache with TTL.

    One instance lives from app startup to app shutdown. Nothing is
    persisted; a restart starts empty.

    Usage:
        cache = TTLCache(default_ttl=timedelta(minutes=5))
        cache.start_sweeper()

        entry = await cache.get("events_2024_2")
        if entry is None:
            await cache.put("events_2024_2", await fetch_events())

        cache.stop_sweeper()
    """

    def __init__(
        self,
        default_ttl: timedelta = timedelta(minutes=5),
        sweep_interval: timedelta = timedelta(minutes=10),
        clock: Callable[[], datetime] | None = None,
        debug: bool = False,
    ):
        self._memory: dict[str, CacheEntry[Any]] = {}
        self._default_ttl = default_ttl
        self._sweep_interval = sweep_interval
        self._clock = clock or _utc_now
        self._debug = debug
        self._lock = asyncio.Lock()
        self._stats = CacheStats()
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def default_ttl(self) -> timedelta:
        return self._default_ttl

    @property
    def size(self) -> int:
        """Number of stored entries, including expired ones not yet swept."""
        return len(self._memory)

    def now(self) -> datetime:
        return self._clock()

    async def get(self, key: str) -> CacheEntry[Any] | None:
        """
        Get a live entry.

        Returns None when the key is absent or the entry has expired. Expired
        entries are left for the sweep.
        """
        async with self._lock:
            entry = self._memory.get(key)

            if entry is None:
                self._stats.misses += 1
                self._log(f"MISS: {key}")
                return None

            if entry.is_expired(self._clock()):
                self._stats.misses += 1
                self._stats.expired_reads += 1
                self._log(f"EXPIRED: {key}")
                return None

            self._stats.hits += 1
            self._log(f"HIT: {key}")
            return entry

    async def put(
        self,
        key: str,
        payload: Any,
        ttl: timedelta | None = None,
    ) -> CacheEntry[Any]:
        """
        Store ``payload`` under ``key``, replacing any previous entry.

        Args:
            key: Cache key
            payload: Data to cache
            ttl: Time to live (uses default if not specified)
        """
        ttl = ttl or self._default_ttl
        now = self._clock()
        entry = CacheEntry(payload=payload, created_at=now, expires_at=now + ttl)

        async with self._lock:
            self._memory[key] = entry
            self._log(f"SET: {key} (TTL: {ttl.total_seconds()}s)")

        return entry

    async def clear(self) -> int:
        """Clear all cache entries. Returns count of removed entries."""
        async with self._lock:
            count = len(self._memory)
            self._memory.clear()
        logger.info(f"Cache cleared: {count} entries removed")
        return count

    async def sweep_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        async with self._lock:
            now = self._clock()
            expired_keys = [k for k, v in self._memory.items() if v.is_expired(now)]
            for key in expired_keys:
                del self._memory[key]
            self._stats.swept += len(expired_keys)

        if expired_keys:
            logger.info(f"Cache sweep: {len(expired_keys)} expired entries removed")
        return len(expired_keys)

    def keys(self) -> list[str]:
        """Keys of entries that are still fresh."""
        now = self._clock()
        return [k for k, v in self._memory.items() if not v.is_expired(now)]

    # Sweeper lifecycle

    def start_sweeper(self) -> None:
        """Schedule the periodic sweep. Requires a running event loop."""
        if self.is_sweeping:
            logger.warning("Cache sweeper is already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.sweep_expired,
            trigger="interval",
            seconds=self._sweep_interval.total_seconds(),
            id=SWEEP_JOB_ID,
            name="TTL cache sweep",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            f"Cache sweeper started: every {self._sweep_interval.total_seconds():.0f}s"
        )

    def stop_sweeper(self) -> None:
        """Cancel the periodic sweep."""
        if not self.is_sweeping:
            return

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Cache sweeper stopped")

    @property
    def is_sweeping(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    # Introspection

    def status(self) -> dict[str, Any]:
        """Read-only summary for health checks."""
        return {
            "size": self.size,
            "keys": self.keys(),
            "ttl_seconds": int(self._default_ttl.total_seconds()),
            "sweep_interval_seconds": int(self._sweep_interval.total_seconds()),
            "sweeping": self.is_sweeping,
        }

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        self._stats.size = len(self._memory)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[TTLCache] {message}")
