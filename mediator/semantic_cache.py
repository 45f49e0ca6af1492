"""
Semantic Cache
==============

Bounded, TTL-based key/value store whose entries carry a semantic relevance
score.

- Entries are visible only while `expires_at` is in the future. An entry
  with no `expires_at` (default_ttl=None) lives until evicted or deleted.
- get() bumps access_count/last_accessed, never expires_at. has() and the
  snapshot readers are pure.
- set() rejects entries below min_semantic_relevance.
- When full, exactly one entry is evicted: the lowest
  semantic_relevance * access_count / (seconds_since_last_access + 1).
- All mutation (set, eviction, delete, sweep) happens under one lock, so an
  entry is either fully present or fully gone.
"""

import asyncio
import logging
import threading
import time
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheEntry(BaseModel, Generic[T]):
    """One cached value with bookkeeping (epoch-second timestamps)."""
    data: T
    timestamp: float = Field(..., description="Insertion time")
    expires_at: Optional[float] = Field(default=None, description="Expiry time, None for no expiry")
    access_count: int = Field(default=0, ge=0)
    last_accessed: float = Field(..., description="Last get() time")
    semantic_relevance: float = Field(default=1.0, ge=0.0, le=1.0)


class SemanticCache(Generic[T]):
    """
    Relevance-weighted cache with TTL and value-based eviction.

    Example:
        >>> cache = SemanticCache(max_entries=100, default_ttl=600)
        >>> cache.set("clarifier->generator", path, semantic_relevance=0.9)
        True
        >>> cache.get("clarifier->generator")
    """

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl: Optional[float] = 1800.0,
        min_semantic_relevance: float = 0.5,
        sweep_interval: float = 300.0,
        name: str = "semantic_cache",
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize cache.

        Args:
            max_entries: Capacity
            default_ttl: Seconds an entry stays visible, None for no expiry
            min_semantic_relevance: Admission threshold
            sweep_interval: Seconds between background sweeps
            name: Identifier for logging
            clock: Time source (epoch seconds)
        """
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self.min_semantic_relevance = min_semantic_relevance
        self.sweep_interval = sweep_interval
        self.name = name
        self._clock = clock

        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._sweeper: Optional[asyncio.Task] = None

        self._stats = {"hits": 0, "misses": 0, "evictions": 0, "rejections": 0, "expired": 0}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _is_live(self, entry: CacheEntry, now: float) -> bool:
        return entry.expires_at is None or entry.expires_at > now

    def get(self, key: str) -> Optional[T]:
        """Value for key, recording the access. None if missing or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not self._is_live(entry, now):
                self._stats["misses"] += 1
                return None
            entry.access_count += 1
            entry.last_accessed = now
            self._stats["hits"] += 1
            return entry.data

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._is_live(entry, self._clock())

    def peek(self, key: str) -> Optional[CacheEntry]:
        """Copy of the live entry without access bookkeeping."""
        entry = self._entries.get(key)
        if entry is None or not self._is_live(entry, self._clock()):
            return None
        return entry.model_copy()

    def items(self) -> List[Tuple[str, CacheEntry]]:
        """Snapshot of live (key, entry copy) pairs, no bookkeeping."""
        now = self._clock()
        with self._lock:
            snapshot = list(self._entries.items())
        return [(key, entry.model_copy()) for key, entry in snapshot if self._is_live(entry, now)]

    def keys(self) -> List[str]:
        return [key for key, _ in self.items()]

    def values(self) -> List[T]:
        return [entry.data for _, entry in self.items()]

    def _live_count_locked(self, now: float) -> int:
        return sum(1 for entry in self._entries.values() if self._is_live(entry, now))

    def __len__(self) -> int:
        """Number of live entries."""
        with self._lock:
            return self._live_count_locked(self._clock())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set(self, key: str, data: T, semantic_relevance: float = 1.0, ttl: Optional[float] = None) -> bool:
        """
        Insert or replace an entry.

        Args:
            key: Cache key
            data: Value
            semantic_relevance: Relevance in [0, 1]
            ttl: Override default TTL (seconds)

        Returns:
            False if rejected for low relevance
        """
        relevance = max(0.0, min(1.0, semantic_relevance))
        if relevance < self.min_semantic_relevance:
            with self._lock:
                self._stats["rejections"] += 1
            logger.debug(
                f"🚫 [{self.name}] Rejected '{key}' (relevance {relevance:.2f} < {self.min_semantic_relevance:.2f})"
            )
            return False

        now = self._clock()
        lifetime = self.default_ttl if ttl is None else ttl
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._remove_expired_locked(now)
                if len(self._entries) >= self.max_entries:
                    self._evict_one_locked(now)

            previous = self._entries.get(key)
            self._entries[key] = CacheEntry(
                data=data,
                timestamp=now,
                expires_at=None if lifetime is None else now + lifetime,
                access_count=previous.access_count if previous else 0,
                last_accessed=previous.last_accessed if previous else now,
                semantic_relevance=relevance
            )
        return True

    def update(self, key: str, data: T) -> bool:
        """Replace the value of a live entry, keeping its bookkeeping and expiry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not self._is_live(entry, self._clock()):
                return False
            entry.data = data
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"🧹 [{self.name}] Cleared {count} entries")
        return count

    @staticmethod
    def eviction_score(entry: CacheEntry, now: float) -> float:
        seconds_idle = max(0.0, now - entry.last_accessed)
        return entry.semantic_relevance * entry.access_count / (seconds_idle + 1.0)

    def _evict_one_locked(self, now: float):
        if not self._entries:
            return
        # Ties go to the staler, then less used, entry
        victim_key = min(
            self._entries,
            key=lambda k: (
                self.eviction_score(self._entries[k], now),
                self._entries[k].last_accessed,
                self._entries[k].access_count,
            )
        )
        del self._entries[victim_key]
        self._stats["evictions"] += 1
        logger.debug(f"♻️ [{self.name}] Evicted '{victim_key}'")

    def _remove_expired_locked(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if not self._is_live(e, now)]
        for key in expired:
            del self._entries[key]
        self._stats["expired"] += len(expired)
        return len(expired)

    def sweep_expired(self) -> int:
        """Remove expired entries. Returns how many were removed."""
        with self._lock:
            removed = self._remove_expired_locked(self._clock())
        if removed:
            logger.info(f"🧹 [{self.name}] Swept {removed} expired entries")
        return removed

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    def start_sweeper(self) -> asyncio.Task:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())
        return self._sweeper

    async def stop_sweeper(self):
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep_expired()

    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stats = dict(self._stats)
            size = self._live_count_locked(self._clock())
        lookups = stats["hits"] + stats["misses"]
        stats.update({
            "size": size,
            "max_entries": self.max_entries,
            "hit_rate": stats["hits"] / lookups if lookups else 0.0,
            "min_semantic_relevance": self.min_semantic_relevance,
            "default_ttl": self.default_ttl,
        })
        return stats
