"""
In-process response cache.

Entries live in an insertion-ordered dict guarded by an ``asyncio.Lock``.
Expired entries are dropped lazily on read and by a periodic sweep task.
When an insert would overflow the size or entry budget, the oldest 10% of
entries are evicted.
"""

import asyncio
import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..models.response import GenerationResponse
from .base import CacheStats, ResponseCache

logger = logging.getLogger(__name__)

ENTRY_OVERHEAD_BYTES = 200
EVICTION_FRACTION = 0.1


@dataclass
class _Entry:
    response: GenerationResponse
    created_at: float
    expires_at: float
    size: int


def estimate_entry_size(response: GenerationResponse) -> int:
    """Two bytes per character of text and metadata, plus fixed overhead."""
    metadata = json.dumps(response.metadata, default=str)
    return 2 * (len(response.text) + len(metadata)) + ENTRY_OVERHEAD_BYTES


class InMemoryResponseCache(ResponseCache):
    """
    In-memory response cache.

    Args:
        default_ttl: TTL in seconds when ``set`` gets none
        max_size_mb: Estimated byte budget
        max_entries: Entry count budget
        sweep_interval: Seconds between background expiry sweeps
        clock: Monotonic time source
    """

    def __init__(
        self,
        default_ttl: int = 3600,
        max_size_mb: float = 100.0,
        max_entries: int = 10000,
        sweep_interval: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._default_ttl = default_ttl
        self._max_bytes = int(max_size_mb * 1024 * 1024)
        self._max_entries = max(1, max_entries)
        self._sweep_interval = sweep_interval
        self._clock = clock

        self._entries: Dict[str, _Entry] = {}
        self._size = 0
        self._lock = asyncio.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def size_bytes(self) -> int:
        return self._size

    def _remove(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._size -= entry.size

    def _evict_for(self, incoming_size: int) -> None:
        count = len(self._entries)
        to_evict = max(
            math.ceil(count * EVICTION_FRACTION),
            count + 2 - self._max_entries,
        )
        to_evict = min(to_evict, count)

        for key in list(self._entries)[:to_evict]:
            self._remove(key)
        evicted = to_evict

        # A large entry may still not fit after the 10% pass.
        while self._entries and self._size + incoming_size > self._max_bytes:
            self._remove(next(iter(self._entries)))
            evicted += 1

        self._evictions += evicted
        logger.debug(f"Evicted {evicted} cache entries")

    async def get(self, key: str) -> Optional[GenerationResponse]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.expires_at <= self._clock():
                self._remove(key)
                self._misses += 1
                return None

            self._hits += 1
            return entry.response.model_copy(deep=True)

    async def set(self, key: str, response: GenerationResponse, ttl: Optional[int] = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        size = estimate_entry_size(response)

        if size > self._max_bytes:
            logger.warning(f"Response of ~{size} bytes exceeds cache budget, not caching")
            return

        async with self._lock:
            self._remove(key)

            if (
                self._size + size > self._max_bytes
                or len(self._entries) + 1 >= self._max_entries
            ):
                self._evict_for(size)

            now = self._clock()
            self._entries[key] = _Entry(
                response=response.model_copy(deep=True),
                created_at=now,
                expires_at=now + ttl,
                size=size,
            )
            self._size += size

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if key not in self._entries:
                return False
            self._remove(key)
            return True

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            self._size = 0

    async def cleanup(self) -> int:
        async with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                self._remove(key)

        if expired:
            logger.debug(f"Removed {len(expired)} expired cache entries")
        return len(expired)

    async def stats(self) -> CacheStats:
        total = self._hits + self._misses
        return CacheStats(
            backend="memory",
            entries=len(self._entries),
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            hit_rate=self._hits / total if total > 0 else 0.0,
            size_bytes=self._size,
            max_size_bytes=self._max_bytes,
            max_entries=self._max_entries,
        )

    async def _sweep(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                await self.cleanup()
            except Exception as e:
                logger.error(f"Cache sweep failed: {e}")

    async def start(self) -> None:
        """Start the periodic expiry sweep."""
        if self._sweep_task is None and self._sweep_interval > 0:
            self._sweep_task = asyncio.create_task(self._sweep())

    async def close(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
