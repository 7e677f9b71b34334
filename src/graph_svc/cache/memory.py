"""In-memory TTL cache for server-side read paths."""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Hashable


@dataclass(frozen=True)
class CacheEntry:
    """A cached value with its expiry."""
    value: Any
    created_at: float
    ttl_seconds: float

    @property
    def is_expired(self) -> bool:
        return time.time() > self.created_at + self.ttl_seconds


@dataclass
class InMemoryCache:
    """
    Bounded TTL cache with LRU eviction.

    Reads take no lock; writes are serialized. Keys are any hashable
    value; the federation resolver keys by (storage key, provider name).
    """
    max_size: int = 10000
    default_ttl_seconds: float = 300.0

    _store: OrderedDict[Hashable, CacheEntry] = field(default_factory=OrderedDict, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    _hits: int = field(default=0, init=False)
    _misses: int = field(default=0, init=False)

    def get(self, key: Hashable) -> Any | None:
        """Get a live value, or None if missing or expired."""
        entry = self._store.get(key)
        if entry is None or entry.is_expired:
            self._misses += 1
            return None
        self._hits += 1
        return entry.value

    async def set(self, key: Hashable, value: Any, ttl_seconds: float | None = None) -> None:
        """Store a value, evicting the least recently written entries past max_size."""
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        entry = CacheEntry(value=value, created_at=time.time(), ttl_seconds=ttl)

        async with self._lock:
            self._store[key] = entry
            self._store.move_to_end(key)
            while len(self._store) > self.max_size:
                self._store.popitem(last=False)

    @property
    def size(self) -> int:
        return len(self._store)

    @property
    def stats(self) -> dict:
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0

        return {
            "size": self.size,
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_percent": round(hit_rate, 2),
        }
