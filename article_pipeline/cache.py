"""
TTL Cache
=========

Read-mostly cache for process-wide lookups (active content rules, known
institutions).  Each refresh builds a brand-new ``CacheSnapshot`` and swaps
it in with a single assignment, so readers always see either the old or the
new value in full.  Concurrent refreshes are coalesced on an asyncio lock.

Usage:
    rules_cache = TTLCache("content_rules", loader=store.active, ttl_seconds=300)
    rules = await rules_cache.get()        # loads on first use or when stale
    await rules_cache.refresh()            # force reload
    rules_cache.value, rules_cache.expires_at
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger("cache")

DEFAULT_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class CacheSnapshot:
    """Immutable cached value with its load / expiry times (monotonic clock)."""
    value: Any
    loaded_at: float
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class TTLCache:
    """Async-loaded value that expires after *ttl_seconds*."""

    def __init__(
        self,
        name: str,
        loader: Callable[[], Awaitable[Any]],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._loader = loader
        self._clock = clock
        self._snapshot: Optional[CacheSnapshot] = None
        self._lock: Optional[asyncio.Lock] = None

    @property
    def value(self) -> Any:
        """Current cached value, or None if never loaded (may be stale)."""
        snapshot = self._snapshot
        return snapshot.value if snapshot is not None else None

    @property
    def expires_at(self) -> Optional[float]:
        snapshot = self._snapshot
        return snapshot.expires_at if snapshot is not None else None

    @property
    def snapshot(self) -> Optional[CacheSnapshot]:
        return self._snapshot

    def is_fresh(self) -> bool:
        snapshot = self._snapshot
        return snapshot is not None and snapshot.is_fresh(self._clock())

    async def get(self) -> Any:
        """Return the cached value, refreshing first when missing or expired."""
        snapshot = self._snapshot
        if snapshot is not None and snapshot.is_fresh(self._clock()):
            return snapshot.value
        return await self.refresh(only_if_stale=True)

    async def refresh(self, only_if_stale: bool = False) -> Any:
        """Load a new value and replace the snapshot atomically.

        Loader exceptions propagate and leave the previous snapshot in place.
        """
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            # Another coroutine may have refreshed while we waited
            current = self._snapshot
            if only_if_stale and current is not None and current.is_fresh(self._clock()):
                return current.value

            value = await self._loader()
            now = self._clock()
            self._snapshot = CacheSnapshot(
                value=value, loaded_at=now, expires_at=now + self.ttl_seconds,
            )
            logger.debug("Cache '%s' refreshed (ttl=%.0fs)", self.name, self.ttl_seconds)
            return value

    def put(self, value: Any) -> None:
        """Install *value* directly, e.g. defaults after a failed load."""
        now = self._clock()
        self._snapshot = CacheSnapshot(value=value, loaded_at=now, expires_at=now + self.ttl_seconds)

    def invalidate(self) -> None:
        self._snapshot = None
