"""
In-process decision cache.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Protocol

from shared.logging import get_logger
from ..rules.models import CachedDecision


DEFAULT_TTL_SECONDS = 300  # 5 minutes


class DecisionCache(Protocol):
    """Storage for memoized permission decisions."""

    async def get(self, key: str) -> Optional[bool]:
        ...

    async def set(self, key: str, value: bool) -> None:
        ...

    async def invalidate(self) -> None:
        ...


class InMemoryDecisionCache:
    """Dict-backed decision cache with lazy TTL expiry.

    Entries older than ``ttl_seconds`` read as absent and are dropped on
    that read; nothing sweeps in the background. ``invalidate()`` clears
    every entry.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.logger = get_logger("permissions.cache.memory")
        self._clock = clock
        self._entries: Dict[str, CachedDecision] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> Optional[bool]:
        with self._lock:
            cached = self._entries.get(key)
            if cached is None:
                self._misses += 1
                return None

            if self._clock() - cached.timestamp >= self.ttl_seconds:
                del self._entries[key]
                self._misses += 1
                return None

            self._hits += 1
            return cached.value

    async def set(self, key: str, value: bool) -> None:
        with self._lock:
            self._entries[key] = CachedDecision(value=value, timestamp=self._clock())

    async def invalidate(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        self.logger.debug("Decision cache cleared", count=count)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total else 0.0,
                "ttl_seconds": self.ttl_seconds,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
