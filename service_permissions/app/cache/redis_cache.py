"""
Redis caching layer for permission decisions.
"""

from typing import Dict, Any, Optional

import redis.asyncio as redis
from shared.logging import get_logger
from shared.errors import CacheError
from .memory_cache import DEFAULT_TTL_SECONDS


class RedisDecisionCache:
    """Redis-backed decision cache shared between engine processes.

    Decisions are stored as ``"1"``/``"0"`` under ``prefix + key`` with a
    ``SETEX`` expiry, so Redis enforces the TTL. Errors are raised as
    ``CacheError``; the engine treats them as a miss.
    """

    def __init__(
        self,
        redis_url: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        prefix: str = "permission:",
    ):
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix
        self.logger = get_logger("permissions.cache.redis")
        self.redis: Optional[redis.Redis] = None

    async def start(self):
        """Start the Redis cache."""
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )

            await self.redis.ping()

            self.logger.info("Redis cache started")

        except Exception as e:
            self.logger.error("Failed to start Redis cache", error=str(e))
            raise CacheError("Failed to start Redis cache", {"error": str(e)}) from e

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis:
            await self.redis.close()
            self.redis = None
            self.logger.info("Redis cache stopped")

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise CacheError("Redis cache not started")
        return self.redis

    async def get(self, key: str) -> Optional[bool]:
        """Get a cached decision."""
        try:
            cached = await self._client().get(self.prefix + key)
        except CacheError:
            raise
        except Exception as e:
            raise CacheError("Error reading cached decision", {"key": key, "error": str(e)}) from e

        if cached is None:
            return None
        if cached not in ("0", "1"):
            # Unreadable entry reads as a miss.
            self.logger.warning("Discarding malformed cache entry", key=key, value=cached)
            return None

        self.logger.debug("Cache hit for decision", key=key)
        return cached == "1"

    async def set(self, key: str, value: bool) -> None:
        """Cache a decision for ``ttl_seconds``."""
        try:
            await self._client().setex(self.prefix + key, self.ttl_seconds, "1" if value else "0")
        except CacheError:
            raise
        except Exception as e:
            raise CacheError("Error caching decision", {"key": key, "error": str(e)}) from e

    async def invalidate(self) -> None:
        """Delete every cached decision under the prefix."""
        client = self._client()
        try:
            keys = [key async for key in client.scan_iter(match=f"{self.prefix}*")]
            if keys:
                await client.delete(*keys)
        except Exception as e:
            raise CacheError("Error invalidating decisions", {"error": str(e)}) from e

        self.logger.info("Invalidated cached decisions", count=len(keys))

    async def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        client = self._client()
        info = await client.info()
        keys = [key async for key in client.scan_iter(match=f"{self.prefix}*")]

        return {
            "redis_version": info.get("redis_version"),
            "used_memory": info.get("used_memory_human"),
            "keyspace_hits": info.get("keyspace_hits"),
            "keyspace_misses": info.get("keyspace_misses"),
            "decision_keys": len(keys),
            "hit_rate": self._calculate_hit_rate(info)
        }

    def _calculate_hit_rate(self, info: Dict[str, Any]) -> float:
        """Calculate cache hit rate."""
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        total = hits + misses

        if total == 0:
            return 0.0

        return hits / total

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self._client().ping()
            return True
        except Exception:
            return False
