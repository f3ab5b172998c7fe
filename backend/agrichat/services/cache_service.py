# /agrichat/services/cache_service.py

import json
import logging
from typing import Any, Awaitable, Callable, Optional
import redis.asyncio as redis

from agrichat.config.settings import settings
from agrichat.utils.circuit_breaker import CircuitBreaker
from agrichat.utils.metrics import cache_operations

# Owns the shared Redis connection pool. Other services take `cache_service.redis`
# for their own keys; the helpers below are for best-effort caching where a
# Redis outage should degrade to a cache miss.

logger = logging.getLogger(__name__)


class CacheService:
    def __init__(self, redis_url: str):
        try:
            self.redis_pool = redis.ConnectionPool.from_url(redis_url, max_connections=20, decode_responses=True)
            self.redis = redis.Redis(connection_pool=self.redis_pool)
        except Exception as e:
            logger.critical(f"Failed to configure Redis at {redis_url}: {e}")
            self.redis = None
        self.circuit_breaker = CircuitBreaker("redis-cache")

    async def get(self, key: str) -> Optional[str]:
        if not self.redis:
            return None
        try:
            result = await self.circuit_breaker.call(self.redis.get, key)
            cache_operations.labels(operation="get", status="hit" if result else "miss").inc()
            return result
        except Exception as e:
            cache_operations.labels(operation="get", status="error").inc()
            logger.warning(f"Cache get failed for key {key}: {e}")
            return None

    async def set(self, key: str, value: str, ttl: int = 300):
        if not self.redis:
            return
        try:
            await self.circuit_breaker.call(self.redis.set, key, value, ex=ttl)
            cache_operations.labels(operation="set", status="success").inc()
        except Exception as e:
            cache_operations.labels(operation="set", status="error").inc()
            logger.warning(f"Cache set failed for key {key}: {e}")

    async def get_or_set(self, key: str, fetch_func: Callable[[], Awaitable[Any]], ttl: int = 300) -> Any:
        """Returns the cached JSON value for `key`, or computes, caches and returns it."""
        cached_value = await self.get(key)
        if cached_value is not None:
            try:
                return json.loads(cached_value)
            except json.JSONDecodeError:
                logger.warning(f"Discarding undecodable cache entry {key}")

        fetched_value = await fetch_func()
        await self.set(key, json.dumps(fetched_value, default=str), ttl)
        return fetched_value

    async def ping(self) -> bool:
        if not self.redis:
            return False
        return bool(await self.redis.ping())

    async def close(self):
        if self.redis:
            await self.redis.aclose()


# Globally accessible instance
cache_service = CacheService(settings.redis_url)
