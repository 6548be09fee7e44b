"""
Redis Cache Module

Response caching for the analytics API:
- Connection pooling
- JSON serialization
- Namespaced keys with TTL
- Two-tier dashboard cache (in-process dedup + Redis)
"""

import hashlib
import json
import time
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

import structlog
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from backoffice.analytics.exceptions import CacheFailure
from backoffice.analytics.periods import DashboardFilters
from backoffice.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()

# Global Redis connection
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


async def init_redis() -> Redis:
    """Initialize Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client

    _redis_pool = ConnectionPool.from_url(
        settings.redis.get_url(),
        max_connections=settings.redis.max_connections,
        socket_timeout=settings.redis.socket_timeout,
        decode_responses=settings.redis.decode_responses,
    )
    _redis_client = Redis(connection_pool=_redis_pool)

    try:
        await _redis_client.ping()
        logger.info("Redis connection established", host=settings.redis.host)
    except RedisError as e:
        logger.error("Redis connection failed", error=str(e))
        await close_redis()
        raise

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool is not None:
        await _redis_pool.disconnect()
        _redis_pool = None

    logger.info("Redis connection closed")


def get_redis() -> Redis:
    """Get Redis client instance"""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


def _client(operation: str, key: str) -> Redis:
    if _redis_client is None:
        raise CacheFailure(operation, key, "redis not initialized")
    return _redis_client


async def cache_get(key: str) -> Optional[Any]:
    """
    Get value from cache.

    Args:
        key: Cache key

    Returns:
        Cached value or None if not found

    Raises:
        CacheFailure: If Redis is unavailable
    """
    client = _client("get", key)
    try:
        value = await client.get(key)
    except RedisError as e:
        raise CacheFailure("get", key, str(e)) from e

    if value is None:
        return None

    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


async def cache_set(
    key: str,
    value: Any,
    ttl: Optional[Union[int, timedelta]] = None,
) -> bool:
    """
    Set value in cache.

    Args:
        key: Cache key
        value: Value to cache (will be JSON serialized)
        ttl: Time-to-live in seconds or timedelta

    Returns:
        True if successful, False if the value is not serializable

    Raises:
        CacheFailure: If Redis is unavailable
    """
    client = _client("set", key)

    try:
        serialized = json.dumps(value, default=str)
    except (TypeError, ValueError) as e:
        logger.warning("Failed to serialize value for cache", key=key, error=str(e))
        return False

    if isinstance(ttl, timedelta):
        ttl = int(ttl.total_seconds())

    try:
        if ttl:
            await client.setex(key, ttl, serialized)
        else:
            await client.set(key, serialized)
    except RedisError as e:
        raise CacheFailure("set", key, str(e)) from e

    return True


async def cache_delete_pattern(pattern: str) -> int:
    """Delete all keys matching pattern"""
    client = _client("delete", pattern)
    try:
        keys = [key async for key in client.scan_iter(match=pattern)]
        if not keys:
            return 0
        return await client.delete(*keys)
    except RedisError as e:
        raise CacheFailure("delete", pattern, str(e)) from e


class CacheManager:
    """
    Cache manager with namespace support and automatic key generation.

    Example:
        cache = CacheManager("analytics")
        await cache.set("store-1:dashboard:abc", payload, ttl=300)
        payload = await cache.get("store-1:dashboard:abc")
    """

    def __init__(self, namespace: str, default_ttl: int = 3600):
        self.namespace = namespace
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        """Generate namespaced key"""
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        return await cache_get(self._key(key))

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        return await cache_set(self._key(key), value, ttl or self.default_ttl)

    async def invalidate(self, pattern: str) -> int:
        """Delete every key in the namespace matching ``pattern``."""
        return await cache_delete_pattern(self._key(pattern))


def dashboard_cache_key(store_id: str, filters: DashboardFilters) -> str:
    """``{store_id}:dashboard:{sha1}`` of the sorted filter signature, relative to the namespace."""
    signature = json.dumps(filters.signature(), sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha1(signature.encode("utf-8")).hexdigest()
    return f"{store_id}:dashboard:{digest}"


class DashboardCache:
    """
    Two-tier cache for assembled dashboard payloads.

    A short in-process tier absorbs bursts of identical requests; Redis
    holds the payload for the longer TTL. Redis errors never fail the
    request: they are logged and treated as a miss.
    """

    def __init__(
        self,
        manager: Optional[CacheManager] = None,
        dedup_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        analytics = settings.analytics
        self.manager = manager or CacheManager("analytics", default_ttl=analytics.dashboard_cache_ttl)
        self.dedup_ttl = analytics.request_dedup_ttl if dedup_ttl is None else dedup_ttl
        self.clock = clock
        self._recent: Dict[str, Tuple[float, Any]] = {}

    def key(self, store_id: str, filters: DashboardFilters) -> str:
        return f"{self.manager.namespace}:{dashboard_cache_key(store_id, filters)}"

    def _local_get(self, key: str) -> Optional[Any]:
        entry = self._recent.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self.clock() - stored_at >= self.dedup_ttl:
            self._recent.pop(key, None)
            return None
        return value

    def _local_set(self, key: str, value: Any) -> None:
        now = self.clock()
        expired = [k for k, (stored_at, _) in self._recent.items() if now - stored_at >= self.dedup_ttl]
        for k in expired:
            del self._recent[k]
        self._recent[key] = (now, value)

    async def get(self, store_id: str, filters: DashboardFilters) -> Optional[Any]:
        relative = dashboard_cache_key(store_id, filters)
        key = f"{self.manager.namespace}:{relative}"

        value = self._local_get(key)
        if value is not None:
            logger.debug("Dashboard served from dedup tier", store_id=store_id)
            return value

        try:
            value = await self.manager.get(relative)
        except CacheFailure as e:
            logger.warning("Dashboard cache read failed", store_id=store_id, error=e.message)
            return None

        if value is not None:
            logger.debug("Dashboard cache hit", store_id=store_id)
            self._local_set(key, value)
        return value

    async def set(self, store_id: str, filters: DashboardFilters, payload: Any) -> None:
        relative = dashboard_cache_key(store_id, filters)
        self._local_set(f"{self.manager.namespace}:{relative}", payload)
        try:
            await self.manager.set(relative, payload)
        except CacheFailure as e:
            logger.warning("Dashboard cache write failed", store_id=store_id, error=e.message)

    async def get_or_compute(
        self,
        store_id: str,
        filters: DashboardFilters,
        factory: Callable[[], Awaitable[Any]],
    ) -> Any:
        cached = await self.get(store_id, filters)
        if cached is not None:
            return cached

        payload = await factory()
        await self.set(store_id, filters, payload)
        return payload

    async def invalidate(self, store_id: str) -> int:
        """Drop every cached dashboard of ``store_id`` from both tiers."""
        prefix = f"{self.manager.namespace}:{store_id}:dashboard:"
        for key in [k for k in self._recent if k.startswith(prefix)]:
            del self._recent[key]
        try:
            return await self.manager.invalidate(f"{store_id}:dashboard:*")
        except CacheFailure as e:
            logger.warning("Dashboard cache invalidation failed", store_id=store_id, error=e.message)
            return 0


dashboard_cache = DashboardCache()
