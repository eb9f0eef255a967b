"""Shared Redis connection and the display-data cache built on it."""

import json
from typing import Any, cast

import redis
import structlog

from app.config import settings

logger = structlog.get_logger(__name__)

# One client per process; the underlying pool is thread-safe
_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """Return the process-wide Redis client, creating it on first use."""
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            username=settings.redis_username,
            password=settings.redis_password or None,
            decode_responses=True,
            socket_connect_timeout=settings.redis_socket_timeout,
            socket_timeout=settings.redis_socket_timeout,
            socket_keepalive=True,
            health_check_interval=30,
        )
        logger.debug(
            "redis_client_created",
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    try:
        return bool(get_redis_client().ping())
    except redis.RedisError:
        return False


def close_redis_connection() -> None:
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


class CacheManager:
    """
    JSON cache for public business profiles.

    Redis is optional for correctness: every operation degrades to a miss
    (or a no-op) on Redis errors and callers fall back to the database.
    Keys are prefixed with a namespace so the cache can share a Redis
    database with the event channel.
    """

    def __init__(self, redis_client: redis.Redis, namespace: str | None = None):
        self.redis = redis_client
        self.namespace = namespace or settings.cache_namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get_json(self, key: str) -> Any | None:
        """Cached value for ``key``, or None on a miss or a Redis failure."""
        try:
            raw = cast(str | None, self.redis.get(self._key(key)))
        except redis.RedisError as e:
            logger.warning("cache_read_failed", key=key, error=str(e))
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            # A corrupt entry is treated as a miss and overwritten on refill
            logger.warning("cache_entry_corrupt", key=key)
            return None

    def set_json(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Store ``value`` as JSON.

        Dates, times, UUIDs and decimals are written with ``str``. Returns
        False when Redis refused the write.
        """
        payload = json.dumps(value, default=str)
        try:
            if ttl:
                self.redis.setex(self._key(key), ttl, payload)
            else:
                self.redis.set(self._key(key), payload)
        except redis.RedisError as e:
            logger.warning("cache_write_failed", key=key, error=str(e))
            return False
        return True

    def delete(self, key: str) -> bool:
        try:
            self.redis.delete(self._key(key))
        except redis.RedisError as e:
            logger.warning("cache_delete_failed", key=key, error=str(e))
            return False
        return True


def get_cache_manager() -> CacheManager:
    """Dependency returning a cache manager over the shared Redis client."""
    return CacheManager(get_redis_client())
