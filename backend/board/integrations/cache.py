"""Cache service with Protocol pattern for dependency injection.

Provides RedisCacheService (shared cache) and MemoryCacheService (single
process fallback). Both back the rendered-view cache and the draft store.
"""

import json
import logging
import threading
import time
from typing import Protocol

import redis

logger = logging.getLogger(__name__)

VIEW_PREFIX = "view:"


class CacheService(Protocol):
    """Cache service interface."""

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str, ttl: int) -> None: ...
    def delete(self, key: str) -> None: ...
    def delete_prefix(self, prefix: str) -> int: ...
    def get_json(self, key: str) -> dict | None: ...
    def set_json(self, key: str, data: dict, ttl: int) -> None: ...


def _loads(raw: str | None) -> dict | None:
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    return data if isinstance(data, dict) else None


class RedisCacheService:
    """Redis-backed cache implementation."""

    def __init__(self, redis_url: str) -> None:
        self._client = redis.from_url(redis_url, decode_responses=True)
        self._client.ping()

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(key)
        except redis.RedisError:
            logger.warning("Redis GET failed for %s", key)
            return None

    def set(self, key: str, value: str, ttl: int) -> None:
        try:
            self._client.setex(key, ttl, value)
        except redis.RedisError:
            logger.warning("Redis SETEX failed for %s", key)

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError:
            logger.warning("Redis DEL failed for %s", key)

    def delete_prefix(self, prefix: str) -> int:
        try:
            keys = list(self._client.scan_iter(match=f"{prefix}*"))
            if keys:
                self._client.delete(*keys)
            return len(keys)
        except redis.RedisError:
            logger.warning("Redis prefix delete failed for %s", prefix)
            return 0

    def get_json(self, key: str) -> dict | None:
        return _loads(self.get(key))

    def set_json(self, key: str, data: dict, ttl: int) -> None:
        self.set(key, json.dumps(data, ensure_ascii=False), ttl)


class MemoryCacheService:
    """In-process cache with per-key expiry, for development and tests."""

    def __init__(self) -> None:
        self._items: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at <= time.monotonic():
                del self._items[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            self._items[key] = (value, time.monotonic() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._items if k.startswith(prefix)]
            for k in keys:
                del self._items[k]
            return len(keys)

    def get_json(self, key: str) -> dict | None:
        return _loads(self.get(key))

    def set_json(self, key: str, data: dict, ttl: int) -> None:
        self.set(key, json.dumps(data, ensure_ascii=False), ttl)


def create_cache_service(redis_url: str) -> CacheService:
    """Factory: Redis when configured and reachable, otherwise in-process memory."""
    if not redis_url:
        logger.info("REDIS_URL not set, using in-process cache")
        return MemoryCacheService()
    try:
        cache = RedisCacheService(redis_url)
        logger.info("Redis connected: %s", redis_url)
        return cache
    except redis.RedisError as e:
        logger.warning("Redis unavailable (%s), using in-process cache", e)
        return MemoryCacheService()


def view_key(path: str, variant: str = "") -> str:
    return f"{VIEW_PREFIX}{path}|{variant}"


def revalidate_path(cache: CacheService, path: str) -> None:
    """Mark the view at ``path`` stale by dropping every cached variant of it."""
    dropped = cache.delete_prefix(f"{VIEW_PREFIX}{path}|")
    logger.debug("Revalidated %s (%d cached entries dropped)", path, dropped)
