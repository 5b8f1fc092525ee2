# trigram_search/services/redis_cache.py
# Responsibility: Cache backends (in-process and Redis) for search results.

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as redis

from trigram_search.config.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60


class CacheProvider(ABC):
    """
    Key/value store with per-entry TTL. Values must be JSON-serializable.
    Implementations must be safe for concurrent use.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Returns the stored value, or None on a miss or expired entry."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Stores a value. A missing ttl means DEFAULT_TTL_SECONDS."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...


class MemoryCacheProvider(CacheProvider):
    """Per-process cache. Expired entries are evicted lazily on read."""

    def __init__(self):
        self._entries: Dict[str, Tuple[Any, float]] = {}

    async def get(self, key: str) -> Optional[Any]:
        item = self._entries.get(key)
        if item is None:
            return None
        value, expires_at = item
        if time.monotonic() > expires_at:
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds or DEFAULT_TTL_SECONDS
        self._entries[key] = (value, time.monotonic() + ttl)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def clear(self) -> None:
        self._entries.clear()


class RedisCacheProvider(CacheProvider):
    """
    Redis-backed cache shared between API workers.

    All keys are stored under `<key_prefix>:` so that `clear()` only removes
    this cache's entries instead of flushing the whole database.
    """

    def __init__(self, client: Optional[redis.Redis] = None, key_prefix: Optional[str] = None):
        """
        Initializes the Redis client using centralized settings.
        decode_responses=True ensures we get strings back, not bytes.
        """
        self.client = client or redis.from_url(settings.REDIS.URL, decode_responses=True)
        self.key_prefix = key_prefix or settings.REDIS.KEY_PREFIX

    def _namespaced(self, key: str) -> str:
        if key.startswith(f"{self.key_prefix}:"):
            return key
        return f"{self.key_prefix}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        cached_data = await self.client.get(self._namespaced(key))
        if cached_data is None:
            return None
        try:
            return json.loads(cached_data)
        except json.JSONDecodeError as e:
            # Treat a corrupt entry as a miss; the next write replaces it
            logger.warning("[Redis] Discarding undecodable cache entry %s: %s", key, e)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        json_data = json.dumps(value)
        await self.client.setex(self._namespaced(key), ttl_seconds or DEFAULT_TTL_SECONDS, json_data)

    async def delete(self, key: str) -> None:
        await self.client.delete(self._namespaced(key))

    async def clear(self) -> None:
        keys = [key async for key in self.client.scan_iter(match=f"{self.key_prefix}:*")]
        if keys:
            await self.client.delete(*keys)

    async def aclose(self) -> None:
        await self.client.aclose()
