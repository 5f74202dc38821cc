# fastapi_routecache/backend/redis.py

from typing import Optional

import redis.asyncio as redis

from .base import BaseCacheBackend


class RedisCacheBackend(BaseCacheBackend):
    """
    Redis cache backend implementation.
    Uses redis-py for asynchronous Redis operations; expiry is native (EX).
    """

    def __init__(
        self,
        client: redis.Redis,
        key_prefix: str = "routecache",
        default_ttl: int = 86400,
    ) -> None:
        self.client = client
        self.key_prefix = key_prefix
        self.default_ttl = default_ttl

    def _build_key(self, key: str, namespace: Optional[str]) -> str:
        namespace = (namespace or "").strip("/")
        if namespace:
            return f"{self.key_prefix}:{namespace}:{key}"
        return f"{self.key_prefix}:{key}"

    async def read(self, key: str, namespace: Optional[str] = None) -> Optional[bytes]:
        return await self.client.get(self._build_key(key, namespace))

    async def write(
        self,
        value: bytes,
        key: str,
        namespace: Optional[str] = None,
        max_age: Optional[int] = None,
    ) -> None:
        ttl = self.default_ttl if max_age is None else max_age
        await self.client.set(name=self._build_key(key, namespace), value=value, ex=ttl)

    async def delete(self, key: str, namespace: Optional[str] = None) -> bool:
        return bool(await self.client.delete(self._build_key(key, namespace)))

    async def clear(self, namespace: Optional[str] = None) -> None:
        """
        Clear cache keys.
        WARNING: Uses KEYS command (acceptable for explicit eviction).
        """
        namespace = (namespace or "").strip("/")
        pattern = (
            f"{self.key_prefix}:{namespace}:*"
            if namespace
            else f"{self.key_prefix}:*"
        )

        keys = await self.client.keys(pattern)
        if keys:
            await self.client.delete(*keys)
