# fastapi_routecache/backend/memcached.py

import hashlib
import logging
import time
from typing import Callable, Optional

import aiomcache

from .base import BaseCacheBackend

logger = logging.getLogger(__name__)

# memcached treats expiration times above 30 days as absolute unix timestamps
_MAX_RELATIVE_TTL = 60 * 60 * 24 * 30
_MAX_KEY_LENGTH = 250


class MemcachedCacheBackend(BaseCacheBackend):
    """
    Memcached cache backend implementation.
    Uses aiomcache for asynchronous memcached operations.

    Memcached has no namespaces, so each namespace is given a generation
    token stored under ``ns:<namespace>``. Keys embed the token; clearing a
    namespace replaces the token, leaving the old keys unreachable until
    memcached evicts them.
    """

    def __init__(
        self,
        client: aiomcache.Client,
        *,
        prefix: str = "",
        namespaces: bool = True,
        default_ttl: int = 86400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.prefix = prefix
        self.namespaces = namespaces
        self.default_ttl = default_ttl
        self._clock = clock

    def _encode_key(self, key: str) -> bytes:
        raw = key.encode("utf-8")
        if len(raw) > _MAX_KEY_LENGTH or any(c <= 32 or c == 127 for c in raw):
            return hashlib.sha1(raw).hexdigest().encode("ascii")
        return raw

    def _exptime(self, max_age: Optional[int]) -> int:
        # memcached reads an exptime of 0 as "never expire".
        ttl = max_age or self.default_ttl
        if ttl > _MAX_RELATIVE_TTL:
            return int(self._clock()) + ttl
        return ttl

    def _new_token(self) -> bytes:
        return str(time.time_ns()).encode("ascii")

    async def _namespace_token(self, namespace: Optional[str], rotate: bool = False) -> str:
        namespace = (namespace or "").strip("/")
        if not namespace or not self.namespaces:
            return ""

        ns_key = self._encode_key(f"{self.prefix}ns:{namespace}")

        if rotate:
            token = self._new_token()
            await self.client.set(ns_key, token)
            logger.debug("memcached namespace %s rotated to %s", namespace, token)
            return token.decode("ascii")

        token = await self.client.get(ns_key)
        if token is None:
            token = self._new_token()
            if not await self.client.add(ns_key, token):
                # Another worker created the namespace first; use theirs.
                token = await self.client.get(ns_key) or token

        return token.decode("ascii")

    async def _build_key(self, key: str, namespace: Optional[str]) -> bytes:
        token = await self._namespace_token(namespace)
        if token:
            return self._encode_key(f"{self.prefix}{token}_{key}")
        return self._encode_key(f"{self.prefix}{key}")

    async def read(self, key: str, namespace: Optional[str] = None) -> Optional[bytes]:
        memcached_key = await self._build_key(key, namespace)
        data = await self.client.get(memcached_key)

        if data is None:
            logger.debug("memcached found no data for key %r", memcached_key)
        else:
            logger.debug("memcached returned data for key %r", memcached_key)

        return data

    async def write(
        self,
        value: bytes,
        key: str,
        namespace: Optional[str] = None,
        max_age: Optional[int] = None,
    ) -> None:
        memcached_key = await self._build_key(key, namespace)
        await self.client.set(memcached_key, value, exptime=self._exptime(max_age))
        logger.debug("memcached wrote key %r", memcached_key)

    async def delete(self, key: str, namespace: Optional[str] = None) -> bool:
        memcached_key = await self._build_key(key, namespace)
        return bool(await self.client.delete(memcached_key))

    async def clear(self, namespace: Optional[str] = None) -> None:
        if namespace:
            if not self.namespaces:
                logger.warning(
                    "memcached namespaces are disabled, not clearing namespace %r", namespace
                )
                return
            await self._namespace_token(namespace, rotate=True)
            return

        await self.client.flush_all()
        logger.info("flushed all memcached entries")
