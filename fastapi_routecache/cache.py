# fastapi_routecache/cache.py

"""
Namespaced read-through cache used for rendered pages and computed values.

The facade validates arguments, picks the storage key and absorbs backend
failures: a broken cache degrades to misses and never fails the request
it sits in front of.
"""

import logging
from typing import Optional, TypeVar, Union

from starlette.requests import Request
from starlette.responses import Response

from fastapi_routecache.backend.base import BaseCacheBackend
from fastapi_routecache.config import CacheConfig, CacheSettings
from fastapi_routecache.exceptions import CacheError, CacheNotInitializedError, ErrorCode
from fastapi_routecache.key_builder import HashedKeyBuilder, KeyBuilder

logger = logging.getLogger(__name__)

V = TypeVar("V", str, bytes)

PAGE_NAMESPACE = "htmlpage"


def _etag_matches(header: Optional[str], etag: str) -> bool:
    if not header:
        return False
    if header.strip() == "*":
        return True
    for candidate in header.split(","):
        candidate = candidate.strip()
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate.strip('"') == etag:
            return True
    return False


class Cache:
    """
    Front end over a cache backend.

    ``read`` returns ``None`` on a miss; ``write`` always hands back the value
    it was given, whether or not it could be stored.
    """

    def __init__(
        self,
        backend: BaseCacheBackend,
        settings: Optional[CacheSettings] = None,
    ) -> None:
        self.backend = backend
        self.settings = settings or CacheSettings()
        self.key_builder: KeyBuilder = getattr(backend, "key_builder", None) or HashedKeyBuilder(
            self.settings.key_hash, self.settings.key_interlace
        )

    @property
    def enabled(self) -> bool:
        return self.backend.enabled

    def key_hash(self, key: str) -> str:
        """Return the storage key (hashed, optionally interlaced) for ``key``."""
        return self.key_builder.build(key)

    async def read(self, key: str, namespace: Optional[str] = None) -> Optional[bytes]:
        if not key:
            raise CacheError("No cache key specified", ErrorCode.NOT_SPECIFIED)

        if not self.enabled:
            return None

        try:
            return await self.backend.read(key, namespace)
        except CacheError:
            raise
        except Exception:
            logger.exception("cache read failed for %r in namespace %r", key, namespace)
            return None

    async def write(
        self,
        value: V,
        key: str,
        namespace: Optional[str] = None,
        max_age: Optional[int] = None,
    ) -> V:
        if not self.enabled:
            return value

        if not max_age:
            max_age = self.settings.max_age

        try:
            if not key:
                raise CacheError("No cache key specified", ErrorCode.NOT_SPECIFIED)

            data = value.encode("utf-8") if isinstance(value, str) else value
            await self.backend.write(data, key, namespace, max_age)
        except Exception:
            # Failing to cache is not fatal; carry on without it.
            logger.exception("cache write failed for %r in namespace %r", key, namespace)

        return value

    async def delete(self, key: str, namespace: Optional[str] = None) -> bool:
        if not self.enabled:
            return False
        return await self.backend.delete(key, namespace)

    async def clear(self, key: Optional[str] = None, namespace: Optional[str] = None) -> None:
        """Clear one entry, one namespace, or the entire cache."""
        if not self.enabled:
            return

        if key:
            await self.backend.delete(key, namespace)
            logger.info("cleared cache key %r in namespace %r", key, namespace)
        else:
            await self.backend.clear(namespace)
            logger.info("cleared cache namespace %r", namespace or "*")

    async def size(self) -> int:
        return await self.backend.size()

    async def count(self) -> int:
        return await self.backend.count()

    async def show_page(
        self,
        request: Request,
        key: Optional[str] = None,
        namespace: Optional[str] = PAGE_NAMESPACE,
        etag: Optional[str] = None,
    ) -> Optional[Response]:
        """
        Return a response for a cached page, or None to render it normally.

        If the client already holds ``etag`` a bodyless 304 is returned
        before the cache is even consulted.
        """
        if not self.enabled:
            return None

        key = key or request.url.path
        request.state.page_cache_key = key

        headers = {"Cache-Control": f"max-age={self.settings.max_age}"}
        if etag:
            headers["ETag"] = f'"{etag}"'
            if _etag_matches(request.headers.get("if-none-match"), etag):
                return Response(status_code=304, headers=headers)

        value = await self.read(key, namespace)
        if value is None:
            return None

        logger.debug("serving page %r from cache", key)
        return Response(content=value, media_type="text/html", headers=headers)


def get_cache() -> Cache:
    """
    Return a Cache over the backend configured with CacheConfig.init().

    Raises:
        CacheNotInitializedError: If CacheConfig.init() has not been called
    """
    if not CacheConfig.is_initialized():
        raise CacheNotInitializedError(
            "CacheConfig is not initialized. Call CacheConfig.init(...) at startup."
        )
    return Cache(CacheConfig.get_backend(), CacheConfig.get_settings())
