# fastapi_routecache/backend/disabled.py

from typing import Optional

from .base import BaseCacheBackend


class DisabledCacheBackend(BaseCacheBackend):
    """
    Backend used when the cache method is configured as false.
    Every read misses and every write is dropped.
    """

    enabled = False

    async def read(self, key: str, namespace: Optional[str] = None) -> Optional[bytes]:
        return None

    async def write(
        self,
        value: bytes,
        key: str,
        namespace: Optional[str] = None,
        max_age: Optional[int] = None,
    ) -> None:
        return None

    async def delete(self, key: str, namespace: Optional[str] = None) -> bool:
        return False

    async def clear(self, namespace: Optional[str] = None) -> None:
        return None
