# fastapi_routecache/backend/base.py

"""
Abstract base class for cache backends.
Defines the interface that all cache backends must implement.
"""

from abc import ABC, abstractmethod
from typing import Optional


class BaseCacheBackend(ABC):
    """
    Abstract base class for cache backends.
    Entries are addressed by (namespace, key) and hold opaque bytes.
    """

    #: False only for the backend that stands in for a disabled cache.
    enabled: bool = True

    @abstractmethod
    async def read(self, key: str, namespace: Optional[str] = None) -> Optional[bytes]:
        """
        Retrieve a value from the cache.

        :param key: The key to look up in the cache.
        :param namespace: Optional namespace the key lives in.
        :return: The cached bytes, or None if missing or expired.
        """
        raise NotImplementedError

    @abstractmethod
    async def write(
        self,
        value: bytes,
        key: str,
        namespace: Optional[str] = None,
        max_age: Optional[int] = None,
    ) -> None:
        """
        Store a value, overwriting any existing entry.
        :param value: The bytes to store.
        :param key: The key under which to store the value.
        :param namespace: Optional namespace.
        :param max_age: Optional age in seconds after which the entry expires.
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str, namespace: Optional[str] = None) -> bool:
        """
        Delete one entry.
        :return: True if an entry was removed.
        """
        raise NotImplementedError

    @abstractmethod
    async def clear(self, namespace: Optional[str] = None) -> None:
        """
        Clear the cache, optionally within a specific namespace.
        :param namespace: Optional namespace to clear.
        """
        raise NotImplementedError

    async def size(self) -> int:
        """Total bytes held by the cache."""
        raise NotImplementedError(f"{type(self).__name__} cannot report its size")

    async def count(self) -> int:
        """Number of entries held by the cache."""
        raise NotImplementedError(f"{type(self).__name__} cannot report its entry count")
