"""Pytest configuration and fixtures for fastapi-routecache tests."""

from typing import Optional

import pytest

from fastapi_routecache.backend.file import FileCacheBackend
from fastapi_routecache.cache import Cache
from fastapi_routecache.config import CacheConfig, CacheSettings
from fastapi_routecache.key_builder import HashedKeyBuilder


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMemcached:
    """In-memory stand-in for aiomcache.Client."""

    def __init__(self):
        self.data: dict[bytes, bytes] = {}
        self.exptimes: dict[bytes, int] = {}
        self.flushed = 0

    async def get(self, key: bytes, default: Optional[bytes] = None) -> Optional[bytes]:
        assert isinstance(key, bytes)
        return self.data.get(key, default)

    async def set(self, key: bytes, value: bytes, exptime: int = 0) -> bool:
        self.data[key] = value
        self.exptimes[key] = exptime
        return True

    async def add(self, key: bytes, value: bytes, exptime: int = 0) -> bool:
        if key in self.data:
            return False
        return await self.set(key, value, exptime)

    async def delete(self, key: bytes) -> bool:
        return self.data.pop(key, None) is not None

    async def flush_all(self) -> None:
        self.flushed += 1
        self.data.clear()


@pytest.fixture(autouse=True)
def reset_cache_config():
    """Every test starts without a configured global cache."""
    CacheConfig.reset()
    yield
    CacheConfig.reset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def file_backend(tmp_path, clock):
    return FileCacheBackend(tmp_path / "cache", max_age=100, clock=clock)


@pytest.fixture
def settings(tmp_path):
    return CacheSettings(method="file", root=tmp_path / "cache", max_age=100)


@pytest.fixture
def cache(file_backend, settings):
    return Cache(file_backend, settings)


@pytest.fixture
def interlaced_builder():
    return HashedKeyBuilder("sha1", interlace=3)


@pytest.fixture
def fake_memcached():
    return FakeMemcached()
