# fastapi_routecache/config.py

import logging
from pathlib import Path
from typing import Any, Optional

import aiomcache
import redis.asyncio as redis
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fastapi_routecache.backend.base import BaseCacheBackend
from fastapi_routecache.backend.disabled import DisabledCacheBackend
from fastapi_routecache.backend.file import FileCacheBackend
from fastapi_routecache.backend.memcached import MemcachedCacheBackend
from fastapi_routecache.backend.redis import RedisCacheBackend
from fastapi_routecache.exceptions import CacheConfigError, ErrorCode
from fastapi_routecache.key_builder import HashedKeyBuilder
from fastapi_routecache.serializer import SerializationFormat, set_default_format

logger = logging.getLogger(__name__)

_DISABLED_VALUES = {"", "0", "false", "no", "off", "none", "disabled"}


class CacheSettings(BaseSettings):
    """
    Cache configuration, read from ``ROUTECACHE_*`` environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="ROUTECACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    method: Optional[str] = Field(default="file")
    root: Path = Field(default=Path("data/cache"))
    max_age: int = Field(default=86400, ge=1)
    key_hash: str = Field(default="sha1")
    key_interlace: int = Field(default=0, ge=0)

    memcached_server: str = Field(default="localhost:11211")
    memcached_prefix: str = Field(default="")
    memcached_namespaces: bool = Field(default=True)

    redis_url: str = Field(default="redis://localhost:6379/0")
    key_prefix: str = Field(default="routecache")

    @field_validator("method", mode="before")
    @classmethod
    def _normalize_method(cls, value: Any) -> Optional[str]:
        # ``method = false`` disables caching entirely
        if value is None or value is False:
            return None
        if value is True:
            return "file"
        value = str(value).strip().lower()
        return None if value in _DISABLED_VALUES else value

    @property
    def enabled(self) -> bool:
        return self.method is not None


def create_backend(settings: CacheSettings) -> BaseCacheBackend:
    """
    Build the backend selected by ``settings.method``.

    Raises:
        CacheConfigError: If the method is not a known backend
    """
    if settings.method is None:
        return DisabledCacheBackend()

    if settings.method == "file":
        return FileCacheBackend(
            settings.root,
            max_age=settings.max_age,
            key_builder=HashedKeyBuilder(settings.key_hash, settings.key_interlace),
        )

    if settings.method == "memcached":
        host, _, port = settings.memcached_server.partition(":")
        client = aiomcache.Client(host, int(port or 11211))
        return MemcachedCacheBackend(
            client,
            prefix=settings.memcached_prefix,
            namespaces=settings.memcached_namespaces,
            default_ttl=settings.max_age,
        )

    if settings.method == "redis":
        return RedisCacheBackend(
            redis.Redis.from_url(settings.redis_url),
            key_prefix=settings.key_prefix,
            default_ttl=settings.max_age,
        )

    raise CacheConfigError(
        f"Unknown cache method {settings.method!r} specified", ErrorCode.UNKNOWN
    )


class CacheConfig:
    """
    Global cache configuration holder.

    This class manages the active cache backend and the settings
    used by the Cache facade and the cache decorators.
    """

    _backend: Optional[BaseCacheBackend] = None
    _settings: Optional[CacheSettings] = None
    _initialized: bool = False

    @classmethod
    def init(
        cls,
        backend: Optional[BaseCacheBackend] = None,
        *,
        settings: Optional[CacheSettings] = None,
        default_serialization_format: Optional[SerializationFormat] = None,
    ) -> None:
        """
        Initialize the cache configuration.

        This MUST be called once at application startup.

        Args:
            backend: Cache backend implementation; built from settings when omitted
            settings: Cache settings; read from the environment when omitted
            default_serialization_format: Optional default serialization format

        Raises:
            CacheConfigError: If backend is invalid or config already initialized
        """
        if cls._initialized:
            raise CacheConfigError("CacheConfig is already initialized.")

        settings = settings or CacheSettings()
        if backend is None:
            backend = create_backend(settings)

        if not isinstance(backend, BaseCacheBackend):
            raise CacheConfigError(
                "Provided backend does not implement BaseCacheBackend.",
                ErrorCode.INVALID,
            )

        cls._backend = backend
        cls._settings = settings
        if default_serialization_format is not None:
            set_default_format(default_serialization_format)
        cls._initialized = True
        logger.info("cache initialized with %s", type(backend).__name__)

    @classmethod
    def is_initialized(cls) -> bool:
        """Check whether the cache configuration is initialized."""
        return cls._initialized

    @classmethod
    def get_backend(cls) -> BaseCacheBackend:
        """
        Get the configured cache backend.

        Raises:
            CacheConfigError: If config is not initialized
        """
        if not cls._initialized or cls._backend is None:
            raise CacheConfigError(
                "CacheConfig is not initialized. Call CacheConfig.init() first."
            )
        return cls._backend

    @classmethod
    def get_settings(cls) -> CacheSettings:
        if not cls._initialized or cls._settings is None:
            raise CacheConfigError(
                "CacheConfig is not initialized. Call CacheConfig.init() first."
            )
        return cls._settings

    @classmethod
    def reset(cls) -> None:
        """
        Reset cache configuration.

        Intended for testing ONLY.
        """
        cls._backend = None
        cls._settings = None
        cls._initialized = False
