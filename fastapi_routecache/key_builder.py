# fastapi_routecache/key_builder.py

from __future__ import annotations

import hashlib
import inspect
import json
from datetime import datetime, date, time
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Optional, Protocol
from uuid import UUID

from pydantic import BaseModel

from fastapi_routecache.exceptions import CacheConfigError, ErrorCode


class KeyBuilder(Protocol):
    """
    Interface for storage key builders.
    """

    def build(self, key: str) -> str:
        """
        Turn a caller supplied cache key into a storage key.

        :param key: The key as given to Cache.read / Cache.write.
        :return: The key used by the backend.
        """
        ...


class HashedKeyBuilder:
    """
    Hashes keys and optionally interlaces the digest into nested directories.

    With ``interlace=3`` the digest ``abcdef...`` becomes ``a/b/c/def...``
    so a single cache directory never collects every entry.
    """

    def __init__(self, algorithm: str = "sha1", interlace: int = 0) -> None:
        try:
            hashlib.new(algorithm)
        except (ValueError, TypeError) as e:
            raise CacheConfigError(
                f"Unknown key hash algorithm {algorithm!r} configured",
                ErrorCode.UNKNOWN,
            ) from e

        if interlace < 0:
            raise CacheConfigError(
                f"Key interlace must be zero or positive, got {interlace}",
                ErrorCode.INVALID,
            )

        self.algorithm = algorithm
        self.interlace = interlace

    def build(self, key: str) -> str:
        digest = hashlib.new(self.algorithm, key.encode("utf-8")).hexdigest()

        if not self.interlace:
            return digest

        head = digest[: self.interlace]
        tail = digest[self.interlace:]
        return "/".join(head) + "/" + tail


class ArgumentKeyBuilder:
    """
    Derives a cache key from a function call.
    Constructs the key from the function's module, name,
    and a hash of its bound arguments.
    """

    def build(
        self,
        func: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
        excluded: Optional[set[str]] = None,
    ) -> str:
        """
        Build a cache key based on the function and its arguments.
        :param func: The target function being cached.
        :param args: Positional arguments passed to the function.
        :param kwargs: Keyword arguments passed to the function.
        :param excluded: Argument names left out of the key.

        :return: A string representing the cache key.
        """
        arguments = self._normalize_arguments(func, args, kwargs, excluded or set())
        return f"{func.__module__}.{func.__qualname__}:{self._hash(arguments)}"

    def _normalize_arguments(
        self,
        func: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
        excluded: set[str],
    ) -> dict[str, Any]:
        sig = inspect.signature(func)
        bound = sig.bind_partial(*args, **kwargs)
        bound.apply_defaults()

        return {
            name: self._make_json_safe(value)
            for name, value in bound.arguments.items()
            if name not in excluded
        }

    def _make_json_safe(self, obj: Any) -> Any:
        """
        Recursively convert an object into a JSON-serializable structure.
        :param obj: The object to convert.
        :return: A JSON-serializable representation of the object.
        """
        if isinstance(obj, (str, int, float, bool)) or obj is None:
            return obj

        if isinstance(obj, (datetime, date, time)):
            return obj.isoformat()

        if isinstance(obj, (UUID, Decimal)):
            return str(obj)

        if isinstance(obj, Enum):
            return obj.value

        if isinstance(obj, bytes):
            return obj.decode("utf-8", errors="replace")

        if isinstance(obj, BaseModel):
            return self._make_json_safe(obj.model_dump())

        if isinstance(obj, (list, tuple)):
            return [self._make_json_safe(item) for item in obj]

        if isinstance(obj, dict):
            return {
                str(key): self._make_json_safe(value)
                for key, value in obj.items()
            }

        return repr(obj)

    def _hash(self, data: dict[str, Any]) -> str:
        raw = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()
