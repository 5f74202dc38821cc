from .base import BaseCacheBackend
from .disabled import DisabledCacheBackend
from .file import FileCacheBackend

__all__ = ["BaseCacheBackend", "DisabledCacheBackend", "FileCacheBackend"]
