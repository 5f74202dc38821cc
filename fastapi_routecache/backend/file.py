# fastapi_routecache/backend/file.py

import logging
import os
import shutil
import time
from pathlib import Path, PurePosixPath
from typing import Callable, Optional, Union

from .base import BaseCacheBackend
from fastapi_routecache.exceptions import CacheError, CacheWriteError, ErrorCode
from fastapi_routecache.key_builder import HashedKeyBuilder, KeyBuilder

logger = logging.getLogger(__name__)


class FileCacheBackend(BaseCacheBackend):
    """
    Flat file cache backend.

    Each entry is stored at ``<root>/<namespace>/<hashed key>`` and its mtime
    is the freshness timestamp. Writes are plain (no locking, no rename), so
    concurrent writers race and the last one wins.

    File I/O runs directly on the event loop; entries are expected to be
    small page bodies.
    """

    def __init__(
        self,
        root: Union[str, Path],
        *,
        max_age: int = 86400,
        key_builder: Optional[KeyBuilder] = None,
        dir_mode: int = 0o770,
        file_mode: int = 0o660,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.root = Path(root)
        self.max_age = max_age
        self.key_builder = key_builder or HashedKeyBuilder()
        self.dir_mode = dir_mode
        self.file_mode = file_mode
        self._clock = clock

    def _namespace_dir(self, namespace: Optional[str]) -> Path:
        namespace = (namespace or "").strip("/")
        if not namespace:
            return self.root

        if ".." in PurePosixPath(namespace).parts:
            raise CacheError(
                f"Cache namespace {namespace!r} points outside the cache root",
                ErrorCode.INVALID,
            )

        return self.root / namespace

    def path_for(self, key: str, namespace: Optional[str] = None) -> Path:
        """Return the file that holds (namespace, key)."""
        return self._namespace_dir(namespace) / self.key_builder.build(key)

    def is_fresh(self, path: Path, max_age: Optional[int] = None) -> bool:
        """
        Return True if ``path`` exists and has not expired.

        An expired file is deleted on the spot so the cache cleans itself up.
        """
        max_age = self.max_age if max_age is None else max_age

        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            return False

        if self._clock() - mtime > max_age:
            logger.debug("file cache entry %s expired, deleting", path)
            path.unlink(missing_ok=True)
            return False

        return True

    async def read(self, key: str, namespace: Optional[str] = None) -> Optional[bytes]:
        path = self.path_for(key, namespace)

        try:
            if not self.is_fresh(path):
                return None
            return path.read_bytes()
        except OSError:
            logger.warning("file cache read failed for %s", path, exc_info=True)
            return None

    async def write(
        self,
        value: bytes,
        key: str,
        namespace: Optional[str] = None,
        max_age: Optional[int] = None,
    ) -> None:
        path = self.path_for(key, namespace)
        max_age = self.max_age if max_age is None else max_age
        now = self._clock()

        try:
            path.parent.mkdir(mode=self.dir_mode, parents=True, exist_ok=True)
            path.write_bytes(value)
            path.chmod(self.file_mode)
            # Reads compare mtime against the default max age, so a per-entry
            # max age is carried as an mtime offset.
            os.utime(path, (now, now + (max_age - self.max_age)))
        except OSError as e:
            raise CacheWriteError(f"Failed to write cache file {path}") from e

        logger.debug("file cache wrote %d bytes to %s", len(value), path)

    async def delete(self, key: str, namespace: Optional[str] = None) -> bool:
        path = self.path_for(key, namespace)

        try:
            path.unlink()
        except FileNotFoundError:
            return False

        self._prune(path.parent, self._namespace_dir(namespace))
        return True

    def _prune(self, directory: Path, stop: Path) -> None:
        # Remove interlace directories left empty, never above ``stop``.
        while directory != stop and stop in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent

    async def clear(self, namespace: Optional[str] = None) -> None:
        target = self._namespace_dir(namespace)

        if target.exists():
            shutil.rmtree(target)

        self.root.mkdir(mode=self.dir_mode, parents=True, exist_ok=True)
        logger.info("cleared file cache path %s", target)

    def _files(self):
        if not self.root.exists():
            return
        for path in self.root.rglob("*"):
            if path.is_file():
                yield path

    async def size(self) -> int:
        return sum(path.stat().st_size for path in self._files())

    async def count(self) -> int:
        return sum(1 for _ in self._files())
