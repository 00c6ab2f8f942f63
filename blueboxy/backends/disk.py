import asyncio
import hashlib
import os
import tempfile
from collections.abc import Callable
from logging import getLogger
from pathlib import Path
from typing import Any
from typing import Optional
from typing import TypeVar

from blueboxy.exceptions import SerializationError
from blueboxy.serialization import coerce
from blueboxy.serialization import decode
from blueboxy.serialization import encode
from blueboxy.types import CacheEntry

from .base import BaseCacheBackend

T = TypeVar("T")
logger = getLogger(__name__)

FILE_SUFFIX = ".cache"
_INVALID_FILENAME_CHARS = '/:?<>\\|*"'
_MAX_FILENAME_LENGTH = 200


def safe_file_name(key: str) -> str:
    """Map a cache key to a file name that is valid on any filesystem."""
    name = "".join("_" if c in _INVALID_FILENAME_CHARS else c for c in key)
    if len(name) > _MAX_FILENAME_LENGTH or name in ("", ".", ".."):
        digest = hashlib.sha256(key.encode()).hexdigest()[:16]
        name = f"{name[:180]}_{digest}"
    return name + FILE_SUFFIX


class DiskBackend(BaseCacheBackend):
    """File-per-key cache tier.

    Each file holds a JSON envelope with the key, the entry timestamp and
    expiration, and the data. Expiry is always computed from the stored
    timestamp; the file modification time only records the last access and
    orders the size sweep.
    """

    def __init__(
        self,
        directory: Path,
        max_size: int = 50 * 1024 * 1024,
        target_ratio: float = 0.8,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        super().__init__(clock)
        self.directory = Path(directory)
        self.max_size = max_size
        self.target_ratio = target_ratio
        self.lock = asyncio.Lock()
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.directory / safe_file_name(key)

    async def save_entry(self, key: str, entry: CacheEntry[Any]) -> None:
        try:
            payload = encode(
                {
                    "key": key,
                    "timestamp": entry.timestamp,
                    "expiration": entry.expiration,
                    "data": entry.data,
                }
            )
        except SerializationError as e:
            logger.warning("Failed to save %s to disk cache: %s", key, e)
            return

        async with self.lock:
            try:
                await asyncio.to_thread(self._write, self.path_for(key), payload)
            except OSError as e:
                logger.warning("Disk cache write error for %s: %s", key, e)
                return
        logger.debug("Cached %.1fKB on disk for key: %s", len(payload) / 1024, key)

    async def load_entry(self, key: str, type_: type[T]) -> Optional[CacheEntry[T]]:
        path = self.path_for(key)
        async with self.lock:
            envelope = await asyncio.to_thread(self._read_envelope, path, key)
            if envelope is None:
                return None
            entry = self._entry_from(envelope)
            if entry is None or entry.is_expired(self.clock()):
                logger.debug("Disk cache entry expired: %s", key)
                await asyncio.to_thread(self._unlink, path)
                return None
            try:
                data = coerce(entry.data, type_)
            except SerializationError as e:
                logger.warning("Failed to decode %s from disk cache: %s", key, e)
                return None
            await asyncio.to_thread(self._touch, path)
        return CacheEntry(data=data, timestamp=entry.timestamp, expiration=entry.expiration)

    async def remove(self, key: str) -> None:
        async with self.lock:
            await asyncio.to_thread(self._unlink, self.path_for(key))

    async def clear(self) -> None:
        async with self.lock:
            removed = await asyncio.to_thread(self._clear)
        logger.debug("Cleared all disk cache entries (%d files)", removed)

    async def is_expired(self, key: str) -> bool:
        async with self.lock:
            envelope = await asyncio.to_thread(self._read_envelope, self.path_for(key), key)
        if envelope is None:
            return True
        entry = self._entry_from(envelope)
        return entry is None or entry.is_expired(self.clock())

    async def size(self) -> int:
        async with self.lock:
            return await asyncio.to_thread(self._directory_size)

    async def keys(self) -> list[str]:
        async with self.lock:
            return await asyncio.to_thread(self._keys)

    async def cleanup_expired(self) -> int:
        async with self.lock:
            removed = await asyncio.to_thread(self._remove_expired, self.clock())
        if removed:
            logger.debug("Removed %d expired disk cache entries", removed)
        return removed

    async def cleanup(self) -> None:
        """Drop expired entries, then shrink the directory if it is over budget."""
        await self.cleanup_expired()
        async with self.lock:
            removed = await asyncio.to_thread(self._shrink)
        if removed:
            logger.info("Disk cache cleanup removed %d files", removed)

    # Blocking helpers, run via asyncio.to_thread with the lock held

    def _files(self) -> list[Path]:
        try:
            return [p for p in self.directory.iterdir() if p.suffix == FILE_SUFFIX]
        except FileNotFoundError:
            return []

    @staticmethod
    def _write(path: Path, payload: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    @staticmethod
    def _read_envelope(path: Path, key: Optional[str] = None) -> Optional[dict[str, Any]]:
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Disk cache read error for %s: %s", path.name, e)
            return None
        try:
            envelope = decode(raw)
        except SerializationError as e:
            logger.warning("Corrupt disk cache file %s: %s", path.name, e)
            return None
        if not isinstance(envelope, dict):
            logger.warning("Corrupt disk cache file %s: not an envelope", path.name)
            return None
        if key is not None and envelope.get("key") != key:
            # Two keys mapped to the same file name
            return None
        return envelope

    @staticmethod
    def _entry_from(envelope: dict[str, Any]) -> Optional[CacheEntry[Any]]:
        timestamp = envelope.get("timestamp")
        expiration = envelope.get("expiration")
        if not isinstance(timestamp, (int, float)):
            return None
        if expiration is not None and not isinstance(expiration, (int, float)):
            return None
        return CacheEntry(data=envelope.get("data"), timestamp=timestamp, expiration=expiration)

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Disk cache removal error for %s: %s", path.name, e)

    @staticmethod
    def _touch(path: Path) -> None:
        try:
            os.utime(path)
        except OSError:
            logger.debug("Could not update access time of %s", path.name)

    def _clear(self) -> int:
        files = self._files()
        for path in files:
            self._unlink(path)
        return len(files)

    def _directory_size(self) -> int:
        total = 0
        for path in self._files():
            try:
                total += path.stat().st_size
            except OSError:
                continue
        return total

    def _keys(self) -> list[str]:
        keys = []
        for path in self._files():
            envelope = self._read_envelope(path)
            if envelope is not None and isinstance(envelope.get("key"), str):
                keys.append(envelope["key"])
        return keys

    def _remove_expired(self, now: float) -> int:
        removed = 0
        for path in self._files():
            envelope = self._read_envelope(path)
            entry = self._entry_from(envelope) if envelope is not None else None
            if entry is None or entry.is_expired(now):
                self._unlink(path)
                removed += 1
        return removed

    def _shrink(self) -> int:
        files = []
        for path in self._files():
            try:
                stat = path.stat()
            except OSError:
                continue
            files.append((stat.st_mtime, stat.st_size, path))

        current = sum(size for _, size, _ in files)
        if current <= self.max_size:
            return 0

        target = int(self.max_size * self.target_ratio)
        removed = 0
        for _, size, path in sorted(files, key=lambda f: f[0]):
            if current <= target:
                break
            self._unlink(path)
            current -= size
            removed += 1
        return removed
