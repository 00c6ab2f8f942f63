import asyncio
from collections import OrderedDict
from collections.abc import Callable
from logging import getLogger
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


class MemoryBackend(BaseCacheBackend):
    """In-memory cache tier.

    Entries are kept in recency order: saving or loading a key makes it the
    most recent, and overflow evicts the least recent ones. Values are held
    in encoded form, so a caller mutating a saved object does not change the
    cached value. All access is serialized through one asyncio lock.
    """

    def __init__(
        self,
        max_items: int = 100,
        eviction_fraction: float = 0.2,
        item_size_estimate: int = 1024,
        cleanup_interval: float = 60,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        super().__init__(clock)
        self.cache: OrderedDict[str, CacheEntry[bytes]] = OrderedDict()
        self.lock = asyncio.Lock()
        self.max_items = max_items
        self.eviction_fraction = eviction_fraction
        self.item_size_estimate = item_size_estimate
        self.cleanup_interval = cleanup_interval
        self._cleanup_task: Optional[asyncio.Task[None]] = None

    async def save_entry(self, key: str, entry: CacheEntry[Any]) -> None:
        try:
            payload = encode(entry.data)
        except SerializationError as e:
            logger.warning("Failed to save %s to memory cache: %s", key, e)
            return

        async with self.lock:
            self.cache[key] = CacheEntry(
                data=payload, timestamp=entry.timestamp, expiration=entry.expiration
            )
            self.cache.move_to_end(key)
            if len(self.cache) > self.max_items:
                self._evict_least_recent()

    async def load_entry(self, key: str, type_: type[T]) -> Optional[CacheEntry[T]]:
        async with self.lock:
            entry = self.cache.get(key)
            if entry is None:
                return None
            if entry.is_expired(self.clock()):
                del self.cache[key]
                logger.debug("Memory cache entry expired: %s", key)
                return None
            try:
                data = coerce(decode(entry.data), type_)
            except SerializationError as e:
                logger.warning("Memory cache type mismatch for %s: %s", key, e)
                return None
            self.cache.move_to_end(key)
            return CacheEntry(data=data, timestamp=entry.timestamp, expiration=entry.expiration)

    async def remove(self, key: str) -> None:
        async with self.lock:
            self.cache.pop(key, None)

    async def clear(self) -> None:
        async with self.lock:
            self.cache.clear()

    async def is_expired(self, key: str) -> bool:
        async with self.lock:
            entry = self.cache.get(key)
            return entry is None or entry.is_expired(self.clock())

    async def size(self) -> int:
        async with self.lock:
            return len(self.cache) * self.item_size_estimate

    async def keys(self) -> list[str]:
        async with self.lock:
            return list(self.cache)

    async def cleanup_expired(self) -> int:
        async with self.lock:
            now = self.clock()
            expired_keys = [k for k, v in self.cache.items() if v.is_expired(now)]
            for key in expired_keys:
                self.cache.pop(key, None)
        if expired_keys:
            logger.debug("Removed %d expired memory cache entries", len(expired_keys))
        return len(expired_keys)

    def _evict_least_recent(self) -> None:
        count = max(1, int(self.max_items * self.eviction_fraction))
        for _ in range(min(count, len(self.cache))):
            key, _entry = self.cache.popitem(last=False)
            logger.debug("Evicted memory cache entry: %s", key)

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            await self.cleanup_expired()

    def start_cleanup(self) -> None:
        """Start the periodic expiry sweep; a running sweep is kept as is."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    def stop_cleanup(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            self._cleanup_task = None
