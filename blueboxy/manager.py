"""Two-tier cache manager."""

import time
from collections.abc import Callable
from logging import getLogger
from typing import Any
from typing import Optional
from typing import TypeVar

from pydantic import BaseModel

from blueboxy.backends import DiskBackend
from blueboxy.backends import MemoryBackend
from blueboxy.config import CacheConfig
from blueboxy.types import CacheEntry
from blueboxy.types import CacheStrategy

T = TypeVar("T")
logger = getLogger(__name__)


class CacheStats(BaseModel):
    cache_size: int
    max_cache_size: int
    memory_entries: int
    disk_entries: int
    is_clearing: bool


class CacheManager:
    """Single entry point for cached data.

    A strategy decides which tiers an operation touches. Hybrid writes go to
    memory and then disk; hybrid reads try memory, fall back to disk and
    promote disk hits into memory. Nothing here raises: the cache is always
    optional relative to the network.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        memory: Optional[MemoryBackend] = None,
        disk: Optional[DiskBackend] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.config = config or CacheConfig()
        self.clock = clock or time.time
        self.memory = memory or MemoryBackend(
            max_items=self.config.memory_max_items,
            eviction_fraction=self.config.memory_eviction_fraction,
            item_size_estimate=self.config.memory_item_size_estimate,
            cleanup_interval=self.config.memory_cleanup_interval,
            clock=self.clock,
        )
        self.disk = disk or DiskBackend(
            self.config.cache_directory,
            max_size=self.config.disk_max_size,
            target_ratio=self.config.disk_target_ratio,
            clock=self.clock,
        )
        self.cache_size = 0
        self.is_clearing = False

    async def save(
        self, key: str, value: Any, strategy: Optional[CacheStrategy] = None
    ) -> None:
        strategy = strategy or CacheStrategy.hybrid()
        entry = CacheEntry(
            data=value,
            timestamp=self.clock(),
            expiration=(
                strategy.expiration
                if strategy.expiration is not None
                else self.config.default_expiration
            ),
        )
        if strategy.uses_memory:
            await self.memory.save_entry(key, entry)
        if strategy.uses_disk:
            await self.disk.save_entry(key, entry)

        await self.update_cache_size()

    async def load(
        self, key: str, type_: type[T], strategy: Optional[CacheStrategy] = None
    ) -> Optional[T]:
        entry = await self.load_entry(key, type_, strategy)
        return entry.data if entry is not None else None

    async def load_entry(
        self, key: str, type_: type[T], strategy: Optional[CacheStrategy] = None
    ) -> Optional[CacheEntry[T]]:
        """Like ``load``, but a hit holding ``None`` is told apart from a miss."""
        strategy = strategy or CacheStrategy.hybrid()
        if strategy.uses_memory:
            entry = await self.memory.load_entry(key, type_)
            if entry is not None:
                logger.debug("Memory cache hit: %s", key)
                return entry
            if not strategy.uses_disk:
                return None

        entry = await self.disk.load_entry(key, type_)
        if entry is None:
            logger.debug("Cache miss: %s", key)
            return None

        if strategy.uses_memory:
            # Keep the original timestamp so promotion never extends a lifetime
            await self.memory.save_entry(key, entry)
            logger.debug("Promoted disk cache entry into memory: %s", key)
        return entry

    async def remove(self, key: str) -> None:
        await self.memory.remove(key)
        await self.disk.remove(key)
        await self.update_cache_size()

    async def clear(self) -> None:
        self.is_clearing = True
        try:
            await self.memory.clear()
            await self.disk.clear()
            await self.update_cache_size()
        finally:
            self.is_clearing = False

    async def is_expired(self, key: str) -> bool:
        if not await self.memory.is_expired(key):
            return False
        return await self.disk.is_expired(key)

    async def update_cache_size(self) -> int:
        self.cache_size = await self._measure()
        if self.cache_size > self.config.max_cache_size:
            await self.perform_cleanup()
        return self.cache_size

    async def perform_cleanup(self) -> None:
        logger.info(
            "Cache size %d exceeds %d bytes, cleaning up",
            self.cache_size,
            self.config.max_cache_size,
        )
        await self.disk.cleanup()
        await self.memory.cleanup()
        self.cache_size = await self._measure()

    async def stats(self) -> CacheStats:
        memory_keys = await self.memory.keys()
        disk_keys = await self.disk.keys()
        return CacheStats(
            cache_size=self.cache_size,
            max_cache_size=self.config.max_cache_size,
            memory_entries=len(memory_keys),
            disk_entries=len(disk_keys),
            is_clearing=self.is_clearing,
        )

    async def _measure(self) -> int:
        return await self.memory.size() + await self.disk.size()
