import time
from abc import ABC
from abc import abstractmethod
from collections.abc import Callable
from typing import Any
from typing import Optional
from typing import TypeVar

from blueboxy.types import CacheEntry

T = TypeVar("T")


class BaseCacheBackend(ABC):
    """Base class for all cache tiers.

    Tiers never raise on save or load: serialization and storage failures
    are logged and reported as a miss.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self.clock = clock or time.time

    async def save(self, key: str, value: Any, expiration: Optional[float] = None) -> None:
        """Store a value, stamped with the tier's clock."""
        entry = CacheEntry(data=value, timestamp=self.clock(), expiration=expiration)
        await self.save_entry(key, entry)

    async def load(self, key: str, type_: type[T]) -> Optional[T]:
        """Retrieve a live value of the requested type."""
        entry = await self.load_entry(key, type_)
        return entry.data if entry is not None else None

    @abstractmethod
    async def save_entry(self, key: str, entry: CacheEntry[Any]) -> None:
        """Store an entry as-is, keeping its timestamp and expiration."""

    @abstractmethod
    async def load_entry(self, key: str, type_: type[T]) -> Optional[CacheEntry[T]]:
        """Retrieve a live entry whose data validates as ``type_``."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove an entry from the cache."""

    @abstractmethod
    async def clear(self) -> None:
        """Clear all cached entries."""

    @abstractmethod
    async def is_expired(self, key: str) -> bool:
        """Whether the entry is expired; missing entries count as expired."""

    @abstractmethod
    async def size(self) -> int:
        """Approximate size of the tier in bytes."""

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """Drop expired entries and return how many were removed."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """All keys currently stored, expired or not."""

    async def cleanup(self) -> None:
        """Tier-specific maintenance sweep run when the cache is over budget."""
        await self.cleanup_expired()
