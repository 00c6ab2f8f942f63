"""Type definitions and type aliases for BlueBoxy."""

import time
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from typing import Generic
from typing import TypeVar

from pydantic import BaseModel
from pydantic import Field

T = TypeVar("T")

DEFAULT_EXPIRATION = 3600.0

# Device location lookups are reused for five minutes
LOCATION_CACHE_TTL = 300.0


@dataclass
class CacheEntry(Generic[T]):
    """Cached value with its creation time and optional lifetime.

    Args:
        data: The cached value
        timestamp: Epoch seconds when the entry was created
        expiration: Lifetime in seconds (None = never expires)
    """

    data: T
    timestamp: float = field(default_factory=time.time)
    expiration: float | None = None

    @property
    def expires_at(self) -> float | None:
        if self.expiration is None:
            return None
        return self.timestamp + self.expiration

    def is_expired(self, now: float | None = None) -> bool:
        if self.expiration is None:
            return False
        current = time.time() if now is None else now
        return current - self.timestamp > self.expiration

    def ttl_remaining(self, now: float | None = None) -> float | None:
        """Seconds left before expiry, None for entries that never expire."""
        if self.expires_at is None:
            return None
        current = time.time() if now is None else now
        return max(0.0, self.expires_at - current)


class CacheTier(str, Enum):
    MEMORY_ONLY = "memory_only"
    DISK_ONLY = "disk_only"
    HYBRID = "hybrid"


@dataclass(frozen=True)
class CacheStrategy:
    """Which cache tiers an operation touches, and for how long entries live."""

    kind: CacheTier = CacheTier.HYBRID
    expiration: float | None = None

    @classmethod
    def memory_only(cls, expiration: float | None = None) -> "CacheStrategy":
        return cls(CacheTier.MEMORY_ONLY, expiration)

    @classmethod
    def disk_only(cls, expiration: float | None = None) -> "CacheStrategy":
        return cls(CacheTier.DISK_ONLY, expiration)

    @classmethod
    def hybrid(cls, expiration: float | None = None) -> "CacheStrategy":
        return cls(CacheTier.HYBRID, expiration)

    @property
    def uses_memory(self) -> bool:
        return self.kind in (CacheTier.MEMORY_ONLY, CacheTier.HYBRID)

    @property
    def uses_disk(self) -> bool:
        return self.kind in (CacheTier.DISK_ONLY, CacheTier.HYBRID)


class CacheKey:
    """Well-known cache keys."""

    DASHBOARD_ACTIVITIES = "dashboard_activities"
    DASHBOARD_STATS = "dashboard_stats"
    DASHBOARD_EVENTS = "dashboard_events"
    USER_PROFILE = "user_profile"
    AI_INSIGHTS = "ai_insights"
    RECOMMENDATIONS = "recommendations"
    LAST_LOCATION = "last_location"

    @staticmethod
    def activity_details(activity_id: str) -> str:
        return f"activity_details_{activity_id}"

    @staticmethod
    def user_preferences(user_id: str) -> str:
        return f"user_preferences_{user_id}"


class Coordinate(BaseModel):
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class CachedLocation(BaseModel):
    """A resolved device location, stored through the memory cache tier."""

    coordinate: Coordinate
    display_name: str
    timestamp: float = Field(default_factory=time.time)


LOCATION_CACHE_STRATEGY = CacheStrategy.memory_only(expiration=LOCATION_CACHE_TTL)
