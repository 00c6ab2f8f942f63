"""Cache configuration settings."""

from pathlib import Path

from pydantic import BaseModel
from pydantic import Field

from blueboxy.types import DEFAULT_EXPIRATION


def _default_cache_directory() -> Path:
    return Path.home() / ".cache" / "blueboxy" / "CacheManager"


class CacheConfig(BaseModel):
    """Cache configuration settings."""

    # Lifetimes and budgets
    default_expiration: float = Field(
        default=DEFAULT_EXPIRATION,
        gt=0,
        description="Entry lifetime in seconds when a strategy sets none (default: 1 hour)",
    )
    max_cache_size: int = Field(
        default=100 * 1024 * 1024,
        gt=0,
        description="Combined memory and disk budget in bytes before a cleanup pass runs",
    )

    # Memory tier
    memory_max_items: int = Field(
        default=100,
        ge=1,
        description="Number of entries the memory tier holds before evicting",
    )
    memory_eviction_fraction: float = Field(
        default=0.2,
        gt=0.0,
        le=1.0,
        description="Fraction of memory capacity evicted when it overflows (0.2 = 20%)",
    )
    memory_item_size_estimate: int = Field(
        default=1024,
        ge=0,
        description="Bytes accounted per memory entry in size estimates",
    )
    memory_cleanup_interval: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between periodic expiry sweeps of the memory tier",
    )

    # Disk tier
    cache_directory: Path = Field(
        default_factory=_default_cache_directory,
        description="Directory holding one file per disk cache entry",
    )
    disk_max_size: int = Field(
        default=50 * 1024 * 1024,
        gt=0,
        description="Disk tier size in bytes above which least recently used files are removed",
    )
    disk_target_ratio: float = Field(
        default=0.8,
        gt=0.0,
        le=1.0,
        description="Fraction of disk_max_size the size sweep shrinks the directory to",
    )
