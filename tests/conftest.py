from datetime import datetime
from datetime import timedelta
from datetime import timezone
from pathlib import Path

import pytest

from blueboxy.backends import DiskBackend
from blueboxy.backends import MemoryBackend
from blueboxy.config import CacheConfig
from blueboxy.manager import CacheManager


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDateTimeClock:
    """Manually advanced aware-datetime clock."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def datetime_clock() -> FakeDateTimeClock:
    return FakeDateTimeClock()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "CacheManager"


@pytest.fixture
def memory_backend(clock: FakeClock) -> MemoryBackend:
    return MemoryBackend(clock=clock)


@pytest.fixture
def disk_backend(cache_dir: Path, clock: FakeClock) -> DiskBackend:
    return DiskBackend(cache_dir, clock=clock)


@pytest.fixture
def cache_config(cache_dir: Path) -> CacheConfig:
    return CacheConfig(cache_directory=cache_dir)


@pytest.fixture
def cache_manager(cache_config: CacheConfig, clock: FakeClock) -> CacheManager:
    return CacheManager(cache_config, clock=clock)
