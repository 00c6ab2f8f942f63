"""Cache tier implementations for BlueBoxy."""

from .base import BaseCacheBackend
from .disk import DiskBackend
from .memory import MemoryBackend

__all__ = [
    "BaseCacheBackend",
    "DiskBackend",
    "MemoryBackend",
]
