"""BlueBoxy client core: tiered caching, fetch state and session lifecycle."""

from .dependencies import attach_environment as attach_environment
from .environment import AppEnvironment as AppEnvironment
from .fetch import FetchPolicy as FetchPolicy
from .fetch import cached_fetch as cached_fetch
from .loadable import Loadable as Loadable
from .manager import CacheManager as CacheManager
from .routes import add_routes as add_routes
from .types import CacheEntry as CacheEntry
from .types import CacheStrategy as CacheStrategy

__all__ = [
    "AppEnvironment",
    "CacheEntry",
    "CacheManager",
    "CacheStrategy",
    "FetchPolicy",
    "Loadable",
    "add_routes",
    "attach_environment",
    "cached_fetch",
]
