"""Read-through fetching that combines a loader with the cache."""

from collections.abc import Awaitable
from collections.abc import Callable
from enum import Enum
from logging import getLogger
from typing import Optional
from typing import TypeVar

from blueboxy.exceptions import NetworkError
from blueboxy.loadable import Failed
from blueboxy.loadable import Loadable
from blueboxy.loadable import Loaded
from blueboxy.manager import CacheManager
from blueboxy.types import CacheStrategy

T = TypeVar("T")
logger = getLogger(__name__)


class FetchPolicy(str, Enum):
    NETWORK_ONLY = "network_only"
    CACHE_ONLY = "cache_only"
    NETWORK_FIRST = "network_first"
    CACHE_FIRST = "cache_first"


async def cached_fetch(
    cache: CacheManager,
    key: str,
    type_: type[T],
    loader: Callable[[], Awaitable[T]],
    policy: FetchPolicy = FetchPolicy.NETWORK_FIRST,
    strategy: Optional[CacheStrategy] = None,
) -> Loadable[T]:
    """Fetch a value through ``loader`` and the cache according to ``policy``.

    Args:
        cache: Cache to read from and write fresh values to
        key: Cache key of the value
        type_: Type the cached value must validate as
        loader: Zero-argument coroutine factory that fetches from the network
        policy: Order in which network and cache are consulted
        strategy: Cache strategy used for reads and writes

    Returns:
        ``Loaded`` with the value, or ``Failed`` with a structured error
    """
    if policy is FetchPolicy.NETWORK_ONLY:
        return await Loadable.from_awaitable(loader())

    if policy is FetchPolicy.CACHE_ONLY:
        entry = await cache.load_entry(key, type_, strategy)
        if entry is None:
            return Failed(NetworkError.not_found())
        return Loaded(entry.data)

    if policy is FetchPolicy.CACHE_FIRST:
        entry = await cache.load_entry(key, type_, strategy)
        if entry is not None:
            logger.debug("Cache hit, using cached data for: %s", key)
            return Loaded(entry.data)
        return await _fetch_and_store(cache, key, loader, strategy)

    result = await _fetch_and_store(cache, key, loader, strategy)
    if isinstance(result, Failed):
        logger.debug("Network failed, checking cache for: %s", key)
        entry = await cache.load_entry(key, type_, strategy)
        if entry is not None:
            return Loaded(entry.data)
    return result


async def _fetch_and_store(
    cache: CacheManager,
    key: str,
    loader: Callable[[], Awaitable[T]],
    strategy: Optional[CacheStrategy],
) -> Loadable[T]:
    result = await Loadable.from_awaitable(loader())
    if isinstance(result, Loaded):
        await cache.save(key, result.value, strategy)
    return result
