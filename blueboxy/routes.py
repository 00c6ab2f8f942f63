"""Cache and session management routes."""

from typing import Annotated

from fastapi import Depends
from fastapi import FastAPI

from blueboxy.dependencies import get_cache_manager
from blueboxy.dependencies import get_session_store
from blueboxy.manager import CacheManager
from blueboxy.manager import CacheStats
from blueboxy.session import SessionSnapshot
from blueboxy.session import SessionStore


def add_routes(app: FastAPI, prefix: str = "") -> None:
    """Add cache and session management routes to ``app``.

    Args:
        app: Application with an environment attached via ``attach_environment``
        prefix: Path prefix for all routes
    """

    @app.get(f"{prefix}/cache/stats", response_model=CacheStats)
    async def cache_stats(
        cache: Annotated[CacheManager, Depends(get_cache_manager)],
    ) -> CacheStats:
        await cache.update_cache_size()
        return await cache.stats()

    @app.delete(f"{prefix}/cache", response_model=CacheStats)
    async def clear_cache(
        cache: Annotated[CacheManager, Depends(get_cache_manager)],
    ) -> CacheStats:
        await cache.clear()
        return await cache.stats()

    @app.delete(f"{prefix}/cache/{{key}}", response_model=CacheStats)
    async def remove_cache_entry(
        key: str,
        cache: Annotated[CacheManager, Depends(get_cache_manager)],
    ) -> CacheStats:
        await cache.remove(key)
        return await cache.stats()

    @app.get(f"{prefix}/session", response_model=SessionSnapshot)
    async def session_status(
        session: Annotated[SessionStore, Depends(get_session_store)],
    ) -> SessionSnapshot:
        return session.snapshot()

    @app.post(f"{prefix}/session/logout", response_model=SessionSnapshot)
    async def logout(
        session: Annotated[SessionStore, Depends(get_session_store)],
    ) -> SessionSnapshot:
        session.logout()
        return session.snapshot()
