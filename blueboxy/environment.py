"""Explicitly constructed application services."""

from logging import getLogger
from pathlib import Path
from typing import Optional

from blueboxy.config import CacheConfig
from blueboxy.manager import CacheManager
from blueboxy.session import FileSecureStore
from blueboxy.session import JsonFileKeyValueStore
from blueboxy.session import KeyValueStore
from blueboxy.session import SecureStore
from blueboxy.session import SessionConfig
from blueboxy.session import SessionStore
from blueboxy.session import TokenRefresher

logger = getLogger(__name__)


def _default_data_directory() -> Path:
    return Path.home() / ".local" / "share" / "blueboxy"


class AppEnvironment:
    """The one cache and the one session of a running application.

    Whoever owns the application lifecycle builds this once and hands it to
    the code that needs it; ``start`` and ``stop`` bracket the periods in
    which background work (memory sweep, session validation) may run.
    """

    def __init__(self, cache: CacheManager, session: SessionStore) -> None:
        self.cache = cache
        self.session = session
        self.is_running = False

    @classmethod
    def create(
        cls,
        cache_config: Optional[CacheConfig] = None,
        session_config: Optional[SessionConfig] = None,
        secure_store: Optional[SecureStore] = None,
        defaults: Optional[KeyValueStore] = None,
        refresher: Optional[TokenRefresher] = None,
        data_directory: Optional[Path] = None,
    ) -> "AppEnvironment":
        """Build an environment, persisting under ``data_directory`` by default."""
        data_directory = data_directory or _default_data_directory()
        if secure_store is None:
            secure_store = FileSecureStore(data_directory / "secrets")
        if defaults is None:
            defaults = JsonFileKeyValueStore(data_directory / "defaults.json")

        cache = CacheManager(cache_config)
        session = SessionStore(
            secure_store,
            defaults,
            config=session_config,
            refresher=refresher,
        )
        return cls(cache, session)

    async def start(self) -> None:
        if self.is_running:
            return
        logger.info("Starting application services")
        self.cache.memory.start_cleanup()
        self.session.start_validation()
        await self.cache.update_cache_size()
        self.is_running = True

    async def stop(self) -> None:
        """Stop background work, e.g. when the application is backgrounded."""
        if not self.is_running:
            return
        logger.info("Stopping application services")
        self.cache.memory.stop_cleanup()
        self.session.stop_validation()
        self.is_running = False
