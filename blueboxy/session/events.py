"""Session lifecycle events."""

from collections import defaultdict
from collections.abc import Callable
from enum import Enum
from logging import getLogger
from typing import Any

logger = getLogger(__name__)

Listener = Callable[[Any], None]


class SessionEvent(str, Enum):
    LOGIN = "login"
    LOGOUT = "logout"
    USER_UPDATED = "user_updated"


class SessionEvents:
    """Broadcasts session transitions to subscribed listeners.

    Listeners run synchronously in subscription order. A listener that
    raises is logged and does not prevent delivery to the others.
    """

    def __init__(self) -> None:
        self._listeners: dict[SessionEvent, list[Listener]] = defaultdict(list)

    def subscribe(self, event: SessionEvent, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a callable that unregisters it."""
        self._listeners[event].append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(event, listener)

        return unsubscribe

    def unsubscribe(self, event: SessionEvent, listener: Listener) -> None:
        try:
            self._listeners[event].remove(listener)
        except ValueError:
            pass

    def emit(self, event: SessionEvent, payload: Any = None) -> None:
        logger.debug("Emitting session event: %s", event.value)
        for listener in list(self._listeners[event]):
            try:
                listener(payload)
            except Exception:
                logger.exception("Session event listener failed for %s", event.value)
