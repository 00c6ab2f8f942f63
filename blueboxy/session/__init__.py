"""Session management for BlueBoxy."""

from .config import SessionConfig
from .events import SessionEvent
from .events import SessionEvents
from .models import SessionSnapshot
from .models import TokenPair
from .models import UserProfile
from .storage import FileSecureStore
from .storage import InMemoryKeyValueStore
from .storage import InMemorySecureStore
from .storage import JsonFileKeyValueStore
from .storage import KeyValueStore
from .storage import SecureStore
from .store import SessionStore
from .store import TokenRefresher

__all__ = [
    "FileSecureStore",
    "InMemoryKeyValueStore",
    "InMemorySecureStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "SecureStore",
    "SessionConfig",
    "SessionEvent",
    "SessionEvents",
    "SessionSnapshot",
    "SessionStore",
    "TokenPair",
    "TokenRefresher",
    "UserProfile",
]
