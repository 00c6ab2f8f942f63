"""Persistence for session data.

Secrets (tokens, user id) go to a ``SecureStore``; everything else goes to
a plain ``KeyValueStore``.
"""

import hashlib
import json
import os
import tempfile
from abc import ABC
from abc import abstractmethod
from logging import getLogger
from pathlib import Path
from typing import Any

logger = getLogger(__name__)


class SecureStore(ABC):
    """Keychain-style store for small secrets, addressed by service and account."""

    @abstractmethod
    def save(self, service: str, account: str, secret: bytes) -> bool:
        """Store a secret, replacing any previous one."""

    @abstractmethod
    def load(self, service: str, account: str) -> bytes | None:
        """Retrieve a secret, or None if absent."""

    @abstractmethod
    def delete(self, service: str, account: str) -> bool:
        """Delete a secret; returns whether one existed."""


class InMemorySecureStore(SecureStore):
    def __init__(self) -> None:
        self.items: dict[tuple[str, str], bytes] = {}

    def save(self, service: str, account: str, secret: bytes) -> bool:
        self.items[(service, account)] = bytes(secret)
        return True

    def load(self, service: str, account: str) -> bytes | None:
        return self.items.get((service, account))

    def delete(self, service: str, account: str) -> bool:
        return self.items.pop((service, account), None) is not None


class FileSecureStore(SecureStore):
    """Secrets as owner-only files in an owner-only directory."""

    def __init__(self, base_path: Path) -> None:
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        try:
            self.base_path.chmod(0o700)
        except OSError as e:
            logger.warning("Could not restrict permissions of %s: %s", self.base_path, e)

    def path_for(self, service: str, account: str) -> Path:
        digest = hashlib.sha256(f"{service}\x00{account}".encode()).hexdigest()
        return self.base_path / f"{digest}.secret"

    def save(self, service: str, account: str, secret: bytes) -> bool:
        path = self.path_for(service, account)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.base_path, prefix=".", suffix=".tmp")
            with os.fdopen(fd, "wb") as f:
                f.write(secret)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, path)
        except OSError as e:
            logger.warning("Failed to save secret %s/%s: %s", service, account, e)
            return False
        return True

    def load(self, service: str, account: str) -> bytes | None:
        try:
            return self.path_for(service, account).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Failed to read secret %s/%s: %s", service, account, e)
            return None

    def delete(self, service: str, account: str) -> bool:
        try:
            self.path_for(service, account).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Failed to delete secret %s/%s: %s", service, account, e)
            return False
        return True


class KeyValueStore(ABC):
    """String-keyed store for non-secret, JSON-compatible values."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the stored value, or None."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove a value if present."""

    def contains(self, key: str) -> bool:
        return self.get(key) is not None


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self) -> None:
        self.values: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        return self.values.get(key)

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value

    def remove(self, key: str) -> None:
        self.values.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """All values in one JSON document, rewritten atomically on change."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.values: dict[str, Any] = self._read()

    def _read(self) -> dict[str, Any]:
        try:
            with open(self.path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(self.values, f, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            logger.warning("Failed to write settings file %s: %s", self.path, e)

    def get(self, key: str) -> Any | None:
        return self.values.get(key)

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value
        self._write()

    def remove(self, key: str) -> None:
        if self.values.pop(key, None) is not None:
            self._write()
