# loadwatch/storage/state_store.py

"""Key-value persistence for criteria and snapshot summaries."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

from loadwatch.config.settings import Settings
from loadwatch.errors import PersistenceError

logger = logging.getLogger("loadwatch.storage")


class KeyValueStore(Protocol):
    """Minimal store contract consumed by the engine."""

    def load(self, key: str, default: Any = None) -> Any: ...

    def save(self, key: str, value: Any) -> bool: ...


class JsonFileStore:
    """A :class:`KeyValueStore` kept in one JSON file on disk.

    Writes go through a temporary file that replaces the target, so a
    crash mid-write never leaves a truncated file behind.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path: Path = path or Settings.STATE_PATH
        self.path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("JsonFileStore initialised, path=%s", self.path)

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            msg = f"Cannot read state file {self.path}: {exc}"
            raise PersistenceError(msg) from exc
        if not isinstance(data, dict):
            msg = f"State file {self.path} does not hold an object"
            raise PersistenceError(msg)
        return data

    def load(self, key: str, default: Any = None) -> Any:
        """Return the stored value for *key*, or *default*."""
        return self._read_all().get(key, default)

    def save(self, key: str, value: Any) -> bool:
        """Store *value* under *key*; returns True on success."""
        try:
            data = self._read_all()
        except PersistenceError:
            logger.warning(
                "Overwriting unreadable state file %s", self.path
            )
            data = {}
        data[key] = value
        tmp_name: str | None = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except (OSError, TypeError, ValueError) as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            msg = f"Cannot write state file {self.path}: {exc}"
            raise PersistenceError(msg) from exc
        return True


class MemoryStore:
    """In-process :class:`KeyValueStore`, used when nothing is persisted."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def load(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def save(self, key: str, value: Any) -> bool:
        self._data[key] = value
        return True
