"""Key-value storage backends standing in for the browser's tab-scoped session store."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional


LOGGER = logging.getLogger("entry_drafts.storage")

_PROBE_KEY = "__draft_registry_test__"


class StorageError(Exception):
    """Base class for backend failures."""


class StorageUnavailableError(StorageError):
    """The store cannot be read or written at all."""


class StorageQuotaExceededError(StorageError):
    """A write would push the store past its capacity."""


class KeyValueStorage(ABC):
    """String-to-string store shared by every component of one session."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value, or ``None`` when *key* is absent."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any previous value."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Delete *key*; absent keys are ignored."""

    def is_available(self) -> bool:
        """Probe the store with a throw-away write."""
        try:
            self.set_item(_PROBE_KEY, "test")
            self.remove_item(_PROBE_KEY)
        except StorageError as exc:
            LOGGER.debug("Storage probe failed: %s", exc)
            return False
        return True


class MemoryStorage(KeyValueStorage):
    """
    Process-local store.

    ``quota_bytes`` bounds the summed length of keys and values; ``disabled`` makes every
    operation fail the way a store switched off by the user would.
    """

    def __init__(self, quota_bytes: Optional[int] = None, disabled: bool = False) -> None:
        self._items: Dict[str, str] = {}
        self._lock = threading.Lock()
        self.quota_bytes = quota_bytes
        self.disabled = disabled

    def get_item(self, key: str) -> Optional[str]:
        self._check_enabled()
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._check_enabled()
        with self._lock:
            if self.quota_bytes is not None:
                used = sum(len(k) + len(v) for k, v in self._items.items() if k != key)
                if used + len(key) + len(value) > self.quota_bytes:
                    raise StorageQuotaExceededError(f"Writing {key!r} exceeds quota of {self.quota_bytes} bytes")
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._check_enabled()
        with self._lock:
            self._items.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._items)

    def _check_enabled(self) -> None:
        if self.disabled:
            raise StorageUnavailableError("Storage is disabled")


class JsonFileStorage(KeyValueStorage):
    """All keys held in a single JSON object file, replaced atomically on every write."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            items = self._read()
            items[key] = value
            self._write(items)

    def remove_item(self, key: str) -> None:
        with self._lock:
            items = self._read()
            if key in items:
                del items[key]
                self._write(items)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise StorageUnavailableError(f"Cannot read {self.path}: {exc}") from exc
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise StorageUnavailableError(f"{self.path} is not a JSON object store") from exc
        if not isinstance(data, dict):
            raise StorageUnavailableError(f"{self.path} is not a JSON object store")
        return data

    def _write(self, items: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(items, handle)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageUnavailableError(f"Cannot write {self.path}: {exc}") from exc


__all__ = [
    "JsonFileStorage",
    "KeyValueStorage",
    "MemoryStorage",
    "StorageError",
    "StorageQuotaExceededError",
    "StorageUnavailableError",
]
