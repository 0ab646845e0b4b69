"""
Persisted local state: a small key-value store standing in for device storage.

Values are always strings. Structured values (the cached location) are JSON
encoded by the helpers at the bottom of this module.
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .constants import StorageKeys
from .models import Coordinates

logger = logging.getLogger(__name__)


class KeyValueStorage(ABC):
    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        pass

    def multi_get(self, keys: Iterable[str]) -> List[Tuple[str, Optional[str]]]:
        return [(key, self.get_item(key)) for key in keys]

    def multi_set(self, entries: Iterable[Tuple[str, str]]) -> None:
        for key, value in entries:
            self.set_item(key, value)

    def multi_remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.remove_item(key)


class InMemoryStorage(KeyValueStorage):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get_item(self, key):
        with self._lock:
            return self._data.get(key)

    def set_item(self, key, value):
        with self._lock:
            self._data[key] = value

    def remove_item(self, key):
        with self._lock:
            self._data.pop(key, None)

    def as_dict(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._data)


class JsonFileStorage(KeyValueStorage):
    """
    Whole store kept in one JSON document, rewritten on every mutation.
    A missing or unreadable file behaves like an empty store.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read storage file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp_path, self.path)

    def get_item(self, key):
        with self._lock:
            return self._read().get(key)

    def set_item(self, key, value):
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove_item(self, key):
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)

    def multi_set(self, entries):
        with self._lock:
            data = self._read()
            data.update(dict(entries))
            self._write(data)

    def multi_remove(self, keys):
        with self._lock:
            data = self._read()
            for key in keys:
                data.pop(key, None)
            self._write(data)


# --- App flags and cached values ---


def get_permissions_asked(storage: KeyValueStorage) -> bool:
    return storage.get_item(StorageKeys.PERMISSIONS_ASKED.value) == "true"


def save_permissions_asked(storage: KeyValueStorage) -> None:
    storage.set_item(StorageKeys.PERMISSIONS_ASKED.value, "true")


def reset_permissions_asked(storage: KeyValueStorage) -> None:
    storage.remove_item(StorageKeys.PERMISSIONS_ASKED.value)


def get_last_login_email(storage: KeyValueStorage) -> Optional[str]:
    return storage.get_item(StorageKeys.LAST_LOGIN_EMAIL.value) or None


def save_last_login_email(storage: KeyValueStorage, email: str) -> None:
    storage.set_item(StorageKeys.LAST_LOGIN_EMAIL.value, email)


def forget_last_login_email(storage: KeyValueStorage) -> None:
    storage.remove_item(StorageKeys.LAST_LOGIN_EMAIL.value)


def get_cached_location(storage: KeyValueStorage) -> Optional[Coordinates]:
    raw = storage.get_item(StorageKeys.USER_LOCATION.value)
    if not raw:
        return None
    try:
        return Coordinates.model_validate_json(raw)
    except ValueError as e:
        logger.warning("Discarding unreadable cached location: %s", e)
        return None


def save_cached_location(storage: KeyValueStorage, location: Coordinates) -> None:
    storage.set_item(StorageKeys.USER_LOCATION.value, location.model_dump_json())


def clear_cached_location(storage: KeyValueStorage) -> None:
    storage.remove_item(StorageKeys.USER_LOCATION.value)
