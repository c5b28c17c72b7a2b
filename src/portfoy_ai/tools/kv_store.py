"""
Key-Value Store
The only persistence the engine needs: get/set/delete of JSON-serializable
values under string keys. Snapshot history, the previous-recommendation slot,
API keys and scheduler flags all live behind this interface, so every
component can be tested against an in-memory store.

Reads never raise. A missing key, an unreadable cache or corrupt JSON all
read as "no value". The persistent store is a diskcache.Cache directory.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from diskcache import Cache

from portfoy_ai.exceptions import StorageError

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Opaque string-keyed store of JSON-serializable values."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


def _to_json(key: str, value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise StorageError(f"Value for '{key}' is not JSON-serializable: {e}") from e


class InMemoryStore:
    """Dict-backed store. Values are stored as JSON text, so reads return fresh copies."""

    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"[Store] Corrupt value under '{key}', treating as empty: {e}")
            return None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = _to_json(key, value)

    def set_raw(self, key: str, raw: str) -> None:
        """Store unvalidated text, for simulating corrupt client storage."""
        self._data[key] = raw

    def get_raw(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class DiskCacheStore:
    """
    diskcache-backed store, one cache directory per installation.

    Values are written as JSON text (same contract as InMemoryStore), so any
    process sharing the directory sees the latest committed write. An entry
    that is not valid JSON text reads as no value.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._cache = Cache(str(self.directory))
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot open store directory {self.directory}: {e}") from e

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self._cache.get(key)
        except (OSError, sqlite3.Error) as e:
            logger.warning(f"[Store] Unreadable entry '{key}' in {self.directory}, treating as empty: {e}")
            return None
        if raw is None:
            return None
        if not isinstance(raw, str):
            logger.warning(f"[Store] Entry '{key}' is not JSON text, treating as empty")
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"[Store] Corrupt value under '{key}', treating as empty: {e}")
            return None

    def set(self, key: str, value: Any) -> None:
        text = _to_json(key, value)
        try:
            self._cache.set(key, text)
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot write '{key}' to {self.directory}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._cache.delete(key)
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot delete '{key}' from {self.directory}: {e}") from e

    def keys(self) -> list[str]:
        return sorted(self._cache.iterkeys())

    def close(self) -> None:
        self._cache.close()
