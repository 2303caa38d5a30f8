"""In-memory backend implementation for key-value storage."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any

from ..backend import StorageBackend, check_primitive, ensure_primitive

logger = logging.getLogger(__name__)

_MISSING = object()


class InMemoryBackend(StorageBackend):
    """Dictionary-backed implementation of the storage backend.

    Performs no I/O, which makes it the reference implementation for backend
    behavior and the natural stand-in for other backends in tests. Subclasses
    can persist the dictionary by overriding ``_commit``, which runs after
    every change. If it raises, the change is undone before the error
    propagates.
    """

    def __init__(self, initial_data: Mapping[str, Any] | None = None):
        """Initialize in-memory backend.

        Args:
            initial_data: Physical keys and primitive values to start with
        """
        super().__init__()
        self._lock = threading.RLock()
        self._data: dict[str, Any] = {}
        if initial_data:
            for key, value in initial_data.items():
                self._data[key] = ensure_primitive(key, value)

    def _read(self, key: str, expected: type) -> Any:
        self._ensure_ready()
        with self._lock:
            value = self._data.get(key)
        return check_primitive(key, value, expected)

    async def _write(self, items: Mapping[str, Any]) -> None:
        self._ensure_ready()
        values = {key: ensure_primitive(key, value) for key, value in items.items()}
        with self._lock:
            previous = {key: self._data.get(key, _MISSING) for key in values}
            self._data.update(values)
        await self._commit_or_restore(previous)

    async def _delete(self, keys: Iterable[str]) -> None:
        self._ensure_ready()
        with self._lock:
            previous = {key: self._data.pop(key) for key in keys if key in self._data}
        if previous:
            await self._commit_or_restore(previous)

    async def _commit_or_restore(self, previous: Mapping[str, Any]) -> None:
        """Commit, putting ``previous`` values back if the commit fails."""
        try:
            await self._commit()
        except Exception:
            with self._lock:
                for key, value in previous.items():
                    if value is _MISSING:
                        self._data.pop(key, None)
                    else:
                        self._data[key] = value
            raise

    async def _commit(self) -> None:
        """Persist the current data. Nothing to do in memory."""

    def _snapshot(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._data)

    async def _release(self) -> None:
        with self._lock:
            self._data.clear()

    async def get_string(self, key: str) -> str | None:
        return self._read(key, str)

    async def set_string(self, key: str, value: str) -> None:
        await self._write({key: value})

    async def get_int(self, key: str) -> int | None:
        return self._read(key, int)

    async def set_int(self, key: str, value: int) -> None:
        await self._write({key: value})

    async def get_double(self, key: str) -> float | None:
        return self._read(key, float)

    async def set_double(self, key: str, value: float) -> None:
        await self._write({key: value})

    async def get_bool(self, key: str) -> bool | None:
        return self._read(key, bool)

    async def set_bool(self, key: str, value: bool) -> None:
        await self._write({key: value})

    async def set_all(self, values: Mapping[str, Any]) -> None:
        if values:
            await self._write(values)
        else:
            self._ensure_ready()

    async def get_all(self, keys: Iterable[str] | None = None) -> dict[str, Any]:
        self._ensure_ready()
        with self._lock:
            if keys is None:
                return dict(self._data)
            return {key: self._data[key] for key in keys if key in self._data}

    async def contains_key(self, key: str) -> bool:
        self._ensure_ready()
        with self._lock:
            return key in self._data

    async def remove(self, key: str) -> None:
        await self._delete([key])

    async def remove_all(self, keys: Iterable[str]) -> None:
        await self._delete(keys)

    async def list_keys(self) -> set[str]:
        self._ensure_ready()
        with self._lock:
            return set(self._data)

    async def clear(self) -> None:
        self._ensure_ready()
        with self._lock:
            previous = dict(self._data)
            self._data.clear()
        await self._commit_or_restore(previous)
        logger.debug(f"Cleared {type(self).__name__}")
