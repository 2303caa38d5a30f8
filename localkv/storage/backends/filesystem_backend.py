"""Filesystem backend implementation for key-value storage."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any

from ..backend import DecodeError, StorageError, UnsupportedTypeError, ensure_primitive
from .memory_backend import InMemoryBackend

logger = logging.getLogger(__name__)


class FilesystemBackend(InMemoryBackend):
    """Filesystem implementation of the storage backend.

    Keeps every key in memory and writes the whole store to a single JSON
    preferences file after each change. The file is replaced atomically, so a
    crash mid-write leaves the previous contents intact.
    """

    def __init__(self, base_path: str | Path, file_name: str = "preferences"):
        """Initialize filesystem backend.

        Args:
            base_path: Directory holding the preferences file
            file_name: Name of the file without extension
        """
        super().__init__()
        self._base_path = Path(base_path).expanduser()
        self._file_path = self._base_path / f"{file_name}.json"
        self._write_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(path={str(self._file_path)!r}, state={self.state.value})"

    @property
    def file_path(self) -> Path:
        return self._file_path

    async def _open(self) -> None:
        data = await asyncio.to_thread(self._load_file)
        try:
            values = {key: ensure_primitive(key, value) for key, value in data.items()}
        except UnsupportedTypeError as e:
            raise DecodeError(f"{self._file_path} holds an invalid value: {e}") from e
        with self._lock:
            self._data = values
        logger.info(f"Loaded {len(self._data)} keys from {self._file_path}")

    def _load_file(self) -> dict[str, Any]:
        payload = self._read_file()
        return self._load_payload(payload) if payload is not None else {}

    def _read_file(self) -> dict[str, Any] | None:
        try:
            self._base_path.mkdir(parents=True, exist_ok=True)
            if not self._file_path.exists():
                return None
            with open(self._file_path, encoding="utf-8") as f:
                payload = json.load(f)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Preferences file {self._file_path} is not valid JSON: {e}") from e
        except OSError as e:
            raise StorageError(f"Failed to read {self._file_path}: {e}") from e

        if not isinstance(payload, dict):
            raise DecodeError(f"Preferences file {self._file_path} does not hold a JSON object")
        return payload

    def _load_payload(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Turn the file's JSON object into key-value data."""
        return payload

    def _dump_payload(self, data: dict[str, Any]) -> dict[str, Any]:
        """Turn key-value data into the JSON object written to the file."""
        return data

    async def _commit(self) -> None:
        async with self._write_lock:
            await asyncio.to_thread(self._write_file, self._snapshot())

    def _write_file(self, data: dict[str, Any]) -> None:
        payload = self._dump_payload(data)
        tmp_path = self._file_path.with_suffix(self._file_path.suffix + ".tmp")
        try:
            self._base_path.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._file_path)
            logger.debug(f"Wrote {self._file_path}")
        except OSError as e:
            raise StorageError(f"Failed to write {self._file_path}: {e}") from e
