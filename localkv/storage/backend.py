"""Backend capability contract for key-value storage.

A backend is a flat store of primitive values (strings, integers, doubles and
booleans) addressed by physical keys. Namespacing, typed values and change
notification are layered on top by the storage core and never reach the
backend.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from localkv.storage.container import StorageContainer

logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = (str, int, float, bool)


class BackendState(Enum):
    """Lifecycle state of a backend handle."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    CLOSED = "closed"


class StorageBackend(ABC):
    """Abstract base class for key-value storage backends.

    Subclasses implement the primitive operations below and may override the
    ``_open``/``_release`` hooks to acquire and free their resources. The
    lifecycle is fixed: a backend is initialized once, used many times and
    closed once. Any primitive operation outside the ready state raises
    ``NotInitializedError``.

    Typed getters return ``None`` for a missing key and raise ``DecodeError``
    when the stored primitive has a different type than the one requested.
    """

    def __init__(self) -> None:
        self._state = BackendState.UNINITIALIZED

    def __repr__(self) -> str:
        return f"{type(self).__name__}(state={self._state.value})"

    @property
    def state(self) -> BackendState:
        """Current lifecycle state."""
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is BackendState.READY

    async def initialize(self) -> None:
        """Acquire the backend's resources.

        Calling this on a ready backend does nothing.

        Raises:
            NotInitializedError: If the backend has already been closed
        """
        if self._state is BackendState.READY:
            return
        if self._state is BackendState.CLOSED:
            raise NotInitializedError(
                f"{type(self).__name__} has been closed and cannot be initialized again"
            )

        await self._open()
        self._state = BackendState.READY
        logger.info(f"Initialized {type(self).__name__}")

    async def close(self) -> None:
        """Release the backend's resources. A second call does nothing."""
        if self._state is BackendState.CLOSED:
            return
        if self._state is BackendState.READY:
            await self._release()
        self._state = BackendState.CLOSED
        logger.info(f"Closed {type(self).__name__}")

    def _ensure_ready(self) -> None:
        if self._state is not BackendState.READY:
            raise NotInitializedError(
                f"{type(self).__name__} not initialized. Call initialize() first."
            )

    async def _open(self) -> None:
        """Acquire resources. Called once by ``initialize``."""

    async def _release(self) -> None:
        """Free resources. Called once by ``close``."""

    async def container(self, name: str, delimiter: str | None = None) -> StorageContainer:
        """Create a named container over this backend.

        The default container shares this backend, so closing the container
        leaves the backend open. Backends that keep a dedicated store per
        namespace override this and hand ownership of the new store to the
        container.

        Args:
            name: Container name used as the key namespace
            delimiter: Separator between namespace and key

        Returns:
            A container bound to this backend
        """
        from localkv.storage.codec import validate_name
        from localkv.storage.container import StorageContainer

        validate_name(name)
        self._ensure_ready()
        return StorageContainer(self, name, delimiter)

    @abstractmethod
    async def get_string(self, key: str) -> str | None:
        """Read a string value.

        Args:
            key: Physical key

        Returns:
            The stored string, or None if the key is missing

        Raises:
            DecodeError: If the stored value is not a string
        """

    @abstractmethod
    async def set_string(self, key: str, value: str) -> None:
        """Store a string value under ``key``."""

    @abstractmethod
    async def get_int(self, key: str) -> int | None:
        """Read an integer value, or None if the key is missing."""

    @abstractmethod
    async def set_int(self, key: str, value: int) -> None:
        """Store an integer value under ``key``."""

    @abstractmethod
    async def get_double(self, key: str) -> float | None:
        """Read a floating point value, or None if the key is missing."""

    @abstractmethod
    async def set_double(self, key: str, value: float) -> None:
        """Store a floating point value under ``key``."""

    @abstractmethod
    async def get_bool(self, key: str) -> bool | None:
        """Read a boolean value, or None if the key is missing."""

    @abstractmethod
    async def set_bool(self, key: str, value: bool) -> None:
        """Store a boolean value under ``key``."""

    @abstractmethod
    async def set_all(self, values: Mapping[str, Any]) -> None:
        """Store several primitive values.

        Not atomic across keys: a failure may leave some keys written.

        Args:
            values: Mapping of physical key to primitive value
        """

    @abstractmethod
    async def get_all(self, keys: Iterable[str] | None = None) -> dict[str, Any]:
        """Read several values at once.

        Args:
            keys: Physical keys to read. None reads every key; an empty
                collection returns an empty mapping.

        Returns:
            Mapping of physical key to stored primitive, missing keys omitted
        """

    @abstractmethod
    async def contains_key(self, key: str) -> bool:
        """Check whether ``key`` is present."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete ``key``. Deleting a missing key is not an error."""

    @abstractmethod
    async def remove_all(self, keys: Iterable[str]) -> None:
        """Delete several keys, ignoring keys that do not exist."""

    @abstractmethod
    async def list_keys(self) -> set[str]:
        """Return every physical key currently present."""

    @abstractmethod
    async def clear(self) -> None:
        """Delete every key in this backend's store."""


def check_primitive(key: str, value: Any, expected: type) -> Any:
    """Validate a stored primitive against the type a getter asked for.

    ``bool`` and ``int`` are never interchangeable. An ``int`` read as a
    double is widened to ``float``.

    Args:
        key: Key the value was read from, used in the error message
        value: Stored value or None
        expected: One of str, int, float or bool

    Returns:
        The value, or None if it was None

    Raises:
        DecodeError: If the value has a different type
    """
    if value is None:
        return None
    if isinstance(value, bool) == (expected is bool):
        if expected is float and isinstance(value, int):
            return float(value)
        if isinstance(value, expected):
            return value

    raise DecodeError(
        f"Value stored at '{key}' is {type(value).__name__}, not {expected.__name__}"
    )


def ensure_primitive(key: str, value: Any) -> Any:
    """Reject values a backend cannot store natively."""
    if not isinstance(value, PRIMITIVE_TYPES):
        raise UnsupportedTypeError(
            f"Backends store str, int, float or bool; got {type(value).__name__} for '{key}'"
        )
    return value


# Custom exceptions


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


class NotInitializedError(StorageError):
    """Raised when a backend or container is used before init or after close."""

    pass


class UnsupportedTypeError(StorageError, TypeError):
    """Raised when a value type outside the supported set is requested or stored."""

    pass


class DecodeError(StorageError):
    """Raised when stored data cannot be decoded as the requested type."""

    pass


class InvalidKeyError(StorageError, ValueError):
    """Raised when a key, container name or delimiter is not acceptable."""

    pass


class RecordNotFoundError(StorageError, KeyError):
    """Raised when updating a record that was never stored."""

    pass


class StorageConnectionError(StorageError):
    """Raised when a backend cannot reach its underlying store."""

    pass
