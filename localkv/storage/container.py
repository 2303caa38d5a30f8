"""Namespaced, typed and observable view over a storage backend."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, TypeVar

from localkv.storage.backend import NotInitializedError, StorageBackend
from localkv.storage.codec import (
    DEFAULT_DELIMITER,
    KeyCodec,
    validate_key,
    validate_keys,
)
from localkv.storage.listeners import Listener, ListenerRegistry
from localkv.storage.subscription import Subscription
from localkv.storage.values import Primitive, ValueKind

if TYPE_CHECKING:
    from localkv.storage.item_holder import ItemHolder

logger = logging.getLogger(__name__)

T = TypeVar("T")

_GETTERS = {
    Primitive.STRING: "get_string",
    Primitive.INT: "get_int",
    Primitive.DOUBLE: "get_double",
    Primitive.BOOL: "get_bool",
}

_SETTERS = {
    Primitive.STRING: "set_string",
    Primitive.INT: "set_int",
    Primitive.DOUBLE: "set_double",
    Primitive.BOOL: "set_bool",
}


class StorageContainer:
    """Isolated key namespace over one backend.

    Logical keys are encoded to physical keys with the container's ``KeyCodec``
    and values are encoded with ``ValueKind``. Every successful change notifies
    the container's listeners after the backend has applied it; failed writes
    notify nothing.

    Removing a key that is not present is a no-op: the backend is not called
    and no listener fires.

    Examples:
        >>> settings = await backend.container("settings")
        >>> await settings.set_string("theme", "dark")
        >>> await settings.get_string("theme")
        'dark'
    """

    def __init__(
        self,
        backend: StorageBackend,
        name: str = "",
        delimiter: str | None = None,
        *,
        owns_backend: bool = False,
        namespaced: bool = True,
    ):
        """Initialize the container.

        Args:
            backend: Backend holding the container's keys
            name: Name of the container, empty for the root container
            delimiter: Separator between namespace and key
            owns_backend: Whether closing the container closes the backend
            namespaced: Whether keys are prefixed with the name. Containers
                with a dedicated backend store their keys unprefixed.
        """
        self._backend = backend
        self._name = name
        self._codec = KeyCodec(name if namespaced else "", delimiter or DEFAULT_DELIMITER)
        self._owns_backend = owns_backend
        self._listeners = ListenerRegistry()
        self._subscriptions: dict[Subscription[Any], None] = {}
        self._holders: dict[str, ItemHolder[Any]] = {}
        self._closed = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r}, backend={self._backend!r})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def delimiter(self) -> str:
        return self._codec.delimiter

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    @property
    def codec(self) -> KeyCodec:
        return self._codec

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def listeners(self) -> ListenerRegistry:
        return self._listeners

    def _ensure_open(self) -> None:
        if self._closed:
            raise NotInitializedError(f"Container '{self._name}' is closed")

    # Listeners

    def add_listener(self, listener: Listener) -> None:
        self._ensure_open()
        self._listeners.add_listener(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.remove_listener(listener)

    def add_key_listener(self, key: str, listener: Listener) -> None:
        validate_key(key)
        self._ensure_open()
        self._listeners.add_key_listener(key, listener)

    def remove_key_listener(self, key: str, listener: Listener) -> None:
        self._listeners.remove_key_listener(key, listener)

    def remove_all_listeners(self) -> None:
        self._listeners.remove_all()

    def has_listeners(self) -> bool:
        return self._listeners.has_listeners()

    async def notify(self, *keys: str) -> None:
        """Fire the listeners for ``keys``, or only the unkeyed listeners if none are given."""
        await self._listeners.notify(keys)

    # Typed access

    async def load(self, key: str, kind: ValueKind) -> Any:
        """Read and decode the value of ``key``.

        Args:
            key: Logical key
            kind: Kind the value was stored as

        Returns:
            The decoded value, or None if the key is missing

        Raises:
            DecodeError: If the stored value is not a valid ``kind``
        """
        validate_key(key)
        self._ensure_open()
        getter = getattr(self._backend, _GETTERS[kind.primitive])
        raw = await getter(self._codec.encode(key))
        return kind.decode(raw)

    async def store(self, key: str, kind: ValueKind, value: Any, *, notify: bool = True) -> None:
        """Encode and write ``value`` under ``key``.

        All setters go through this method, so each write notifies once.

        Args:
            key: Logical key
            kind: Kind to store the value as
            value: Value to store
            notify: Whether to fire listeners after the write

        Raises:
            UnsupportedTypeError: If ``value`` is not a valid ``kind``
        """
        validate_key(key)
        self._ensure_open()
        raw = kind.encode(value)
        setter = getattr(self._backend, _SETTERS[kind.primitive])
        await setter(self._codec.encode(key), raw)
        logger.debug(f"Stored {kind.value} at '{key}' in container '{self._name}'")
        if notify:
            await self._listeners.notify((key,))

    async def get_string(self, key: str) -> str | None:
        return await self.load(key, ValueKind.STRING)

    async def set_string(self, key: str, value: str) -> None:
        await self.store(key, ValueKind.STRING, value)

    async def get_int(self, key: str) -> int | None:
        return await self.load(key, ValueKind.INT)

    async def set_int(self, key: str, value: int) -> None:
        await self.store(key, ValueKind.INT, value)

    async def get_double(self, key: str) -> float | None:
        return await self.load(key, ValueKind.DOUBLE)

    async def set_double(self, key: str, value: float) -> None:
        await self.store(key, ValueKind.DOUBLE, value)

    async def get_bool(self, key: str) -> bool | None:
        return await self.load(key, ValueKind.BOOL)

    async def set_bool(self, key: str, value: bool) -> None:
        await self.store(key, ValueKind.BOOL, value)

    async def get_string_list(self, key: str) -> list[str] | None:
        return await self.load(key, ValueKind.STRING_LIST)

    async def set_string_list(self, key: str, value: list[str]) -> None:
        await self.store(key, ValueKind.STRING_LIST, value)

    async def get_json(self, key: str) -> dict[str, Any] | None:
        return await self.load(key, ValueKind.JSON_OBJECT)

    async def set_json(self, key: str, value: Mapping[str, Any]) -> None:
        await self.store(key, ValueKind.JSON_OBJECT, value)

    async def get_json_list(self, key: str) -> list[Any] | None:
        return await self.load(key, ValueKind.JSON_ARRAY)

    async def set_json_list(self, key: str, value: list[Any]) -> None:
        await self.store(key, ValueKind.JSON_ARRAY, value)

    async def get_datetime(self, key: str, *, local: bool = False) -> datetime | None:
        """Read a timestamp as an aware UTC datetime, or in local time if ``local``."""
        value = await self.load(key, ValueKind.TIMESTAMP)
        if value is not None and local:
            return value.astimezone()
        return value

    async def set_datetime(self, key: str, value: datetime) -> None:
        """Store a timestamp with millisecond precision. Naive values are local time."""
        await self.store(key, ValueKind.TIMESTAMP, value)

    async def get_duration(self, key: str) -> timedelta | None:
        return await self.load(key, ValueKind.DURATION)

    async def set_duration(self, key: str, value: timedelta) -> None:
        await self.store(key, ValueKind.DURATION, value)

    async def get_bytes(self, key: str) -> bytes | None:
        return await self.load(key, ValueKind.BYTES)

    async def set_bytes(self, key: str, value: bytes) -> None:
        await self.store(key, ValueKind.BYTES, value)

    async def get(self, key: str, value_type: Any) -> Any:
        """Read ``key`` as the requested type.

        Args:
            key: Logical key
            value_type: A type accepted by ``ValueKind.for_type``

        Returns:
            The decoded value, or None if the key is missing

        Raises:
            UnsupportedTypeError: If the type is not supported
            DecodeError: If the stored value does not match the type

        Examples:
            >>> await container.set_int("age", 30)
            >>> await container.get("age", int)
            30
        """
        return await self.load(key, ValueKind.for_type(value_type))

    async def set(self, key: str, value: Any) -> None:
        """Store ``value`` with the kind matching its runtime type.

        Raises:
            UnsupportedTypeError: If the value's type is not supported
        """
        await self.store(key, ValueKind.of(value), value)

    # Keys and bulk access

    async def contains_key(self, key: str) -> bool:
        validate_key(key)
        self._ensure_open()
        return await self._backend.contains_key(self._codec.encode(key))

    async def _physical_keys(self) -> set[str]:
        keys = await self._backend.list_keys()
        return {key for key in keys if self._codec.owns(key)}

    async def get_keys(self) -> set[str]:
        """Return the logical keys present in this container."""
        self._ensure_open()
        return {self._codec.decode(key) for key in await self._physical_keys()}

    async def get_all(self, allow_list: Iterable[str] | None = None) -> dict[str, Any]:
        """Read stored primitives by logical key.

        Args:
            allow_list: Logical keys to read. None reads the whole container;
                an empty collection returns an empty mapping.

        Returns:
            Mapping of logical key to stored primitive, missing keys omitted
        """
        self._ensure_open()
        if allow_list is None:
            physical = await self._physical_keys()
        else:
            allow_list = list(allow_list)
            validate_keys(allow_list)
            if not allow_list:
                return {}
            physical = {self._codec.encode(key) for key in allow_list}

        values = await self._backend.get_all(physical)
        return {self._codec.decode(key): value for key, value in values.items()}

    async def set_all(self, values: Mapping[str, Any]) -> None:
        """Store several values, each encoded by its runtime type.

        Not atomic across keys. Listeners fire once for the whole batch after
        the backend has written it.
        """
        validate_keys(values.keys())
        self._ensure_open()
        if not values:
            return

        encoded = {
            self._codec.encode(key): ValueKind.of(value).encode(value)
            for key, value in values.items()
        }
        await self._backend.set_all(encoded)
        logger.debug(f"Stored {len(encoded)} values in container '{self._name}'")
        await self._listeners.notify(values.keys())

    async def remove(self, key: str, *, notify: bool = True) -> bool:
        """Remove ``key``.

        Returns:
            True if the key was present and has been removed
        """
        validate_key(key)
        self._ensure_open()
        physical = self._codec.encode(key)
        if not await self._backend.contains_key(physical):
            return False

        await self._backend.remove(physical)
        logger.debug(f"Removed '{key}' from container '{self._name}'")
        if notify:
            await self._listeners.notify((key,))
        return True

    async def remove_all(self, keys: Iterable[str]) -> None:
        """Remove several keys. Only keys that were present are notified."""
        keys = list(keys)
        validate_keys(keys)
        self._ensure_open()
        if not keys:
            return

        physical = {self._codec.encode(key): key for key in keys}
        present = await self._backend.get_all(physical)
        if not present:
            return

        await self._backend.remove_all(present)
        removed = [physical[key] for key in present]
        logger.debug(f"Removed {len(removed)} keys from container '{self._name}'")
        await self._listeners.notify(removed)

    async def clear(self) -> None:
        """Remove every key of this container and tear down its listeners.

        The keyed listeners of the removed keys fire, then the unkeyed
        listeners fire once. Afterwards every listener is removed and every
        live subscription ends.
        """
        self._ensure_open()
        physical = await self._physical_keys()

        if self._codec.is_root:
            await self._backend.clear()
        elif physical:
            await self._backend.remove_all(physical)
        logger.info(f"Cleared {len(physical)} keys from container '{self._name}'")

        try:
            await self._listeners.notify(self._codec.decode(key) for key in physical)
        finally:
            self._teardown()

    async def is_empty(self) -> bool:
        self._ensure_open()
        return not await self._physical_keys()

    async def close(self) -> None:
        """Remove listeners, end subscriptions and close an owned backend.

        Closing twice does nothing.
        """
        if self._closed:
            return
        self._closed = True
        self._teardown()
        self._holders.clear()
        if self._owns_backend:
            await self._backend.close()
        logger.debug(f"Closed container '{self._name}'")

    def _teardown(self) -> None:
        self._listeners.remove_all()
        for subscription in list(self._subscriptions):
            subscription.cancel()
        self._subscriptions.clear()

    async def __aenter__(self) -> StorageContainer:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # Item holders and subscriptions

    def item_holder(self, key: str, value_type: Any) -> ItemHolder[Any]:
        """Return the holder for ``key``, created on first use.

        Raises:
            ValueError: If a holder of another kind already exists for ``key``
        """
        from localkv.storage.item_holder import ItemHolder

        validate_key(key)
        self._ensure_open()
        kind = ValueKind.for_type(value_type)

        holder = self._holders.get(key)
        if holder is None:
            holder = ItemHolder(self, key, kind)
            self._holders[key] = holder
        elif holder.kind is not kind or holder.is_mapped:
            raise ValueError(f"Item holder for '{key}' already exists with a different type")
        return holder

    def json_item_holder(
        self,
        key: str,
        *,
        to_json: Callable[[T], Mapping[str, Any]],
        from_json: Callable[[dict[str, Any]], T],
    ) -> ItemHolder[T]:
        """Return the holder storing records of one type as JSON objects under ``key``.

        Raises:
            ValueError: If a holder with other converters already exists for ``key``
        """
        from localkv.storage.item_holder import ItemHolder

        validate_key(key)
        self._ensure_open()

        holder = self._holders.get(key)
        if holder is None:
            holder = ItemHolder(
                self, key, ValueKind.JSON_OBJECT, to_value=to_json, from_value=from_json
            )
            self._holders[key] = holder
        elif not holder.uses(to_json, from_json):
            raise ValueError(f"Item holder for '{key}' already exists with different converters")
        return holder

    def watch(
        self, fetch: Callable[[], Awaitable[T]], key: str | None = None
    ) -> Subscription[T]:
        """Subscribe to changes of ``key``, or of the whole container if None.

        Args:
            fetch: Reads the value yielded for each change

        Returns:
            A subscription ended by ``cancel()``, ``clear()`` or ``close()``
        """
        self._ensure_open()
        if key is None:
            register = self._listeners.add_listener
            unregister = self._listeners.remove_listener
        else:
            validate_key(key)

            def register(listener: Listener) -> None:
                self._listeners.add_key_listener(key, listener)

            def unregister(listener: Listener) -> None:
                self._listeners.remove_key_listener(key, listener)

        subscription = Subscription(fetch, register, unregister, self._forget)
        self._subscriptions[subscription] = None
        return subscription

    def _forget(self, subscription: Subscription[Any]) -> None:
        self._subscriptions.pop(subscription, None)

    def stream(self, key: str, value_type: Any) -> Subscription[Any]:
        """Subscribe to the values of ``key`` read as ``value_type``."""
        kind = ValueKind.for_type(value_type)
        return self.watch(lambda: self.load(key, kind), key)
