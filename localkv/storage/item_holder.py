"""Single-key read/write handles."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from localkv.storage.backend import DecodeError
from localkv.storage.subscription import Subscription
from localkv.storage.values import ValueKind

if TYPE_CHECKING:
    from localkv.storage.container import StorageContainer

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ItemHolder(Generic[T]):
    """Typed handle bound to one key of a container.

    The holder keeps no value of its own. Reads and writes go through the
    container, and every change made through the holder calls ``on_changed``,
    which by default notifies the container's listeners for the key.

    ``to_value`` and ``from_value`` convert between the holder's type and the
    kind it is stored as, for example a record and its JSON object.
    """

    def __init__(
        self,
        container: StorageContainer,
        key: str,
        kind: ValueKind,
        *,
        to_value: Callable[[T], Any] | None = None,
        from_value: Callable[[Any], T] | None = None,
        on_changed: Callable[[], Awaitable[None]] | None = None,
    ):
        """Initialize the holder.

        Args:
            container: Container the key lives in
            key: Logical key
            kind: Kind the value is stored as
            to_value: Converts a held value before encoding
            from_value: Converts a decoded value before returning it
            on_changed: Called after each change, defaults to notifying ``key``
        """
        self._container = container
        self._key = key
        self._kind = kind
        self._to_value = to_value
        self._from_value = from_value
        self._on_changed = on_changed or (lambda: container.notify(key))

    def __repr__(self) -> str:
        return f"ItemHolder(key={self._key!r}, kind={self._kind.value})"

    @property
    def key(self) -> str:
        return self._key

    @property
    def kind(self) -> ValueKind:
        return self._kind

    @property
    def is_mapped(self) -> bool:
        """Whether values are converted on the way in and out."""
        return self._to_value is not None or self._from_value is not None

    def uses(self, to_value: Callable[..., Any], from_value: Callable[..., Any]) -> bool:
        return self._to_value == to_value and self._from_value == from_value

    async def exists(self) -> bool:
        return await self._container.contains_key(self._key)

    async def get(self) -> T | None:
        """Read the value, or None if the key is missing.

        Raises:
            DecodeError: If the stored value cannot be decoded or converted
        """
        value = await self._container.load(self._key, self._kind)
        if value is None or self._from_value is None:
            return value
        try:
            return self._from_value(value)
        except (TypeError, ValueError, KeyError) as e:
            raise DecodeError(f"Cannot convert value stored at '{self._key}': {e}") from e

    async def set(self, value: T) -> None:
        stored = self._to_value(value) if self._to_value is not None else value
        await self._container.store(self._key, self._kind, stored, notify=False)
        await self._on_changed()

    async def remove(self) -> None:
        """Remove the value. Nothing is notified if the key was missing."""
        if await self._container.remove(self._key, notify=False):
            await self._on_changed()

    def subscribe(self) -> Subscription[T | None]:
        """Start a live sequence of this key's values.

        The first value is the current one, then one value follows every change
        to the key made through any path.
        """
        return self._container.watch(self.get, self._key)

    async def __aiter__(self) -> AsyncIterator[T | None]:
        """Iterate a fresh subscription, cancelling it when the loop exits.

        Leaving the loop with ``break`` ends the subscription once the
        generator is finalized. Use ``async with holder.subscribe()`` to end
        it at a known point.
        """
        subscription = self.subscribe()
        try:
            async for value in subscription:
                yield value
        finally:
            subscription.cancel()
