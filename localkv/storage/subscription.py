"""Cancellable live value sequences."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DONE = object()


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: Exception):
        self.error = error


class Subscription(Generic[T]):
    """Async iterator over the current and subsequent values of a source.

    Iteration yields the value read when iteration starts, then one value per
    change reported to the registered listener. Each value is read inside the
    listener, so values arrive in the order the changes were made.

    ``cancel()`` removes the listener exactly once and ends iteration after any
    values already queued. It is synchronous, so concurrent tasks calling it
    cannot interleave inside it.

    Examples:
        >>> async with container.stream("theme", str) as themes:
        ...     async for theme in themes:
        ...         print(theme)
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        register: Callable[[Callable[[], Awaitable[None]]], None],
        unregister: Callable[[Callable[[], Awaitable[None]]], None],
        on_finish: Callable[[Subscription[T]], None] | None = None,
    ):
        """Initialize the subscription. Nothing is registered until iteration starts.

        Args:
            fetch: Reads the current value
            register: Adds a listener to the watched source
            unregister: Removes that listener again
            on_finish: Called once when the subscription ends
        """
        self._fetch = fetch
        self._register = register
        self._unregister = unregister
        self._on_finish = on_finish
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._started = False
        self._registered = False
        self._finished = False

    @property
    def is_active(self) -> bool:
        return not self._finished

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        if not self._started:
            self._started = True
            if self._finished:
                raise StopAsyncIteration
            self._register(self._on_change)
            self._registered = True
            try:
                return await self._fetch()
            except BaseException:
                self.cancel()
                raise

        if self._finished and self._queue.empty():
            raise StopAsyncIteration

        item = await self._queue.get()
        if item is _DONE:
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            raise item.error
        return item

    async def _on_change(self) -> None:
        if self._finished:
            return
        try:
            value = await self._fetch()
        except Exception as e:
            # Delivered to the consumer instead of failing the writer
            self._queue.put_nowait(_Failure(e))
            return
        self._queue.put_nowait(value)

    def cancel(self) -> None:
        """End the subscription. Further calls do nothing."""
        if self._finished:
            return
        self._finished = True

        if self._registered:
            self._unregister(self._on_change)
            self._registered = False
        self._queue.put_nowait(_DONE)

        if self._on_finish is not None:
            self._on_finish(self)
        logger.debug("Subscription cancelled")

    async def aclose(self) -> None:
        self.cancel()

    async def __aenter__(self) -> Subscription[T]:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cancel()
