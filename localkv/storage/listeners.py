"""Change listeners for containers."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)

Listener = Callable[[], "Awaitable[None] | None"]


class ListenerRegistry:
    """Unkeyed and keyed listeners for one container.

    Unkeyed listeners fire on every change. Keyed listeners fire only for
    changes to their logical key. Within one notification every keyed listener
    of the affected keys fires before the unkeyed listeners, which fire once.

    Listeners run inline with the change that triggered them. A coroutine
    function is awaited before the next listener runs. An exception raised by a
    listener propagates to the caller and skips the listeners after it.
    """

    def __init__(self) -> None:
        # dicts used as insertion-ordered sets
        self._listeners: dict[Listener, None] = {}
        self._key_listeners: dict[str, dict[Listener, None]] = {}

    def __len__(self) -> int:
        return len(self._listeners) + sum(len(ls) for ls in self._key_listeners.values())

    def add_listener(self, listener: Listener) -> None:
        """Register a listener fired on every change."""
        self._listeners[listener] = None

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.pop(listener, None)

    def add_key_listener(self, key: str, listener: Listener) -> None:
        """Register a listener fired on changes to ``key``."""
        self._key_listeners.setdefault(key, {})[listener] = None

    def remove_key_listener(self, key: str, listener: Listener) -> None:
        listeners = self._key_listeners.get(key)
        if listeners is None:
            return
        listeners.pop(listener, None)
        if not listeners:
            del self._key_listeners[key]

    def remove_all(self) -> None:
        """Drop every listener, keyed and unkeyed."""
        count = len(self)
        self._listeners.clear()
        self._key_listeners.clear()
        if count:
            logger.debug(f"Removed {count} listeners")

    def has_listeners(self) -> bool:
        return bool(self._listeners) or bool(self._key_listeners)

    def has_key_listeners(self, key: str) -> bool:
        return key in self._key_listeners

    async def notify(self, keys: Iterable[str] = ()) -> None:
        """Fire the listeners for a change to ``keys``.

        Args:
            keys: Logical keys that changed. Unkeyed listeners fire once even
                when no keys are given.
        """
        # Snapshot first so listeners may register or remove listeners safely
        keyed = [
            listener
            for key in dict.fromkeys(keys)
            for listener in list(self._key_listeners.get(key, ()))
        ]
        unkeyed = list(self._listeners)

        for listener in keyed + unkeyed:
            result = listener()
            if inspect.isawaitable(result):
                await result
