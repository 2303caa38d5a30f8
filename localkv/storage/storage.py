"""Root storage handle."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from localkv.storage.backend import StorageBackend
from localkv.storage.codec import validate_name
from localkv.storage.container import StorageContainer
from localkv.storage.object_container import ObjectContainer

logger = logging.getLogger(__name__)

T = TypeVar("T")


class KeyValueStorage(StorageContainer):
    """The root container of a backend and the owner of its named containers.

    The handle is created and closed by the caller and passed to whatever
    needs storage; there is no global instance. Closing it closes every
    container it created and then the backend.

    Examples:
        >>> async with await KeyValueStorage.open(FilesystemBackend("~/.myapp")) as storage:
        ...     settings = await storage.container("settings")
        ...     await settings.set_bool("onboarded", True)
    """

    def __init__(self, backend: StorageBackend, delimiter: str | None = None):
        super().__init__(backend, "", delimiter, owns_backend=True)
        self._containers: dict[str, StorageContainer] = {}
        self._object_containers: dict[str, ObjectContainer[Any]] = {}

    @classmethod
    async def open(
        cls, backend: StorageBackend, delimiter: str | None = None
    ) -> KeyValueStorage:
        """Initialize ``backend`` and return a storage handle that owns it.

        Args:
            backend: Backend to store values in
            delimiter: Default separator for named containers

        Returns:
            A ready storage handle
        """
        await backend.initialize()
        logger.info(f"Opened storage on {type(backend).__name__}")
        return cls(backend, delimiter)

    @classmethod
    async def in_memory(cls, initial_data: Mapping[str, Any] | None = None) -> KeyValueStorage:
        """Open a storage handle over a fresh in-memory backend.

        Args:
            initial_data: Physical keys and primitive values to seed the backend with
        """
        from localkv.storage.backends.memory_backend import InMemoryBackend

        return await cls.open(InMemoryBackend(initial_data))

    async def container(self, name: str, delimiter: str | None = None) -> StorageContainer:
        """Return the named container, created on first use.

        Args:
            name: Container name used as the key namespace
            delimiter: Separator between namespace and key, defaults to the
                storage's delimiter

        Returns:
            The container for ``name``
        """
        validate_name(name)
        self._ensure_open()

        container = self._containers.get(name)
        if container is None or container.is_closed:
            container = await self.backend.container(name, delimiter or self.delimiter)
            self._containers[name] = container
            logger.debug(f"Created container '{name}'")
        return container

    async def object_container(
        self,
        name: str,
        *,
        to_json: Callable[[T], Mapping[str, Any]],
        from_json: Callable[[dict[str, Any]], T],
        id_getter: Callable[[T], str] | None = None,
        delimiter: str | None = None,
        rng: random.Random | None = None,
    ) -> ObjectContainer[T]:
        """Return the object container for ``name``, created on first use.

        Raises:
            ValueError: If ``name`` is already used by an object container with
                other converters, id getter or random generator
        """
        validate_name(name)
        self._ensure_open()

        existing = self._object_containers.get(name)
        if existing is not None and not existing.is_closed:
            if (
                existing.to_json != to_json
                or existing.from_json != from_json
                or existing.id_getter != id_getter
                or existing.rng is not rng
            ):
                raise ValueError(
                    f"Object container '{name}' already exists with different settings"
                )
            return existing

        container = await self.container(name, delimiter)
        objects = ObjectContainer(
            container, to_json=to_json, from_json=from_json, id_getter=id_getter, rng=rng
        )
        self._object_containers[name] = objects
        return objects

    async def close(self) -> None:
        """Close every named container, then the root container and backend."""
        if self.is_closed:
            return
        for container in list(self._containers.values()):
            await container.close()
        self._containers.clear()
        self._object_containers.clear()
        await super().close()
        logger.info(f"Closed storage on {type(self.backend).__name__}")
