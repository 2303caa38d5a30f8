"""Containers of whole records stored as JSON objects."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Generic, TypeVar

from localkv.storage.backend import DecodeError, RecordNotFoundError
from localkv.storage.codec import validate_key
from localkv.storage.container import StorageContainer
from localkv.storage.ids import generate_id
from localkv.storage.listeners import Listener
from localkv.storage.subscription import Subscription
from localkv.storage.values import ValueKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ObjectContainer(Generic[T]):
    """Stores records of one type, each under its own id.

    Records are converted with ``to_json``/``from_json`` and stored as JSON
    objects in a ``StorageContainer``. Ids come from ``id_getter`` when given,
    otherwise ``add`` generates a new id for every record.

    Examples:
        >>> users = await storage.object_container(
        ...     "users", to_json=User.to_json, from_json=User.from_json, id_getter=lambda u: u.id
        ... )
        >>> await users.add(User(id="u1", name="Ada"))
        'u1'
        >>> await users.get("u1")
        User(id='u1', name='Ada')
    """

    def __init__(
        self,
        container: StorageContainer,
        *,
        to_json: Callable[[T], Mapping[str, Any]],
        from_json: Callable[[dict[str, Any]], T],
        id_getter: Callable[[T], str] | None = None,
        rng: random.Random | None = None,
    ):
        """Initialize the object container.

        Args:
            container: Container holding the records
            to_json: Converts a record to a JSON object
            from_json: Builds a record from a JSON object
            id_getter: Extracts a record's id
            rng: Random generator for generated ids
        """
        self._container = container
        self.to_json = to_json
        self.from_json = from_json
        self.id_getter = id_getter
        self.rng = rng

    def __repr__(self) -> str:
        return f"ObjectContainer(name={self._container.name!r})"

    @property
    def name(self) -> str:
        return self._container.name

    @property
    def container(self) -> StorageContainer:
        return self._container

    @property
    def is_closed(self) -> bool:
        return self._container.is_closed

    def _id_for(self, record: T) -> str:
        record_id = self.id_getter(record) if self.id_getter else generate_id(self.rng)
        validate_key(record_id)
        return record_id

    def _existing_id(self, record: T) -> str:
        if self.id_getter is None:
            raise ValueError("Records can only be looked up by value when an id_getter is set")
        record_id = self.id_getter(record)
        validate_key(record_id)
        return record_id

    def _encode(self, record: T) -> dict[str, Any]:
        return dict(self.to_json(record))

    def _decode(self, record_id: str, data: dict[str, Any]) -> T:
        try:
            return self.from_json(data)
        except (TypeError, ValueError, KeyError) as e:
            raise DecodeError(f"Record '{record_id}' does not match the expected shape: {e}") from e

    # Writes

    async def set(self, record_id: str, record: T) -> None:
        """Store ``record`` under ``record_id``, replacing any previous record."""
        await self._container.set_json(record_id, self._encode(record))

    async def set_all(self, records: Mapping[str, T]) -> None:
        for record_id in records:
            validate_key(record_id)
        await self._container.set_all(
            {record_id: self._encode(record) for record_id, record in records.items()}
        )

    async def add(self, record: T) -> str:
        """Store a record under its id.

        Returns:
            The id the record was stored under
        """
        record_id = self._id_for(record)
        await self.set(record_id, record)
        return record_id

    async def add_all(self, records: Iterable[T]) -> list[str]:
        """Store several records and return their ids in order."""
        items = {self._id_for(record): record for record in records}
        await self.set_all(items)
        return list(items)

    async def update(self, record: T) -> None:
        """Replace a stored record.

        Raises:
            RecordNotFoundError: If no record with the same id exists
            ValueError: If the container has no id_getter
        """
        record_id = self._existing_id(record)
        if not await self._container.contains_key(record_id):
            raise RecordNotFoundError(f"Record '{record_id}' does not exist and cannot be updated")
        await self.set(record_id, record)

    async def update_all(self, records: Iterable[T]) -> None:
        """Replace several stored records.

        Every id is checked before anything is written, so a missing record
        leaves all records unchanged.

        Raises:
            RecordNotFoundError: If any record does not exist yet
            ValueError: If the container has no id_getter
        """
        items = {self._existing_id(record): record for record in records}
        existing = await self._container.get_keys()
        missing = [record_id for record_id in items if record_id not in existing]
        if missing:
            raise RecordNotFoundError(
                f"Records do not exist and cannot be updated: {', '.join(missing)}"
            )
        await self.set_all(items)

    # Reads

    async def get(self, record_id: str | None) -> T | None:
        """Read a record.

        Args:
            record_id: Id of the record. None returns None.

        Returns:
            The record, or None if no record has this id

        Raises:
            DecodeError: If the stored data is not a valid record
        """
        if record_id is None:
            return None
        data = await self._container.get_json(record_id)
        if data is None:
            return None
        return self._decode(record_id, data)

    async def get_all(self, allow_list: Iterable[str] | None = None) -> dict[str, T]:
        """Read records by id.

        Args:
            allow_list: Ids to read. None reads every record; an empty
                collection returns an empty mapping.

        Returns:
            Mapping of id to record, missing ids omitted
        """
        raw = await self._container.get_all(allow_list)
        return {
            record_id: self._decode(record_id, ValueKind.JSON_OBJECT.decode(value))
            for record_id, value in raw.items()
        }

    async def get_values(self) -> list[T]:
        """Read every record."""
        return list((await self.get_all()).values())

    async def get_keys(self) -> set[str]:
        return await self._container.get_keys()

    async def contains_key(self, record_id: str) -> bool:
        return await self._container.contains_key(record_id)

    async def is_empty(self) -> bool:
        return await self._container.is_empty()

    # Removal

    async def remove(self, record_id: str) -> bool:
        return await self._container.remove(record_id)

    async def remove_item(self, record: T) -> bool:
        """Remove the stored record with the same id as ``record``."""
        return await self._container.remove(self._existing_id(record))

    async def remove_all(self, record_ids: Iterable[str]) -> None:
        await self._container.remove_all(record_ids)

    async def remove_all_items(self, records: Iterable[T]) -> None:
        await self._container.remove_all([self._existing_id(record) for record in records])

    async def clear(self) -> None:
        await self._container.clear()

    async def close(self) -> None:
        await self._container.close()

    # Listeners and subscriptions

    def add_listener(self, listener: Listener) -> None:
        self._container.add_listener(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._container.remove_listener(listener)

    def add_key_listener(self, record_id: str, listener: Listener) -> None:
        self._container.add_key_listener(record_id, listener)

    def remove_key_listener(self, record_id: str, listener: Listener) -> None:
        self._container.remove_key_listener(record_id, listener)

    def stream(self, record_id: str) -> Subscription[T | None]:
        """Subscribe to one record. Yields None while it does not exist."""
        return self._container.watch(lambda: self.get(record_id), record_id)

    def stream_all(self) -> Subscription[list[T]]:
        """Subscribe to the list of every record, re-read after each change."""
        return self._container.watch(self.get_values)
