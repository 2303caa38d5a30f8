"""MongoDB backend implementation for key-value storage."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any, TypeVar

from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError

from ..backend import (
    InvalidKeyError,
    StorageBackend,
    StorageConnectionError,
    StorageError,
    check_primitive,
    ensure_primitive,
)

if TYPE_CHECKING:
    from ..container import StorageContainer

logger = logging.getLogger(__name__)

R = TypeVar("R")


class MongoDBBackend(StorageBackend):
    """MongoDB implementation of the storage backend.

    Each key is one document ``{"_id": key, "value": value}`` in a collection.
    Named containers get a collection of their own on the same client instead
    of sharing one collection with prefixed keys.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 27017,
        database: str = "localkv",
        collection: str = "default",
        username: str | None = None,
        password: str | None = None,
        client: MongoClient | None = None,
        **kwargs,
    ):
        """Initialize MongoDB backend. No connection is made until ``initialize``.

        Args:
            host: MongoDB host
            port: MongoDB port
            database: Database name
            collection: Collection holding this backend's keys
            username: Optional username for authentication
            password: Optional password for authentication
            client: Existing client to share; it is not closed by this backend
            **kwargs: Additional arguments passed to MongoClient
        """
        super().__init__()
        self._host = host
        self._port = port
        self._database_name = database
        self._collection_name = collection
        self._username = username
        self._password = password
        self._client_kwargs = kwargs
        self._client = client
        self._owns_client = client is None
        self._collection = None

    def __repr__(self) -> str:
        return (
            f"MongoDBBackend(database={self._database_name!r}, "
            f"collection={self._collection_name!r}, state={self.state.value})"
        )

    @property
    def collection_name(self) -> str:
        return self._collection_name

    def _connect(self) -> None:
        if self._client is None:
            if self._username and self._password:
                uri = f"mongodb://{self._username}:{self._password}@{self._host}:{self._port}/"
            else:
                uri = f"mongodb://{self._host}:{self._port}/"
            self._client = MongoClient(uri, **self._client_kwargs)

        try:
            self._client.admin.command("ping")
        except ConnectionFailure as e:
            raise StorageConnectionError(f"Failed to connect to MongoDB: {e}") from e

        self._collection = self._client[self._database_name][self._collection_name]

    async def _open(self) -> None:
        await asyncio.to_thread(self._connect)
        logger.info(
            f"Connected to MongoDB collection: {self._database_name}.{self._collection_name}"
        )

    async def _release(self) -> None:
        self._collection = None
        if self._owns_client and self._client is not None:
            await asyncio.to_thread(self._client.close)
            self._client = None

    async def _run(self, description: str, operation: Callable[[], R]) -> R:
        self._ensure_ready()
        try:
            return await asyncio.to_thread(operation)
        except PyMongoError as e:
            raise StorageError(f"Failed to {description}: {e}") from e

    async def _get(self, key: str, expected: type) -> Any:
        document = await self._run(
            f"read '{key}'", lambda: self._collection.find_one({"_id": key})
        )
        value = document.get("value") if document else None
        return check_primitive(key, value, expected)

    async def _set(self, key: str, value: Any) -> None:
        ensure_primitive(key, value)
        await self._run(
            f"write '{key}'",
            lambda: self._collection.replace_one(
                {"_id": key}, {"_id": key, "value": value}, upsert=True
            ),
        )
        logger.debug(f"Stored '{key}' in {self._collection_name}")

    async def container(self, name: str, delimiter: str | None = None) -> StorageContainer:
        """Create a container backed by its own collection.

        The container owns the new backend, which shares this backend's client.

        Raises:
            InvalidKeyError: If ``name`` is this backend's own collection
        """
        from ..codec import validate_name
        from ..container import StorageContainer

        validate_name(name)
        self._ensure_ready()
        if name == self._collection_name:
            raise InvalidKeyError(
                f"Container name '{name}' is the root collection of {self._database_name}"
            )
        backend = MongoDBBackend(
            database=self._database_name, collection=name, client=self._client
        )
        await backend.initialize()
        return StorageContainer(backend, name, delimiter, owns_backend=True, namespaced=False)

    async def get_string(self, key: str) -> str | None:
        return await self._get(key, str)

    async def set_string(self, key: str, value: str) -> None:
        await self._set(key, value)

    async def get_int(self, key: str) -> int | None:
        return await self._get(key, int)

    async def set_int(self, key: str, value: int) -> None:
        await self._set(key, value)

    async def get_double(self, key: str) -> float | None:
        return await self._get(key, float)

    async def set_double(self, key: str, value: float) -> None:
        await self._set(key, value)

    async def get_bool(self, key: str) -> bool | None:
        return await self._get(key, bool)

    async def set_bool(self, key: str, value: bool) -> None:
        await self._set(key, value)

    async def set_all(self, values: Mapping[str, Any]) -> None:
        self._ensure_ready()
        if not values:
            return
        documents = [
            {"_id": key, "value": ensure_primitive(key, value)} for key, value in values.items()
        ]

        def write_all() -> None:
            for document in documents:
                self._collection.replace_one({"_id": document["_id"]}, document, upsert=True)

        await self._run(f"write {len(documents)} keys", write_all)

    async def get_all(self, keys: Iterable[str] | None = None) -> dict[str, Any]:
        if keys is None:
            query: dict[str, Any] = {}
        else:
            keys = list(keys)
            if not keys:
                self._ensure_ready()
                return {}
            query = {"_id": {"$in": keys}}

        documents = await self._run(
            "read documents", lambda: list(self._collection.find(query))
        )
        return {doc["_id"]: doc.get("value") for doc in documents}

    async def contains_key(self, key: str) -> bool:
        count = await self._run(
            f"look up '{key}'",
            lambda: self._collection.count_documents({"_id": key}, limit=1),
        )
        return count > 0

    async def remove(self, key: str) -> None:
        await self._run(f"remove '{key}'", lambda: self._collection.delete_one({"_id": key}))

    async def remove_all(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            self._ensure_ready()
            return
        await self._run(
            f"remove {len(keys)} keys",
            lambda: self._collection.delete_many({"_id": {"$in": keys}}),
        )

    async def list_keys(self) -> set[str]:
        documents = await self._run(
            "list keys", lambda: list(self._collection.find({}, {"_id": 1}))
        )
        return {doc["_id"] for doc in documents}

    async def clear(self) -> None:
        await self._run("clear collection", lambda: self._collection.delete_many({}))
        logger.debug(f"Cleared {self._collection_name}")
