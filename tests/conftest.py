from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

import pytest

from localkv.storage import KeyValueStorage
from localkv.storage.backends import InMemoryBackend


@dataclass
class User:
    """Record type used by object container tests."""

    id: str
    name: str
    age: int = 0

    def to_json(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "age": self.age}

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> User:
        return cls(id=data["id"], name=data["name"], age=data.get("age", 0))


def user_to_json(user: User) -> dict[str, Any]:
    return user.to_json()


def user_id(user: User) -> str:
    return user.id


class FakeCollection:
    """Dict-backed stand-in for the pymongo collection calls the backend makes."""

    def __init__(self):
        self.documents: dict[str, dict[str, Any]] = {}

    def _matches(self, query: dict[str, Any]) -> list[dict[str, Any]]:
        if not query:
            return list(self.documents.values())
        selector = query["_id"]
        if isinstance(selector, dict):
            return [self.documents[k] for k in selector["$in"] if k in self.documents]
        return [self.documents[selector]] if selector in self.documents else []

    def find_one(self, query):
        matches = self._matches(query)
        return dict(matches[0]) if matches else None

    def find(self, query, projection=None):
        matches = self._matches(query)
        if projection:
            return [{field: doc[field] for field in projection if field in doc} for doc in matches]
        return [dict(doc) for doc in matches]

    def replace_one(self, query, document, upsert=False):
        if upsert or query["_id"] in self.documents:
            self.documents[query["_id"]] = dict(document)

    def count_documents(self, query, limit=0):
        count = len(self._matches(query))
        return min(count, limit) if limit else count

    def delete_one(self, query):
        self.documents.pop(query["_id"], None)

    def delete_many(self, query):
        for document in self._matches(query):
            del self.documents[document["_id"]]


class FakeMongoClient:
    """Minimal MongoClient replacement holding fake collections."""

    def __init__(self, *args, **kwargs):
        self.args = args
        self.kwargs = kwargs
        self.databases: dict[str, dict[str, FakeCollection]] = {}
        self.admin = _FakeAdmin()
        self.closed = False

    def __getitem__(self, name: str) -> _FakeDatabase:
        return _FakeDatabase(self.databases.setdefault(name, {}))

    def close(self):
        self.closed = True


class _FakeDatabase:
    def __init__(self, collections: dict[str, FakeCollection]):
        self._collections = collections

    def __getitem__(self, name: str) -> FakeCollection:
        return self._collections.setdefault(name, FakeCollection())


class _FakeAdmin:
    def __init__(self):
        self.commands: list[str] = []

    def command(self, name: str):
        self.commands.append(name)
        return {"ok": 1}


@pytest.fixture
def fake_mongo_client():
    """Fake MongoDB client shared by backends under test."""
    return FakeMongoClient()


@pytest.fixture
async def memory_backend():
    """Initialized in-memory backend."""
    backend = InMemoryBackend()
    await backend.initialize()
    yield backend
    await backend.close()


@pytest.fixture
async def storage():
    """Root storage over a fresh in-memory backend."""
    storage = await KeyValueStorage.in_memory()
    yield storage
    await storage.close()


@pytest.fixture
def clean_env():
    """Clean environment fixture to isolate tests."""
    original_env = os.environ.copy()
    for key in ["LOCALKV_SECRET_PASSWORD", "LOCALKV_STORAGE_PATH", "LOCALKV_TEST_VALUE"]:
        os.environ.pop(key, None)
    yield
    os.environ.clear()
    os.environ.update(original_env)
