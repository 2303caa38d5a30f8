"""Storage backend implementations."""

from localkv.storage.backends.filesystem_backend import FilesystemBackend
from localkv.storage.backends.memory_backend import InMemoryBackend
from localkv.storage.backends.mongodb_backend import MongoDBBackend
from localkv.storage.backends.secure_backend import SecureFileBackend

__all__ = [
    "FilesystemBackend",
    "InMemoryBackend",
    "MongoDBBackend",
    "SecureFileBackend",
]
