"""Key-value storage: backends, containers, item holders and object containers."""

from localkv.storage.backend import (
    BackendState,
    DecodeError,
    InvalidKeyError,
    NotInitializedError,
    RecordNotFoundError,
    StorageBackend,
    StorageConnectionError,
    StorageError,
    UnsupportedTypeError,
)
from localkv.storage.codec import DEFAULT_DELIMITER, KeyCodec
from localkv.storage.container import StorageContainer
from localkv.storage.ids import generate_id
from localkv.storage.item_holder import ItemHolder
from localkv.storage.listeners import ListenerRegistry
from localkv.storage.object_container import ObjectContainer
from localkv.storage.registry import (
    BackendConfigError,
    BackendNotFoundError,
    BackendRegistry,
)
from localkv.storage.storage import KeyValueStorage
from localkv.storage.subscription import Subscription
from localkv.storage.values import ValueKind

__all__ = [
    # Storage
    "KeyValueStorage",
    "StorageContainer",
    "ObjectContainer",
    "ItemHolder",
    "Subscription",
    "ListenerRegistry",
    "KeyCodec",
    "ValueKind",
    "DEFAULT_DELIMITER",
    "generate_id",
    # Backend contract
    "StorageBackend",
    "BackendState",
    "StorageError",
    "NotInitializedError",
    "UnsupportedTypeError",
    "DecodeError",
    "InvalidKeyError",
    "RecordNotFoundError",
    "StorageConnectionError",
    # Registry
    "BackendRegistry",
    "BackendConfigError",
    "BackendNotFoundError",
]
