"""Key namespacing for containers sharing one backend.

A container named ``acct`` with delimiter ``/`` stores logical key ``user``
under physical key ``acct/user``. The root container uses logical keys
unchanged.
"""

from __future__ import annotations

from collections.abc import Iterable

from localkv.storage.backend import InvalidKeyError

DEFAULT_DELIMITER = "___"

# Characters reserved by the backends' own key syntax
RESERVED_DELIMITER_CHARS = frozenset(".:;~`[]{}()<>?\"'")


def validate_key(key: str) -> None:
    """Reject empty and whitespace-only keys."""
    if not isinstance(key, str):
        raise InvalidKeyError(f"Key must be a string, got {type(key).__name__}")
    if not key:
        raise InvalidKeyError("Key cannot be empty")
    if not key.strip():
        raise InvalidKeyError("Key cannot be only whitespace")


def validate_keys(keys: Iterable[str] | None) -> None:
    if not keys:
        return
    for key in keys:
        validate_key(key)


def validate_name(name: str) -> None:
    """Reject empty and whitespace-only container names."""
    if not isinstance(name, str) or not name:
        raise InvalidKeyError("Container name cannot be empty")
    if not name.strip():
        raise InvalidKeyError("Container name cannot be only whitespace")


def validate_delimiter(delimiter: str) -> None:
    if not delimiter:
        raise InvalidKeyError("Delimiter cannot be empty")
    if not delimiter.strip():
        raise InvalidKeyError("Delimiter cannot be only whitespace")
    reserved = RESERVED_DELIMITER_CHARS.intersection(delimiter)
    if reserved:
        raise InvalidKeyError(
            f"Delimiter '{delimiter}' contains reserved characters: {''.join(sorted(reserved))}"
        )


class KeyCodec:
    """Maps logical keys to physical keys for one namespace.

    Whether the namespace itself contains the delimiter is not checked; keeping
    namespaces free of it is the caller's job.
    """

    def __init__(self, namespace: str = "", delimiter: str = DEFAULT_DELIMITER):
        """Initialize the codec.

        Args:
            namespace: Namespace prefix, empty for the root container
            delimiter: Separator placed between namespace and key
        """
        validate_delimiter(delimiter)
        self.namespace = namespace
        self.delimiter = delimiter
        self._prefix = f"{namespace}{delimiter}" if namespace else ""

    def __repr__(self) -> str:
        return f"KeyCodec(namespace={self.namespace!r}, delimiter={self.delimiter!r})"

    @property
    def is_root(self) -> bool:
        return not self.namespace

    def encode(self, key: str) -> str:
        """Add the namespace prefix to a logical key."""
        return self._prefix + key if self._prefix else key

    def decode(self, physical_key: str) -> str:
        """Remove the namespace prefix from a physical key.

        Keys without the prefix are returned unchanged, so foreign keys left by
        another namespace never raise.
        """
        if self._prefix and physical_key.startswith(self._prefix):
            return physical_key[len(self._prefix) :]
        return physical_key

    def owns(self, physical_key: str) -> bool:
        """Check whether a physical key belongs to this namespace.

        The root namespace owns every key of its backend.
        """
        return not self._prefix or physical_key.startswith(self._prefix)
