"""Typed values and their encoding onto backend primitives.

Every value the storage accepts belongs to one of the ten ``ValueKind``
members. Each kind is stored as exactly one backend primitive:

    STRING, STRING_LIST, JSON_OBJECT, JSON_ARRAY, BYTES -> string
    INT, TIMESTAMP, DURATION                            -> integer
    DOUBLE                                              -> double
    BOOL                                                -> boolean

Composite kinds are JSON text (lists and objects), base64 text (bytes) or
milliseconds (timestamps and durations). Decoding malformed data raises
``DecodeError`` rather than returning None.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, get_args, get_origin

from localkv.storage.backend import DecodeError, UnsupportedTypeError

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
ONE_MILLISECOND = timedelta(milliseconds=1)


class Primitive(Enum):
    """The four value types every backend stores natively."""

    STRING = str
    INT = int
    DOUBLE = float
    BOOL = bool


class ValueKind(Enum):
    """Closed set of value types supported by containers."""

    STRING = "string"
    INT = "int"
    DOUBLE = "double"
    BOOL = "bool"
    STRING_LIST = "string_list"
    JSON_OBJECT = "json_object"
    JSON_ARRAY = "json_array"
    TIMESTAMP = "timestamp"
    DURATION = "duration"
    BYTES = "bytes"

    @property
    def primitive(self) -> Primitive:
        """Backend primitive this kind is stored as."""
        return _CODECS[self].primitive

    def encode(self, value: Any) -> Any:
        """Encode a value of this kind into its primitive form.

        Raises:
            UnsupportedTypeError: If ``value`` is not a valid value of this kind
        """
        return _CODECS[self].encode(value)

    def decode(self, raw: Any) -> Any:
        """Decode a stored primitive, passing None through.

        Raises:
            DecodeError: If ``raw`` is not a valid encoding of this kind
        """
        if raw is None:
            return None
        return _CODECS[self].decode(raw)

    @classmethod
    def for_type(cls, value_type: Any) -> ValueKind:
        """Resolve the kind for a requested Python type.

        Accepts a ``ValueKind``, one of ``str``, ``int``, ``float``, ``bool``,
        ``list`` (a string list), ``dict``, ``datetime``, ``timedelta``,
        ``bytes``, or the generic aliases ``list[str]``, ``list[...]`` (a JSON
        array) and ``dict[...]``.

        Raises:
            UnsupportedTypeError: If the type is outside the supported set
        """
        if isinstance(value_type, ValueKind):
            return value_type

        origin = get_origin(value_type)
        if origin is list:
            return cls.STRING_LIST if get_args(value_type) == (str,) else cls.JSON_ARRAY
        if origin is dict:
            return cls.JSON_OBJECT

        if isinstance(value_type, type) and value_type in _TYPE_KINDS:
            return _TYPE_KINDS[value_type]

        raise UnsupportedTypeError(f"Unsupported type: {value_type!r}")

    @classmethod
    def of(cls, value: Any) -> ValueKind:
        """Resolve the kind of a runtime value.

        Lists and tuples made only of strings are string lists, any other list
        is a JSON array.

        Raises:
            UnsupportedTypeError: If the value's type is outside the supported set
        """
        # bool before int: bool is an int subclass
        if isinstance(value, bool):
            return cls.BOOL
        if isinstance(value, int):
            return cls.INT
        if isinstance(value, float):
            return cls.DOUBLE
        if isinstance(value, str):
            return cls.STRING
        if isinstance(value, datetime):
            return cls.TIMESTAMP
        if isinstance(value, timedelta):
            return cls.DURATION
        if isinstance(value, (bytes, bytearray)):
            return cls.BYTES
        if isinstance(value, Mapping):
            return cls.JSON_OBJECT
        if isinstance(value, (list, tuple)):
            if all(isinstance(item, str) for item in value):
                return cls.STRING_LIST
            return cls.JSON_ARRAY

        raise UnsupportedTypeError(f"Unsupported type: {type(value).__name__}")


@dataclass(frozen=True)
class _Codec:
    primitive: Primitive
    encode: Callable[[Any], Any]
    decode: Callable[[Any], Any]


def _reject(kind: str, value: Any) -> UnsupportedTypeError:
    return UnsupportedTypeError(f"Cannot store {type(value).__name__} as {kind}")


def _identity(kind: str, expected: type) -> Callable[[Any], Any]:
    def encode(value: Any) -> Any:
        if isinstance(value, bool) != (expected is bool) or not isinstance(value, expected):
            raise _reject(kind, value)
        return value

    return encode


def _encode_double(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _reject("double", value)
    return float(value)


def _dumps(kind: str, value: Any) -> str:
    try:
        return json.dumps(value, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise UnsupportedTypeError(f"Value is not JSON serializable as {kind}: {e}") from e


def _loads(kind: str, raw: Any) -> Any:
    if not isinstance(raw, str):
        raise DecodeError(f"Expected JSON text for {kind}, found {type(raw).__name__}")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Malformed JSON for {kind}: {e}") from e


def _encode_string_list(value: Any) -> str:
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise _reject("string list", value)
    return _dumps("string list", list(value))


def _decode_string_list(raw: Any) -> list[str]:
    decoded = _loads("string list", raw)
    if not isinstance(decoded, list) or not all(isinstance(v, str) for v in decoded):
        raise DecodeError("Stored value is not a JSON array of strings")
    return decoded


def _encode_json_object(value: Any) -> str:
    if not isinstance(value, Mapping):
        raise _reject("JSON object", value)
    return _dumps("JSON object", dict(value))


def _decode_json_object(raw: Any) -> dict[str, Any]:
    decoded = _loads("JSON object", raw)
    if not isinstance(decoded, dict):
        raise DecodeError(f"Stored value is a JSON {type(decoded).__name__}, not an object")
    return decoded


def _encode_json_array(value: Any) -> str:
    if not isinstance(value, (list, tuple)):
        raise _reject("JSON array", value)
    return _dumps("JSON array", list(value))


def _decode_json_array(raw: Any) -> list[Any]:
    decoded = _loads("JSON array", raw)
    if not isinstance(decoded, list):
        raise DecodeError(f"Stored value is a JSON {type(decoded).__name__}, not an array")
    return decoded


def _encode_timestamp(value: Any) -> int:
    if not isinstance(value, datetime):
        raise _reject("timestamp", value)
    # Naive datetimes are local time
    try:
        return (value.astimezone(UTC) - EPOCH) // ONE_MILLISECOND
    except (OverflowError, OSError, ValueError) as e:
        raise UnsupportedTypeError(f"Cannot store {value!r} as timestamp: {e}") from e


def _decode_timestamp(raw: Any) -> datetime:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise DecodeError(f"Expected milliseconds for timestamp, found {type(raw).__name__}")
    try:
        return EPOCH + timedelta(milliseconds=raw)
    except OverflowError as e:
        raise DecodeError(f"Timestamp {raw} ms is out of range") from e


def _encode_duration(value: Any) -> int:
    if not isinstance(value, timedelta):
        raise _reject("duration", value)
    return value // ONE_MILLISECOND


def _decode_duration(raw: Any) -> timedelta:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise DecodeError(f"Expected milliseconds for duration, found {type(raw).__name__}")
    try:
        return timedelta(milliseconds=raw)
    except OverflowError as e:
        raise DecodeError(f"Duration {raw} ms is out of range") from e


def _encode_bytes(value: Any) -> str:
    if not isinstance(value, (bytes, bytearray)):
        raise _reject("bytes", value)
    return base64.b64encode(bytes(value)).decode("ascii")


def _decode_bytes(raw: Any) -> bytes:
    if not isinstance(raw, str):
        raise DecodeError(f"Expected base64 text for bytes, found {type(raw).__name__}")
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Malformed base64 data: {e}") from e


def _passthrough(raw: Any) -> Any:
    return raw


_CODECS: dict[ValueKind, _Codec] = {
    ValueKind.STRING: _Codec(Primitive.STRING, _identity("string", str), _passthrough),
    ValueKind.INT: _Codec(Primitive.INT, _identity("int", int), _passthrough),
    ValueKind.DOUBLE: _Codec(Primitive.DOUBLE, _encode_double, _passthrough),
    ValueKind.BOOL: _Codec(Primitive.BOOL, _identity("bool", bool), _passthrough),
    ValueKind.STRING_LIST: _Codec(Primitive.STRING, _encode_string_list, _decode_string_list),
    ValueKind.JSON_OBJECT: _Codec(Primitive.STRING, _encode_json_object, _decode_json_object),
    ValueKind.JSON_ARRAY: _Codec(Primitive.STRING, _encode_json_array, _decode_json_array),
    ValueKind.TIMESTAMP: _Codec(Primitive.INT, _encode_timestamp, _decode_timestamp),
    ValueKind.DURATION: _Codec(Primitive.INT, _encode_duration, _decode_duration),
    ValueKind.BYTES: _Codec(Primitive.STRING, _encode_bytes, _decode_bytes),
}

_TYPE_KINDS: dict[type, ValueKind] = {
    str: ValueKind.STRING,
    int: ValueKind.INT,
    float: ValueKind.DOUBLE,
    bool: ValueKind.BOOL,
    list: ValueKind.STRING_LIST,
    dict: ValueKind.JSON_OBJECT,
    datetime: ValueKind.TIMESTAMP,
    timedelta: ValueKind.DURATION,
    bytes: ValueKind.BYTES,
}
