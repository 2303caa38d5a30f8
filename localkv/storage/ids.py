"""Sortable unique identifiers for stored records."""

from __future__ import annotations

import random
import secrets
import threading
import time

# Ordered by ASCII value so ids sort chronologically as plain strings
PUSH_CHARS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"

ID_LENGTH = 20
TIMESTAMP_LENGTH = 8
SUFFIX_LENGTH = ID_LENGTH - TIMESTAMP_LENGTH

_lock = threading.Lock()
_last_time = 0
_last_suffix = [0] * SUFFIX_LENGTH


def _encode_base62(value: int, length: int) -> str:
    chars = []
    for _ in range(length):
        value, digit = divmod(value, len(PUSH_CHARS))
        chars.append(PUSH_CHARS[digit])
    if value:
        raise ValueError(f"Value does not fit in {length} base-62 characters")
    return "".join(reversed(chars))


def generate_id(rng: random.Random | None = None) -> str:
    """Generate a 20-character id that sorts by creation time.

    The first 8 characters encode the current UTC time in milliseconds, the
    remaining 12 are random. Without ``rng`` the suffix comes from a secure
    source, and ids created within the same millisecond increment the previous
    suffix so they stay unique and ordered. With ``rng`` (for reproducible
    tests) every suffix is drawn fresh and no state is shared.

    Args:
        rng: Optional random generator for the suffix

    Returns:
        The new id

    Examples:
        >>> first, second = generate_id(), generate_id()
        >>> first < second
        True
    """
    global _last_time

    now = time.time_ns() // 1_000_000
    prefix = _encode_base62(now, TIMESTAMP_LENGTH)

    if rng is not None:
        suffix = [rng.randrange(len(PUSH_CHARS)) for _ in range(SUFFIX_LENGTH)]
        return prefix + "".join(PUSH_CHARS[i] for i in suffix)

    with _lock:
        if now != _last_time:
            for i in range(SUFFIX_LENGTH):
                _last_suffix[i] = secrets.randbelow(len(PUSH_CHARS))
        else:
            i = SUFFIX_LENGTH - 1
            while i >= 0 and _last_suffix[i] == len(PUSH_CHARS) - 1:
                _last_suffix[i] = 0
                i -= 1
            if i >= 0:
                _last_suffix[i] += 1
        _last_time = now
        suffix_text = "".join(PUSH_CHARS[i] for i in _last_suffix)

    return prefix + suffix_text
