"""Encrypted filesystem backend for secrets."""

from __future__ import annotations

import base64
import json
import logging
import os
from pathlib import Path
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..backend import DecodeError
from .filesystem_backend import FilesystemBackend

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
DEFAULT_ITERATIONS = 390000


class SecureFileBackend(FilesystemBackend):
    """Filesystem backend that encrypts every value with Fernet.

    Keys stay readable so containers can list them; each value is encrypted
    separately. Provide either a Fernet ``key`` or a ``password``. A password
    is stretched with PBKDF2 using a random salt stored in the file, so the
    same password opens the file again later.

    File layout::

        {"v": 1, "mode": "password", "salt": "...", "iterations": 390000,
         "entries": {"token": "<fernet token of the JSON value>"}}
    """

    def __init__(
        self,
        base_path: str | Path,
        *,
        key: bytes | str | None = None,
        password: str | None = None,
        file_name: str = "secure_preferences",
        iterations: int = DEFAULT_ITERATIONS,
    ):
        """Initialize secure backend.

        Args:
            base_path: Directory holding the encrypted file
            key: Fernet key (32 url-safe base64-encoded bytes)
            password: Passphrase to derive the key from
            file_name: Name of the file without extension
            iterations: PBKDF2 iterations for password-derived keys

        Raises:
            ValueError: If neither or both of ``key`` and ``password`` are given,
                or the key is not a valid Fernet key
        """
        if (key is None) == (password is None):
            raise ValueError("SecureFileBackend requires exactly one of `key` or `password`")

        super().__init__(base_path, file_name)
        self._password = password
        self._iterations = iterations
        self._salt: bytes | None = None
        self._fernet: Fernet | None = None
        if key is not None:
            self._fernet = Fernet(key.encode("ascii") if isinstance(key, str) else key)

    @property
    def mode(self) -> str:
        return "password" if self._password is not None else "key"

    def _derive_key(self, salt: bytes, iterations: int) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=iterations,
        )
        return base64.urlsafe_b64encode(kdf.derive(self._password.encode("utf-8")))

    def _use_salt(self, salt: bytes, iterations: int) -> None:
        self._salt = salt
        self._iterations = iterations
        self._fernet = Fernet(self._derive_key(salt, iterations))

    def _load_file(self) -> dict[str, Any]:
        data = super()._load_file()
        if self._fernet is None:
            # New file: pick the salt it will be written with
            self._use_salt(os.urandom(16), self._iterations)
        return data

    def _load_payload(self, payload: dict[str, Any]) -> dict[str, Any]:
        if payload.get("v") != FORMAT_VERSION or not isinstance(payload.get("entries"), dict):
            raise DecodeError(f"{self.file_path} is not an encrypted preferences file")

        mode = payload.get("mode")
        if mode != self.mode:
            raise DecodeError(f"{self.file_path} was written in {mode} mode, not {self.mode} mode")

        if mode == "password":
            try:
                salt = base64.urlsafe_b64decode(payload["salt"].encode("ascii"))
            except (KeyError, AttributeError, ValueError) as e:
                raise DecodeError(f"{self.file_path} has no valid salt") from e
            self._use_salt(salt, payload.get("iterations", self._iterations))

        data: dict[str, Any] = {}
        for key, token in payload["entries"].items():
            try:
                plaintext = self._fernet.decrypt(token.encode("ascii"))
            except (InvalidToken, AttributeError, UnicodeEncodeError) as e:
                raise DecodeError(
                    f"Cannot decrypt '{key}' in {self.file_path}: wrong key or corrupted data"
                ) from e
            data[key] = json.loads(plaintext)

        logger.debug(f"Decrypted {len(data)} entries from {self.file_path}")
        return data

    def _dump_payload(self, data: dict[str, Any]) -> dict[str, Any]:
        payload: dict[str, Any] = {"v": FORMAT_VERSION, "mode": self.mode}
        if self._password is not None:
            payload["salt"] = base64.urlsafe_b64encode(self._salt).decode("ascii")
            payload["iterations"] = self._iterations

        payload["entries"] = {
            key: self._fernet.encrypt(json.dumps(value).encode("utf-8")).decode("ascii")
            for key, value in data.items()
        }
        return payload

    async def _release(self) -> None:
        await super()._release()
        if self._password is not None:
            self._fernet = None
