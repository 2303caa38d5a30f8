"""Storage backend configuration.

This module defines the CONFIGURATION dict which maps backend names to their
settings. Users can customize this file or pass their own module path to
``BackendRegistry(config_module=...)``.

Configuration location: configs/storage_backends.py

Example usage:
    from localkv.storage import BackendRegistry

    registry = BackendRegistry()

    # Root storage of a named backend
    storage = await registry.open_storage("dev")

    # Container on that backend
    settings = await registry.open_storage("dev.settings")

Secrets:
    # Fields ending in "_env" name the environment variable holding the value.
    # Variables may also come from a .env file in the working directory.
    export LOCALKV_SECRET_PASSWORD=change-me

Configuration inheritance:
    # Use the "__inherits__" key to start from another entry
    "secrets": {
        "__inherits__": "dev",
        "type": "secure",
        "password_env": "LOCALKV_SECRET_PASSWORD",
    }
"""

from __future__ import annotations

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _resolve_default_base_path() -> Path:
    """Return the default directory for preference files."""
    configured_path = os.environ.get("LOCALKV_STORAGE_PATH")
    if configured_path:
        return Path(configured_path).expanduser()

    return PROJECT_ROOT / "var" / "localkv"


DEFAULT_BASE_PATH = _resolve_default_base_path()


CONFIGURATION = {
    # Throwaway storage, handy for tests and scripts
    "memory": {
        "type": "memory",
    },
    # Plain JSON preferences file
    "dev": {
        "type": "filesystem",
        "base_path": str(DEFAULT_BASE_PATH / "dev"),
    },
    # Encrypted preferences next to the dev file
    "secrets": {
        "__inherits__": "dev",
        "type": "secure",
        "password_env": "LOCALKV_SECRET_PASSWORD",
    },
    # Local MongoDB, one collection per container
    "mongo": {
        "type": "mongodb",
        "host": os.getenv("MONGODB_HOST", "localhost"),
        "port": int(os.getenv("MONGODB_PORT", "27017")),
        "database": os.getenv("MONGODB_DATABASE", "localkv"),
        "options": {"serverSelectionTimeoutMS": 2000},
    },
}
