"""Registry of named, configured storage backends."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from localkv.storage.backend import StorageBackend
from localkv.storage.backends.filesystem_backend import FilesystemBackend
from localkv.storage.backends.memory_backend import InMemoryBackend
from localkv.storage.backends.mongodb_backend import MongoDBBackend
from localkv.storage.backends.secure_backend import DEFAULT_ITERATIONS, SecureFileBackend
from localkv.storage.container import StorageContainer
from localkv.storage.storage import KeyValueStorage
from localkv.utils.config import (
    ConfigError,
    load_and_resolve_config,
    resolve_config_inheritance,
    resolve_env_values,
)
from localkv.utils.env import load_env_file_if_present

logger = logging.getLogger(__name__)


class BackendConfigError(Exception):
    """Raised when backend configuration is invalid."""

    pass


class BackendNotFoundError(Exception):
    """Raised when a named backend is not found in configuration."""

    pass


class BackendRegistry:
    """Opens storages for backends described in configuration.

    A dotted name selects a container on a configured backend: ``"dev"`` is
    the root storage of the ``dev`` backend and ``"dev.settings"`` its
    ``settings`` container. Each backend is opened once and shared by every
    name under it until the registry is closed.

    Examples:
        >>> async with BackendRegistry() as registry:
        ...     settings = await registry.open_storage("dev.settings")
        ...     await settings.set_string("theme", "dark")
    """

    def __init__(
        self,
        configuration: dict[str, dict[str, Any]] | None = None,
        config_module: str = "configs.storage_backends",
        env_file: str | Path | None = ".env",
    ):
        """Initialize the registry.

        Args:
            configuration: Backend configuration dict. If None, loads it from
                ``config_module``
            config_module: Dotted path of the configuration module
            env_file: .env file loaded before reading configuration, None to skip
        """
        if env_file is not None:
            load_env_file_if_present(env_file)

        if configuration is None:
            configuration = load_and_resolve_config(config_module, default={})
        else:
            configuration = resolve_config_inheritance(configuration)

        self._config = configuration
        self._storages: dict[str, KeyValueStorage] = {}
        self._retired: list[KeyValueStorage] = []

    def parse_name(self, name: str) -> tuple[str, str]:
        """Split a storage name into backend name and container name.

        Args:
            name: Storage name (e.g., "dev", "dev.settings", "dev.users.archive")

        Returns:
            Tuple of (backend_name, container_name) where nested parts are
            joined with "/"

        Examples:
            >>> registry.parse_name("dev")
            ('dev', '')
            >>> registry.parse_name("dev.users.archive")
            ('dev', 'users/archive')
        """
        base_name, _, rest = name.partition(".")
        return base_name, rest.replace(".", "/")

    def create_backend(self, config: dict[str, Any]) -> StorageBackend:
        """Create an uninitialized backend from configuration.

        Args:
            config: Backend configuration dict with "type" and backend-specific
                params. ``<field>_env`` entries are read from the environment.

        Returns:
            Backend instance

        Raises:
            BackendConfigError: If configuration is invalid
        """
        try:
            config = resolve_env_values(config)
        except ConfigError as e:
            raise BackendConfigError(str(e)) from e

        backend_type = config.get("type")
        if not backend_type:
            raise BackendConfigError("Backend configuration must specify 'type'")

        if backend_type == "memory":
            return InMemoryBackend(config.get("initial_data"))

        if backend_type == "filesystem":
            base_path = config.get("base_path")
            if not base_path:
                raise BackendConfigError("Filesystem backend requires 'base_path'")
            return FilesystemBackend(
                base_path=Path(base_path), file_name=config.get("file_name", "preferences")
            )

        if backend_type == "secure":
            base_path = config.get("base_path")
            if not base_path:
                raise BackendConfigError("Secure backend requires 'base_path'")
            try:
                return SecureFileBackend(
                    Path(base_path),
                    key=config.get("key"),
                    password=config.get("password"),
                    file_name=config.get("file_name", "secure_preferences"),
                    iterations=config.get("iterations", DEFAULT_ITERATIONS),
                )
            except ValueError as e:
                raise BackendConfigError(f"Invalid secure backend configuration: {e}") from e

        if backend_type == "mongodb":
            return MongoDBBackend(
                host=config.get("host", "localhost"),
                port=config.get("port", 27017),
                database=config.get("database", "localkv"),
                collection=config.get("collection", "default"),
                username=config.get("username"),
                password=config.get("password"),
                **config.get("options", {}),
            )

        raise BackendConfigError(f"Unknown backend type: {backend_type}")

    async def open_storage(self, name: str) -> StorageContainer:
        """Open the storage or container for a dotted name.

        Args:
            name: Backend name with optional container (e.g., "dev", "dev.settings")

        Returns:
            The root storage for a plain backend name, otherwise the named
            container on that backend

        Raises:
            BackendNotFoundError: If the backend name is not configured
            BackendConfigError: If the backend configuration is invalid
        """
        base_name, container_name = self.parse_name(name)

        if base_name not in self._config:
            available = ", ".join(self._config.keys())
            raise BackendNotFoundError(
                f"Backend '{base_name}' not found in configuration. "
                f"Available backends: {available or 'none'}"
            )

        storage = self._storages.get(base_name)
        if storage is None or storage.is_closed:
            config = self._config[base_name]
            backend = self.create_backend(config)
            storage = await KeyValueStorage.open(backend, config.get("delimiter"))
            self._storages[base_name] = storage
            logger.info(f"Opened storage '{base_name}' ({config['type']})")

        if not container_name:
            return storage
        return await storage.container(container_name)

    def list_backends(self) -> list[str]:
        """List all configured backend names."""
        return list(self._config.keys())

    def register(self, name: str, config: dict[str, Any]) -> None:
        """Register or replace a backend configuration.

        A storage already opened under ``name`` stays usable and is closed with
        the registry; later ``open_storage`` calls use the new configuration.
        """
        self._config[name] = resolve_config_inheritance({**self._config, name: config})[name]
        storage = self._storages.pop(name, None)
        if storage is not None:
            self._retired.append(storage)
            logger.warning(f"Backend '{name}' re-registered while open")

    async def close(self) -> None:
        """Close every storage opened by this registry."""
        storages = [*self._storages.values(), *self._retired]
        self._storages.clear()
        self._retired.clear()
        for storage in storages:
            await storage.close()

    async def __aenter__(self) -> BackendRegistry:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
