"""Tests for the backend registry."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from localkv.storage import (
    BackendConfigError,
    BackendNotFoundError,
    BackendRegistry,
    KeyValueStorage,
    StorageContainer,
)
from localkv.storage.backends import (
    FilesystemBackend,
    InMemoryBackend,
    MongoDBBackend,
    SecureFileBackend,
)


def make_registry(configuration=None) -> BackendRegistry:
    return BackendRegistry(configuration or {}, env_file=None)


class TestParseName:
    """Test suite for dotted storage names."""

    def test_parse_name_simple(self):
        """Test parsing simple backend name."""
        assert make_registry().parse_name("dev") == ("dev", "")

    def test_parse_name_with_one_level(self):
        """Test parsing name with one level."""
        assert make_registry().parse_name("dev.settings") == ("dev", "settings")

    def test_parse_name_with_multiple_levels(self):
        """Test parsing name with multiple levels."""
        assert make_registry().parse_name("dev.users.archive") == ("dev", "users/archive")


class TestCreateBackend:
    """Test suite for building backends from configuration."""

    def test_create_memory_backend(self):
        """Test creating in-memory backend from config."""
        backend = make_registry().create_backend({"type": "memory", "initial_data": {"k": 1}})
        assert isinstance(backend, InMemoryBackend)

    def test_create_filesystem_backend(self, tmp_path):
        """Test creating filesystem backend from config."""
        backend = make_registry().create_backend(
            {"type": "filesystem", "base_path": str(tmp_path), "file_name": "app"}
        )

        assert isinstance(backend, FilesystemBackend)
        assert backend.file_path == tmp_path / "app.json"

    def test_create_secure_backend_from_env(self, tmp_path, clean_env, monkeypatch):
        """Test that the password is read from the named environment variable."""
        monkeypatch.setenv("LOCALKV_SECRET_PASSWORD", "pw")

        backend = make_registry().create_backend(
            {
                "type": "secure",
                "base_path": str(tmp_path),
                "password_env": "LOCALKV_SECRET_PASSWORD",
            }
        )

        assert isinstance(backend, SecureFileBackend)
        assert backend.mode == "password"

    def test_missing_env_variable(self, tmp_path, clean_env):
        """Test error when a referenced environment variable is unset."""
        with pytest.raises(BackendConfigError, match="LOCALKV_SECRET_PASSWORD"):
            make_registry().create_backend(
                {
                    "type": "secure",
                    "base_path": str(tmp_path),
                    "password_env": "LOCALKV_SECRET_PASSWORD",
                }
            )

    def test_secure_backend_without_secret(self, tmp_path):
        """Test error when neither key nor password is configured."""
        with pytest.raises(BackendConfigError, match="Invalid secure backend"):
            make_registry().create_backend({"type": "secure", "base_path": str(tmp_path)})

    def test_create_mongodb_backend(self):
        """Test creating MongoDB backend from config."""
        config = {
            "type": "mongodb",
            "host": "db",
            "port": 27018,
            "collection": "prefs",
            "options": {"serverSelectionTimeoutMS": 100},
        }

        with patch("localkv.storage.registry.MongoDBBackend") as mock_mongo:
            make_registry().create_backend(config)

        mock_mongo.assert_called_once_with(
            host="db",
            port=27018,
            database="localkv",
            collection="prefs",
            username=None,
            password=None,
            serverSelectionTimeoutMS=100,
        )

    def test_mongodb_backend_is_lazy(self):
        """Test that a MongoDB backend is created without connecting."""
        backend = make_registry().create_backend({"type": "mongodb"})
        assert isinstance(backend, MongoDBBackend)
        assert not backend.is_ready

    def test_create_backend_missing_type(self):
        """Test error when type is missing from config."""
        with pytest.raises(BackendConfigError, match="must specify 'type'"):
            make_registry().create_backend({})

    def test_create_backend_unknown_type(self):
        """Test error with unknown backend type."""
        with pytest.raises(BackendConfigError, match="Unknown backend type"):
            make_registry().create_backend({"type": "unknown"})

    def test_create_backend_missing_required_fields(self):
        """Test error when required fields are missing."""
        with pytest.raises(BackendConfigError, match="base_path"):
            make_registry().create_backend({"type": "filesystem"})


class TestOpenStorage:
    """Test suite for opening storages by name."""

    @pytest.fixture
    async def registry(self, tmp_path):
        """Registry with a memory and a filesystem backend."""
        registry = make_registry(
            {
                "memory": {"type": "memory"},
                "dev": {"type": "filesystem", "base_path": str(tmp_path), "delimiter": "/"},
            }
        )
        yield registry
        await registry.close()

    async def test_open_root_storage(self, registry):
        """Test that a plain name opens the backend's root storage."""
        storage = await registry.open_storage("memory")

        assert isinstance(storage, KeyValueStorage)
        assert storage.backend.is_ready

    async def test_open_container(self, registry):
        """Test that a dotted name opens a container on the backend."""
        settings = await registry.open_storage("dev.settings")
        await settings.set_string("theme", "dark")

        root = await registry.open_storage("dev")
        assert isinstance(settings, StorageContainer)
        assert await root.get_keys() == {"settings/theme"}

    async def test_nested_container_name(self, registry):
        """Test that extra dots become part of the container name."""
        archive = await registry.open_storage("memory.users.archive")
        assert archive.name == "users/archive"

    async def test_storage_is_shared(self, registry):
        """Test that names on the same backend share one storage."""
        first = await registry.open_storage("memory")
        await registry.open_storage("memory.settings")

        assert await registry.open_storage("memory") is first
        assert await registry.open_storage("memory.settings") is await first.container("settings")

    async def test_backend_not_found(self, registry):
        """Test error for a name that is not configured."""
        with pytest.raises(BackendNotFoundError, match="Available backends: memory, dev"):
            await registry.open_storage("prod")

    async def test_list_backends(self, registry):
        """Test listing configured backend names."""
        assert registry.list_backends() == ["memory", "dev"]

    async def test_register_backend(self, registry):
        """Test registering a backend at runtime."""
        registry.register("extra", {"__inherits__": "memory"})

        storage = await registry.open_storage("extra")
        assert isinstance(storage.backend, InMemoryBackend)

    async def test_register_replaces_open_storage(self, registry):
        """Test that re-registering keeps the old storage usable until close."""
        old = await registry.open_storage("memory")
        await old.set_string("k", "v")

        registry.register("memory", {"type": "memory", "initial_data": {"seed": 1}})
        new = await registry.open_storage("memory")

        assert new is not old
        assert await old.get_string("k") == "v"
        assert await new.get_int("seed") == 1

        await registry.close()
        assert old.is_closed
        assert new.is_closed

    async def test_close_closes_storages(self, tmp_path):
        """Test that closing the registry closes every storage it opened."""
        async with make_registry({"memory": {"type": "memory"}}) as registry:
            storage = await registry.open_storage("memory")
        assert storage.is_closed

    async def test_loads_default_config(self):
        """Test that the default configuration module is loaded."""
        registry = BackendRegistry(env_file=None)
        assert {"memory", "dev", "secrets", "mongo"} <= set(registry.list_backends())

    async def test_env_file_loaded(self, tmp_path, clean_env):
        """Test that the registry reads secrets from a .env file."""
        env_file = tmp_path / ".env"
        env_file.write_text("LOCALKV_SECRET_PASSWORD=from-file\n")
        config = {
            "type": "secure",
            "base_path": str(tmp_path),
            "iterations": 1000,
            "password_env": "LOCALKV_SECRET_PASSWORD",
        }

        async with BackendRegistry({"vault": config}, env_file=env_file) as registry:
            vault = await registry.open_storage("vault")
            await vault.set_string("token", "abc")
            assert await vault.get_string("token") == "abc"
