"""Tests for configuration loading, inheritance and environment resolution."""

from __future__ import annotations

import os

import pytest

from localkv.utils.config import (
    ConfigError,
    load_and_resolve_config,
    load_config_from_module,
    resolve_config_inheritance,
    resolve_env_values,
)


class TestConfigInheritance:
    """Test suite for configuration inheritance resolution."""

    def test_resolve_inheritance_basic(self):
        """Test basic configuration inheritance."""
        config = {
            "local": {
                "type": "filesystem",
                "base_path": "/tmp/kv",
                "file_name": "preferences",
            },
            "secrets": {
                "__inherits__": "local",
                "type": "secure",
                "file_name": "vault",
            },
        }

        resolved = resolve_config_inheritance(config)

        assert resolved["secrets"]["type"] == "secure"
        assert resolved["secrets"]["base_path"] == "/tmp/kv"
        assert resolved["secrets"]["file_name"] == "vault"
        assert "__inherits__" not in resolved["secrets"]

    def test_resolve_inheritance_multi_level(self):
        """Test multi-level inheritance (grandchild -> child -> parent)."""
        config = {
            "parent": {"type": "mongodb", "host": "db", "database": "app", "collection": "a"},
            "child": {"__inherits__": "parent", "database": "other"},
            "grandchild": {"__inherits__": "child", "collection": "b"},
        }

        resolved = resolve_config_inheritance(config)

        assert resolved["grandchild"] == {
            "type": "mongodb",
            "host": "db",
            "database": "other",
            "collection": "b",
        }

    def test_parent_is_not_modified(self):
        """Test that resolving a child leaves its parent untouched."""
        config = {
            "parent": {"type": "memory"},
            "child": {"__inherits__": "parent", "delimiter": "/"},
        }

        resolved = resolve_config_inheritance(config)

        assert resolved["parent"] == {"type": "memory"}
        assert config["child"] == {"__inherits__": "parent", "delimiter": "/"}

    def test_resolve_inheritance_circular_detection(self):
        """Test that circular inheritance is detected."""
        config = {
            "a": {"__inherits__": "b"},
            "b": {"__inherits__": "a"},
        }

        with pytest.raises(ConfigError, match="Circular inheritance detected"):
            resolve_config_inheritance(config)

    def test_resolve_inheritance_self_reference(self):
        """Test that self-referencing inheritance is detected."""
        with pytest.raises(ConfigError, match="Circular inheritance detected"):
            resolve_config_inheritance({"a": {"__inherits__": "a"}})

    def test_resolve_inheritance_missing_parent(self):
        """Test error when parent config doesn't exist."""
        config = {"child": {"__inherits__": "nonexistent"}}

        with pytest.raises(
            ConfigError, match="inherits from 'nonexistent', but 'nonexistent' not found"
        ):
            resolve_config_inheritance(config)

    def test_resolve_inheritance_no_inheritance(self):
        """Test that configs without inheritance are returned as-is."""
        config = {"standalone": {"type": "filesystem", "base_path": "/tmp/test"}}

        resolved = resolve_config_inheritance(config)

        assert resolved == config

    def test_resolve_inheritance_empty_config(self):
        """Test resolving empty configuration."""
        assert resolve_config_inheritance({}) == {}


class TestLoadConfig:
    """Test suite for loading configuration modules."""

    def test_load_from_module(self):
        """Test loading the bundled backend configuration."""
        config = load_config_from_module("configs.storage_backends")
        assert config["memory"] == {"type": "memory"}

    def test_missing_module_returns_default(self):
        """Test that a module that cannot be imported gives the default."""
        assert load_config_from_module("configs.does_not_exist", default={}) == {}

    def test_missing_attribute_returns_default(self):
        """Test that a module without the attribute gives the default."""
        assert load_config_from_module("configs.storage_backends", "MISSING") is None

    def test_load_and_resolve(self):
        """Test that loaded configuration has inheritance resolved."""
        config = load_and_resolve_config("configs.storage_backends")

        assert config["secrets"]["type"] == "secure"
        assert config["secrets"]["base_path"] == config["dev"]["base_path"]

    def test_load_and_resolve_invalid(self):
        """Test that a non-dict configuration falls back to the default."""
        assert load_and_resolve_config("configs.storage_backends", "PROJECT_ROOT") == {}


class TestResolveEnvValues:
    """Test suite for environment-backed configuration fields."""

    def test_env_field_replaced(self, clean_env):
        """Test that a field ending in _env is read from the environment."""
        os.environ["LOCALKV_TEST_VALUE"] = "s3cret"

        resolved = resolve_env_values({"type": "secure", "password_env": "LOCALKV_TEST_VALUE"})

        assert resolved == {"type": "secure", "password": "s3cret"}

    def test_direct_value_wins(self, clean_env):
        """Test that a field set directly is not overridden."""
        os.environ["LOCALKV_TEST_VALUE"] = "from-env"

        resolved = resolve_env_values({"password": "direct", "password_env": "LOCALKV_TEST_VALUE"})

        assert resolved == {"password": "direct"}

    def test_missing_variable(self, clean_env):
        """Test error when the variable is not set."""
        with pytest.raises(ConfigError, match="LOCALKV_TEST_VALUE"):
            resolve_env_values({"password_env": "LOCALKV_TEST_VALUE"})

    def test_input_not_modified(self, clean_env):
        """Test that resolution returns a new dict."""
        os.environ["LOCALKV_TEST_VALUE"] = "x"
        config = {"key_env": "LOCALKV_TEST_VALUE"}

        resolve_env_values(config)

        assert config == {"key_env": "LOCALKV_TEST_VALUE"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
