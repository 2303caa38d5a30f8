"""Utility functions for localkv."""

from localkv.utils.config import (
    ConfigError,
    load_and_resolve_config,
    load_config_from_module,
    resolve_config_inheritance,
    resolve_env_values,
)
from localkv.utils.env import load_env_file_if_present

__all__ = [
    "load_env_file_if_present",
    "load_config_from_module",
    "load_and_resolve_config",
    "resolve_config_inheritance",
    "resolve_env_values",
    "ConfigError",
]
