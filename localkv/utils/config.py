"""Loading backend configuration from Python modules.

A configuration module exposes a ``CONFIGURATION`` dict mapping backend names
to their settings. Entries may extend another entry with ``"__inherits__"``.
"""

from __future__ import annotations

import importlib
import logging
import os
from typing import Any

logger = logging.getLogger(__name__)

INHERITS_KEY = "__inherits__"


class ConfigError(Exception):
    """Raised when configuration loading or resolution fails."""

    pass


def load_config_from_module(
    module_path: str,
    config_name: str = "CONFIGURATION",
    default: Any | None = None,
) -> Any:
    """Import ``module_path`` and return its ``config_name`` attribute.

    A missing module or attribute is logged and answered with ``default``, so
    an application without a configuration module still starts.

    Args:
        module_path: Dotted module path (e.g., "configs.storage_backends")
        config_name: Attribute holding the configuration
        default: Value returned when the configuration cannot be loaded

    Returns:
        The configuration object, or ``default``

    Examples:
        >>> load_config_from_module("configs.storage_backends")["memory"]["type"]
        'memory'
    """
    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        logger.warning(f"Could not import configuration module '{module_path}': {e}")
        return default

    if not hasattr(module, config_name):
        logger.warning(f"Module '{module_path}' does not define '{config_name}'")
        return default

    logger.debug(f"Loaded configuration from {module_path}.{config_name}")
    return getattr(module, config_name)


def resolve_config_inheritance(config_dict: dict[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Expand ``"__inherits__"`` references into complete entries.

    A child entry starts from its fully resolved parent and overrides the keys
    it sets itself. Chains of any length are supported.

    Args:
        config_dict: Named entries, some of which may inherit from others

    Returns:
        New dict with every entry resolved and no ``"__inherits__"`` keys

    Raises:
        ConfigError: If a parent is missing or inheritance is circular

    Examples:
        >>> resolved = resolve_config_inheritance({
        ...     "local": {"type": "filesystem", "base_path": "/tmp/kv"},
        ...     "secrets": {"__inherits__": "local", "type": "secure"},
        ... })
        >>> resolved["secrets"]
        {'type': 'secure', 'base_path': '/tmp/kv'}
    """
    resolved_configs: dict[str, dict[str, Any]] = {}

    def _resolve(name: str, chain: tuple[str, ...]) -> dict[str, Any]:
        if name in chain:
            raise ConfigError(f"Circular inheritance detected: {' -> '.join(chain + (name,))}")
        if name in resolved_configs:
            return resolved_configs[name]

        config = config_dict[name]
        parent_name = config.get(INHERITS_KEY)
        if parent_name is None:
            resolved = dict(config)
        else:
            if parent_name not in config_dict:
                raise ConfigError(
                    f"Configuration '{name}' inherits from '{parent_name}', "
                    f"but '{parent_name}' not found"
                )
            resolved = dict(_resolve(parent_name, chain + (name,)))
            resolved.update((k, v) for k, v in config.items() if k != INHERITS_KEY)
            logger.debug(f"Resolved inheritance for '{name}' from '{parent_name}'")

        resolved_configs[name] = resolved
        return resolved

    for name in config_dict:
        _resolve(name, ())

    return resolved_configs


def load_and_resolve_config(
    module_path: str,
    config_name: str = "CONFIGURATION",
    default: dict[str, dict[str, Any]] | None = None,
) -> dict[str, dict[str, Any]]:
    """Load a configuration module and resolve its inheritance.

    Raises:
        ConfigError: If inheritance cannot be resolved
    """
    raw_config = load_config_from_module(module_path, config_name, default)

    if not isinstance(raw_config, dict):
        logger.warning(f"Invalid configuration loaded from {module_path}, using default")
        return dict(default or {})

    resolved = resolve_config_inheritance(raw_config)
    logger.info(f"Loaded and resolved {len(resolved)} configurations from {module_path}")
    return resolved


def resolve_env_values(config: dict[str, Any], suffix: str = "_env") -> dict[str, Any]:
    """Replace ``<field>_env`` entries with the environment variable they name.

    ``{"password_env": "LOCALKV_PASSWORD"}`` becomes
    ``{"password": os.environ["LOCALKV_PASSWORD"]}``. A field set directly
    takes precedence over its ``_env`` form.

    Raises:
        ConfigError: If a referenced variable is not set
    """
    resolved: dict[str, Any] = {}
    for key, value in config.items():
        if not key.endswith(suffix):
            resolved[key] = value
            continue

        field = key[: -len(suffix)]
        if config.get(field) is not None:
            continue
        env_value = os.environ.get(value)
        if env_value is None:
            raise ConfigError(f"Environment variable '{value}' for '{field}' is not set")
        resolved[field] = env_value
    return resolved
