from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def load_env_file_if_present(path: str | Path = ".env", override: bool = False) -> dict[str, str]:
    """Load KEY=VALUE pairs from a .env file into ``os.environ``.

    Used for backend secrets such as encryption passwords and database
    credentials. Blank lines, comments and lines without ``=`` are skipped,
    an ``export`` prefix is allowed and surrounding quotes are removed.
    Variables already set in the environment win unless ``override`` is True.

    Returns:
        The pairs read from the file, whether or not they were applied
    """
    env_path = Path(path)
    loaded: dict[str, str] = {}
    if not env_path.is_file():
        return loaded

    for line in env_path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip().removeprefix("export ").strip()
        value = value.strip().strip('"').strip("'")
        if override or key not in os.environ:
            os.environ[key] = value
        loaded[key] = value

    logger.debug(f"Loaded {len(loaded)} variables from {env_path}")
    return loaded
