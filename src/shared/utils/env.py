"""Environment variable loading utilities."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def load_env(env_file: Optional[str] = None, override: bool = False) -> None:
    """Load environment variables from .env files.

    Args:
        env_file: Path to a .env file. If None, every .env found from the
                 filesystem root down to the current directory is loaded,
                 nearest last.
        override: Whether to override existing environment variables.
    """
    env_paths = []
    if env_file:
        env_path = Path(env_file)
        if env_path.exists():
            env_paths.append(env_path)
    else:
        current = Path.cwd()
        for parent in [*reversed(current.parents), current]:
            candidate = parent / ".env"
            if candidate.exists():
                env_paths.append(candidate)

    if not env_paths:
        logger.debug("No .env file found, using system environment")
        return

    for path in dict.fromkeys(env_paths):
        load_dotenv(path, override=override)
        logger.debug("Loaded environment from %s", path)
