"""
Configuration utilities for ofreport.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_FILE_NAME = ".ofreport.env"

DEFAULT_PLUGIN_ID = "com.jmg.exportmasterplan.v11.final"
DEFAULT_EXPORT_PATH = os.path.join("data", "omnifocus_export.json")
DEFAULT_APPLESCRIPT_TIMEOUT = 120.0


def load_env_vars() -> None:
    """
    Load environment variables from .env files in the following order:
    1. .ofreport.env in the current directory
    2. .ofreport.env in the user's home directory
    Values already present in the environment are never overridden.
    """
    if os.path.exists(ENV_FILE_NAME):
        load_dotenv(ENV_FILE_NAME)

    home_env = Path.home() / ENV_FILE_NAME
    if home_env.exists():
        load_dotenv(home_env)


def get_config(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get configuration value from environment variables."""
    return os.getenv(key, default)


class ConfigError(ValueError):
    """An OF_* setting holds a value that cannot be used."""


def _get_float(key: str) -> Optional[float]:
    raw = get_config(key)
    if raw is None or not raw.strip():
        return None
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    plugin_id: str = DEFAULT_PLUGIN_ID
    applescript_delay: Optional[float] = None
    applescript_timeout: float = DEFAULT_APPLESCRIPT_TIMEOUT
    export_path: str = DEFAULT_EXPORT_PATH


def load_settings() -> Settings:
    """Snapshot the OF_* environment variables into a Settings object."""
    timeout = _get_float("OF_APPLESCRIPT_TIMEOUT")
    return Settings(
        plugin_id=get_config("OF_PLUGIN_ID") or DEFAULT_PLUGIN_ID,
        applescript_delay=_get_float("OF_APPLESCRIPT_DELAY"),
        applescript_timeout=DEFAULT_APPLESCRIPT_TIMEOUT if timeout is None else timeout,
        export_path=get_config("OF_EXPORT_PATH") or DEFAULT_EXPORT_PATH,
    )
