"""Configuration loading and validation for VoxShop.

Loads settings from .env via python-dotenv. Every setting has a default,
so an empty environment yields a working configuration; malformed values
fail fast with a clear error.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

from dotenv import load_dotenv

if TYPE_CHECKING:
    from pathlib import Path


class ConfigError(Exception):
    """Raised when configuration is invalid."""


@dataclass(frozen=True)
class Config:
    """Typed, validated application configuration."""

    # Database
    database_path: str = "voxshop.db"

    # Flask
    flask_port: int = 5000
    flask_debug: bool = False

    # Item history and persistence
    history_limit: int = 20
    persist_debounce_ms: int = 250

    # Speech
    speech_lang: str = "en-US"

    log_level: str = "INFO"


def _int_setting(name: str, default: str) -> int:
    """Read an integer environment variable.

    Args:
        name: Variable name.
        default: Value used when the variable is unset.

    Returns:
        The parsed integer.

    Raises:
        ConfigError: If the value is not an integer.
    """
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError as err:
        raise ConfigError(f"{name} must be an integer, got: {raw!r}") from err


def load_config(env_path: str | Path | None = None) -> Config:
    """Load and validate configuration from environment / .env file.

    Args:
        env_path: Optional path to .env file. If None, searches from cwd upward.

    Returns:
        Validated Config instance.

    Raises:
        ConfigError: If a setting is malformed.
    """
    load_dotenv(dotenv_path=env_path)

    history_limit = _int_setting("VOXSHOP_HISTORY_LIMIT", "20")
    if history_limit < 1:
        raise ConfigError(
            f"VOXSHOP_HISTORY_LIMIT must be at least 1, got: {history_limit}"
        )

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    if log_level not in logging.getLevelNamesMapping():
        raise ConfigError(f"LOG_LEVEL is not a logging level, got: {log_level!r}")

    return Config(
        database_path=os.getenv("VOXSHOP_DATABASE_PATH", "voxshop.db"),
        flask_port=_int_setting("FLASK_PORT", "5000"),
        flask_debug=os.getenv("FLASK_DEBUG", "false").lower() in ("true", "1", "yes"),
        history_limit=history_limit,
        persist_debounce_ms=_int_setting("VOXSHOP_PERSIST_DEBOUNCE_MS", "250"),
        speech_lang=os.getenv("VOXSHOP_SPEECH_LANG", "en-US"),
        log_level=log_level,
    )
