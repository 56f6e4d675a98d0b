"""
Configuration management for RELMAP.

Settings are resolved per key with the priority:
1. Environment variable (a ``.env`` file is loaded by ``load_dotenv`` first)
2. Stored in config.json next to the project root / executable
3. Built-in default

config.json uses the lower-case key names, e.g. ``{"api_key": "..."}``.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from relmap.paths import get_config_path

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "/api"
DEFAULT_API_KEY = "dev-key"
DEFAULT_PORT = 8080
DEFAULT_POLL_SECONDS = 8.0
DEFAULT_BACKEND = "json"

STORAGE_BACKENDS = ("json", "sqlite", "supabase")


def load_config(config_path: Optional[Path] = None) -> dict:
    """Load configuration from config.json."""
    config_path = config_path or get_config_path()
    if config_path.exists():
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Ignoring unreadable config file {config_path}: {e}")
            return {}
    return {}


def save_config(config: dict, config_path: Optional[Path] = None) -> None:
    """Save configuration to config.json."""
    config_path = config_path or get_config_path()
    with open(config_path, 'w', encoding='utf-8') as f:
        json.dump(config, f, indent=2)


def _lookup(env_name: str, file_key: str, file_config: dict, default=None):
    env_value = os.environ.get(env_name)
    if env_value not in (None, ""):
        return env_value
    file_value = file_config.get(file_key)
    if file_value not in (None, ""):
        return file_value
    return default


def _as_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid integer setting {value!r}, using {default}")
        return default


def _as_float(value, default: float) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid number setting {value!r}, using {default}")
        return default
    return result if result > 0 else default


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings."""
    api_url: str = DEFAULT_API_URL
    api_key: str = DEFAULT_API_KEY
    storage_backend: str = DEFAULT_BACKEND
    data_path: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    port: int = DEFAULT_PORT
    poll_seconds: float = DEFAULT_POLL_SECONDS


def get_settings(config_path: Optional[Path] = None, use_dotenv: bool = True) -> Settings:
    """
    Resolve settings from the environment and config.json.

    Args:
        config_path: Alternative config.json (tests)
        use_dotenv: Load a ``.env`` file into the environment first

    Returns:
        Settings instance
    """
    if use_dotenv:
        load_dotenv()
    file_config = load_config(config_path)

    backend = str(_lookup("RELMAP_STORAGE_BACKEND", "storage_backend", file_config, DEFAULT_BACKEND)).lower()
    if backend not in STORAGE_BACKENDS:
        logger.warning(f"Unknown storage backend '{backend}', falling back to '{DEFAULT_BACKEND}'")
        backend = DEFAULT_BACKEND

    return Settings(
        api_url=str(_lookup("RELMAP_API_URL", "api_url", file_config, DEFAULT_API_URL)),
        api_key=str(_lookup("RELMAP_API_KEY", "api_key", file_config, DEFAULT_API_KEY)),
        storage_backend=backend,
        data_path=_lookup("RELMAP_DATA_PATH", "data_path", file_config),
        supabase_url=_lookup("SUPABASE_URL", "supabase_url", file_config),
        supabase_key=_lookup("SUPABASE_KEY", "supabase_key", file_config),
        port=_as_int(_lookup("RELMAP_PORT", "port", file_config, DEFAULT_PORT), DEFAULT_PORT),
        poll_seconds=_as_float(
            _lookup("RELMAP_POLL_SECONDS", "poll_seconds", file_config, DEFAULT_POLL_SECONDS),
            DEFAULT_POLL_SECONDS,
        ),
    )
