"""
Path utilities for RELMAP.

Handles path resolution for both development mode and frozen (PyInstaller) executables.
- In development: paths are relative to the project root
- When frozen: paths are relative to the executable location

External data (data/, config.json, avatars/) lives NEXT TO the executable, not bundled inside.
"""

import sys
from pathlib import Path


def get_app_dir() -> Path:
    """
    Get the application directory.

    - In development: the project root (parent of relmap/)
    - When frozen: the directory containing the executable
    """
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    return Path(__file__).parent.parent


def get_data_dir() -> Path:
    """Directory holding the file-based stores (graph.json, relmap.db)."""
    return get_app_dir() / "data"


def get_config_path() -> Path:
    return get_app_dir() / "config.json"


def get_avatars_dir() -> Path:
    """Static avatar images served at /avatars."""
    return get_app_dir() / "avatars"


def ensure_data_dir() -> Path:
    """
    Ensure the data directory exists, creating it if necessary.
    Returns the path to the data directory.
    """
    data_dir = get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir
