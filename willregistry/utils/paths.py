"""File path resolution using platformdirs.

Persistent data (the SQLite database) lives in the platform user data
directory unless WILLREG_DATA_DIR points somewhere else:
  macOS: ~/Library/Application Support/willregistry/
  Linux: ~/.local/share/willregistry/
  Windows: %LOCALAPPDATA%/willregistry/
"""

import os
from pathlib import Path

import platformdirs

APP_NAME = "willregistry"


def get_data_dir() -> Path:
    """Return the directory for persistent data (DB, exports)."""
    override = os.environ.get("WILLREG_DATA_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


def get_default_db_path() -> Path:
    """Return the default SQLite database file path, creating its directory."""
    data_dir = get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / "willregistry.db"
