"""
Configurable paths for the AppStorys SDK.

Every on-disk location (outbox database, file-backed token store) is
routed through get_data_dir(), which respects:

  1. APPSTORYS_DATA_DIR  (explicit override)
  2. XDG_DATA_HOME       (XDG fallback)
  3. ~/.local/share/appstorys  (default)
"""

import os
from pathlib import Path


def get_data_dir() -> Path:
    """Return the SDK data directory, configurable via env var."""
    data_dir = os.environ.get("APPSTORYS_DATA_DIR")
    if data_dir:
        return Path(data_dir)
    xdg_data = os.environ.get("XDG_DATA_HOME", os.path.expanduser("~/.local/share"))
    return Path(xdg_data) / "appstorys"


def get_outbox_path() -> Path:
    """Return the path to the offline outbox database."""
    return get_data_dir() / "outbox.db"


def get_token_file_path() -> Path:
    """Return the path to the encrypted token file."""
    return get_data_dir() / "tokens.enc.json"
