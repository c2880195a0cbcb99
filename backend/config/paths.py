"""
Where MoneyVerse keeps its files.

Everything lives under one per-user app-data directory::

    <app data>/moneyverse.db   saved game
    <app data>/logs/           rotating backend log
    <app data>/backups/        startup copies of the saved game

MONEYVERSE_APP_DATA_DIR moves the whole tree (portable installs, tests).
"""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path


APP_IDENTIFIER = "com.moneyverse.app"
APP_DATA_ENV = "MONEYVERSE_APP_DATA_DIR"
DATABASE_FILE = "moneyverse.db"


def platform_data_root() -> Path:
    """The OS location for per-user application data."""
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support"
    if os.name == "nt":
        appdata = os.getenv("APPDATA", "").strip()
        return Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
    xdg_data_home = os.getenv("XDG_DATA_HOME", "").strip()
    return Path(xdg_data_home) if xdg_data_home else Path.home() / ".local" / "share"


def resolve_app_data_dir() -> Path:
    """
    Return the app-data directory, creating it when missing.

    If it cannot be created (read-only home, sandboxed bundle) the game is
    kept in the system temp directory instead.
    """
    override = os.getenv(APP_DATA_ENV, "").strip()
    target = Path(override) if override else platform_data_root() / APP_IDENTIFIER
    target = target.expanduser().resolve()
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError:
        target = Path(tempfile.gettempdir()) / "moneyverse-data"
        target.mkdir(parents=True, exist_ok=True)
    return target


def default_database_url() -> str:
    # Three slashes, then the absolute path.
    return f"sqlite:///{resolve_app_data_dir() / DATABASE_FILE}"


def default_log_directory() -> str:
    return str(resolve_app_data_dir() / "logs")


def default_backup_directory() -> Path:
    return resolve_app_data_dir() / "backups"
