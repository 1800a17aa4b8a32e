"""Locations of the session database and log file."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from platformdirs import PlatformDirs


APP_NAME = "ActivitySessions"
DATA_DIR_ENV = "ACTIVITY_SESSIONS_HOME"
DB_FILENAME = "activity.sqlite3"
LOG_FILENAME = "sessions.log"


def get_data_dir(override: Optional[str] = None) -> Path:
    """Return the directory holding the database and logs, creating it.

    ``override`` (or the ``ACTIVITY_SESSIONS_HOME`` environment variable)
    replaces the per-user platform directory.
    """
    configured = override or os.environ.get(DATA_DIR_ENV)
    if configured:
        path = Path(configured).expanduser()
    else:
        dirs = PlatformDirs(appname=APP_NAME, appauthor=False, roaming=True)
        path = Path(dirs.user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path() -> Path:
    return get_data_dir() / DB_FILENAME


def get_log_path() -> Path:
    return get_data_dir() / LOG_FILENAME
