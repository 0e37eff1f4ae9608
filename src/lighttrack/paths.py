"""Filesystem locations for the tracker database and logs."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from platformdirs import PlatformDirs


APP_NAME = "LightTrack"

DB_FILENAME = "lighttrack.sqlite3"
LOG_FILENAME = "tracker.log"


def _dirs() -> PlatformDirs:
    return PlatformDirs(appname=APP_NAME, appauthor=APP_NAME, roaming=True)


def get_data_dir() -> Path:
    """Return (and create) the per-user directory holding the activity log."""
    path = Path(_dirs().user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_log_dir() -> Path:
    path = Path(_dirs().user_log_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path() -> Path:
    return get_data_dir() / DB_FILENAME


def get_log_path() -> Path:
    return get_log_dir() / LOG_FILENAME


def resolve_db_path(override: Optional[Path]) -> Path:
    """Prefer an explicit ``--db`` path; fall back to the platform default."""
    if override is None:
        return get_db_path()
    path = Path(override).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return path
