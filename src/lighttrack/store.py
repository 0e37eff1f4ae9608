"""Activity log and settings stores, plus the retention filter."""

from __future__ import annotations

import copy
import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence

from .db import (
    fetch_activity_records,
    fetch_all_settings,
    fetch_setting,
    replace_activity_records,
    upsert_setting,
)
from .models import Activity

logger = logging.getLogger(__name__)


class ActivityStore(Protocol):
    def get_activities(self) -> list[Activity]: ...

    def set_activities(self, activities: Sequence[Activity]) -> None: ...


class SettingsStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


def apply_retention(
    activities: Iterable[Activity], now: datetime, retention_days: float
) -> list[Activity]:
    """Drop activities that started before the retention horizon; order is kept."""
    cutoff = now - timedelta(days=retention_days)
    return [activity for activity in activities if activity.start_time > cutoff]


class MemoryActivityStore:
    """In-process log; reads and writes copy so callers never alias stored state."""

    def __init__(self, activities: Optional[Iterable[Activity]] = None) -> None:
        self._records: list[dict[str, Any]] = [a.to_record() for a in activities or ()]
        self.write_count = 0

    def get_activities(self) -> list[Activity]:
        return [Activity.from_record(record) for record in self._records]

    def set_activities(self, activities: Sequence[Activity]) -> None:
        self._records = [activity.to_record() for activity in activities]
        self.write_count += 1


class SqliteActivityStore:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get_activities(self) -> list[Activity]:
        return [Activity.from_record(record) for record in fetch_activity_records(self._conn)]

    def set_activities(self, activities: Sequence[Activity]) -> None:
        replace_activity_records(self._conn, [activity.to_record() for activity in activities])
        logger.debug("Wrote %d activities.", len(activities))


class MemorySettings:
    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._values: dict[str, Any] = copy.deepcopy(dict(initial or {}))

    def get(self, key: str, default: Any = None) -> Any:
        value = self._values.get(key, default)
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = copy.deepcopy(value)

    def as_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._values)


class SqliteSettings:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get(self, key: str, default: Any = None) -> Any:
        value = fetch_setting(self._conn, key)
        return default if value is None else value

    def set(self, key: str, value: Any) -> None:
        upsert_setting(self._conn, key, value)

    def as_dict(self) -> dict[str, Any]:
        return fetch_all_settings(self._conn)
