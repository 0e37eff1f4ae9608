"""Domain models for observed windows and recorded activities."""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Mapping, NamedTuple, Optional


def local_now() -> datetime:
    """Current instant as an offset-aware local datetime."""
    return datetime.now().astimezone()


def parse_instant(value: Any) -> datetime:
    """Parse an ISO-8601 instant (UTC ``Z`` or local-with-offset).

    Naive values are interpreted as local time.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip())
    else:
        raise ValueError(f"Not an instant: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def format_instant(value: datetime) -> str:
    return value.isoformat()


def elapsed_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds between two instants, floored and never negative."""
    return max(0, math.floor((end - start).total_seconds()))


_id_counter = itertools.count(1)


def new_activity_id(now: datetime) -> str:
    """Process-unique, monotonically increasing activity id."""
    return f"{int(now.timestamp() * 1000)}-{next(_id_counter)}"


class ForegroundWindow(NamedTuple):
    """Focused window as reported by the desktop, before normalization."""

    pid: int
    process_name: Optional[str]
    title: Optional[str]


@dataclass(slots=True)
class WindowObservation:
    """One sample of the foreground window."""

    app: str
    title: str
    url: Optional[str] = None
    do_not_track: bool = False
    do_not_track_category: Optional[str] = None
    do_not_track_reason: Optional[str] = None
    idle_seconds: Optional[float] = None
    source: Optional[str] = None


@dataclass(slots=True)
class IdlePeriod:
    start: datetime
    duration: float
    excluded: bool = True
    end: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.end is None

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "start": format_instant(self.start),
            "duration": self.duration,
            "excluded": self.excluded,
        }
        if self.end is not None:
            record["end"] = format_instant(self.end)
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "IdlePeriod":
        end = record.get("end")
        return cls(
            start=parse_instant(record["start"]),
            duration=float(record.get("duration", 0)),
            excluded=bool(record.get("excluded", True)),
            end=parse_instant(end) if end else None,
        )


# (attribute, record key) for the optional scalar fields; absent when None.
_OPTIONAL_FIELDS: tuple[tuple[str, str], ...] = (
    ("end_time", "endTime"),
    ("url", "url"),
    ("activity", "activity"),
    ("actual_duration", "actualDuration"),
    ("do_not_track_category", "doNotTrackCategory"),
    ("do_not_track_reason", "doNotTrackReason"),
    ("merged_count", "mergedCount"),
    ("metadata", "metadata"),
)


@dataclass(slots=True)
class Activity:
    """A contiguous stretch of interaction attributed to one window and project."""

    id: str
    start_time: datetime
    last_update: datetime
    app: str
    title: str
    project: str
    tickets: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    billable: bool = True
    sap_code: str = ""
    cost_center: str = ""
    po_number: str = ""
    wbs_element: str = ""
    duration: int = 0
    idle_periods: list[IdlePeriod] = field(default_factory=list)
    do_not_track: bool = False
    end_time: Optional[datetime] = None
    url: Optional[str] = None
    activity: Optional[str] = None
    actual_duration: Optional[int] = None
    do_not_track_category: Optional[str] = None
    do_not_track_reason: Optional[str] = None
    merged_count: Optional[int] = None
    metadata: Optional[dict[str, Any]] = None

    @property
    def is_finalized(self) -> bool:
        return self.end_time is not None

    @property
    def open_idle_period(self) -> Optional[IdlePeriod]:
        if self.idle_periods and self.idle_periods[-1].is_open:
            return self.idle_periods[-1]
        return None

    @property
    def effective_duration(self) -> int:
        if self.actual_duration is not None:
            return self.actual_duration
        return self.duration

    def excluded_idle_seconds(self) -> float:
        """Total length of closed idle periods flagged for exclusion."""
        total = 0.0
        for period in self.idle_periods:
            if period.excluded and period.end is not None:
                total += (period.end - period.start).total_seconds()
        return total

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": self.id,
            "startTime": format_instant(self.start_time),
            "lastUpdate": format_instant(self.last_update),
            "app": self.app,
            "title": self.title,
            "project": self.project,
            "tickets": list(self.tickets),
            "tags": list(self.tags),
            "billable": self.billable,
            "sapCode": self.sap_code,
            "costCenter": self.cost_center,
            "poNumber": self.po_number,
            "wbsElement": self.wbs_element,
            "duration": self.duration,
            "idlePeriods": [period.to_record() for period in self.idle_periods],
            "doNotTrack": self.do_not_track,
        }
        for attr, key in _OPTIONAL_FIELDS:
            value = getattr(self, attr)
            if value is None:
                continue
            if isinstance(value, datetime):
                value = format_instant(value)
            elif isinstance(value, dict):
                value = dict(value)
            record[key] = value
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Activity":
        """Build an activity from its stored shape; raises ``ValueError`` if malformed."""
        try:
            start_time = parse_instant(record["startTime"])
            end_time = record.get("endTime")
            last_update = record.get("lastUpdate") or end_time or record["startTime"]
            metadata = record.get("metadata")
            return cls(
                id=str(record["id"]),
                start_time=start_time,
                last_update=parse_instant(last_update),
                app=str(record.get("app") or ""),
                title=str(record.get("title") or ""),
                project=str(record.get("project") or ""),
                tickets=list(record.get("tickets") or []),
                tags=list(record.get("tags") or []),
                billable=bool(record.get("billable", True)),
                sap_code=record.get("sapCode") or "",
                cost_center=record.get("costCenter") or "",
                po_number=record.get("poNumber") or "",
                wbs_element=record.get("wbsElement") or "",
                duration=int(record.get("duration") or 0),
                idle_periods=[
                    IdlePeriod.from_record(item) for item in record.get("idlePeriods") or []
                ],
                do_not_track=bool(record.get("doNotTrack", False)),
                end_time=parse_instant(end_time) if end_time else None,
                url=record.get("url"),
                activity=record.get("activity"),
                actual_duration=(
                    int(record["actualDuration"])
                    if record.get("actualDuration") is not None
                    else None
                ),
                do_not_track_category=record.get("doNotTrackCategory"),
                do_not_track_reason=record.get("doNotTrackReason"),
                merged_count=(
                    int(record["mergedCount"])
                    if record.get("mergedCount") is not None
                    else None
                ),
                metadata=dict(metadata) if isinstance(metadata, Mapping) else None,
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed activity record: {exc}") from exc


def is_valid_activity(activity: Activity) -> bool:
    """Structural checks applied before an activity may be persisted."""
    if not activity.id:
        return False
    if not isinstance(activity.start_time, datetime):
        return False
    if activity.end_time is not None and not isinstance(activity.end_time, datetime):
        return False
    duration = activity.duration
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        return False
    if not math.isfinite(duration) or duration < 0:
        return False
    if not isinstance(activity.tickets, (list, tuple)):
        return False
    if not isinstance(activity.tags, (list, tuple)):
        return False
    return True


@dataclass(slots=True, frozen=True)
class ActivitySummary:
    """Lightweight view of a persisted activity for quick UI queries."""

    id: str
    app: str
    project: str
    start_time: datetime

    @classmethod
    def from_activity(cls, activity: Activity) -> "ActivitySummary":
        return cls(
            id=activity.id,
            app=activity.app,
            project=activity.project,
            start_time=activity.start_time,
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "app": self.app,
            "project": self.project,
            "startTime": format_instant(self.start_time),
        }


def idle_period_since(now: datetime, idle_seconds: float) -> IdlePeriod:
    """Open (end-less) excluded idle period covering the last ``idle_seconds``."""
    return IdlePeriod(
        start=now - timedelta(seconds=idle_seconds),
        duration=idle_seconds,
        excluded=True,
    )
