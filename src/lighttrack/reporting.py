"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from .models import Activity
from .store import ActivityStore


@dataclass(slots=True)
class DailySummary:
    day: date
    total_seconds: int = 0
    billable_seconds: int = 0
    by_project: dict[str, int] = field(default_factory=dict)
    by_app: dict[str, int] = field(default_factory=dict)
    activity_count: int = 0


def activities_for_day(activities: Iterable[Activity], day: date) -> list[Activity]:
    """Activities whose local start date is ``day``."""
    return [a for a in activities if a.start_time.astimezone().date() == day]


def summarize_day(activities: Iterable[Activity], day: date) -> DailySummary:
    by_project: defaultdict[str, int] = defaultdict(int)
    by_app: defaultdict[str, int] = defaultdict(int)
    summary = DailySummary(day=day)
    for activity in activities_for_day(activities, day):
        seconds = activity.effective_duration
        summary.activity_count += 1
        summary.total_seconds += seconds
        if activity.billable:
            summary.billable_seconds += seconds
        by_project[activity.project] += seconds
        by_app[activity.app or "Unknown"] += seconds
    summary.by_project = dict(sorted(by_project.items(), key=lambda item: item[1], reverse=True))
    summary.by_app = dict(sorted(by_app.items(), key=lambda item: item[1], reverse=True))
    return summary


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, store: ActivityStore) -> None:
        self.store = store

    def print_daily_summary(self, day: date) -> None:
        summary = summarize_day(self.store.get_activities(), day)
        if not summary.activity_count:
            print("No activity recorded for the selected day.")
            return

        print(f"Summary for {day.strftime('%Y-%m-%d')}")
        print("-" * 40)
        print(f"Tracked time:  {format_clock(summary.total_seconds)}")
        print(f"Billable time: {format_clock(summary.billable_seconds)}")
        print(f"Activities:    {summary.activity_count}")
        print()

        print("Projects:")
        for project, seconds in list(summary.by_project.items())[:10]:
            print(f"  {project[:30]:<30} {format_clock(seconds)}")

        print()
        print("Top applications:")
        for app, seconds in list(summary.by_app.items())[:5]:
            print(f"  {app[:30]:<30} {format_clock(seconds)}")


def format_clock(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
