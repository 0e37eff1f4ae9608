"""Tests for activity consolidation."""

from __future__ import annotations

import datetime as dt
from typing import Any

from conftest import T0
from lighttrack.merge import find_merge_target, merge_activities, should_merge, try_merge
from lighttrack.models import Activity


def make_activity(start: int, end: int, **overrides: Any) -> Activity:
    values: dict[str, Any] = {
        "id": f"a{start}",
        "start_time": T0 + dt.timedelta(seconds=start),
        "last_update": T0 + dt.timedelta(seconds=end),
        "end_time": T0 + dt.timedelta(seconds=end),
        "app": "Chrome",
        "title": "Inbox",
        "project": "Mail",
        "duration": end - start,
        "actual_duration": end - start,
    }
    values.update(overrides)
    return Activity(**values)


class TestShouldMerge:
    def test_same_app_and_project_within_gap(self) -> None:
        assert should_merge(make_activity(0, 100), make_activity(200, 300), gap_threshold=300)

    def test_gap_too_large(self) -> None:
        assert not should_merge(make_activity(0, 100), make_activity(401, 500), gap_threshold=300)

    def test_different_app(self) -> None:
        assert not should_merge(
            make_activity(0, 100), make_activity(100, 200, app="Code"), gap_threshold=300
        )

    def test_different_projects_do_not_merge(self) -> None:
        assert not should_merge(
            make_activity(0, 100), make_activity(100, 200, project="Dev"), gap_threshold=300
        )

    def test_fallback_project_merges_with_named_project(self) -> None:
        assert should_merge(
            make_activity(0, 100),
            make_activity(100, 200, project="Uncategorized"),
            gap_threshold=300,
        )
        assert should_merge(
            make_activity(0, 100, project="Internal"),
            make_activity(100, 200),
            gap_threshold=300,
            fallback_project="Internal",
        )

    def test_billability_tolerance(self) -> None:
        short = make_activity(100, 400, billable=False)
        long = make_activity(100, 401, billable=False)
        assert should_merge(make_activity(0, 100), short, gap_threshold=300)
        assert not should_merge(make_activity(0, 100), long, gap_threshold=300)

    def test_unfinished_previous_never_merges(self) -> None:
        assert not should_merge(
            make_activity(0, 100, end_time=None), make_activity(100, 200), gap_threshold=300
        )


class TestMergeActivities:
    def test_extends_and_unions(self) -> None:
        prev = make_activity(0, 120, tickets=["ABC-1"], tags=["review"])
        new = make_activity(
            120, 300, title="Inbox (3)", tickets=["ABC-1", "ABC-2"], tags=["meeting"]
        )
        merged = merge_activities(prev, new)
        assert merged is prev
        assert merged.end_time == T0 + dt.timedelta(seconds=300)
        assert merged.duration == 300
        assert merged.actual_duration == 300
        assert merged.title == "Inbox (3)"
        assert merged.tickets == ["ABC-1", "ABC-2"]
        assert merged.tags == ["review", "meeting"]
        assert merged.merged_count == 2
        assert merged.last_update == T0 + dt.timedelta(seconds=300)

    def test_merged_count_increments(self) -> None:
        prev = make_activity(0, 120, merged_count=3)
        assert merge_activities(prev, make_activity(120, 200)).merged_count == 4

    def test_shorter_title_does_not_replace(self) -> None:
        prev = make_activity(0, 120, title="Long inbox title")
        assert merge_activities(prev, make_activity(120, 200, title="x")).title == "Long inbox title"


class TestFindMergeTarget:
    def test_most_recent_compatible_wins(self) -> None:
        log = [make_activity(0, 100), make_activity(100, 200)]
        target = find_merge_target(log, make_activity(250, 300), gap_threshold=300)
        assert target is log[1]

    def test_skips_incompatible_recent_entries(self) -> None:
        log = [make_activity(0, 100), make_activity(100, 150, app="Code")]
        target = find_merge_target(log, make_activity(200, 300), gap_threshold=300)
        assert target is log[0]

    def test_lookback_limited_to_three(self) -> None:
        log = [
            make_activity(0, 100),
            make_activity(100, 110, app="A"),
            make_activity(110, 120, app="B"),
            make_activity(120, 130, app="C"),
        ]
        assert find_merge_target(log, make_activity(140, 200), gap_threshold=300) is None

    def test_try_merge_returns_none_on_empty_log(self) -> None:
        assert try_merge([], make_activity(0, 100), gap_threshold=300) is None
