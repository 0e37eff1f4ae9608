"""Consolidation of a just-finalized activity into a recent persisted one."""

from __future__ import annotations

import logging
from typing import Iterable, MutableSequence, Optional

from .config import FALLBACK_PROJECT
from .models import Activity, elapsed_seconds

logger = logging.getLogger(__name__)

MERGE_LOOKBACK = 3
# Activities with differing billability may still merge below this length.
BILLABILITY_TOLERANCE_SECONDS = 300


def _is_fallback(project: Optional[str], fallback_project: str) -> bool:
    return not project or project in (fallback_project, FALLBACK_PROJECT)


def should_merge(
    prev: Activity,
    new: Activity,
    *,
    gap_threshold: float,
    fallback_project: str = FALLBACK_PROJECT,
) -> bool:
    if prev.app != new.app:
        return False
    if prev.end_time is None:
        return False
    gap = (new.start_time - prev.end_time).total_seconds()
    if gap > gap_threshold:
        return False
    if prev.project != new.project and not (
        _is_fallback(prev.project, fallback_project)
        or _is_fallback(new.project, fallback_project)
    ):
        return False
    if prev.billable != new.billable and new.effective_duration > BILLABILITY_TOLERANCE_SECONDS:
        return False
    return True


def _dedupe_concat(first: Iterable[str], second: Iterable[str]) -> list[str]:
    merged: dict[str, None] = {}
    for value in (*first, *second):
        merged.setdefault(value, None)
    return list(merged)


def merge_activities(prev: Activity, new: Activity) -> Activity:
    """Fold ``new`` into ``prev`` in place and return ``prev``.

    Idle periods are not re-tallied: the merged ``actual_duration`` equals the
    merged wall-clock duration.
    """
    prev.end_time = new.end_time
    if prev.end_time is not None:
        prev.duration = elapsed_seconds(prev.start_time, prev.end_time)
        prev.last_update = max(prev.last_update, prev.end_time)
    prev.actual_duration = prev.duration
    prev.merged_count = max(prev.merged_count or 1, 1) + 1
    if len(new.title or "") > len(prev.title or ""):
        prev.title = new.title
    prev.tickets = _dedupe_concat(prev.tickets, new.tickets)
    prev.tags = _dedupe_concat(prev.tags, new.tags)
    return prev


def find_merge_target(
    activities: MutableSequence[Activity],
    new: Activity,
    *,
    gap_threshold: float,
    fallback_project: str = FALLBACK_PROJECT,
) -> Optional[Activity]:
    """Newest of the last ``MERGE_LOOKBACK`` activities compatible with ``new``."""
    lookback = min(MERGE_LOOKBACK, len(activities))
    for index in range(len(activities) - 1, len(activities) - 1 - lookback, -1):
        candidate = activities[index]
        if should_merge(
            candidate, new, gap_threshold=gap_threshold, fallback_project=fallback_project
        ):
            return candidate
    return None


def try_merge(
    activities: MutableSequence[Activity],
    new: Activity,
    *,
    gap_threshold: float,
    fallback_project: str = FALLBACK_PROJECT,
) -> Optional[Activity]:
    """Merge ``new`` into a recent entry of ``activities``; the caller persists the list."""
    target = find_merge_target(
        activities, new, gap_threshold=gap_threshold, fallback_project=fallback_project
    )
    if target is None:
        return None
    merge_activities(target, new)
    logger.debug(
        "Merged activity %s into %s (merged_count=%s)", new.id, target.id, target.merged_count
    )
    return target
