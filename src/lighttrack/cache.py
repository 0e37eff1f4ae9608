"""In-memory recency list of persisted activities."""

from __future__ import annotations

from collections import deque
from typing import Iterator

from .models import ActivitySummary

DEFAULT_CACHE_SIZE = 100


class RecentActivityCache:
    """Keeps the newest ``max_size`` summaries; the oldest are dropped first."""

    def __init__(self, max_size: int = DEFAULT_CACHE_SIZE) -> None:
        self.max_size = max_size
        self._items: deque[ActivitySummary] = deque(maxlen=max_size)

    def add(self, summary: ActivitySummary) -> None:
        self._items.append(summary)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ActivitySummary]:
        return iter(self._items)

    def to_records(self) -> list[dict]:
        return [summary.to_record() for summary in self._items]
