"""Shared fixtures for the lighttrack test suite."""

from __future__ import annotations

import datetime as dt
from collections import deque
from typing import Any, Optional

import pytest

from lighttrack.engine import TrackingEngine
from lighttrack.models import WindowObservation
from lighttrack.store import MemoryActivityStore, MemorySettings

T0 = dt.datetime(2026, 3, 2, 9, 0, 0, tzinfo=dt.timezone.utc)

SCENARIO_SETTINGS: dict[str, Any] = {
    "autoSaveInterval": 60,
    "minActivityDuration": 60,
    "idleThreshold": 180,
    "mergeGapThreshold": 300,
    "consolidateActivities": True,
    "defaultProject": "Uncategorized",
    "dataRetention": 90,
    "showNotifications": True,
    "pauseOnIdle": False,
}


class FakeClock:
    """Manually advanced clock; ``clock.at(120)`` jumps to T0 + 120s."""

    def __init__(self, start: dt.datetime = T0) -> None:
        self.start = start
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def at(self, seconds: float) -> dt.datetime:
        self.now = self.start + dt.timedelta(seconds=seconds)
        return self.now


class ScriptedSource:
    """Returns the queued observation, or repeats the last one when the queue is empty."""

    def __init__(self) -> None:
        self.queue: deque[Optional[WindowObservation]] = deque()
        self.last: Optional[WindowObservation] = None
        self.calls = 0
        self.fail_next = False

    def push(self, observation: Optional[WindowObservation]) -> None:
        self.queue.append(observation)

    async def sample(self) -> Optional[WindowObservation]:
        self.calls += 1
        if self.fail_next:
            self.fail_next = False
            raise OSError("probe glitch")
        if self.queue:
            self.last = self.queue.popleft()
        return self.last


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def notify(self, title: str, body: str) -> None:
        self.sent.append((title, body))

    @property
    def bodies(self) -> list[str]:
        return [body for _, body in self.sent]


class RecordingBroadcast:
    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    def publish(self, event: dict[str, Any]) -> None:
        self.events.append(event)


def obs(app: str, title: str, **kwargs: Any) -> WindowObservation:
    return WindowObservation(app=app, title=title, **kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def source() -> ScriptedSource:
    return ScriptedSource()


@pytest.fixture()
def settings() -> MemorySettings:
    return MemorySettings(SCENARIO_SETTINGS)


@pytest.fixture()
def store() -> MemoryActivityStore:
    return MemoryActivityStore()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def broadcast() -> RecordingBroadcast:
    return RecordingBroadcast()


@pytest.fixture()
def engine(
    store: MemoryActivityStore,
    settings: MemorySettings,
    source: ScriptedSource,
    notifier: RecordingNotifier,
    broadcast: RecordingBroadcast,
    clock: FakeClock,
) -> TrackingEngine:
    return TrackingEngine(
        store=store,
        settings=settings,
        source=source,
        notifier=notifier,
        broadcast=broadcast,
        clock=clock,
    )
