"""User notifications emitted by the tracking engine."""

from __future__ import annotations

import logging
from typing import Protocol

from .config import SettingsReader
from .events import NOTIFICATION, Broadcast
from .models import Activity

logger = logging.getLogger(__name__)

APP_TITLE = "LightTrack"


class Notifier(Protocol):
    def notify(self, title: str, body: str) -> None: ...


class LoggingNotifier:
    def notify(self, title: str, body: str) -> None:
        logger.info("%s: %s", title, body)


class BroadcastNotifier:
    """Forwards notifications to UI subscribers of the event bus."""

    def __init__(self, broadcast: Broadcast) -> None:
        self._broadcast = broadcast

    def notify(self, title: str, body: str) -> None:
        self._broadcast.publish({"type": NOTIFICATION, "title": title, "body": body})


def format_duration(seconds: float) -> str:
    """``3720`` -> ``1h 2m``; below an hour only minutes are shown."""
    total = max(0, int(seconds))
    hours, remainder = divmod(total, 3600)
    minutes = remainder // 60
    return f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"


class NotificationHooks:
    """Gates notifications on ``showNotifications``; never raises."""

    def __init__(self, notifier: Notifier, settings: SettingsReader) -> None:
        self._notifier = notifier
        self._settings = settings

    def tracking_started(self) -> None:
        self._emit(APP_TITLE, "Time tracking started")

    def tracking_paused(self) -> None:
        self._emit(APP_TITLE, "Time tracking paused")

    def idle_detected(self) -> None:
        self._emit(f"{APP_TITLE} - Idle Detected", "Tracking paused due to inactivity")

    def activity_saved(self, activity: Activity) -> None:
        label = activity.project or activity.app
        self._emit(
            "Activity Saved",
            f"Saved: {label} ({format_duration(activity.effective_duration)})",
        )

    def activity_merged(self, activity: Activity) -> None:
        self._emit("Activity Updated", f"Merged with previous: {activity.project or activity.app}")

    def _emit(self, title: str, body: str) -> None:
        try:
            if not self._settings.get("showNotifications", True):
                return
            self._notifier.notify(title, body)
        except Exception:
            logger.debug("Notification %r failed", title, exc_info=True)
