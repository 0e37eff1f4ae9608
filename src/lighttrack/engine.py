"""Activity lifecycle engine: sampling, finalization, idle handling and merging."""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from .cache import RecentActivityCache
from .classifier import Classification, Classifier
from .config import RuleTables, TrackerSettings
from .events import ACTIVITY_UPDATE, TRACKING_STATUS, Broadcast, NullBroadcast
from .hooks import LoggingNotifier, NotificationHooks, Notifier
from .merge import try_merge
from .models import (
    Activity,
    ActivitySummary,
    WindowObservation,
    elapsed_seconds,
    format_instant,
    idle_period_since,
    is_valid_activity,
    local_now,
    new_activity_id,
)
from .sources import ObservationSource
from .store import ActivityStore, SettingsStore, apply_retention
from .timers import TimerRegistry

logger = logging.getLogger(__name__)

TRACKING_TIMER = "tracking"
AUTO_SAVE_TIMER = "autoSave"


class TrackingState(str, enum.Enum):
    STOPPED = "stopped"
    RUNNING_IDLE_HEAD = "running-idle-head"
    RUNNING_HAS_CURRENT = "running-has-current"
    RUNNING_IN_IDLE = "running-in-idle"


@dataclass(slots=True)
class TrackingStatus:
    is_active: bool
    state: TrackingState
    current_activity: Optional[Activity]
    session_start_time: Optional[datetime]

    def to_payload(self) -> dict[str, Any]:
        return {
            "isActive": self.is_active,
            "state": self.state.value,
            "currentActivity": (
                self.current_activity.to_record() if self.current_activity else None
            ),
            "sessionStartTime": (
                format_instant(self.session_start_time) if self.session_start_time else None
            ),
        }


class TrackingEngine:
    """Owns the single in-flight activity of a tracking session.

    Every public operation runs under one ``asyncio.Lock`` so that sampling,
    browser pushes, project switches, start and stop never interleave.
    """

    def __init__(
        self,
        *,
        store: ActivityStore,
        settings: SettingsStore,
        source: ObservationSource,
        rules: Optional[RuleTables] = None,
        notifier: Optional[Notifier] = None,
        broadcast: Optional[Broadcast] = None,
        clock: Optional[Callable[[], datetime]] = None,
        recent: Optional[RecentActivityCache] = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._source = source
        self._classifier = Classifier(rules)
        self._hooks = NotificationHooks(notifier or LoggingNotifier(), settings)
        self._broadcast = broadcast or NullBroadcast()
        self._clock = clock or local_now
        self._timers = TimerRegistry()
        self.recent = recent if recent is not None else RecentActivityCache()
        self._lock = asyncio.Lock()
        self._tick_waiting = False

        self._is_active = False
        self._current: Optional[Activity] = None
        self._last_activity_time = self._clock()
        self._session_start_time: Optional[datetime] = None

    # ------------------------------------------------------------------ state

    @property
    def is_active(self) -> bool:
        return self._is_active

    @property
    def timers(self) -> TimerRegistry:
        return self._timers

    @property
    def rules(self) -> RuleTables:
        return self._classifier.rules

    @property
    def state(self) -> TrackingState:
        if not self._is_active:
            return TrackingState.STOPPED
        if self._current is None:
            return TrackingState.RUNNING_IDLE_HEAD
        if self._current.open_idle_period is not None:
            return TrackingState.RUNNING_IN_IDLE
        return TrackingState.RUNNING_HAS_CURRENT

    def get_current_activity(self) -> Optional[Activity]:
        return self._current

    def get_tracking_state(self) -> TrackingStatus:
        return TrackingStatus(
            is_active=self._is_active,
            state=self.state,
            current_activity=self._current,
            session_start_time=self._session_start_time,
        )

    def get_memory_stats(self) -> dict[str, Any]:
        return {
            "cacheSize": len(self.recent),
            "activeIntervals": len(self._timers.interval_names),
            "activeTimeouts": len(self._timers.timeout_names),
            "hasCurrentActivity": self._current is not None,
        }

    # --------------------------------------------------------------- commands

    async def start(self) -> None:
        async with self._lock:
            if self._is_active:
                return
            settings = TrackerSettings.from_store(self._settings)
            try:
                self._timers.create_interval(
                    TRACKING_TIMER, self._on_tracking_timer, settings.auto_save_interval
                )
                self._timers.create_interval(
                    AUTO_SAVE_TIMER, self.auto_save_tick, settings.auto_save_interval
                )
            except ValueError:
                self._timers.clear_all()
                raise
            now = self._clock()
            self._is_active = True
            self._session_start_time = now
            self._last_activity_time = now
            logger.info("Tracking started (interval=%ss).", settings.auto_save_interval)
            self._publish_status()
            self._hooks.tracking_started()
            await self._sample_locked()

    async def stop(self) -> None:
        async with self._lock:
            self._stop_locked()

    async def toggle(self) -> bool:
        if self._is_active:
            await self.stop()
        else:
            await self.start()
        return self._is_active

    async def sample_tick(self) -> None:
        async with self._lock:
            await self._sample_locked()

    async def auto_save_tick(self) -> None:
        async with self._lock:
            activity = self._current
            if not self._is_active or activity is None:
                return
            settings = TrackerSettings.from_store(self._settings)
            if activity.duration < settings.min_activity_duration:
                return
            self._refresh(activity, self._clock())
            self._publish_activity()

    async def handle_browser_activity(self, observation: WindowObservation) -> None:
        async with self._lock:
            if not self._is_active:
                logger.debug("Dropping browser activity while stopped.")
                return
            self._route(observation, match_url=True)

    async def switch_project(self, name: str) -> None:
        async with self._lock:
            if self._current is None:
                return
            logger.info("Reassigning current activity to project %r.", name)
            self._current.project = name
            self._publish_activity()

    async def update_rules(self, rules: RuleTables) -> None:
        """Swap the rule tables between operations, never mid-tick."""
        classifier = Classifier(rules)
        async with self._lock:
            self._classifier = classifier

    async def cleanup(self) -> None:
        """Stop the session (if any) and release every timer and cache."""
        try:
            if self._is_active:
                await self.stop()
        finally:
            self._timers.clear_all()
            self.recent.clear()
            self._current = None
            self._session_start_time = None
            self._last_activity_time = self._clock()

    # --------------------------------------------------------------- internals

    async def _on_tracking_timer(self) -> None:
        # Single-slot queue: a tick already waiting for the lock absorbs this one.
        if self._tick_waiting:
            return
        self._tick_waiting = True
        try:
            async with self._lock:
                self._tick_waiting = False
                await self._sample_locked()
        finally:
            self._tick_waiting = False

    async def _sample_locked(self) -> None:
        if not self._is_active:
            return
        try:
            observation = await self._source.sample()
        except Exception:
            logger.warning("Observation source failed; skipping tick.", exc_info=True)
            return
        if observation is None or not self._is_active:
            return
        self._route(observation, match_url=False)

    def _route(self, observation: WindowObservation, *, match_url: bool) -> None:
        now = self._clock()
        current = self._current
        if current is not None and self._is_same_window(current, observation, match_url):
            self._refresh(current, now)
        else:
            if current is not None:
                self._finalize_current(now)
            self._open_activity(observation, now)
        self._advance_activity_time(observation, now)
        self._publish_activity()
        self._check_idle(now)

    @staticmethod
    def _is_same_window(
        activity: Activity, observation: WindowObservation, match_url: bool
    ) -> bool:
        if activity.app != observation.app:
            return False
        if match_url:
            return activity.url == observation.url
        return activity.title == observation.title

    def _advance_activity_time(self, observation: WindowObservation, now: datetime) -> None:
        # Platform sources report input idleness; the last input, not the sample,
        # is the last activity.
        if observation.idle_seconds is not None:
            candidate = now - timedelta(seconds=max(0.0, observation.idle_seconds))
        else:
            candidate = now
        if candidate > self._last_activity_time:
            self._last_activity_time = candidate

    def _refresh(self, activity: Activity, now: datetime) -> None:
        activity.duration = elapsed_seconds(activity.start_time, now)
        activity.last_update = now

    def _classify(self, observation: WindowObservation, settings: TrackerSettings) -> Classification:
        try:
            return self._classifier.classify(observation, settings.default_project)
        except Exception:
            logger.exception("Classification failed; using the fallback project.")
            return Classification.fallback(settings.fallback_project)

    def _open_activity(self, observation: WindowObservation, now: datetime) -> None:
        settings = TrackerSettings.from_store(self._settings)
        result = self._classify(observation, settings)
        metadata = dict(result.metadata)
        if observation.source:
            metadata["source"] = observation.source
        self._current = Activity(
            id=new_activity_id(now),
            start_time=now,
            last_update=now,
            app=observation.app,
            title=observation.title,
            url=observation.url,
            project=result.project,
            activity=result.activity,
            tickets=list(result.tickets),
            tags=list(result.tags),
            billable=result.billable,
            sap_code=result.sap_code,
            cost_center=result.cost_center,
            po_number=result.po_number,
            wbs_element=result.wbs_element,
            duration=0,
            idle_periods=[],
            do_not_track=observation.do_not_track,
            do_not_track_category=observation.do_not_track_category,
            do_not_track_reason=observation.do_not_track_reason,
            metadata=metadata or None,
        )
        logger.debug(
            "Opened activity %s app=%s project=%s",
            self._current.id,
            observation.app,
            result.project,
        )

    def _finalize_current(self, now: datetime) -> None:
        activity = self._current
        if activity is None:
            return
        settings = TrackerSettings.from_store(self._settings)

        activity.end_time = now
        activity.duration = elapsed_seconds(activity.start_time, now)
        activity.actual_duration = max(
            0, int(activity.duration - activity.excluded_idle_seconds())
        )

        if activity.duration < settings.min_activity_duration or not is_valid_activity(activity):
            logger.debug("Discarding activity %s (duration=%ss).", activity.id, activity.duration)
            self._current = None
            return

        try:
            if settings.consolidate_activities:
                merged = self._merge_into_recent(activity, settings, now)
                if merged is not None:
                    self._current = merged
                    self._hooks.activity_merged(merged)
                    return
            self._append(activity, settings, now)
        except Exception:
            # Leave the activity open so the next finalization retries the write.
            activity.end_time = None
            activity.actual_duration = None
            raise

        self.recent.add(ActivitySummary.from_activity(activity))
        self._current = None
        logger.info(
            "Saved activity %s project=%s duration=%ss",
            activity.id,
            activity.project,
            activity.actual_duration,
        )
        self._hooks.activity_saved(activity)

    def _merge_into_recent(
        self, activity: Activity, settings: TrackerSettings, now: datetime
    ) -> Optional[Activity]:
        activities = self._store.get_activities()
        merged = try_merge(
            activities,
            activity,
            gap_threshold=settings.merge_gap_threshold,
            fallback_project=settings.fallback_project,
        )
        if merged is None:
            return None
        self._store.set_activities(apply_retention(activities, now, settings.data_retention_days))
        return merged

    def _append(self, activity: Activity, settings: TrackerSettings, now: datetime) -> None:
        activities = self._store.get_activities()
        activities.append(activity)
        self._store.set_activities(apply_retention(activities, now, settings.data_retention_days))

    def _check_idle(self, now: datetime) -> None:
        settings = TrackerSettings.from_store(self._settings)
        idle_seconds = (now - self._last_activity_time).total_seconds()
        if idle_seconds <= settings.idle_threshold:
            return
        activity = self._current
        if activity is None or activity.open_idle_period is not None:
            return
        activity.idle_periods.append(idle_period_since(now, idle_seconds))
        logger.info("Idle for %.0fs; opened idle period on %s.", idle_seconds, activity.id)
        if settings.pause_on_idle:
            self._stop_locked()
            self._hooks.idle_detected()

    def _stop_locked(self) -> None:
        if not self._is_active:
            return
        self._is_active = False
        self._timers.clear_all()
        self._publish_status()
        try:
            self._finalize_current(self._clock())
        finally:
            if self._current is not None and self._current.is_finalized:
                self._current = None
        if self._current is None:
            self._publish_activity()
        logger.info("Tracking stopped.")
        self._hooks.tracking_paused()

    def _publish_status(self) -> None:
        self._publish(
            {
                "type": TRACKING_STATUS,
                "isActive": self._is_active,
                "state": self.state.value,
                "sessionStartTime": (
                    format_instant(self._session_start_time)
                    if self._session_start_time
                    else None
                ),
            }
        )

    def _publish_activity(self) -> None:
        activity = self._current
        self._publish(
            {
                "type": ACTIVITY_UPDATE,
                "activity": activity.to_record() if activity else None,
            }
        )

    def _publish(self, event: dict[str, Any]) -> None:
        try:
            self._broadcast.publish(event)
        except Exception:
            logger.debug("Broadcast of %s failed", event.get("type"), exc_info=True)
