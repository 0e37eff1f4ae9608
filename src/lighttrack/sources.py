"""Providers of window observations: platform pull and browser-extension push."""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Protocol
from urllib.parse import urlsplit

from .config import SettingsReader
from .models import ForegroundWindow, WindowObservation
from .normalization import (
    MAX_APP_LENGTH,
    MAX_TITLE_LENGTH,
    MAX_URL_LENGTH,
    clip,
    display_app_name,
    normalize_window_title,
)

logger = logging.getLogger(__name__)

BROWSER_EXTENSION_SOURCE = "browser-extension"


@dataclass(slots=True, frozen=True)
class RawWindow:
    """Platform-level window facts before do-not-track screening."""

    app: str
    title: str
    url: Optional[str] = None
    idle_seconds: Optional[float] = None


@dataclass(slots=True, frozen=True)
class DoNotTrackInfo:
    do_not_track: bool = False
    category: Optional[str] = None
    reason: Optional[str] = None


def _lowered(values: Optional[Iterable[Any]]) -> tuple[str, ...]:
    return tuple(str(value).strip().lower() for value in values or () if str(value).strip())


class DoNotTrackPolicy:
    """Flags windows the user asked not to track (they are recorded but marked)."""

    def __init__(
        self,
        apps: Iterable[str] = (),
        keywords: Iterable[str] = (),
        domains: Iterable[str] = (),
    ) -> None:
        self.apps = _lowered(apps)
        self.keywords = _lowered(keywords)
        self.domains = _lowered(domains)

    @classmethod
    def from_settings(cls, settings: SettingsReader) -> "DoNotTrackPolicy":
        return cls(
            apps=settings.get("doNotTrackApps") or (),
            keywords=settings.get("doNotTrackKeywords") or (),
            domains=settings.get("doNotTrackDomains") or (),
        )

    def check(self, raw: RawWindow) -> DoNotTrackInfo:
        app = raw.app.lower()
        if app in self.apps:
            return DoNotTrackInfo(True, "app", f"Application '{raw.app}' is excluded")
        if raw.url and self.domains:
            host = (urlsplit(raw.url).hostname or "").lower()
            for domain in self.domains:
                if host == domain or host.endswith("." + domain):
                    return DoNotTrackInfo(True, "domain", f"Domain '{domain}' is excluded")
        title = raw.title.lower()
        for keyword in self.keywords:
            if keyword in title:
                return DoNotTrackInfo(True, "keyword", f"Title contains '{keyword}'")
        return DoNotTrackInfo()


class ObservationSource(Protocol):
    async def sample(self) -> Optional[WindowObservation]: ...


class BaseObservationSource:
    """Shared do-not-track screening for every provider."""

    source_name: Optional[str] = None

    def __init__(self, policy: Optional[DoNotTrackPolicy] = None) -> None:
        self.policy = policy or DoNotTrackPolicy()

    async def sample(self) -> Optional[WindowObservation]:
        return None

    def check_do_not_track(self, raw: RawWindow) -> DoNotTrackInfo:
        return self.policy.check(raw)

    def build_observation(self, raw: RawWindow) -> WindowObservation:
        info = self.check_do_not_track(raw)
        return WindowObservation(
            app=raw.app,
            title=raw.title,
            url=raw.url,
            do_not_track=info.do_not_track,
            do_not_track_category=info.category,
            do_not_track_reason=info.reason,
            idle_seconds=raw.idle_seconds,
            source=self.source_name,
        )


class Desktop(Protocol):
    def foreground(self) -> Optional[ForegroundWindow]: ...

    def seconds_since_input(self) -> Optional[float]: ...


class WindowsForegroundSource(BaseObservationSource):
    """Pulls the foreground window and input idleness through Win32."""

    def __init__(
        self, policy: Optional[DoNotTrackPolicy] = None, desktop: Optional[Desktop] = None
    ) -> None:
        super().__init__(policy)
        if desktop is None:
            from .win32 import Win32Desktop

            desktop = Win32Desktop()
        self._desktop = desktop

    async def sample(self) -> Optional[WindowObservation]:
        try:
            raw = await asyncio.to_thread(self._read_window)
        except Exception:
            logger.warning("Failed to query the foreground window.", exc_info=True)
            return None
        if raw is None:
            return None
        return self.build_observation(raw)

    def _read_window(self) -> Optional[RawWindow]:
        window = self._desktop.foreground()
        if window is None:
            return None
        title = normalize_window_title(window.process_name, window.title)
        if not title:
            return None
        return RawWindow(
            app=display_app_name(window.process_name),
            title=title,
            idle_seconds=self._desktop.seconds_since_input(),
        )


class BrowserExtensionSource(BaseObservationSource):
    """Shapes activity pushed by the browser extension; it never pulls."""

    source_name = BROWSER_EXTENSION_SOURCE

    def receive(self, payload: Mapping[str, Any]) -> WindowObservation:
        url = clip(payload.get("url"), MAX_URL_LENGTH)
        title = clip(payload.get("title"), MAX_TITLE_LENGTH)
        if not url or not title:
            raise ValueError("Browser activity requires 'url' and 'title'")
        app = clip(payload.get("browser") or "Browser", MAX_APP_LENGTH)
        return self.build_observation(RawWindow(app=app, title=title, url=url))


def create_default_source(settings: SettingsReader) -> BaseObservationSource:
    """Platform pull source where one exists; otherwise push-only."""
    policy = DoNotTrackPolicy.from_settings(settings)
    if sys.platform == "win32":
        return WindowsForegroundSource(policy)
    logger.warning(
        "No foreground-window probe for %s; only browser-extension activity is tracked.",
        sys.platform,
    )
    return BrowserExtensionSource(policy)
