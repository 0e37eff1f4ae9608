"""Tests for do-not-track screening, browser-extension shaping and title cleanup."""

from __future__ import annotations

import asyncio

import pytest

from lighttrack.normalization import MAX_URL_LENGTH, display_app_name, normalize_window_title
from lighttrack.sources import (
    BROWSER_EXTENSION_SOURCE,
    BrowserExtensionSource,
    DoNotTrackPolicy,
    RawWindow,
    WindowsForegroundSource,
    create_default_source,
)
from lighttrack.store import MemorySettings
from lighttrack.models import ForegroundWindow


class TestDoNotTrackPolicy:
    def test_app_match_is_case_insensitive(self) -> None:
        info = DoNotTrackPolicy(apps=["KeePass"]).check(RawWindow(app="keepass", title="Vault"))
        assert info.do_not_track
        assert info.category == "app"

    def test_domain_matches_subdomains_only(self) -> None:
        policy = DoNotTrackPolicy(domains=["bank.com"])
        assert policy.check(
            RawWindow(app="Chrome", title="x", url="https://online.bank.com/login")
        ).category == "domain"
        assert not policy.check(
            RawWindow(app="Chrome", title="x", url="https://notbank.com/")
        ).do_not_track

    def test_keyword_in_title(self) -> None:
        info = DoNotTrackPolicy(keywords=["Private"]).check(
            RawWindow(app="Chrome", title="private browsing")
        )
        assert info.category == "keyword"

    def test_from_settings(self) -> None:
        policy = DoNotTrackPolicy.from_settings(MemorySettings({"doNotTrackApps": [" Vault "]}))
        assert policy.apps == ("vault",)


class TestBrowserExtensionSource:
    def test_receive_builds_flagged_observation(self) -> None:
        source = BrowserExtensionSource(DoNotTrackPolicy(domains=["bank.com"]))
        observation = source.receive(
            {"url": "https://bank.com/a", "title": "Account", "browser": "Firefox"}
        )
        assert observation.app == "Firefox"
        assert observation.source == BROWSER_EXTENSION_SOURCE
        assert observation.do_not_track is True
        assert observation.do_not_track_category == "domain"

    def test_receive_clips_url(self) -> None:
        observation = BrowserExtensionSource().receive(
            {"url": "https://a.example/" + "x" * 5000, "title": "Long"}
        )
        assert len(observation.url) == MAX_URL_LENGTH
        assert observation.app == "Browser"

    @pytest.mark.parametrize("payload", [{"url": "https://a.example"}, {"title": "t"}, {}])
    def test_receive_requires_url_and_title(self, payload) -> None:
        with pytest.raises(ValueError):
            BrowserExtensionSource().receive(payload)

    def test_push_source_never_pulls(self) -> None:
        assert asyncio.run(BrowserExtensionSource().sample()) is None


class TestDefaultSource:
    def test_non_windows_falls_back_to_push_only(self, monkeypatch) -> None:
        monkeypatch.setattr("lighttrack.sources.sys.platform", "linux")
        source = create_default_source(MemorySettings({"doNotTrackApps": ["Vault"]}))
        assert isinstance(source, BrowserExtensionSource)
        assert source.policy.apps == ("vault",)


class TestNormalization:
    def test_browser_suffix_removed(self) -> None:
        assert normalize_window_title("chrome.exe", "Inbox - Google Chrome") == "Inbox"

    def test_display_app_name(self) -> None:
        assert display_app_name("Code.exe") == "Code"
        assert display_app_name(None) == "Unknown"


class FakeDesktop:
    def __init__(self, window, idle=None, error=None) -> None:
        self.window = window
        self.idle = idle
        self.error = error

    def foreground(self):
        if self.error is not None:
            raise self.error
        return self.window

    def seconds_since_input(self):
        return self.idle


class TestWindowsForegroundSource:
    def test_sample_shapes_foreground_window(self) -> None:
        desktop = FakeDesktop(
            ForegroundWindow(pid=42, process_name="chrome.exe", title="Inbox - Google Chrome"),
            idle=12.5,
        )
        source = WindowsForegroundSource(DoNotTrackPolicy(apps=["chrome"]), desktop=desktop)
        observation = asyncio.run(source.sample())
        assert observation.app == "chrome"
        assert observation.title == "Inbox"
        assert observation.idle_seconds == 12.5
        assert observation.do_not_track_category == "app"

    @pytest.mark.parametrize(
        "desktop",
        [
            FakeDesktop(None),
            FakeDesktop(ForegroundWindow(pid=1, process_name="explorer.exe", title=None)),
            FakeDesktop(None, error=OSError("access denied")),
        ],
    )
    def test_sample_without_usable_window(self, desktop) -> None:
        assert asyncio.run(WindowsForegroundSource(desktop=desktop).sample()) is None
