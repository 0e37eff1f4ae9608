"""Utilities to normalize observed window titles and bound input lengths."""

from __future__ import annotations

import re
from typing import Optional

MAX_TITLE_LENGTH = 500
MAX_URL_LENGTH = 2000
MAX_APP_LENGTH = 50

_BROWSER_SUFFIXES: dict[str, tuple[str, ...]] = {
    "msedge.exe": (" - Microsoft Edge",),
    "chrome.exe": (" - Google Chrome",),
    "firefox.exe": (" - Mozilla Firefox", " — Mozilla Firefox"),
    "brave.exe": (" - Brave",),
    "opera.exe": (" - Opera",),
}

_EXTRA_TAB_COUNT_PATTERN = re.compile(r"\s+and\s+\d+\s+more\s+pages?", re.IGNORECASE)


def normalize_window_title(process_name: Optional[str], window_title: Optional[str]) -> Optional[str]:
    """Strip browser suffixes and tab counters so titles compare stably."""
    if not window_title:
        return None
    normalized = window_title.strip()
    if process_name:
        for suffix in _BROWSER_SUFFIXES.get(process_name.lower(), ()):
            if normalized.endswith(suffix):
                normalized = normalized[: -len(suffix)].rstrip(" -")
                break
    normalized = _EXTRA_TAB_COUNT_PATTERN.sub("", normalized).strip(" -|")
    normalized = re.sub(r"\s{2,}", " ", normalized).strip()
    return clip(normalized, MAX_TITLE_LENGTH) or None


def display_app_name(process_name: Optional[str]) -> str:
    """``chrome.exe`` -> ``chrome``; unknown processes become ``Unknown``."""
    if not process_name:
        return "Unknown"
    name = process_name.strip()
    if name.lower().endswith(".exe"):
        name = name[:-4]
    return name or "Unknown"


def clip(value: Optional[str], limit: int) -> str:
    if not value:
        return ""
    return str(value)[:limit]
