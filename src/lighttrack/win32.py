"""Win32 access to the foreground window and to user input idleness."""

from __future__ import annotations

import ctypes
import logging
from ctypes import wintypes
from typing import Optional

import psutil

from .models import ForegroundWindow

logger = logging.getLogger(__name__)

_TICK_MASK = 0xFFFFFFFF


class LASTINPUTINFO(ctypes.Structure):
    _fields_ = [("cbSize", wintypes.UINT), ("dwTime", wintypes.DWORD)]


class Win32Desktop:
    """One handle on user32/kernel32 for the pull source's two questions."""

    def __init__(self) -> None:
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]
        self._kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
        self._kernel32.GetTickCount64.restype = ctypes.c_ulonglong

    def foreground(self) -> Optional[ForegroundWindow]:
        """The focused window, or ``None`` when the desktop has no foreground window."""
        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            return None
        pid = wintypes.DWORD()
        self._user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
        return ForegroundWindow(
            pid=pid.value,
            process_name=_process_name(pid.value),
            title=self._window_text(hwnd),
        )

    def seconds_since_input(self) -> Optional[float]:
        info = LASTINPUTINFO(cbSize=ctypes.sizeof(LASTINPUTINFO))
        if not self._user32.GetLastInputInfo(ctypes.byref(info)):
            logger.warning("GetLastInputInfo failed; idle time unknown.")
            return None
        # dwTime is a 32-bit tick count and wraps every ~49.7 days.
        now_ms = self._kernel32.GetTickCount64() & _TICK_MASK
        return ((now_ms - info.dwTime) & _TICK_MASK) / 1000.0

    def _window_text(self, hwnd: int) -> Optional[str]:
        size = self._user32.GetWindowTextLengthW(hwnd) + 1
        buffer = ctypes.create_unicode_buffer(size)
        self._user32.GetWindowTextW(hwnd, buffer, size)
        return buffer.value.strip() or None


def _process_name(pid: int) -> Optional[str]:
    if not pid:
        return None
    try:
        return psutil.Process(pid).name()
    except (psutil.Error, ProcessLookupError):
        logger.debug("Process %s vanished before it could be named.", pid)
        return None
