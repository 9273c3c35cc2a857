"""Desktop sampling for X11 sessions."""

from __future__ import annotations

import logging
import re
import sqlite3
import subprocess
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import psutil

from .calendar import CalendarProvider
from .config import TrackerSettings
from .db import insert_sample
from .errors import CalendarFetchError
from .idle import IdleTracker
from .models import CalendarEvent, Sample

logger = logging.getLogger(__name__)

CALENDAR_LOOKBEHIND = timedelta(hours=1)
CALENDAR_LOOKAHEAD = timedelta(hours=24)

_WM_CLASS_PATTERN = re.compile(r'"([^"]*)"')


@dataclass(slots=True, frozen=True)
class WindowInfo:
    title: str
    window_class: Optional[str] = None
    pid: Optional[int] = None


class WindowProbe(Protocol):
    def get_active_window(self) -> WindowInfo: ...


class IdleProbe(Protocol):
    def idle_seconds(self) -> Optional[float]: ...


def _run(*args: str) -> str:
    result = subprocess.run(
        args, capture_output=True, text=True, check=True, timeout=5
    )
    return result.stdout.strip()


class XIdleProbe:
    """Reads the session idle time with ``xprintidle``."""

    def idle_seconds(self) -> Optional[float]:
        try:
            return int(_run("xprintidle")) / 1000.0
        except (OSError, subprocess.SubprocessError, ValueError):
            logger.warning("Failed to query idle time; assuming not idle.", exc_info=True)
            return None


class XActiveWindowProbe:
    """Retrieves the focused window title, WM_CLASS and pid via xdotool/xprop."""

    def get_active_window(self) -> WindowInfo:
        window_id = _run("xdotool", "getactivewindow")
        title = _run("xdotool", "getwindowname", window_id)

        pid: Optional[int]
        try:
            pid = int(_run("xdotool", "getwindowpid", window_id))
        except (subprocess.SubprocessError, ValueError):
            pid = None

        return WindowInfo(title=title, window_class=self._window_class(window_id, pid), pid=pid)

    @staticmethod
    def _window_class(window_id: str, pid: Optional[int]) -> Optional[str]:
        try:
            names = _WM_CLASS_PATTERN.findall(_run("xprop", "-id", window_id, "WM_CLASS"))
            if names:
                return names[-1]
        except (OSError, subprocess.SubprocessError):
            logger.debug("xprop unavailable for window %s", window_id)
        if pid is None:
            return None
        try:
            return psutil.Process(pid).name()
        except (psutil.Error, ProcessLookupError):
            return None


class SampleCollector:
    """Takes one sample per tick, gated by the idle tracker."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        settings: TrackerSettings,
        *,
        window_probe: WindowProbe,
        idle_probe: IdleProbe,
        calendar: Optional[CalendarProvider] = None,
        now: Optional[datetime] = None,
    ) -> None:
        self._conn = conn
        self.settings = settings
        self._window_probe = window_probe
        self._idle_probe = idle_probe
        self._calendar = calendar
        self.idle = IdleTracker(settings, now or datetime.now(timezone.utc))

    def close(self) -> None:
        if self._calendar is not None:
            self._calendar.close()
        self._conn.close()

    def sample_once(self, now: Optional[datetime] = None) -> Optional[Sample]:
        now = now or datetime.now(timezone.utc)
        decision = self.idle.tick(self._idle_probe.idle_seconds(), now)
        if decision.suppressed:
            logger.debug(
                "Idle for %ds of the current window; not recording.",
                decision.current_idle.total_seconds(),
            )
            return None

        try:
            window = self._window_probe.get_active_window()
        except (OSError, subprocess.SubprocessError):
            logger.warning("Failed to read the active window; skipping sample.", exc_info=True)
            return None

        sample = Sample(
            timestamp=now,
            window_title=window.title,
            window_class=window.window_class,
            pid=window.pid,
            calendar_events=tuple(self._current_events(now)),
            is_idle=decision.is_idle,
        )
        insert_sample(self._conn, sample)
        logger.debug(
            "Sample recorded: idle=%s class=%s title=%s",
            sample.is_idle,
            sample.window_class,
            sample.window_title,
        )
        return sample

    def _current_events(self, now: datetime) -> list[CalendarEvent]:
        if self._calendar is None:
            return []
        try:
            events = self._calendar.get_events(now - CALENDAR_LOOKBEHIND, now + CALENDAR_LOOKAHEAD)
        except CalendarFetchError as exc:
            logger.warning("Calendar fetch failed; continuing without events: %s", exc)
            return []
        return [event for event in events if event.overlaps(now)]
