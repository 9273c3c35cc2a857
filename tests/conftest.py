"""Shared fixtures: sample factories and an in-memory ledger."""

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from autotrack.config import TrackerSettings
from autotrack.db import open_database
from autotrack.errors import LedgerTransportError
from autotrack.models import CalendarEvent, LedgerEntry, Project, Sample


def utc(hour, minute=0, second=0, day=1):
    return datetime(2025, 3, day, hour, minute, second, tzinfo=timezone.utc)


class FakeLedger:
    """Keeps entries in memory and mimics the Toggl start_date/end_date filter."""

    def __init__(self, projects=()):
        self.projects = list(projects)
        self.entries = {}
        self.created = []
        self.updates = []
        self.fail_list = False
        self.fail_update = False
        self.fail_create = False
        self.closed = False
        self._ids = count(1)

    def add(self, entry):
        entry.id = next(self._ids)
        self.entries[entry.id] = entry
        return entry.id

    def list_projects(self):
        return list(self.projects)

    def list_entries(self, workspace_id, start, end):
        if self.fail_list:
            raise LedgerTransportError("boom", status=503, body="unavailable")
        return [
            entry
            for entry in self.entries.values()
            if start <= entry.start <= end and entry.workspace_id in (None, workspace_id)
        ]

    def create_entry(self, entry):
        if self.fail_create:
            raise LedgerTransportError("create failed", status=500, body="oops")
        entry_id = self.add(entry)
        self.created.append(entry)
        return entry_id

    def close(self):
        self.closed = True

    def update_entry_stop(self, entry_id, new_stop):
        if self.fail_update:
            raise LedgerTransportError("update failed", status=400, body="bad")
        entry = self.entries[entry_id]
        entry.stop = new_stop
        entry.duration = int((new_stop - entry.start).total_seconds())
        self.updates.append((entry_id, new_stop))


@pytest.fixture
def settings():
    return TrackerSettings()


@pytest.fixture
def ledger():
    return FakeLedger(projects=[Project(1, "Report", 7), Project(2, "Writing", 7)])


@pytest.fixture
def conn(tmp_path):
    connection = open_database(tmp_path / "activity.sqlite3")
    yield connection
    connection.close()


@pytest.fixture
def make_sample():
    def _make(title, when, events=(), window_class=None, pid=None, is_idle=False):
        return Sample(
            timestamp=when,
            window_title=title,
            window_class=window_class,
            pid=pid,
            calendar_events=tuple(events),
            is_idle=is_idle,
        )

    return _make


@pytest.fixture
def make_event():
    def _make(event_id, title, start, minutes=60, calendar_id="primary"):
        return CalendarEvent(
            id=event_id,
            title=title,
            start=start,
            end=start + timedelta(minutes=minutes),
            calendar_id=calendar_id,
        )

    return _make


@pytest.fixture
def make_entry():
    def _make(description, start, stop, project_id=None, workspace_id=7):
        return LedgerEntry.for_block(
            description=description,
            start=start,
            stop=stop,
            project_id=project_id,
            workspace_id=workspace_id,
        )

    return _make
