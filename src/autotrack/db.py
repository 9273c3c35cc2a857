"""SQLite sample store and analysis log."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, Optional

from .models import ActivityEstimate, CalendarEvent, ReconcileOutcome, Sample


DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"


def to_db_time(moment: datetime) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(DATETIME_FMT)


def from_db_time(value: str) -> datetime:
    return datetime.strptime(value, DATETIME_FMT).replace(tzinfo=timezone.utc)


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    enable_foreign_keys(conn)
    # The sampler writes while the analysis thread reads.
    conn.execute("PRAGMA journal_mode = WAL;")
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def enable_foreign_keys(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA foreign_keys = ON;")


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS samples (
            id INTEGER PRIMARY KEY,
            timestamp TEXT NOT NULL,
            window_title TEXT NOT NULL,
            window_class TEXT,
            pid INTEGER,
            is_idle INTEGER NOT NULL DEFAULT 0
        );

        CREATE INDEX IF NOT EXISTS idx_samples_timestamp
            ON samples(timestamp);

        CREATE TABLE IF NOT EXISTS sample_events (
            sample_id INTEGER NOT NULL REFERENCES samples(id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            event_id TEXT NOT NULL,
            title TEXT NOT NULL,
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            calendar_id TEXT NOT NULL,
            description TEXT,
            PRIMARY KEY (sample_id, position)
        );

        CREATE TABLE IF NOT EXISTS analysis_results (
            id INTEGER PRIMARY KEY,
            timestamp TEXT NOT NULL,
            label TEXT NOT NULL,
            confidence REAL NOT NULL,
            source TEXT NOT NULL,
            action TEXT NOT NULL,
            reason TEXT,
            entry_id INTEGER
        );
        """
    )


def insert_sample(conn: sqlite3.Connection, sample: Sample) -> int:
    with conn:
        conn.execute("BEGIN")
        cur = conn.execute(
            """
            INSERT INTO samples (
                timestamp,
                window_title,
                window_class,
                pid,
                is_idle
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (
                to_db_time(sample.timestamp),
                sample.window_title,
                sample.window_class,
                sample.pid,
                1 if sample.is_idle else 0,
            ),
        )
        sample_id = int(cur.lastrowid)
        conn.executemany(
            """
            INSERT INTO sample_events (
                sample_id,
                position,
                event_id,
                title,
                start_time,
                end_time,
                calendar_id,
                description
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    sample_id,
                    position,
                    event.id,
                    event.title,
                    to_db_time(event.start),
                    to_db_time(event.end),
                    event.calendar_id,
                    event.description,
                )
                for position, event in enumerate(sample.calendar_events)
            ],
        )
    return sample_id


def fetch_recent_samples(
    conn: sqlite3.Connection,
    window_minutes: float,
    now: Optional[datetime] = None,
) -> list[Sample]:
    """Samples newer than ``now - window_minutes``, most recent first."""
    now = now or datetime.now(timezone.utc)
    cutoff = to_db_time(now - timedelta(minutes=window_minutes))
    rows = list(
        conn.execute(
            """
            SELECT id, timestamp, window_title, window_class, pid, is_idle
            FROM samples
            WHERE timestamp > ? AND timestamp <= ?
            ORDER BY timestamp DESC, id DESC;
            """,
            (cutoff, to_db_time(now)),
        )
    )
    if not rows:
        return []

    events: dict[int, list[CalendarEvent]] = {row["id"]: [] for row in rows}
    placeholders = ", ".join("?" for _ in events)
    for event_row in conn.execute(
        f"""
        SELECT sample_id, event_id, title, start_time, end_time, calendar_id, description
        FROM sample_events
        WHERE sample_id IN ({placeholders})
        ORDER BY sample_id, position;
        """,
        list(events),
    ):
        events[event_row["sample_id"]].append(
            CalendarEvent(
                id=event_row["event_id"],
                title=event_row["title"],
                start=from_db_time(event_row["start_time"]),
                end=from_db_time(event_row["end_time"]),
                calendar_id=event_row["calendar_id"],
                description=event_row["description"],
            )
        )

    return [
        Sample(
            timestamp=from_db_time(row["timestamp"]),
            window_title=row["window_title"],
            window_class=row["window_class"],
            pid=row["pid"],
            calendar_events=tuple(events[row["id"]]),
            is_idle=bool(row["is_idle"]),
        )
        for row in rows
    ]


def insert_analysis(
    conn: sqlite3.Connection, estimate: ActivityEstimate, outcome: ReconcileOutcome
) -> None:
    conn.execute(
        """
        INSERT INTO analysis_results (
            timestamp,
            label,
            confidence,
            source,
            action,
            reason,
            entry_id
        ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            to_db_time(estimate.timestamp),
            estimate.label,
            estimate.confidence,
            estimate.source,
            outcome.action.value,
            outcome.reason,
            outcome.entry_id,
        ),
    )


def fetch_recent_analyses(conn: sqlite3.Connection, limit: int = 10) -> list[sqlite3.Row]:
    return list(
        conn.execute(
            """
            SELECT timestamp, label, confidence, source, action, reason, entry_id
            FROM analysis_results
            ORDER BY timestamp DESC, id DESC
            LIMIT ?;
            """,
            (limit,),
        )
    )
