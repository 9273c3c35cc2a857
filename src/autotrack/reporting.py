"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Iterable, Optional

from .db import database_connection, fetch_recent_analyses, fetch_recent_samples, from_db_time
from .models import ActivityEstimate, Project, Sample


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def print_recent(self, window_minutes: float, analyses: int = 10) -> None:
        with database_connection(self.db_path) as conn:
            samples = fetch_recent_samples(conn, window_minutes)
            results = fetch_recent_analyses(conn, analyses)

        print(f"Samples in the last {window_minutes:g} minutes: {len(samples)}")
        print("-" * 40)
        for title, count in aggregate_titles(samples)[:5]:
            print(f"  {count:>4}  {title[:60]}")

        if results:
            print()
            print("Recent analyses:")
            for row in results:
                stamp = from_db_time(row["timestamp"]).astimezone().strftime("%Y-%m-%d %H:%M")
                entry = f" #{row['entry_id']}" if row["entry_id"] else ""
                print(
                    f"  {stamp}  {row['action']:<8}{entry:<12} "
                    f"{row['label'][:30]:<30} {row['confidence']:.2f} ({row['source']})"
                )


def aggregate_titles(samples: Iterable[Sample]) -> list[tuple[str, int]]:
    counts = Counter(sample.window_title or "(untitled)" for sample in samples)
    return counts.most_common()


def format_sample(sample: Sample) -> str:
    lines = [
        f"Time:   {sample.timestamp.astimezone().strftime('%Y-%m-%d %H:%M:%S')}",
        f"Window: {sample.window_title}",
        f"Class:  {sample.window_class or '-'} (pid {sample.pid or '-'})",
        f"Idle:   {'yes' if sample.is_idle else 'no'}",
    ]
    for event in sample.calendar_events:
        lines.append(f"Event:  {event.title}")
    return "\n".join(lines)


def format_estimate(estimate: ActivityEstimate, project: Optional[Project]) -> str:
    lines = [
        f"Activity:   {estimate.label} ({estimate.confidence:.2f}, {estimate.source})",
        f"Project:    {project.name if project else '-'}",
    ]
    for alternative in estimate.alternatives:
        lines.append(f"  or        {alternative.label} ({alternative.confidence:.2f})")
    if estimate.evidence.window_title:
        lines.append(f"Window:     {estimate.evidence.window_title}")
    if estimate.evidence.calendar_event:
        lines.append(f"Event:      {estimate.evidence.calendar_event.title}")
    return "\n".join(lines)
