"""Domain models for samples, estimates and ledger entries."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass(slots=True, frozen=True)
class CalendarEvent:
    """A calendar event fetched for the current sampling window."""

    id: str
    title: str
    start: datetime
    end: datetime
    calendar_id: str
    description: Optional[str] = None

    def overlaps(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass(slots=True, frozen=True)
class Sample:
    """One observation of the active window at a point in time."""

    timestamp: datetime
    window_title: str
    window_class: Optional[str] = None
    pid: Optional[int] = None
    calendar_events: tuple[CalendarEvent, ...] = ()
    is_idle: bool = False


@dataclass(slots=True, frozen=True)
class ActivityCandidate:
    label: str
    confidence: float


@dataclass(slots=True, frozen=True)
class Evidence:
    window_title: Optional[str] = None
    calendar_event: Optional[CalendarEvent] = None


@dataclass(slots=True, frozen=True)
class ActivityEstimate:
    """Result of classifying a window of samples."""

    label: str
    confidence: float
    timestamp: datetime
    alternatives: tuple[ActivityCandidate, ...] = ()
    evidence: Evidence = field(default_factory=Evidence)
    source: str = "heuristic"

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", clamp_confidence(self.confidence))


@dataclass(slots=True, frozen=True)
class Project:
    id: int
    name: str
    workspace_id: int


@dataclass(slots=True)
class LedgerEntry:
    """A time entry as stored in (or sent to) the external ledger."""

    description: str
    start: datetime
    stop: Optional[datetime] = None
    duration: Optional[int] = None
    project_id: Optional[int] = None
    workspace_id: Optional[int] = None
    tags: Optional[list[str]] = None
    created_with: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    id: Optional[int] = None

    @classmethod
    def for_block(
        cls,
        *,
        description: str,
        start: datetime,
        stop: datetime,
        project_id: Optional[int] = None,
        workspace_id: Optional[int] = None,
        created_with: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> "LedgerEntry":
        return cls(
            description=description,
            start=start,
            stop=stop,
            duration=int((stop - start).total_seconds()),
            project_id=project_id,
            workspace_id=workspace_id,
            created_with=created_with,
            metadata=metadata,
        )


class ReconcileAction(str, enum.Enum):
    SKIPPED = "skipped"
    MERGED = "merged"
    CREATED = "created"


@dataclass(slots=True, frozen=True)
class ReconcileOutcome:
    action: ReconcileAction
    reason: str
    entry_id: Optional[int] = None
    start: Optional[datetime] = None
    stop: Optional[datetime] = None


def clamp_confidence(value: float) -> float:
    value = float(value)
    if math.isnan(value):
        return 0.0
    return min(max(value, 0.0), 1.0)
