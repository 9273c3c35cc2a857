"""Idle-aware gating of sample recording.

The tracker state is an immutable value. Each tick takes the previous state
plus the current OS idle reading and returns the next state together with the
decision for that tick, so the sampling loop simply reassigns it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

from .config import TrackerSettings

logger = logging.getLogger(__name__)


class IdleStatus(str, enum.Enum):
    ACTIVE = "active"
    IDLE = "idle"


@dataclass(slots=True, frozen=True)
class IdleState:
    block_start: datetime
    status: IdleStatus = IdleStatus.ACTIVE
    idle_start: Optional[datetime] = None
    total_idle: timedelta = timedelta(0)

    @classmethod
    def initial(cls, now: datetime) -> "IdleState":
        return cls(block_start=now)

    def current_idle(self, now: datetime) -> timedelta:
        if self.idle_start is None:
            return self.total_idle
        return self.total_idle + (now - self.idle_start)


@dataclass(slots=True, frozen=True)
class IdleDecision:
    state: IdleState
    is_idle: bool
    current_idle: timedelta
    suppressed: bool


def advance(
    state: IdleState,
    idle_seconds: Optional[float],
    now: datetime,
    settings: TrackerSettings,
) -> IdleDecision:
    """Apply one idle reading to ``state``.

    A missing reading (``None``) counts as zero idle time.
    """
    reading = 0.0 if idle_seconds is None else idle_seconds
    is_idle = reading > settings.idle_threshold.total_seconds()

    if is_idle:
        state = replace(
            state,
            status=IdleStatus.IDLE,
            idle_start=state.idle_start if state.idle_start is not None else now,
        )
    else:
        total = state.total_idle
        if state.idle_start is not None:
            total += now - state.idle_start
        state = replace(
            state, status=IdleStatus.ACTIVE, idle_start=None, total_idle=total
        )

    if now - state.block_start >= settings.idle_window:
        state = replace(
            state, block_start=now, idle_start=None, total_idle=timedelta(0)
        )

    current = state.current_idle(now)
    return IdleDecision(
        state=state,
        is_idle=is_idle,
        current_idle=current,
        suppressed=current >= settings.idle_suppress,
    )


class IdleTracker:
    """Holds the idle state for the sampling task (its only writer)."""

    def __init__(self, settings: TrackerSettings, now: datetime) -> None:
        self.settings = settings
        self.state = IdleState.initial(now)

    def tick(self, idle_seconds: Optional[float], now: datetime) -> IdleDecision:
        decision = advance(self.state, idle_seconds, now, self.settings)
        if decision.state.status != self.state.status:
            logger.debug(
                "Idle status %s -> %s", self.state.status.value, decision.state.status.value
            )
        self.state = decision.state
        return decision
