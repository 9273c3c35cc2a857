"""Time-block arithmetic and the block-aligned analysis schedule."""

from __future__ import annotations

import time
from datetime import datetime, timedelta
from typing import Callable, Optional

from .errors import ConfigurationError


def minutes_per_block(division: int) -> int:
    """Block length in minutes for ``division`` blocks per hour."""
    if division <= 0 or 60 % division:
        raise ConfigurationError(
            f"time_block_division must evenly divide 60 (got {division})"
        )
    return 60 // division


def floor_to_block(moment: datetime, division: int) -> datetime:
    mpb = minutes_per_block(division)
    return moment.replace(
        minute=moment.minute // mpb * mpb, second=0, microsecond=0
    )


def block_bounds(moment: datetime, division: int) -> tuple[datetime, datetime]:
    start = floor_to_block(moment, division)
    return start, start + timedelta(minutes=minutes_per_block(division))


def nearest_block_boundary(moment: datetime, division: int) -> datetime:
    """The block boundary closest to ``moment``."""
    half = timedelta(minutes=minutes_per_block(division)) / 2
    return floor_to_block(moment + half, division)


def seconds_until_next_block(now: datetime, division: int) -> float:
    """Seconds (with the fractional part) from ``now`` until the next block boundary.

    Exactly on a boundary the full block length is returned.
    """
    mpb = minutes_per_block(division)
    minutes_to_next = mpb - (now.minute % mpb)
    return minutes_to_next * 60 - now.second - now.microsecond / 1_000_000


class BlockSchedule:
    """Fires at the next block boundary, then every block length."""

    def __init__(
        self,
        division: int,
        now: datetime,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval = float(minutes_per_block(division) * 60)
        self.initial_delay = float(seconds_until_next_block(now, division))
        self._clock = clock
        self._next_fire: Optional[float] = None

    def next_delay(self) -> float:
        """Seconds to wait before the next run; advances the schedule."""
        current = self._clock()
        if self._next_fire is None:
            self._next_fire = current + self.initial_delay
        else:
            self._next_fire += self.interval
            # Skip boundaries missed by a long analysis run.
            while self._next_fire < current:
                self._next_fire += self.interval
        return max(0.0, self._next_fire - current)
