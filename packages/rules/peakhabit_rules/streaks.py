from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from peakhabit_rules.clock import DayClock


@dataclass(frozen=True)
class StreakResult:
    streak: int
    last_update: datetime | None
    extended: bool
    reset: bool

    @property
    def changed(self) -> bool:
        return self.extended or self.reset


def next_streak(
    *,
    streak: int,
    last_update: datetime | None,
    now: datetime,
    clock: DayClock,
) -> StreakResult:
    """
    Streak transition for one rewarded, experience-bearing action.

    Same day: unchanged. Next day: +1. Any larger gap (or first ever): back to 1.
    """
    if last_update is None:
        return StreakResult(streak=1, last_update=now, extended=True, reset=False)

    diff = clock.day_diff(last_update, now)
    if diff == 0:
        return StreakResult(
            streak=int(streak), last_update=last_update, extended=False, reset=False
        )
    if diff == 1:
        return StreakResult(
            streak=int(streak) + 1, last_update=now, extended=True, reset=False
        )
    return StreakResult(streak=1, last_update=now, extended=False, reset=True)


def visible_streak(
    *, streak: int, last_update: datetime | None, now: datetime, clock: DayClock
) -> int:
    """Streak as shown to the user: a streak not credited today or yesterday reads as 0."""
    if last_update is None:
        return 0
    if clock.day_diff(last_update, now) <= 1:
        return int(streak)
    return 0
