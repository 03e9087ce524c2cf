from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, timezone


WINDOW_EVER = "ever"


def as_aware_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if getattr(dt, "tzinfo", None) is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


@dataclass(frozen=True)
class DayClock:
    """
    Canonical server-side "today" under a fixed UTC offset.

    The offset never follows daylight saving; every daily window and every
    streak day-difference is computed through one instance of this clock.
    """

    utc_offset_hours: int = 0

    @property
    def tz(self) -> timezone:
        return timezone(timedelta(hours=int(self.utc_offset_hours)))

    def now(self) -> datetime:
        return datetime.now(UTC)

    def local(self, now_utc: datetime | None = None) -> datetime:
        now = as_aware_utc(now_utc) or self.now()
        return now.astimezone(self.tz)

    def today(self, now_utc: datetime | None = None) -> date:
        return self.local(now_utc).date()

    def day_of(self, moment: datetime) -> date:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
        return moment.astimezone(self.tz).date()

    def start_of_today(self, now_utc: datetime | None = None) -> datetime:
        """Local midnight of `today()`, returned as an aware UTC datetime."""
        d = self.today(now_utc)
        midnight = datetime(d.year, d.month, d.day, tzinfo=self.tz)
        return midnight.astimezone(UTC)

    def today_key(self, now_utc: datetime | None = None) -> str:
        return self.today(now_utc).strftime("%Y-%m-%d")

    def day_diff(self, earlier: datetime, now_utc: datetime | None = None) -> int:
        # Clamped: a timestamp from the "future" counts as today.
        diff = (self.today(now_utc) - self.day_of(earlier)).days
        return max(0, int(diff))
