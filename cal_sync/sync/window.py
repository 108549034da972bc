"""Half-open day, week and month intervals in the configured calendar."""

import calendar as _calendar
import os
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import List, Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..core.exceptions import ConfigurationError
from ..core.models import ClientConfig

Interval = Tuple[datetime, datetime]
DayLike = Union[date, datetime]


def resolve_zone(name: Optional[str]) -> tzinfo:
    """Return the named zone, or the system zone when ``name`` is empty."""
    if not name:
        name = os.environ.get("TZ")
        if not name:
            return datetime.now().astimezone().tzinfo
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Unknown time zone '{name}'") from exc


class TimeWindow:
    """Computes ``[start, end)`` intervals for a calendar configuration.

    Every boundary is a wall-clock midnight in the configured zone, so a day
    across a DST change is 23 or 25 hours long. Arithmetic that must preserve
    elapsed time (moving an event) goes through :meth:`shift`.
    """

    def __init__(self, tz: Optional[Union[str, tzinfo]] = None, first_weekday: int = 6):
        if not isinstance(first_weekday, int) or not 0 <= first_weekday <= 6:
            raise ConfigurationError(
                f"first_weekday must be 0 (Monday) .. 6 (Sunday), got {first_weekday!r}"
            )
        self.tz = tz if isinstance(tz, tzinfo) else resolve_zone(tz)
        self.first_weekday = first_weekday

    @classmethod
    def from_config(cls, config: ClientConfig) -> "TimeWindow":
        return cls(config.time_zone, config.first_weekday)

    # ------------------------------------------------------------------
    # Normalisation
    # ------------------------------------------------------------------
    def localize(self, value: DayLike) -> datetime:
        """Bring a datetime (or a date, as its midnight) into the configured zone."""
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=self.tz)
            return value.astimezone(self.tz)
        return datetime.combine(value, time.min, tzinfo=self.tz)

    def _midnight(self, day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=self.tz)

    def _local_date(self, value: DayLike) -> date:
        return self.localize(value).date()

    # ------------------------------------------------------------------
    # Intervals
    # ------------------------------------------------------------------
    def day_interval(self, containing: DayLike) -> Interval:
        day = self._local_date(containing)
        return self._midnight(day), self._midnight(day + timedelta(days=1))

    def week_interval(self, containing: DayLike) -> Interval:
        day = self._local_date(containing)
        offset = (day.weekday() - self.first_weekday) % 7
        first = day - timedelta(days=offset)
        return self._midnight(first), self._midnight(first + timedelta(days=7))

    def month_start(self, containing: DayLike) -> datetime:
        day = self._local_date(containing)
        return self._midnight(day.replace(day=1))

    def month_interval(self, containing: DayLike) -> Interval:
        start = self.month_start(containing)
        return start, self.add_months(start, 1)

    def months_spanning(self, start: datetime, end: datetime) -> List[datetime]:
        """Month starts of every month bucket that ``[start, end)`` overlaps."""
        first = self.month_start(start)
        # A zero-length item still lives in the month of its start.
        last = self.month_start(end if end > start else start)
        if end > start and self.localize(end) == last:
            last = self.add_months(last, -1)
        months = [first]
        while months[-1] < last:
            months.append(self.add_months(months[-1], 1))
        return months

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------
    def add_months(self, value: DayLike, months: int) -> datetime:
        """Same wall-clock time ``months`` later, clamping the day to month end."""
        local = self.localize(value)
        index = local.year * 12 + (local.month - 1) + months
        year, month = divmod(index, 12)
        month += 1
        day = min(local.day, _calendar.monthrange(year, month)[1])
        return local.replace(year=year, month=month, day=day, fold=0)

    def shift(self, value: datetime, delta: timedelta) -> datetime:
        """Add elapsed time, not wall-clock time."""
        moved = self.localize(value).astimezone(timezone.utc) + delta
        return moved.astimezone(self.tz)

    def days(self, first: DayLike, count: int) -> List[date]:
        start = self._local_date(first)
        return [start + timedelta(days=n) for n in range(count)]
