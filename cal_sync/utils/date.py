"""
Date parsing and formatting helpers for the command line.
"""

from datetime import date, datetime, tzinfo
from typing import Optional


def parse_date(date_str: Optional[str]) -> Optional[date]:
    """
    Parse a date string into a date object.

    Accepts ``YYYY-MM-DD`` and ISO datetimes (the time part is dropped).

    Returns:
        Parsed date object or None if invalid
    """
    if not date_str:
        return None

    if 'T' in date_str:
        date_str = date_str.split('T')[0]

    try:
        return datetime.strptime(date_str.strip(), '%Y-%m-%d').date()
    except ValueError:
        return None


def parse_datetime(value: Optional[str], tz: tzinfo) -> Optional[datetime]:
    """
    Parse ``YYYY-MM-DD HH:MM`` or any ISO 8601 datetime.

    Naive values are taken to be wall-clock time in ``tz``; aware values are
    converted into ``tz``.
    """
    if not value:
        return None

    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=tz)
    return parsed.astimezone(tz)


def format_time_range(start: datetime, end: datetime, all_day: bool = False) -> str:
    """Short display form used by the listing commands."""
    if all_day:
        return "All Day"
    if start.date() == end.date():
        return f"{start:%H:%M}-{end:%H:%M}"
    return f"{start:%H:%M} - {end:%Y-%m-%d %H:%M}"
