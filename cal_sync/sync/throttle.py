"""Minimum spacing between full rolling-window reloads."""

from datetime import datetime, timedelta
from typing import Optional


class LoadThrottle:
    """Gate for navigation-driven reloads.

    Single-day cache misses do not go through here; they are already bounded
    by the month cache TTL.
    """

    def __init__(self, min_interval: timedelta = timedelta(seconds=0.5)):
        self.min_interval = min_interval
        self.last_load: Optional[datetime] = None

    def should_load(self, now: datetime) -> bool:
        if self.last_load is None:
            return True
        return now - self.last_load >= self.min_interval

    def record_load(self, now: datetime) -> None:
        self.last_load = now

    def reset(self) -> None:
        self.last_load = None
