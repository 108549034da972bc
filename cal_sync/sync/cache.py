"""Month-bucketed event cache with a short TTL."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence
import logging

from ..core.models import CalendarItem
from .window import DayLike, TimeWindow


@dataclass
class MonthBucket:
    """All items overlapping ``[month_start, month_start + 1 month)``, from one query."""

    month_start: datetime
    items: List[CalendarItem]
    fetched_at: datetime

    def is_fresh(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.fetched_at < ttl


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    invalidations: int = 0
    evictions: int = 0


class MonthCache:
    """TTL cache keyed by canonical month start.

    Keys are always normalised through the window, so any instant inside a
    month addresses that month's bucket. All operations are synchronous and
    never touch the store.
    """

    def __init__(self, window: TimeWindow, ttl: timedelta = timedelta(seconds=2),
                 retention_months: int = 3, logger: Optional[logging.Logger] = None):
        self.window = window
        self.ttl = ttl
        self.retention_months = retention_months
        self.logger = logger or logging.getLogger(__name__)
        self.stats = CacheStats()
        self._buckets: Dict[datetime, MonthBucket] = {}

    def __len__(self) -> int:
        return len(self._buckets)

    def __contains__(self, month: DayLike) -> bool:
        return self.window.month_start(month) in self._buckets

    @property
    def months(self) -> List[datetime]:
        return sorted(self._buckets)

    def get(self, month: DayLike, now: datetime) -> Optional[MonthBucket]:
        """Return the bucket only while it is younger than the TTL."""
        key = self.window.month_start(month)
        bucket = self._buckets.get(key)
        if bucket is None or not bucket.is_fresh(now, self.ttl):
            self.stats.misses += 1
            self.logger.debug("Month cache miss for %s", key.date())
            return None
        self.stats.hits += 1
        return bucket

    def put(self, month: DayLike, items: Sequence[CalendarItem], now: datetime) -> MonthBucket:
        """Replace the month's bucket wholesale, then drop other buckets past retention."""
        key = self.window.month_start(month)
        bucket = MonthBucket(month_start=key, items=list(items), fetched_at=now)
        self._buckets[key] = bucket
        self._evict(now, keep=key)
        return bucket

    def invalidate(self, month: DayLike) -> bool:
        key = self.window.month_start(month)
        removed = self._buckets.pop(key, None) is not None
        if removed:
            self.stats.invalidations += 1
            self.logger.debug("Invalidated month bucket %s", key.date())
        return removed

    def invalidate_all(self) -> int:
        count = len(self._buckets)
        self._buckets.clear()
        self.stats.invalidations += count
        if count:
            self.logger.debug("Invalidated all %d month buckets", count)
        return count

    def evict_stale(self, now: datetime) -> int:
        """Remove buckets whose month starts before the retention horizon.

        With a three month horizon and ``now`` in June, March survives and
        February goes.
        """
        return self._evict(now)

    def _evict(self, now: datetime, keep: Optional[datetime] = None) -> int:
        horizon = self.window.add_months(self.window.month_start(now), -self.retention_months)
        stale = [key for key in self._buckets if key < horizon and key != keep]
        for key in stale:
            del self._buckets[key]
        if stale:
            self.stats.evictions += len(stale)
            self.logger.debug("Evicted %d month buckets older than %s", len(stale), horizon.date())
        return len(stale)
