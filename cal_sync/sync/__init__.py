"""Sync module: time windows, caching, identity resolution and the engine."""

from .window import TimeWindow
from .cache import MonthCache, MonthBucket, CacheStats
from .throttle import LoadThrottle
from .matcher import IdentityMatcher
from .dispatch import MainQueue
from .reminders import ReminderBoard
from .engine import SyncEngine

__all__ = [
    'TimeWindow',
    'MonthCache',
    'MonthBucket',
    'CacheStats',
    'LoadThrottle',
    'IdentityMatcher',
    'MainQueue',
    'ReminderBoard',
    'SyncEngine',
]
