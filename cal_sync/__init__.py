"""
cal-sync - cached, identity-safe access to Apple Calendar and Reminders.
"""

__version__ = "0.1.0"

from .core import (
    Calendar,
    CalendarItem,
    ClientConfig,
    ItemProperties,
    ReminderItem,
    CalSyncError,
)
from .sync import SyncEngine, TimeWindow

__all__ = [
    '__version__',
    'Calendar',
    'CalendarItem',
    'ClientConfig',
    'ItemProperties',
    'ReminderItem',
    'CalSyncError',
    'SyncEngine',
    'TimeWindow',
]
