"""
Command implementations for cal-sync.
"""

from .base import EngineCommand, build_engine
from .access import AccessCommand
from .calendars import CalendarsCommand
from .events import EventsCommand, EventEditCommand
from .reminders import RemindersCommand

__all__ = [
    'EngineCommand',
    'build_engine',
    'AccessCommand',
    'CalendarsCommand',
    'EventsCommand',
    'EventEditCommand',
    'RemindersCommand',
]
