"""
Core module for cal-sync - contains domain models, configuration, and exceptions.
"""

from .models import (
    AuthorizationStatus,
    Calendar,
    CalendarItem,
    ClientConfig,
    EntityKind,
    FontSize,
    ItemProperties,
    ParsedEvent,
    ParsedReminder,
    PriorityBand,
    ReminderItem,
    TemperatureUnit,
)

from .exceptions import (
    CalSyncError,
    ConfigurationError,
    NotFoundError,
    NoCalendarAvailableError,
    ModificationNotAllowedError,
    StoreFailure,
    AuthorizationError,
    EventKitImportError,
)

__all__ = [
    # Models
    'AuthorizationStatus',
    'Calendar',
    'CalendarItem',
    'ClientConfig',
    'EntityKind',
    'FontSize',
    'ItemProperties',
    'ParsedEvent',
    'ParsedReminder',
    'PriorityBand',
    'ReminderItem',
    'TemperatureUnit',
    # Exceptions
    'CalSyncError',
    'ConfigurationError',
    'NotFoundError',
    'NoCalendarAvailableError',
    'ModificationNotAllowedError',
    'StoreFailure',
    'AuthorizationError',
    'EventKitImportError',
]
