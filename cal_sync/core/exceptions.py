"""
Exception classes for cal-sync.
"""


class CalSyncError(Exception):
    """Base exception for all cal-sync errors."""
    pass


class ConfigurationError(CalSyncError):
    """Raised when configuration is invalid (bad time zone, first weekday, ...)."""
    pass


class NotFoundError(CalSyncError):
    """Raised when an item cannot be resolved to a live store item."""
    pass


class NoCalendarAvailableError(CalSyncError):
    """Raised when no writable calendar can be found for a new item."""
    pass


class ModificationNotAllowedError(CalSyncError):
    """Raised when the owning calendar forbids content changes."""
    pass


class StoreFailure(CalSyncError):
    """Wraps an error raised by the external store.

    The message is the store's own message, unchanged, and the original
    exception (or platform error object) is kept on ``original``.
    """

    def __init__(self, message, original=None):
        super().__init__(message)
        self.original = original


class AuthorizationError(CalSyncError):
    """Raised when the store has not granted access to events or reminders."""
    pass


class EventKitImportError(CalSyncError):
    """Raised when EventKit/PyObjC dependencies are not available."""
    pass
