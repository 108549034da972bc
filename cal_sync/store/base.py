"""Interfaces of the collaborators the sync engine consumes.

The engine only ever talks to these duck-typed contracts; ``EventKitStore``
implements :class:`ExternalStore` on macOS and the test suite ships an
in-memory one.
"""

from datetime import datetime
from typing import Callable, List, Optional, Sequence, Union

from ..core.models import (
    AuthorizationStatus,
    Calendar,
    CalendarItem,
    EntityKind,
    ParsedEvent,
    ParsedReminder,
    ReminderItem,
)

StoreItem = Union[CalendarItem, ReminderItem]


class ExternalStore:
    """Platform calendar/reminder store the client reads from and writes to.

    The store is shared and mutable: identifiers may be missing, may go stale
    after edits made elsewhere, and nothing is transactional. Methods may
    block on I/O. ``save`` and ``remove`` raise on failure.
    """

    def authorization_status(self, kind: EntityKind) -> AuthorizationStatus:
        raise NotImplementedError

    def request_access(self, kind: EntityKind, completion: Callable[[bool], None]) -> None:
        """Ask for access; ``completion(granted)`` may run on any thread."""
        raise NotImplementedError

    def calendars(self, kind: EntityKind) -> List[Calendar]:
        raise NotImplementedError

    def default_calendar_id(self, kind: EntityKind = EntityKind.EVENT) -> Optional[str]:
        """Calendar or list the platform uses for new items of ``kind``, if any."""
        raise NotImplementedError

    def query(self, start: datetime, end: datetime,
              calendar_ids: Optional[Sequence[str]] = None) -> List[CalendarItem]:
        """Events overlapping ``[start, end)``; ``None`` means every calendar."""
        raise NotImplementedError

    def fetch_by_identifier(self, identifier: str) -> Optional[CalendarItem]:
        raise NotImplementedError

    def fetch_reminder(self, identifier: str) -> Optional[ReminderItem]:
        raise NotImplementedError

    def fetch_reminders(self, calendar_ids: Optional[Sequence[str]],
                        completion: Callable[[List[ReminderItem]], None]) -> None:
        """Fetch reminders asynchronously; ``completion`` may run on any thread."""
        raise NotImplementedError

    def save(self, item: StoreItem, commit: bool = True) -> None:
        """Create or update ``item``; assigns ``item.identifier`` on create."""
        raise NotImplementedError

    def remove(self, item: StoreItem, commit: bool = True) -> None:
        raise NotImplementedError


class PhraseParser:
    """Turns free text into structured event or reminder fields.

    Returning ``None`` means the text could not be parsed; callers fall back
    to using the raw text as the title.
    """

    def parse_event(self, text: str) -> Optional[ParsedEvent]:
        raise NotImplementedError

    def parse_reminder(self, text: str) -> Optional[ParsedReminder]:
        raise NotImplementedError
