"""
In-memory ExternalStore for tests.

Mimics the parts of EventKit behavior the engine depends on: items come back
as fresh copies carrying an opaque ``handle``, identifiers can be missing or
go stale, queries use the half-open overlap test, and reminder fetches and
access requests report back through completion callbacks, optionally from a
background thread.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence

from cal_sync.core.models import (
    AuthorizationStatus,
    Calendar,
    CalendarItem,
    EntityKind,
    ReminderItem,
)
from cal_sync.store.base import ExternalStore


class FakeStoreError(Exception):
    """Stands in for a platform error object."""


class FakeStore(ExternalStore):
    def __init__(self, calendars: Optional[List[Calendar]] = None,
                 reminder_lists: Optional[List[Calendar]] = None,
                 threaded_callbacks: bool = False):
        self._calendars = calendars if calendars is not None else [
            Calendar("home", "Home"),
            Calendar("work", "Work"),
            Calendar("holidays", "Holidays", allows_modification=False),
        ]
        self._lists = reminder_lists if reminder_lists is not None else [
            Calendar("inbox", "Inbox", kind=EntityKind.REMINDER),
            Calendar("errands", "Errands", kind=EntityKind.REMINDER),
        ]
        self.status = {
            EntityKind.EVENT: AuthorizationStatus.GRANTED,
            EntityKind.REMINDER: AuthorizationStatus.GRANTED,
        }
        self.grant_on_request = {EntityKind.EVENT: True, EntityKind.REMINDER: True}
        self.default_ids = {EntityKind.EVENT: "home", EntityKind.REMINDER: "inbox"}
        self.threaded_callbacks = threaded_callbacks

        self.events: Dict[str, CalendarItem] = {}
        self.reminders: Dict[str, ReminderItem] = {}
        self._keys = itertools.count(1)
        self._ids = itertools.count(1)
        self._threads: List[threading.Thread] = []

        # Call log
        self.query_calls: List[tuple] = []
        self.fetch_calls: List[str] = []
        self.saved: List[CalendarItem] = []
        self.removed: List[CalendarItem] = []
        self.access_requests: List[EntityKind] = []
        self.reminder_fetches = 0

        # Failure injection
        self.fail_next_save: Optional[Exception] = None
        self.fail_next_remove: Optional[Exception] = None
        self.fail_queries: Optional[Exception] = None

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------
    def add_event(self, item: CalendarItem, detached: bool = False) -> CalendarItem:
        """Store ``item``; assigns an identifier unless ``detached``."""
        stored = replace(item, handle=None)
        if detached:
            stored.identifier = None
        elif not stored.identifier:
            stored.identifier = f"evt-{next(self._ids)}"
        self.events[f"key-{next(self._keys)}"] = stored
        return self._copy(stored)

    def add_reminder(self, reminder: ReminderItem) -> ReminderItem:
        stored = replace(reminder, handle=None)
        if stored.list_id and not stored.list_title:
            stored.list_title = self._list_title(stored.list_id)
        self.reminders[f"key-{next(self._keys)}"] = stored
        return replace(stored)

    def rotate_identifier(self, identifier: str) -> str:
        """Simulate a store-side edit that invalidates ``identifier``."""
        stored = self._find_event(identifier)
        stored.identifier = f"evt-{next(self._ids)}"
        return stored.identifier

    def detach(self, identifier: str) -> None:
        self._find_event(identifier).identifier = None

    def edit_elsewhere(self, identifier: str, **changes) -> None:
        """Change a stored event without going through the engine."""
        stored = self._find_event(identifier)
        for name, value in changes.items():
            setattr(stored, name, value)

    def join(self, timeout: float = 5.0) -> None:
        for thread in self._threads:
            thread.join(timeout)

    # ------------------------------------------------------------------
    # ExternalStore
    # ------------------------------------------------------------------
    def authorization_status(self, kind: EntityKind) -> AuthorizationStatus:
        return self.status[kind]

    def request_access(self, kind: EntityKind, completion: Callable[[bool], None]) -> None:
        self.access_requests.append(kind)
        granted = self.grant_on_request[kind]
        self.status[kind] = AuthorizationStatus.GRANTED if granted else AuthorizationStatus.DENIED
        self._callback(completion, granted)

    def calendars(self, kind: EntityKind) -> List[Calendar]:
        source = self._calendars if kind is EntityKind.EVENT else self._lists
        return [replace(cal) for cal in source]

    def default_calendar_id(self, kind: EntityKind = EntityKind.EVENT) -> Optional[str]:
        return self.default_ids[kind]

    def query(self, start, end, calendar_ids: Optional[Sequence[str]] = None) -> List[CalendarItem]:
        self.query_calls.append((start, end, None if calendar_ids is None else list(calendar_ids)))
        if self.fail_queries is not None:
            raise self.fail_queries
        return [
            self._copy(stored, key)
            for key, stored in self.events.items()
            if (calendar_ids is None or stored.calendar_id in calendar_ids)
            and stored.overlaps(start, end)
        ]

    def fetch_by_identifier(self, identifier: str) -> Optional[CalendarItem]:
        self.fetch_calls.append(identifier)
        for key, stored in self.events.items():
            if stored.identifier == identifier:
                return self._copy(stored, key)
        return None

    def fetch_reminder(self, identifier: str) -> Optional[ReminderItem]:
        for key, stored in self.reminders.items():
            if stored.identifier == identifier:
                return replace(stored, handle=key)
        return None

    def fetch_reminders(self, calendar_ids, completion) -> None:
        self.reminder_fetches += 1
        fetched = [
            replace(stored, handle=key)
            for key, stored in self.reminders.items()
            if calendar_ids is None or stored.list_id in calendar_ids
        ]
        self._callback(completion, fetched)

    def save(self, item, commit: bool = True) -> None:
        if self.fail_next_save is not None:
            error, self.fail_next_save = self.fail_next_save, None
            raise error
        if isinstance(item, ReminderItem):
            self._save_reminder(item)
            return

        key = self._key_for(self.events, item)
        stored = replace(item, handle=None)
        if key is None:
            key = f"key-{next(self._keys)}"
            stored.identifier = f"evt-{next(self._ids)}"
        self.events[key] = stored
        item.identifier = stored.identifier
        item.handle = key
        self.saved.append(replace(stored))

    def remove(self, item, commit: bool = True) -> None:
        if self.fail_next_remove is not None:
            error, self.fail_next_remove = self.fail_next_remove, None
            raise error
        pool = self.reminders if isinstance(item, ReminderItem) else self.events
        key = self._key_for(pool, item)
        if key is None:
            raise FakeStoreError("The item could not be found")
        self.removed.append(pool.pop(key))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _save_reminder(self, item: ReminderItem) -> None:
        key = self._key_for(self.reminders, item)
        stored = replace(item, handle=None, list_title=self._list_title(item.list_id))
        if key is None:
            key = f"key-{next(self._keys)}"
            stored.identifier = f"rem-{next(self._ids)}"
        self.reminders[key] = stored
        item.identifier = stored.identifier
        item.handle = key

    @staticmethod
    def _key_for(pool, item) -> Optional[str]:
        if item.handle in pool:
            return item.handle
        if item.identifier:
            for key, stored in pool.items():
                if stored.identifier == item.identifier:
                    return key
            raise FakeStoreError(f"No item with identifier {item.identifier}")
        return None

    def _find_event(self, identifier: str) -> CalendarItem:
        for stored in self.events.values():
            if stored.identifier == identifier:
                return stored
        raise KeyError(identifier)

    def _list_title(self, list_id: Optional[str]) -> Optional[str]:
        for cal in self._lists:
            if cal.identifier == list_id:
                return cal.title
        return None

    @staticmethod
    def _copy(stored: CalendarItem, key: Optional[str] = None) -> CalendarItem:
        return replace(stored, handle=key)

    def _callback(self, fn, *args) -> None:
        if self.threaded_callbacks:
            thread = threading.Thread(target=fn, args=args, daemon=True)
            self._threads.append(thread)
            thread.start()
        else:
            fn(*args)
