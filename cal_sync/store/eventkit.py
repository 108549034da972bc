"""Apple Calendar and Reminders store using EventKit."""

from datetime import datetime, tzinfo
from types import SimpleNamespace
from typing import Callable, List, Optional, Sequence
import logging

from ..core.exceptions import (
    CalSyncError,
    EventKitImportError,
    NotFoundError,
    StoreFailure,
)
from ..core.models import (
    AuthorizationStatus,
    Calendar,
    CalendarItem,
    EntityKind,
    ReminderItem,
)
from .base import ExternalStore, StoreItem

# EKAuthorizationStatus raw values; 4 is write-only access on macOS 14+
_STATUS_MAP = {
    0: AuthorizationStatus.UNDETERMINED,
    1: AuthorizationStatus.DENIED,
    2: AuthorizationStatus.DENIED,
    3: AuthorizationStatus.GRANTED,
    4: AuthorizationStatus.DENIED,
}

EK_SPAN_THIS_EVENT = 0


class EventKitStore(ExternalStore):
    """:class:`ExternalStore` backed by one ``EKEventStore``.

    PyObjC is imported lazily so that the package imports on any platform;
    the first call that needs EventKit raises :class:`EventKitImportError`
    when it is missing.
    """

    def __init__(self, time_zone: Optional[tzinfo] = None,
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.time_zone = time_zone or datetime.now().astimezone().tzinfo
        self._store = None
        self._ek = None

    def _ensure_eventkit(self):
        """Import EventKit and Foundation."""
        if self._ek is not None:
            return self._ek
        try:
            import objc  # noqa: F401
            from EventKit import (
                EKEvent,
                EKEventStore,
                EKEntityTypeEvent,
                EKEntityTypeReminder,
                EKReminder,
            )
            from Foundation import NSDate, NSDateComponents
        except ImportError as e:
            self.logger.error(f"EventKit import failed: {e}")
            raise EventKitImportError(
                "EventKit not available. Please install PyObjC framework:\n"
                "  pip install pyobjc pyobjc-framework-EventKit\n"
                f"Import error details: {e}"
            ) from e

        self._ek = SimpleNamespace(
            EKEvent=EKEvent,
            EKEventStore=EKEventStore,
            EKReminder=EKReminder,
            NSDate=NSDate,
            NSDateComponents=NSDateComponents,
            entity_types={
                EntityKind.EVENT: EKEntityTypeEvent,
                EntityKind.REMINDER: EKEntityTypeReminder,
            },
        )
        return self._ek

    def _get_store(self):
        """Get or create the EventKit store."""
        if self._store is not None:
            return self._store
        ek = self._ensure_eventkit()
        try:
            self._store = ek.EKEventStore.alloc().init()
        except Exception as e:
            raise StoreFailure(f"Failed to initialize EventKit store: {e}", e) from e
        self.logger.debug("EventKit store created")
        return self._store

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------
    def authorization_status(self, kind: EntityKind) -> AuthorizationStatus:
        ek = self._ensure_eventkit()
        status = int(ek.EKEventStore.authorizationStatusForEntityType_(ek.entity_types[kind]))
        return _STATUS_MAP.get(status, AuthorizationStatus.DENIED)

    def request_access(self, kind: EntityKind, completion: Callable[[bool], None]) -> None:
        store = self._get_store()
        ek = self._ensure_eventkit()

        def handler(granted, error):
            if error is not None:
                self.logger.warning(f"Access request for {kind.value}s returned: {error}")
            completion(bool(granted))

        # macOS 14 split the request API per entity type
        if kind is EntityKind.EVENT and hasattr(store, "requestFullAccessToEventsWithCompletion_"):
            store.requestFullAccessToEventsWithCompletion_(handler)
        elif kind is EntityKind.REMINDER and hasattr(store, "requestFullAccessToRemindersWithCompletion_"):
            store.requestFullAccessToRemindersWithCompletion_(handler)
        else:
            store.requestAccessToEntityType_completion_(ek.entity_types[kind], handler)

    # ------------------------------------------------------------------
    # Calendars
    # ------------------------------------------------------------------
    def calendars(self, kind: EntityKind) -> List[Calendar]:
        store = self._get_store()
        ek = self._ensure_eventkit()
        native = store.calendarsForEntityType_(ek.entity_types[kind]) or []
        return [self._to_calendar(cal, kind) for cal in native]

    def default_calendar_id(self, kind: EntityKind = EntityKind.EVENT) -> Optional[str]:
        store = self._get_store()
        if kind is EntityKind.EVENT:
            cal = store.defaultCalendarForNewEvents()
        else:
            cal = store.defaultCalendarForNewReminders()
        return str(cal.calendarIdentifier()) if cal else None

    def _native_calendars(self, kind: EntityKind, calendar_ids: Optional[Sequence[str]]):
        store = self._get_store()
        ek = self._ensure_eventkit()
        all_cals = store.calendarsForEntityType_(ek.entity_types[kind]) or []
        if calendar_ids is None:
            return list(all_cals)
        wanted = set(calendar_ids)
        return [cal for cal in all_cals if str(cal.calendarIdentifier()) in wanted]

    def _native_calendar(self, kind: EntityKind, calendar_id: str):
        matches = self._native_calendars(kind, [calendar_id])
        if not matches:
            raise NotFoundError(f"Calendar '{calendar_id}' does not exist")
        return matches[0]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def query(self, start: datetime, end: datetime,
              calendar_ids: Optional[Sequence[str]] = None) -> List[CalendarItem]:
        store = self._get_store()
        calendars = self._native_calendars(EntityKind.EVENT, calendar_ids)
        if calendar_ids is not None and not calendars:
            # EventKit reads an empty calendar list as "all calendars"
            return []

        predicate = store.predicateForEventsWithStartDate_endDate_calendars_(
            self._to_nsdate(start), self._to_nsdate(end), calendars or None
        )
        events = store.eventsMatchingPredicate_(predicate) or []

        result = []
        for event in events:
            try:
                item = self._to_item(event)
            except Exception as e:
                self.logger.warning(f"Failed to process event: {e}")
                continue
            # EventKit also returns events that end exactly at the window start
            if item.overlaps(start, end):
                result.append(item)
        return result

    def fetch_by_identifier(self, identifier: str) -> Optional[CalendarItem]:
        event = self._get_store().eventWithIdentifier_(identifier)
        return self._to_item(event) if event is not None else None

    def _save_event(self, item: CalendarItem, commit: bool) -> None:
        store = self._get_store()
        ek = self._ensure_eventkit()
        event = item.handle
        if event is None and item.identifier:
            event = store.eventWithIdentifier_(item.identifier)
            if event is None:
                raise NotFoundError(f"No event with identifier '{item.identifier}'")
        if event is None:
            event = ek.EKEvent.eventWithEventStore_(store)

        event.setTitle_(item.title)
        event.setStartDate_(self._to_nsdate(item.start))
        event.setEndDate_(self._to_nsdate(item.end))
        event.setAllDay_(bool(item.is_all_day))
        event.setNotes_(item.notes)
        event.setLocation_(item.location)
        event.setCalendar_(self._native_calendar(EntityKind.EVENT, item.calendar_id))

        success, error = store.saveEvent_span_commit_error_(event, EK_SPAN_THIS_EVENT, commit, None)
        if not success:
            raise StoreFailure(self._error_message(error, f"Failed to save event '{item.title}'"), error)
        item.identifier = str(event.eventIdentifier())
        item.handle = event
        self.logger.debug(f"Saved event {item.identifier}")

    def _remove_event(self, item: CalendarItem, commit: bool) -> None:
        store = self._get_store()
        event = item.handle or (store.eventWithIdentifier_(item.identifier) if item.identifier else None)
        if event is None:
            raise NotFoundError(f"No event '{item.title}' to remove")
        success, error = store.removeEvent_span_commit_error_(event, EK_SPAN_THIS_EVENT, commit, None)
        if not success:
            raise StoreFailure(self._error_message(error, f"Failed to remove event '{item.title}'"), error)

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------
    def fetch_reminder(self, identifier: str) -> Optional[ReminderItem]:
        store = self._get_store()
        ek = self._ensure_eventkit()
        native = store.calendarItemWithIdentifier_(identifier)
        if native is None or not native.isKindOfClass_(ek.EKReminder):
            return None
        return self._to_reminder(native)

    def fetch_reminders(self, calendar_ids: Optional[Sequence[str]],
                        completion: Callable[[List[ReminderItem]], None]) -> None:
        store = self._get_store()
        calendars = self._native_calendars(EntityKind.REMINDER, calendar_ids)
        if calendar_ids is not None and not calendars:
            completion([])
            return

        predicate = store.predicateForRemindersInCalendars_(calendars or None)

        def handler(fetched):
            result = []
            for rem in list(fetched or []):
                try:
                    result.append(self._to_reminder(rem))
                except Exception as e:
                    self.logger.warning(f"Failed to process reminder: {e}")
            completion(result)

        store.fetchRemindersMatchingPredicate_completion_(predicate, handler)

    def _save_reminder(self, item: ReminderItem, commit: bool) -> None:
        store = self._get_store()
        ek = self._ensure_eventkit()
        reminder = item.handle
        if reminder is None and item.identifier:
            reminder = store.calendarItemWithIdentifier_(item.identifier)
            if reminder is None:
                raise NotFoundError(f"No reminder with identifier '{item.identifier}'")
        if reminder is None:
            reminder = ek.EKReminder.reminderWithEventStore_(store)

        reminder.setTitle_(item.title)
        reminder.setNotes_(item.notes)
        reminder.setPriority_(int(item.priority))
        reminder.setCompleted_(bool(item.is_completed))
        reminder.setDueDateComponents_(self._to_components(item.due))
        if item.list_id:
            reminder.setCalendar_(self._native_calendar(EntityKind.REMINDER, item.list_id))

        success, error = store.saveReminder_commit_error_(reminder, commit, None)
        if not success:
            raise StoreFailure(self._error_message(error, f"Failed to save reminder '{item.title}'"), error)
        item.identifier = str(reminder.calendarItemIdentifier())
        item.handle = reminder

    def _remove_reminder(self, item: ReminderItem, commit: bool) -> None:
        store = self._get_store()
        reminder = item.handle or store.calendarItemWithIdentifier_(item.identifier)
        if reminder is None:
            raise NotFoundError(f"No reminder with identifier '{item.identifier}'")
        success, error = store.removeReminder_commit_error_(reminder, commit, None)
        if not success:
            raise StoreFailure(self._error_message(error, f"Failed to remove reminder '{item.title}'"), error)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def save(self, item: StoreItem, commit: bool = True) -> None:
        try:
            if isinstance(item, ReminderItem):
                self._save_reminder(item, commit)
            else:
                self._save_event(item, commit)
        except CalSyncError:
            raise
        except Exception as e:
            raise StoreFailure(str(e), e) from e

    def remove(self, item: StoreItem, commit: bool = True) -> None:
        try:
            if isinstance(item, ReminderItem):
                self._remove_reminder(item, commit)
            else:
                self._remove_event(item, commit)
        except CalSyncError:
            raise
        except Exception as e:
            raise StoreFailure(str(e), e) from e

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------
    def _to_nsdate(self, value: datetime):
        return self._ensure_eventkit().NSDate.dateWithTimeIntervalSince1970_(value.timestamp())

    def _from_nsdate(self, value) -> Optional[datetime]:
        if value is None:
            return None
        return datetime.fromtimestamp(value.timeIntervalSince1970(), tz=self.time_zone)

    def _to_components(self, due: Optional[datetime]):
        if due is None:
            return None
        local = due.astimezone(self.time_zone)
        components = self._ensure_eventkit().NSDateComponents.alloc().init()
        components.setYear_(local.year)
        components.setMonth_(local.month)
        components.setDay_(local.day)
        components.setHour_(local.hour)
        components.setMinute_(local.minute)
        return components

    def _from_components(self, components) -> Optional[datetime]:
        if components is None:
            return None
        year, month, day = int(components.year()), int(components.month()), int(components.day())
        if not (1 <= month <= 12 and 1 <= day <= 31 and year > 0):
            return None
        hour, minute = int(components.hour()), int(components.minute())
        # NSDateComponentUndefined comes back as a huge integer
        if not 0 <= hour < 24:
            hour = 0
        if not 0 <= minute < 60:
            minute = 0
        return datetime(year, month, day, hour, minute, tzinfo=self.time_zone)

    def _to_item(self, event) -> CalendarItem:
        cal = event.calendar()
        identifier = event.eventIdentifier()
        return CalendarItem(
            title=str(event.title() or ""),
            start=self._from_nsdate(event.startDate()),
            end=self._from_nsdate(event.endDate()),
            calendar_id=str(cal.calendarIdentifier()) if cal else "",
            identifier=str(identifier) if identifier else None,
            is_all_day=bool(event.isAllDay()),
            notes=str(event.notes()) if event.notes() else None,
            location=str(event.location()) if event.location() else None,
            handle=event,
        )

    def _to_reminder(self, rem) -> ReminderItem:
        cal = rem.calendar()
        identifier = rem.calendarItemIdentifier()
        return ReminderItem(
            identifier=str(identifier) if identifier else None,
            title=str(rem.title() or ""),
            list_id=str(cal.calendarIdentifier()) if cal else None,
            list_title=str(cal.title() or "Untitled") if cal else None,
            is_completed=bool(rem.isCompleted()),
            due=self._from_components(rem.dueDateComponents()),
            priority=int(rem.priority() or 0),
            notes=str(rem.notes()) if rem.notes() else None,
            handle=rem,
        )

    @staticmethod
    def _to_calendar(cal, kind: EntityKind) -> Calendar:
        return Calendar(
            identifier=str(cal.calendarIdentifier()),
            title=str(cal.title() or "Untitled"),
            kind=kind,
            color=_hex_color(cal.color()),
            allows_modification=bool(cal.allowsContentModifications()),
        )

    @staticmethod
    def _error_message(error, fallback: str) -> str:
        if error is None:
            return fallback
        if hasattr(error, "localizedDescription"):
            return str(error.localizedDescription())
        return str(error)


def _hex_color(color) -> Optional[str]:
    """``#rrggbb`` for an NSColor, or None when it has no RGB form."""
    if color is None:
        return None
    try:
        rgb = color.colorUsingColorSpaceName_("NSCalibratedRGBColorSpace") or color
        return "#{:02x}{:02x}{:02x}".format(
            int(round(rgb.redComponent() * 255)),
            int(round(rgb.greenComponent() * 255)),
            int(round(rgb.blueComponent() * 255)),
        )
    except (AttributeError, TypeError, ValueError):
        return None
