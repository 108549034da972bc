"""Sync engine: cached reads and identity-safe writes against the external store."""

from collections import Counter
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
import logging

from ..core.exceptions import (
    AuthorizationError,
    CalSyncError,
    ModificationNotAllowedError,
    NoCalendarAvailableError,
    NotFoundError,
    StoreFailure,
)
from ..core.models import (
    AuthorizationStatus,
    Calendar,
    CalendarItem,
    ClientConfig,
    EntityKind,
    ParsedReminder,
    PriorityBand,
    ReminderItem,
)
from ..store.base import ExternalStore, PhraseParser
from .cache import MonthBucket, MonthCache
from .dispatch import MainQueue, TimerHandle
from .matcher import IdentityMatcher, Reference
from .reminders import ReminderBoard
from .throttle import LoadThrottle
from .window import DayLike, TimeWindow

Listener = Callable[[str], None]

EVENT_FIELDS = ("title", "start", "end", "calendar_id", "notes", "location", "is_all_day")
REMINDER_FIELDS = ("title", "due", "notes", "priority", "list_id")
FALLBACK_DURATION = timedelta(hours=1)


class SyncEngine:
    """Single owner of the event cache, the rolling working set and the reminder list.

    Reads go through the month cache; every write first re-resolves the item
    live against the store, then invalidates the affected month buckets and
    schedules a delayed reload on the coordination queue. The engine is not
    thread-safe: call it from the thread that drains ``queue``.
    """

    def __init__(
        self,
        store: ExternalStore,
        config: Optional[ClientConfig] = None,
        *,
        window: Optional[TimeWindow] = None,
        clock: Optional[Callable[[], datetime]] = None,
        queue: Optional[MainQueue] = None,
        parser: Optional[PhraseParser] = None,
        config_saver: Optional[Callable[[ClientConfig], Any]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.config = config or ClientConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.window = window or TimeWindow.from_config(self.config)
        self.clock = clock or (lambda: datetime.now(self.window.tz))
        self.queue = queue or MainQueue(clock=self.clock, logger=self.logger)
        self.parser = parser
        self.config_saver = config_saver

        self.cache = MonthCache(
            self.window,
            ttl=self.config.cache_ttl,
            retention_months=self.config.retention_months,
            logger=self.logger,
        )
        self.throttle = LoadThrottle(self.config.load_throttle)
        self.matcher = IdentityMatcher(
            store, self.window, tolerance=self.config.match_tolerance, logger=self.logger
        )
        self.reminder_board = ReminderBoard()

        # Rolling working set from the last full reload
        self.items: List[CalendarItem] = []
        self.loaded_range: Optional[Tuple[datetime, datetime]] = None
        self.calendars: List[Calendar] = []

        self._listeners: List[Listener] = []
        self._pending_refresh: Optional[TimerHandle] = None

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(reason)``; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, reason: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(reason)
            except Exception:
                self.logger.exception("Change listener failed for %s", reason)

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------
    def authorization_status(self, kind: EntityKind = EntityKind.EVENT) -> AuthorizationStatus:
        return self.store.authorization_status(kind)

    def has_access(self, kind: EntityKind = EntityKind.EVENT) -> bool:
        return self.authorization_status(kind) is AuthorizationStatus.GRANTED

    def _require_access(self, kind: EntityKind = EntityKind.EVENT) -> None:
        status = self.authorization_status(kind)
        if status is not AuthorizationStatus.GRANTED:
            raise AuthorizationError(f"Access to {kind.value}s is {status.value}")

    def request_access(self, completion: Optional[Callable[[bool], None]] = None) -> None:
        """Ask for event access, then reminder access; loads data as each is granted.

        Store callbacks are handed back to the queue before any state changes.
        """

        def on_reminders(granted: bool) -> None:
            if granted:
                self.load_reminders()

        def on_events(granted: bool) -> None:
            self.logger.info("Calendar access %s", "granted" if granted else "denied")
            if granted:
                self.load_calendars()
                self.reload(force=True)
                self._request(EntityKind.REMINDER, on_reminders)
            if completion is not None:
                completion(granted)

        self._request(EntityKind.EVENT, on_events)

    def _request(self, kind: EntityKind, fn: Callable[[bool], None]) -> None:
        callback = self.queue.handoff(fn)
        try:
            self._store_call(self.store.request_access, kind, callback)
        except CalSyncError:
            callback.abandon()
            raise

    # ------------------------------------------------------------------
    # Calendars and selection
    # ------------------------------------------------------------------
    def load_calendars(self) -> List[Calendar]:
        self._require_access()
        self.calendars = self._store_call(self.store.calendars, EntityKind.EVENT)
        if not self.config.selection_initialized:
            # First run only: an empty selection means every calendar.
            self.config.selected_calendar_ids = [cal.identifier for cal in self.calendars]
            self.config.selection_initialized = True
            self.logger.info("Selected all %d calendars on first run", len(self.calendars))
            self._persist_config()
        self._notify("calendars")
        return self.calendars

    def visible_calendar_ids(self) -> List[str]:
        if not self.config.selection_initialized:
            self.load_calendars()
        return list(self.config.selected_calendar_ids)

    def toggle_calendar_visibility(self, calendar_id: str) -> bool:
        """Flip ``calendar_id`` in the selection; returns whether it is now visible.

        The selection is part of every query predicate, so the whole month
        cache is dropped and events and reminders reload immediately.
        """
        self._require_access()
        selected = self.visible_calendar_ids()
        if calendar_id in selected:
            selected.remove(calendar_id)
            visible = False
        else:
            if calendar_id not in self._calendar_index():
                raise NotFoundError(f"Calendar '{calendar_id}' does not exist")
            selected.append(calendar_id)
            visible = True
        self.config.selected_calendar_ids = selected
        self._persist_config()

        self.cache.invalidate_all()
        self.reload(force=True)
        if self.has_access(EntityKind.REMINDER):
            self.load_reminders()
        self._notify("calendars")
        return visible

    def set_default_calendar(self, calendar_id: Optional[str]) -> None:
        if calendar_id is not None:
            calendar = self._calendar_index().get(calendar_id)
            if calendar is None:
                raise NotFoundError(f"Calendar '{calendar_id}' does not exist")
            if not calendar.allows_modification:
                raise ModificationNotAllowedError(f"Calendar '{calendar.title}' is read-only")
        self.config.default_calendar_id = calendar_id
        self._persist_config()

    def _calendar_index(self, kind: EntityKind = EntityKind.EVENT) -> Dict[str, Calendar]:
        calendars = self._store_call(self.store.calendars, kind)
        if kind is EntityKind.EVENT:
            self.calendars = calendars
        return {cal.identifier: cal for cal in calendars}

    def _persist_config(self) -> None:
        if self.config_saver is not None:
            self.config_saver(self.config)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def reload(self, now: Optional[datetime] = None, force: bool = False) -> bool:
        """Refill the rolling window around ``now``; False when throttled."""
        self._require_access()
        now = now or self.clock()
        if not force and not self.throttle.should_load(now):
            self.logger.debug("Reload throttled")
            return False

        start = self.window.add_months(now, -self.config.window_months_back)
        end = self.window.add_months(now, self.config.window_months_forward)
        items = self._query(start, end)

        self.items = sorted(items, key=CalendarItem.sort_key)
        self.loaded_range = (start, end)
        self.throttle.record_load(now)
        self.logger.info("Loaded %d events between %s and %s", len(self.items), start.date(), end.date())
        self._notify("events")
        return True

    def events_on(self, day: DayLike, now: Optional[datetime] = None) -> List[CalendarItem]:
        """Items overlapping ``day``, ordered by start then identifier."""
        self._require_access()
        day_start, day_end = self.window.day_interval(day)
        bucket = self._month_bucket(day_start, now or self.clock())
        return sorted(
            (item for item in bucket.items if item.overlaps(day_start, day_end)),
            key=CalendarItem.sort_key,
        )

    def events_between(self, start: datetime, end: datetime,
                       now: Optional[datetime] = None) -> List[CalendarItem]:
        """Items overlapping ``[start, end)``, gathered from every month bucket it touches."""
        self._require_access()
        now = now or self.clock()
        start, end = self.window.localize(start), self.window.localize(end)
        seen = set()
        # Identical detached items are told apart only by how many each bucket holds
        emitted: Counter = Counter()
        result = []
        for month in self.window.months_spanning(start, end):
            in_month: Counter = Counter()
            for item in self._month_bucket(month, now).items:
                if not item.overlaps(start, end):
                    continue
                if item.identifier:
                    if item.identifier in seen:
                        continue
                    seen.add(item.identifier)
                else:
                    in_month[item.properties] += 1
                    if in_month[item.properties] <= emitted[item.properties]:
                        continue
                    emitted[item.properties] += 1
                result.append(item)
        return sorted(result, key=CalendarItem.sort_key)

    def events_in_week(self, day: DayLike, now: Optional[datetime] = None) -> List[CalendarItem]:
        return self.events_between(*self.window.week_interval(day), now=now)

    def agenda(self, first_day: DayLike, days: int = 7,
               now: Optional[datetime] = None) -> List[Tuple[date, List[CalendarItem]]]:
        return [(day, self.events_on(day, now=now)) for day in self.window.days(first_day, days)]

    def search(self, text: str) -> List[CalendarItem]:
        """Case-insensitive match on title, location or notes within the working set."""
        needle = (text or "").strip().lower()
        if not needle:
            return []
        return [
            item for item in self.items
            if any(needle in (value or "").lower() for value in (item.title, item.location, item.notes))
        ]

    def _month_bucket(self, month: DayLike, now: datetime) -> MonthBucket:
        bucket = self.cache.get(month, now)
        if bucket is None:
            start, end = self.window.month_interval(month)
            bucket = self.cache.put(start, self._query(start, end), now)
        return bucket

    def _query(self, start: datetime, end: datetime) -> List[CalendarItem]:
        calendar_ids = self.visible_calendar_ids()
        if not calendar_ids:
            return []
        return self._store_call(self.store.query, start, end, calendar_ids)

    # ------------------------------------------------------------------
    # Event mutations
    # ------------------------------------------------------------------
    def create(self, title: str, start: datetime, end: datetime,
               calendar_id: Optional[str] = None, notes: Optional[str] = None,
               location: Optional[str] = None, is_all_day: bool = False) -> CalendarItem:
        self._require_access()
        if not title or not title.strip():
            raise ValueError("An event needs a title")
        start, end = self.window.localize(start), self.window.localize(end)
        if end < start:
            raise ValueError("An event cannot end before it starts")

        calendar = self._target_calendar(calendar_id)
        item = CalendarItem(
            title=title,
            start=start,
            end=end,
            calendar_id=calendar.identifier,
            notes=notes,
            location=location,
            is_all_day=is_all_day,
        )
        self._store_call(self.store.save, item, True)
        self._invalidate_span(item.start, item.end)
        self.logger.info("Created event '%s' in %s", title, calendar.title)

        try:
            reloaded = self.reload()
        except CalSyncError as exc:
            self.logger.warning("Reload after create failed, retrying later: %s", exc)
            reloaded = False
        if not reloaded:
            self._schedule_refresh()
            self._notify("events")
        return item

    def create_from_phrase(self, text: str, now: Optional[datetime] = None) -> CalendarItem:
        """Create from free text; unparseable text becomes the title at the fallback time."""
        parsed = self.parser.parse_event(text) if self.parser is not None else None
        if parsed is not None:
            return self.create(parsed.title, parsed.start, parsed.end, notes=parsed.notes)

        start = self.fallback_start(now or self.clock())
        return self.create(text.strip(), start, self.window.shift(start, FALLBACK_DURATION))

    def fallback_start(self, now: datetime) -> datetime:
        """Next whole hour after ``now``."""
        hour = self.window.localize(now).replace(minute=0, second=0, microsecond=0)
        return self.window.shift(hour, timedelta(hours=1))

    def update(self, reference: Reference, **changes: Any) -> CalendarItem:
        """Re-resolve ``reference`` live and apply ``changes`` to it.

        Accepted fields: title, start, end, calendar_id, notes, location,
        is_all_day.
        """
        unknown = set(changes) - set(EVENT_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update event fields: {', '.join(sorted(unknown))}")
        if "title" in changes and not (changes["title"] or "").strip():
            raise ValueError("An event needs a title")
        self._require_access()
        live = self._store_call(self.matcher.resolve, reference)
        return self._apply(live, changes)

    def move(self, reference: Reference, to: datetime) -> CalendarItem:
        """Move to a new start, keeping the exact elapsed duration."""
        self._require_access()
        live = self._store_call(self.matcher.resolve, reference)
        new_start = self.window.localize(to)
        new_end = self.window.shift(new_start, live.duration)
        return self._apply(live, {"start": new_start, "end": new_end})

    def delete(self, reference: Reference) -> None:
        self._require_access()
        live = self._store_call(self.matcher.resolve, reference)
        self._check_writable(live.calendar_id, self._calendar_index())

        self._store_call(self.store.remove, live, True)
        self._invalidate_span(live.start, live.end)
        self.items = [
            item for item in self.items
            if not (item.identifier == live.identifier if live.identifier
                    else item.properties == live.properties)
        ]
        self.logger.info("Deleted event '%s'", live.title)
        self._schedule_refresh()
        self._notify("events")

    def _apply(self, live: CalendarItem, changes: Dict[str, Any]) -> CalendarItem:
        calendars = self._calendar_index()
        self._check_writable(live.calendar_id, calendars)

        new_calendar_id = changes.get("calendar_id", live.calendar_id)
        if new_calendar_id != live.calendar_id:
            target = calendars.get(new_calendar_id)
            if target is None:
                raise NoCalendarAvailableError(f"Calendar '{new_calendar_id}' does not exist")
            self._check_writable(target.identifier, calendars)

        start = self.window.localize(changes.get("start", live.start))
        end = self.window.localize(changes.get("end", live.end))
        if end < start:
            raise ValueError("An event cannot end before it starts")

        old_span = (live.start, live.end)
        for name, value in changes.items():
            setattr(live, name, value)
        live.start, live.end = start, end

        self._store_call(self.store.save, live, True)
        self._invalidate_span(*old_span)
        self._invalidate_span(live.start, live.end)
        self.logger.info("Updated event '%s'", live.title)
        self._schedule_refresh()
        self._notify("events")
        return live

    def _target_calendar(self, calendar_id: Optional[str]) -> Calendar:
        calendars = self._calendar_index()
        if calendar_id is not None:
            calendar = calendars.get(calendar_id)
            if calendar is None:
                raise NoCalendarAvailableError(f"Calendar '{calendar_id}' does not exist")
            self._check_writable(calendar_id, calendars)
            return calendar

        for candidate in (self.config.default_calendar_id,
                          self._store_call(self.store.default_calendar_id, EntityKind.EVENT)):
            calendar = calendars.get(candidate) if candidate else None
            if calendar is not None and calendar.allows_modification:
                return calendar
        raise NoCalendarAvailableError("No writable calendar is available for new events")

    @staticmethod
    def _check_writable(calendar_id: Optional[str], calendars: Dict[str, Calendar]) -> None:
        calendar = calendars.get(calendar_id) if calendar_id else None
        if calendar is not None and not calendar.allows_modification:
            raise ModificationNotAllowedError(f"Calendar '{calendar.title}' does not allow changes")

    def _invalidate_span(self, start: datetime, end: datetime) -> None:
        for month in self.window.months_spanning(start, end):
            self.cache.invalidate(month)

    def _schedule_refresh(self) -> None:
        """Debounced reload after the store has had time to settle."""
        if self._pending_refresh is not None:
            self._pending_refresh.cancel()
        self._pending_refresh = self.queue.call_later(self.config.reload_delay, self._refresh)

    def _refresh(self) -> None:
        self._pending_refresh = None
        self.reload(force=True)

    def run_pending(self) -> int:
        """Drain queued callbacks and due timers on the calling thread."""
        return self.queue.run_pending()

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------
    @property
    def reminders(self) -> List[ReminderItem]:
        return list(self.reminder_board.items)

    def load_reminders(self, completion: Optional[Callable[[List[ReminderItem]], None]] = None) -> None:
        """Start a full reminder fetch; the list is replaced when the queue runs the result."""
        self._require_access(EntityKind.REMINDER)

        def apply(fetched: List[ReminderItem]) -> None:
            dropped = self.reminder_board.replace(fetched, self.clock())
            self.logger.debug("Loaded %d reminders (%d filtered)", len(self.reminder_board), dropped)
            self._notify("reminders")
            if completion is not None:
                completion(self.reminders)

        callback = self.queue.handoff(apply)
        try:
            self._store_call(self.store.fetch_reminders, None, callback)
        except CalSyncError:
            callback.abandon()
            raise

    def create_reminder(self, title: str, due: Optional[datetime] = None,
                        notes: Optional[str] = None,
                        priority: Union[PriorityBand, int] = PriorityBand.NONE,
                        list_id: Optional[str] = None) -> ReminderItem:
        self._require_access(EntityKind.REMINDER)
        if not title or not title.strip():
            raise ValueError("A reminder needs a title")

        lists = self._calendar_index(EntityKind.REMINDER)
        if list_id is None:
            list_id = self._store_call(self.store.default_calendar_id, EntityKind.REMINDER)
        target = lists.get(list_id) if list_id else None
        if target is None:
            raise NoCalendarAvailableError("No reminder list is available for new reminders")
        self._check_writable(target.identifier, lists)

        reminder = ReminderItem(
            identifier=None,
            title=title,
            list_id=target.identifier,
            list_title=target.title,
            due=self.window.localize(due) if due is not None else None,
            priority=self._priority_value(priority),
            notes=notes,
        )
        self._store_call(self.store.save, reminder, True)
        self.logger.info("Created reminder '%s' in %s", title, target.title)
        self.load_reminders()
        return reminder

    def create_reminder_from_phrase(self, text: str) -> ReminderItem:
        parsed = self.parser.parse_reminder(text) if self.parser is not None else None
        if parsed is None:
            parsed = ParsedReminder(title=text.strip())
        return self.create_reminder(parsed.title, due=parsed.due, notes=parsed.notes)

    def update_reminder(self, identifier: str, **changes: Any) -> ReminderItem:
        """Accepted fields: title, due, notes, priority, list_id."""
        unknown = set(changes) - set(REMINDER_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update reminder fields: {', '.join(sorted(unknown))}")
        if "title" in changes and not (changes["title"] or "").strip():
            raise ValueError("A reminder needs a title")
        self._require_access(EntityKind.REMINDER)
        live, lists = self._live_reminder(identifier)

        if "list_id" in changes and changes["list_id"] != live.list_id:
            target = lists.get(changes["list_id"])
            if target is None:
                raise NoCalendarAvailableError(f"Reminder list '{changes['list_id']}' does not exist")
            self._check_writable(target.identifier, lists)
            live.list_id, live.list_title = target.identifier, target.title
        if "title" in changes:
            live.title = changes["title"]
        if "notes" in changes:
            live.notes = changes["notes"]
        if "due" in changes:
            live.due = self.window.localize(changes["due"]) if changes["due"] is not None else None
        if "priority" in changes:
            live.priority = self._priority_value(changes["priority"])

        self._store_call(self.store.save, live, True)
        self.logger.info("Updated reminder '%s'", live.title)
        self.load_reminders()
        return live

    def toggle_reminder_completion(self, identifier: str) -> bool:
        """Flip completion; returns the new completed state."""
        self._require_access(EntityKind.REMINDER)
        live, _ = self._live_reminder(identifier)
        live.is_completed = not live.is_completed
        self._store_call(self.store.save, live, True)
        if live.is_completed:
            self.reminder_board.discard(identifier)
        self._notify("reminders")
        self.load_reminders()
        return live.is_completed

    def delete_reminder(self, identifier: str) -> None:
        self._require_access(EntityKind.REMINDER)
        live, _ = self._live_reminder(identifier)
        self._store_call(self.store.remove, live, True)
        self.reminder_board.discard(identifier)
        self.logger.info("Deleted reminder '%s'", live.title)
        self._notify("reminders")
        self.load_reminders()

    def _live_reminder(self, identifier: str) -> Tuple[ReminderItem, Dict[str, Calendar]]:
        live = self._store_call(self.store.fetch_reminder, identifier)
        if live is None:
            raise NotFoundError(f"No reminder with identifier '{identifier}'")
        lists = self._calendar_index(EntityKind.REMINDER)
        self._check_writable(live.list_id, lists)
        return live, lists

    @staticmethod
    def _priority_value(priority: Union[PriorityBand, int]) -> int:
        if isinstance(priority, PriorityBand):
            return priority.to_priority()
        value = int(priority)
        if not 0 <= value <= 9:
            raise ValueError("Reminder priority must be between 0 and 9")
        return value

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------
    @staticmethod
    def _store_call(fn: Callable[..., Any], *args: Any) -> Any:
        """Call the store, surfacing foreign errors as :class:`StoreFailure`."""
        try:
            return fn(*args)
        except CalSyncError:
            raise
        except Exception as exc:
            raise StoreFailure(str(exc), exc) from exc
