"""Event commands: day, week and agenda views, search, add, move, delete."""

from datetime import timedelta
from typing import Optional

from ..core.exceptions import CalSyncError
from ..utils.date import parse_datetime
from .base import EngineCommand


class EventsCommand(EngineCommand):
    """Read-only event views."""

    def run(self, view: str = "day", date_str: Optional[str] = None,
            days: int = 7, query: Optional[str] = None) -> bool:
        try:
            if not self.check_access():
                return False
            if view == "search":
                return self._search(query or "")

            day = self.resolve_day(date_str)
            if day is None:
                return False
            if view == "week":
                start, _ = self.engine.window.week_interval(day)
                print(f"Week of {start:%Y-%m-%d}:")
                self.print_events(self.engine.events_in_week(day))
            elif view == "agenda":
                for agenda_day, events in self.engine.agenda(day, days):
                    print(f"{agenda_day:%a %Y-%m-%d}")
                    if events:
                        self.print_events(events)
                    else:
                        print("  (no events)")
            else:
                events = self.engine.events_on(day)
                print(f"Found {len(events)} events for {day}.")
                self.print_events(events)
            return True
        except CalSyncError as e:
            self.logger.error("Event listing failed: %s", e)
            print(f"Error: {e}")
            return False

    def _search(self, query: str) -> bool:
        self.engine.reload(force=True)
        matches = self.engine.search(query)
        print(f"{len(matches)} events match '{query}'.")
        self.print_events(matches)
        return True


class EventEditCommand(EngineCommand):
    """Event mutations: add, move and delete."""

    def add(self, text: str, start: Optional[str] = None, end: Optional[str] = None,
            calendar_id: Optional[str] = None, notes: Optional[str] = None,
            location: Optional[str] = None, all_day: bool = False) -> bool:
        try:
            if not self.check_access():
                return False
            tz = self.engine.window.tz
            if start is None:
                item = self.engine.create_from_phrase(text)
            else:
                start_dt = parse_datetime(start, tz)
                if start_dt is None:
                    print(f"Invalid start time '{start}'.")
                    return False
                end_dt = parse_datetime(end, tz) if end else start_dt + timedelta(hours=1)
                if end_dt is None:
                    print(f"Invalid end time '{end}'.")
                    return False
                item = self.engine.create(
                    text, start_dt, end_dt, calendar_id=calendar_id,
                    notes=notes, location=location, is_all_day=all_day,
                )
            print(f"Created '{item.title}' ({item.start:%Y-%m-%d %H:%M}) [{item.identifier}]")
            return True
        except (CalSyncError, ValueError) as e:
            self.logger.error("Create failed: %s", e)
            print(f"Error: {e}")
            return False

    def move(self, identifier: str, to: str) -> bool:
        try:
            if not self.check_access():
                return False
            new_start = parse_datetime(to, self.engine.window.tz)
            if new_start is None:
                print(f"Invalid time '{to}'.")
                return False
            item = self.engine.move(identifier, new_start)
            print(f"Moved '{item.title}' to {item.start:%Y-%m-%d %H:%M}-{item.end:%H:%M}.")
            return True
        except (CalSyncError, ValueError) as e:
            self.logger.error("Move failed: %s", e)
            print(f"Error: {e}")
            return False

    def delete(self, identifier: str) -> bool:
        try:
            if not self.check_access():
                return False
            self.engine.delete(identifier)
            print(f"Deleted event {identifier}.")
            return True
        except CalSyncError as e:
            self.logger.error("Delete failed: %s", e)
            print(f"Error: {e}")
            return False
