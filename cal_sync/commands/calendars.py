"""Calendar listing, visibility and default calendar commands."""

from typing import Optional

from ..core.exceptions import CalSyncError
from .base import EngineCommand


class CalendarsCommand(EngineCommand):
    """Show calendars and manage which ones are displayed."""

    def run(self, action: str = "list", calendar_id: Optional[str] = None) -> bool:
        try:
            if not self.check_access():
                return False
            if action == "toggle":
                visible = self.engine.toggle_calendar_visibility(calendar_id)
                print(f"Calendar {calendar_id} is now {'shown' if visible else 'hidden'}.")
                return True
            if action == "default":
                self.engine.set_default_calendar(calendar_id)
                print(f"Default calendar set to {calendar_id}.")
                return True
            return self._list()
        except CalSyncError as e:
            self.logger.error("Calendar command failed: %s", e)
            print(f"Error: {e}")
            return False

    def _list(self) -> bool:
        calendars = self.engine.load_calendars()
        if not calendars:
            print("No calendars found.")
            return True
        selected = set(self.engine.visible_calendar_ids())
        print(f"{len(calendars)} calendars:")
        for cal in calendars:
            mark = "x" if cal.identifier in selected else " "
            flags = []
            if cal.identifier == self.config.default_calendar_id:
                flags.append("default")
            if not cal.allows_modification:
                flags.append("read-only")
            suffix = f" ({', '.join(flags)})" if flags else ""
            print(f"  [{mark}] {cal.title}{suffix}  {cal.identifier}")
        return True
