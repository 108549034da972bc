"""Reminder commands: list, add and complete."""

from typing import Optional

from ..core.exceptions import CalSyncError
from ..core.models import EntityKind, PriorityBand
from ..utils.date import parse_datetime
from .base import EngineCommand

_PRIORITY_MARKS = {
    PriorityBand.HIGH: "!!!",
    PriorityBand.MEDIUM: "!!",
    PriorityBand.LOW: "!",
    PriorityBand.NONE: "",
}


class RemindersCommand(EngineCommand):
    """Open reminders grouped by list, plus quick edits."""

    def __init__(self, *args, timeout: float = 30.0, **kwargs):
        super().__init__(*args, **kwargs)
        self.timeout = timeout

    def run(self) -> bool:
        try:
            if not self.check_access(EntityKind.REMINDER):
                return False
            if not self._load():
                return False
            groups = self.engine.reminder_board.grouped()
            if not groups:
                print("No open reminders.")
                return True
            now = self.engine.clock()
            for list_title, reminders in groups.items():
                print(f"{list_title}:")
                for rem in reminders:
                    due = f" due {rem.due:%Y-%m-%d %H:%M}" if rem.due else ""
                    overdue = " (overdue)" if rem.is_overdue(now) else ""
                    mark = _PRIORITY_MARKS[rem.priority_band]
                    prefix = f"{mark} " if mark else ""
                    print(f"  - {prefix}{rem.title}{due}{overdue}  [{rem.identifier}]")
            return True
        except CalSyncError as e:
            self.logger.error("Reminder listing failed: %s", e)
            print(f"Error: {e}")
            return False

    def add(self, text: str, due: Optional[str] = None, priority: str = "none",
            list_id: Optional[str] = None, notes: Optional[str] = None) -> bool:
        try:
            if not self.check_access(EntityKind.REMINDER):
                return False
            if due is None and list_id is None and priority == "none" and notes is None:
                reminder = self.engine.create_reminder_from_phrase(text)
            else:
                due_dt = parse_datetime(due, self.engine.window.tz) if due else None
                if due and due_dt is None:
                    print(f"Invalid due time '{due}'.")
                    return False
                reminder = self.engine.create_reminder(
                    text, due=due_dt, notes=notes,
                    priority=PriorityBand(priority), list_id=list_id,
                )
            self._load()
            print(f"Created reminder '{reminder.title}' [{reminder.identifier}]")
            return True
        except (CalSyncError, ValueError) as e:
            self.logger.error("Reminder create failed: %s", e)
            print(f"Error: {e}")
            return False

    def complete(self, identifier: str) -> bool:
        try:
            if not self.check_access(EntityKind.REMINDER):
                return False
            completed = self.engine.toggle_reminder_completion(identifier)
            self._load()
            state = "completed" if completed else "reopened"
            print(f"Reminder {identifier} {state}.")
            return True
        except CalSyncError as e:
            self.logger.error("Reminder update failed: %s", e)
            print(f"Error: {e}")
            return False

    def _load(self) -> bool:
        """Fetch reminders and wait for the background completion."""
        self.engine.load_reminders()
        if not self.engine.queue.run_until_idle(timeout=self.timeout):
            print(f"Timed out after {self.timeout:.0f}s waiting for reminders.")
            return False
        return True
