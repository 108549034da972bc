"""Request calendar and reminder access."""

from ..core.exceptions import CalSyncError
from ..core.models import AuthorizationStatus, EntityKind
from .base import EngineCommand


class AccessCommand(EngineCommand):
    """Ask the system for access and report the outcome."""

    def __init__(self, *args, timeout: float = 60.0, **kwargs):
        super().__init__(*args, **kwargs)
        self.timeout = timeout

    def run(self) -> bool:
        try:
            engine = self.engine
            if engine.has_access(EntityKind.EVENT) and engine.has_access(EntityKind.REMINDER):
                print("Calendar and Reminders access already granted.")
                return True

            result = {}
            engine.request_access(lambda granted: result.setdefault("events", granted))
            if not engine.queue.run_until_idle(timeout=self.timeout):
                print("Timed out waiting for the access prompt. Check for a system dialog and retry.")
                return False

            for kind, noun in ((EntityKind.EVENT, "Calendar"), (EntityKind.REMINDER, "Reminders")):
                status = engine.authorization_status(kind)
                print(f"{noun}: {status.value}")
            if not result.get("events"):
                print("To grant access, open System Settings > Privacy & Security > Calendars.")
                return False
            return engine.authorization_status(EntityKind.REMINDER) is AuthorizationStatus.GRANTED
        except CalSyncError as e:
            self.logger.error("Access request failed: %s", e)
            print(f"Error: {e}")
            return False
