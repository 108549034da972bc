"""Flat reminder list kept by the engine."""

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from ..core.models import ReminderItem


class ReminderBoard:
    """Open reminders from the last completed fetch.

    Every load replaces the list wholesale; there is no TTL and no
    bucketing. Completed and partially identified reminders are dropped on
    the way in.
    """

    NO_LIST_TITLE = "No List"

    def __init__(self):
        self.items: List[ReminderItem] = []
        self.loaded_at: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self.items)

    def replace(self, fetched: Iterable[ReminderItem], now: datetime) -> int:
        """Keep only valid reminders; returns how many were filtered out."""
        fetched = list(fetched)
        self.items = [rem for rem in fetched if rem.is_valid]
        self.loaded_at = now
        return len(fetched) - len(self.items)

    def get(self, identifier: str) -> Optional[ReminderItem]:
        for rem in self.items:
            if rem.identifier == identifier:
                return rem
        return None

    def discard(self, identifier: str) -> None:
        self.items = [rem for rem in self.items if rem.identifier != identifier]

    def grouped(self) -> Dict[str, List[ReminderItem]]:
        """Reminders by list title, titles sorted, due-dated reminders first."""
        groups: Dict[str, List[ReminderItem]] = {}
        for rem in self.items:
            groups.setdefault(rem.list_title or self.NO_LIST_TITLE, []).append(rem)
        far_future = datetime.max.replace(tzinfo=timezone.utc)
        return {
            title: sorted(
                groups[title],
                key=lambda r: (r.due.astimezone(timezone.utc) if r.due else far_future, r.title),
            )
            for title in sorted(groups)
        }

    def overdue(self, now: datetime) -> List[ReminderItem]:
        return [rem for rem in self.items if rem.is_overdue(now)]
