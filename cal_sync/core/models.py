"""
Domain models for cal-sync.

This module contains the data structures shared by the store adapters, the
sync engine and the CLI. Items handed out by the engine are copies of what the
external store returned and may be stale the moment after they are read.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..utils.io import safe_read_json, safe_write_json


class EntityKind(Enum):
    """Kinds of items held by the external store."""

    EVENT = "event"
    REMINDER = "reminder"


class AuthorizationStatus(Enum):
    """Store access state for one entity kind."""

    GRANTED = "granted"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


class PriorityBand(Enum):
    """Reminder priority, collapsed from the platform's 0-9 scale."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_priority(cls, priority: int) -> PriorityBand:
        # 0 = none, 1-4 = high, 5 = medium, 6-9 = low
        if 1 <= priority <= 4:
            return cls.HIGH
        if priority == 5:
            return cls.MEDIUM
        if priority >= 6:
            return cls.LOW
        return cls.NONE

    def to_priority(self) -> int:
        return {"high": 1, "medium": 5, "low": 9}.get(self.value, 0)


class FontSize(Enum):
    """Display font size preference."""

    SMALL = "Small"
    MEDIUM = "Medium"
    LARGE = "Large"
    EXTRA_LARGE = "Extra Large"

    @property
    def scale(self) -> float:
        return {
            FontSize.SMALL: 0.85,
            FontSize.MEDIUM: 1.0,
            FontSize.LARGE: 1.15,
            FontSize.EXTRA_LARGE: 1.3,
        }[self]


class TemperatureUnit(Enum):
    """Display temperature unit preference."""

    CELSIUS = "Celsius"
    FAHRENHEIT = "Fahrenheit"

    def convert(self, fahrenheit: float) -> float:
        if self is TemperatureUnit.CELSIUS:
            return (fahrenheit - 32) * 5 / 9
        return fahrenheit

    @property
    def symbol(self) -> str:
        return "°C" if self is TemperatureUnit.CELSIUS else "°F"


def utc_delta(start: datetime, end: datetime) -> timedelta:
    """Elapsed time between two aware instants, immune to DST wall-clock math."""
    return end.astimezone(timezone.utc) - start.astimezone(timezone.utc)


@dataclass
class Calendar:
    """An event calendar or reminder list owned by the store."""

    identifier: str
    title: str
    kind: EntityKind = EntityKind.EVENT
    color: Optional[str] = None
    allows_modification: bool = True


@dataclass(frozen=True)
class ItemProperties:
    """Structural fingerprint used when an identifier is absent or stale."""

    title: str
    start: datetime
    end: datetime
    calendar_id: str

    def matches(self, item: CalendarItem, tolerance: timedelta) -> bool:
        """Exact title and calendar, start and end each within ``tolerance``."""
        if item.title != self.title or item.calendar_id != self.calendar_id:
            return False
        if abs(utc_delta(self.start, item.start)) >= tolerance:
            return False
        return abs(utc_delta(self.end, item.end)) < tolerance


@dataclass
class CalendarItem:
    """An event as returned by the external store.

    ``handle`` carries the store's native object (an ``EKEvent`` for the
    EventKit store) so that a freshly resolved item can be saved back. It is
    never compared and never trusted once the item has been cached.
    """

    title: str
    start: datetime
    end: datetime
    calendar_id: str
    identifier: Optional[str] = None
    is_all_day: bool = False
    notes: Optional[str] = None
    location: Optional[str] = None
    handle: Any = field(default=None, repr=False, compare=False)

    @property
    def duration(self) -> timedelta:
        return utc_delta(self.start, self.end)

    @property
    def properties(self) -> ItemProperties:
        return ItemProperties(
            title=self.title,
            start=self.start,
            end=self.end,
            calendar_id=self.calendar_id,
        )

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap test against ``[start, end)``."""
        return self.start < end and self.end > start

    def copy(self) -> CalendarItem:
        return replace(self)

    def sort_key(self):
        return (self.start.astimezone(timezone.utc), self.identifier or "")


@dataclass
class ReminderItem:
    """A reminder as returned by the external store."""

    identifier: Optional[str]
    title: str
    list_id: Optional[str]
    is_completed: bool = False
    due: Optional[datetime] = None
    priority: int = 0
    notes: Optional[str] = None
    list_title: Optional[str] = None
    handle: Any = field(default=None, repr=False, compare=False)

    @property
    def priority_band(self) -> PriorityBand:
        return PriorityBand.from_priority(self.priority)

    @property
    def is_valid(self) -> bool:
        """Only open, fully identified reminders are kept by the engine."""
        return bool(self.identifier) and bool(self.list_id) and not self.is_completed

    def is_overdue(self, now: datetime) -> bool:
        return self.due is not None and self.due < now and not self.is_completed


@dataclass
class ParsedEvent:
    """Output of a phrase parser for event text."""

    title: str
    start: datetime
    end: datetime
    notes: Optional[str] = None


@dataclass
class ParsedReminder:
    """Output of a phrase parser for reminder text."""

    title: str
    due: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass
class ClientConfig:
    """Persisted client settings plus the sync engine's tunables."""

    default_calendar_id: Optional[str] = None
    selected_calendar_ids: List[str] = field(default_factory=list)
    selection_initialized: bool = False
    font_size: FontSize = FontSize.MEDIUM
    temperature_unit: TemperatureUnit = TemperatureUnit.CELSIUS
    time_zone: Optional[str] = None  # IANA name, None for the system zone
    first_weekday: int = 6  # 0 = Monday .. 6 = Sunday
    # Sync tunables
    cache_ttl_seconds: float = 2.0
    match_tolerance_seconds: float = 2.0
    load_throttle_seconds: float = 0.5
    reload_delay_seconds: float = 0.5
    retention_months: int = 3
    window_months_back: int = 1
    window_months_forward: int = 2

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------
    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.cache_ttl_seconds)

    @property
    def match_tolerance(self) -> timedelta:
        return timedelta(seconds=self.match_tolerance_seconds)

    @property
    def load_throttle(self) -> timedelta:
        return timedelta(seconds=self.load_throttle_seconds)

    @property
    def reload_delay(self) -> timedelta:
        return timedelta(seconds=self.reload_delay_seconds)

    def is_calendar_selected(self, calendar_id: str) -> bool:
        return calendar_id in self.selected_calendar_ids

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "default_calendar_id": self.default_calendar_id,
            "selected_calendar_ids": list(self.selected_calendar_ids),
            "selection_initialized": self.selection_initialized,
            "font_size": self.font_size.value,
            "temperature_unit": self.temperature_unit.value,
            "time_zone": self.time_zone,
            "first_weekday": self.first_weekday,
            "sync": {
                "cache_ttl_seconds": self.cache_ttl_seconds,
                "match_tolerance_seconds": self.match_tolerance_seconds,
                "load_throttle_seconds": self.load_throttle_seconds,
                "reload_delay_seconds": self.reload_delay_seconds,
                "retention_months": self.retention_months,
                "window_months_back": self.window_months_back,
                "window_months_forward": self.window_months_forward,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ClientConfig:
        defaults = cls()

        try:
            font_size = FontSize(data.get("font_size", defaults.font_size.value))
        except ValueError:
            font_size = defaults.font_size

        try:
            temperature_unit = TemperatureUnit(
                data.get("temperature_unit", defaults.temperature_unit.value)
            )
        except ValueError:
            temperature_unit = defaults.temperature_unit

        sync = data.get("sync", {})
        selected = data.get("selected_calendar_ids") or []

        return cls(
            default_calendar_id=data.get("default_calendar_id"),
            selected_calendar_ids=[str(cid) for cid in selected],
            selection_initialized=bool(data.get("selection_initialized", False)),
            font_size=font_size,
            temperature_unit=temperature_unit,
            time_zone=data.get("time_zone"),
            first_weekday=int(data.get("first_weekday", defaults.first_weekday)),
            cache_ttl_seconds=float(sync.get("cache_ttl_seconds", defaults.cache_ttl_seconds)),
            match_tolerance_seconds=float(
                sync.get("match_tolerance_seconds", defaults.match_tolerance_seconds)
            ),
            load_throttle_seconds=float(
                sync.get("load_throttle_seconds", defaults.load_throttle_seconds)
            ),
            reload_delay_seconds=float(
                sync.get("reload_delay_seconds", defaults.reload_delay_seconds)
            ),
            retention_months=int(sync.get("retention_months", defaults.retention_months)),
            window_months_back=int(sync.get("window_months_back", defaults.window_months_back)),
            window_months_forward=int(
                sync.get("window_months_forward", defaults.window_months_forward)
            ),
        )

    @classmethod
    def load_from_file(cls, config_path: str) -> ClientConfig:
        data = safe_read_json(config_path, default={})
        if not isinstance(data, dict):
            return cls()
        return cls.from_dict(data)

    def save_to_file(self, config_path: str) -> bool:
        return safe_write_json(config_path, self.to_dict())

