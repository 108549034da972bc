"""Shared plumbing for the CLI commands."""

from datetime import date
from typing import Iterable, Optional
import logging

from ..core.config import save_config
from ..core.models import ClientConfig, EntityKind
from ..store.eventkit import EventKitStore
from ..sync.engine import SyncEngine
from ..sync.window import TimeWindow
from ..utils.date import format_time_range, parse_date


def build_engine(config: ClientConfig, config_path: Optional[str] = None) -> SyncEngine:
    """Wire a :class:`SyncEngine` to the EventKit store and the config file."""
    window = TimeWindow.from_config(config)
    return SyncEngine(
        EventKitStore(time_zone=window.tz),
        config,
        window=window,
        config_saver=lambda cfg: save_config(cfg, config_path),
    )


class EngineCommand:
    """Base for commands that talk to the calendar store through the engine."""

    def __init__(self, config: ClientConfig, verbose: bool = False,
                 engine: Optional[SyncEngine] = None,
                 config_path: Optional[str] = None):
        self.config = config
        self.verbose = verbose
        self.config_path = config_path
        self.logger = logging.getLogger(__name__)
        if verbose:
            self.logger.setLevel(logging.DEBUG)
        self._engine = engine

    @property
    def engine(self) -> SyncEngine:
        if self._engine is None:
            self._engine = build_engine(self.config, self.config_path)
        return self._engine

    def check_access(self, kind: EntityKind = EntityKind.EVENT) -> bool:
        if self.engine.has_access(kind):
            return True
        noun = "Calendar" if kind is EntityKind.EVENT else "Reminders"
        print(f"{noun} access has not been granted. Run 'cal-sync access' first.")
        return False

    def resolve_day(self, date_str: Optional[str]) -> Optional[date]:
        """Parse ``date_str``, defaulting to today in the configured zone."""
        if not date_str:
            return self.engine.clock().date()
        day = parse_date(date_str)
        if day is None:
            print(f"Invalid date '{date_str}'. Use YYYY-MM-DD.")
        return day

    @staticmethod
    def print_events(events: Iterable, indent: str = "  ") -> None:
        for event in events:
            when = format_time_range(event.start, event.end, event.is_all_day)
            print(f"{indent}{when}  {event.title}  [{event.identifier or 'no id'}]")
            if event.location:
                print(f"{indent}    @ {event.location}")
