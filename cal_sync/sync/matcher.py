"""Resolve a cached or remembered event back to a live store item."""

from dataclasses import replace
from datetime import timedelta
from typing import List, Optional, Union
import logging

from ..core.exceptions import NotFoundError
from ..core.models import CalendarItem, ItemProperties
from ..store.base import ExternalStore
from .window import TimeWindow

Reference = Union[str, ItemProperties, CalendarItem]


class IdentityMatcher:
    """Two-tier identity resolution.

    1. Identifier fast path: re-fetch by identifier from the store.
    2. Structural path: scan the day of the item's start for an item with the
       same title and calendar whose start and end are within ``tolerance``.

    A cached identifier is never trusted without the live re-fetch.
    """

    def __init__(self, store: ExternalStore, window: TimeWindow,
                 tolerance: timedelta = timedelta(seconds=2),
                 logger: Optional[logging.Logger] = None):
        self.store = store
        self.window = window
        self.tolerance = tolerance
        self.logger = logger or logging.getLogger(__name__)

    def resolve(self, reference: Reference) -> CalendarItem:
        """Return a live item for ``reference`` or raise :class:`NotFoundError`.

        ``reference`` may be an identifier string, an :class:`ItemProperties`
        fingerprint, or a (possibly stale or detached) cached item.
        """
        if isinstance(reference, str):
            live = self.find_by_identifier(reference)
            if live is None:
                raise NotFoundError(f"No event with identifier '{reference}'")
            return live

        if isinstance(reference, CalendarItem):
            if reference.identifier:
                live = self.find_by_identifier(reference.identifier)
                if live is not None:
                    return live
                self.logger.debug(
                    "Identifier %s went stale, falling back to structural match",
                    reference.identifier,
                )
            properties = reference.properties
        elif isinstance(reference, ItemProperties):
            properties = reference
        else:
            raise TypeError(f"Cannot resolve a {type(reference).__name__}")

        # Naive times are wall-clock times in the configured zone
        properties = replace(
            properties,
            start=self.window.localize(properties.start),
            end=self.window.localize(properties.end),
        )

        live = self.find_by_properties(properties)
        if live is None:
            raise NotFoundError(
                f"No event '{properties.title}' at {properties.start.isoformat()} "
                f"in calendar {properties.calendar_id}"
            )
        return live

    def find_by_identifier(self, identifier: str) -> Optional[CalendarItem]:
        live = self.store.fetch_by_identifier(identifier)
        if live is not None:
            self.logger.debug("Resolved %s via identifier", identifier)
        return live

    def find_by_properties(self, properties: ItemProperties) -> Optional[CalendarItem]:
        candidates = self.candidates_for(properties)
        for candidate in candidates:
            if properties.matches(candidate, self.tolerance):
                self.logger.debug(
                    "Resolved '%s' structurally among %d candidates",
                    properties.title, len(candidates),
                )
                return candidate
        return None

    def candidates_for(self, properties: ItemProperties) -> List[CalendarItem]:
        start, end = self.window.day_interval(properties.start)
        return self.store.query(start, end, [properties.calendar_id])
