"""Per-day indexed, capacity-bounded store of calendar events."""

from __future__ import annotations

import logging
from calendar import monthrange
from collections import defaultdict
from datetime import date, timedelta
from typing import Optional

from .models import Event, StoreStatistics

logger = logging.getLogger(__name__)


class EventStore:
    """Events grouped by calendar day in insertion order.

    Each day holds at most ``max_events_per_day`` events. Events arriving
    after a day is full are dropped, so the first events inserted win.
    """

    def __init__(self, max_events_per_day: int = 3) -> None:
        """Initialize an empty store.

        Args:
            max_events_per_day: Maximum events kept per day
        """
        if max_events_per_day < 1:
            raise ValueError("max_events_per_day must be at least 1")
        self.max_events_per_day = max_events_per_day
        self._events_by_date: defaultdict[date, list[Event]] = defaultdict(list)
        self._dropped = 0

    def add_event(self, event: Event) -> bool:
        """Insert an event into its day's list.

        Args:
            event: Event to add

        Returns:
            True if stored, False if the day was already full
        """
        day_events = self._events_by_date[event.date]
        if len(day_events) >= self.max_events_per_day:
            self._dropped += 1
            logger.debug("Day %s full; dropped %r", event.date, event.summary)
            return False
        day_events.append(event)
        return True

    @property
    def dropped_events(self) -> int:
        """Number of events rejected because their day was full."""
        return self._dropped

    # Planner queries

    def dates_for_month(self, month: int) -> list[Event]:
        """All events in a month, ordered by day then insertion."""
        return [
            event
            for day in sorted(self._events_by_date)
            if day.month == month
            for event in self._events_by_date[day]
        ]

    def dates_for_week(self, week_number: int, year_start_monday: date) -> list[Event]:
        """All events in a planner week, where week 1 starts on year_start_monday."""
        return [
            event
            for day in sorted(self._events_by_date)
            for event in self._events_by_date[day]
            if event.week_number(year_start_monday) == week_number
        ]

    def date_for_day(self, day: date) -> Optional[Event]:
        """First event stored for a day, if any."""
        day_events = self._events_by_date.get(day)
        return day_events[0] if day_events else None

    # Lookups

    def events_for_date(self, day: date, limit: Optional[int] = None) -> list[Event]:
        """Events for a day, at most ``limit`` (default: the per-day cap)."""
        if limit is None:
            limit = self.max_events_per_day
        return list(self._events_by_date.get(day, []))[:limit]

    def has_events(self, day: date) -> bool:
        return bool(self._events_by_date.get(day))

    def event_count(self, day: date) -> int:
        return len(self._events_by_date.get(day, []))

    def events_for_date_range(self, start: date, end: date) -> dict[date, list[Event]]:
        """Populated days within [start, end] mapped to their events."""
        result: dict[date, list[Event]] = {}
        day = start
        while day <= end:
            events = self.events_for_date(day)
            if events:
                result[day] = events
            day += timedelta(days=1)
        return result

    def events_for_month(self, year: int, month: int) -> dict[date, list[Event]]:
        last_day = monthrange(year, month)[1]
        return self.events_for_date_range(date(year, month, 1), date(year, month, last_day))

    def events_for_week(self, week_start: date, week_end: date) -> dict[date, list[Event]]:
        return self.events_for_date_range(week_start, week_end)

    @property
    def total_events(self) -> int:
        return sum(len(events) for events in self._events_by_date.values())

    def dates_with_events(self) -> list[date]:
        """Sorted days holding at least one event."""
        return sorted(day for day, events in self._events_by_date.items() if events)

    @property
    def is_empty(self) -> bool:
        return self.total_events == 0

    def statistics(self) -> StoreStatistics:
        """Aggregate counts over the store."""
        counts = [len(events) for events in self._events_by_date.values() if events]
        return StoreStatistics(
            total_events=sum(counts),
            unique_dates=len(counts),
            max_events_on_single_day=max(counts, default=0),
            dates_with_multiple_events=sum(1 for count in counts if count > 1),
        )
