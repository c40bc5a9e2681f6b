"""iCalendar feed parser producing dated events and recurring-event markers."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from datetime import date, datetime, timedelta
from typing import Any, Optional, Union

from dateutil import parser as date_parser
from icalendar import Calendar
from icalendar import Event as ICalEvent

from .diagnostics import DiagnosticsSink, default_diagnostics
from .exceptions import CalendarIntegrationError, FeedParseError
from .models import (
    Event,
    ParsedItem,
    ParseFailure,
    ParseResult,
    RecurringEventMarker,
)

logger = logging.getLogger(__name__)

DateValue = Union[date, datetime]


def to_date(value: Any) -> Optional[date]:
    """Normalize an iCalendar temporal value to a plain calendar date.

    Accepts icalendar property wrappers (anything with a ``dt`` attribute),
    ``date``, ``datetime`` and date strings. Time-zone aware datetimes keep
    the wall-clock date of their own zone.

    Args:
        value: Value to convert

    Returns:
        The calendar date, or None if the value cannot be interpreted
    """
    if value is None:
        return None
    if hasattr(value, "dt"):
        value = value.dt
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date_parser.parse(value).date()
        except (ValueError, OverflowError):
            return None
    return None


def unwrap_temporal(value: Any) -> Optional[DateValue]:
    """Return the date or datetime held by an iCalendar property."""
    if value is None:
        return None
    if hasattr(value, "dt"):
        value = value.dt
    if isinstance(value, (date, datetime)):
        return value
    if isinstance(value, str):
        try:
            return date_parser.parse(value)
        except (ValueError, OverflowError):
            return None
    return None


def is_all_day(component: ICalEvent) -> bool:
    """Check if an entry is all-day: its start is a pure date with no time."""
    dtstart = unwrap_temporal(component.get("DTSTART"))
    return isinstance(dtstart, date) and not isinstance(dtstart, datetime)


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _iter_exdates(component: ICalEvent) -> Iterator[DateValue]:
    """Yield every EXDATE value of an entry."""
    for prop in _as_list(component.get("EXDATE")):
        for item in getattr(prop, "dts", None) or [prop]:
            value = unwrap_temporal(item)
            if value is not None:
                yield value


class ICalParser:
    """Parses one calendar's feed text into events and recurring markers."""

    def __init__(
        self,
        calendar_name: Optional[str],
        color: Optional[str] = None,
        icon: Optional[str] = None,
        year: Optional[int] = None,
        diagnostics: Optional[DiagnosticsSink] = None,
    ) -> None:
        """Initialize the parser.

        Args:
            calendar_name: Name of the source calendar
            color: Hex color code inherited by events
            icon: Icon inherited by events
            year: Target year; one-time event days outside it are dropped
            diagnostics: Sink for skipped-entry and failure lines
        """
        self.calendar_name = calendar_name
        self.color = color
        self.icon = icon
        self.year = year
        self._diagnostics = default_diagnostics(diagnostics)

    def parse(
        self,
        feed_text: Optional[str],
        skip_all_day: bool = False,
        exclude_patterns: Iterable[str] = (),
    ) -> list[ParsedItem]:
        """Parse feed text into events and recurring markers.

        Returns:
            Parsed items; empty if the whole feed failed to parse
        """
        return self.parse_feed(feed_text, skip_all_day, exclude_patterns).items

    def parse_feed(
        self,
        feed_text: Optional[str],
        skip_all_day: bool = False,
        exclude_patterns: Iterable[str] = (),
    ) -> ParseResult:
        """Parse feed text, reporting whole-feed failures and skipped entries.

        Args:
            feed_text: Raw iCalendar text
            skip_all_day: Drop entries whose start is a pure date
            exclude_patterns: Regular expressions; matching summaries are dropped

        Returns:
            ParseResult with items, or a ParseFailure reason
        """
        if not feed_text:
            return ParseResult(success=True)

        try:
            components = self._read_components(feed_text)
        except FeedParseError as e:
            message = f"Failed to parse iCal data for {self.calendar_name}: {e.message}"
            self._diagnostics.warn(message)
            return ParseResult(
                success=False, failure=ParseFailure.MALFORMED_FEED, error_message=message
            )

        patterns = self._compile_patterns(exclude_patterns)
        overrides = self._collect_overrides(components)

        items: list[ParsedItem] = []
        skipped = 0
        for component in components:
            try:
                if self._should_exclude(component, skip_all_day, patterns):
                    skipped += 1
                    continue

                if component.get("RRULE"):
                    items.append(self._create_marker(component, overrides))
                    continue

                dates = self.extract_event_dates(component)
                if not dates:
                    skipped += 1
                    continue
                items.extend(self._create_event(day, component) for day in dates)
            except (CalendarIntegrationError, ValueError, TypeError, OverflowError) as e:
                skipped += 1
                self._diagnostics.warn(
                    f"Skipping entry {str(component.get('SUMMARY', ''))!r} "
                    f"in {self.calendar_name}: {e}"
                )

        logger.debug(
            "Parsed %d item(s) from %s (%d entries skipped)",
            len(items),
            self.calendar_name,
            skipped,
        )
        return ParseResult(success=True, items=items, skipped=skipped)

    def _read_components(self, feed_text: str) -> list[ICalEvent]:
        try:
            calendars = Calendar.from_ical(feed_text, multiple=True)
            return [event for calendar in calendars for event in calendar.walk("VEVENT")]
        # Last-resort boundary: any icalendar failure means the feed is malformed
        except Exception as e:
            raise FeedParseError(str(e)) from e

    def _compile_patterns(self, exclude_patterns: Iterable[str]) -> list[re.Pattern[str]]:
        """Compile exclusion patterns; an invalid pattern excludes nothing."""
        compiled = []
        for pattern in exclude_patterns:
            try:
                compiled.append(re.compile(pattern))
            except (re.error, TypeError) as e:
                self._diagnostics.warn(f"Ignoring invalid exclude pattern {pattern!r}: {e}")
        return compiled

    def _should_exclude(
        self, component: ICalEvent, skip_all_day: bool, patterns: list[re.Pattern[str]]
    ) -> bool:
        summary = component.get("SUMMARY")
        if summary is None or not str(summary).strip():
            return True

        if skip_all_day and is_all_day(component):
            return True

        text = str(summary)
        return any(pattern.search(text) for pattern in patterns)

    def _collect_overrides(self, components: list[ICalEvent]) -> dict[str, list[DateValue]]:
        """Map UID -> original dates of instances overridden via RECURRENCE-ID."""
        overrides: dict[str, list[DateValue]] = {}
        for component in components:
            recurrence_id = unwrap_temporal(component.get("RECURRENCE-ID"))
            uid = component.get("UID")
            if recurrence_id is None or uid is None or component.get("RRULE"):
                continue
            overrides.setdefault(str(uid), []).append(recurrence_id)
        return overrides

    def extract_event_dates(self, component: ICalEvent) -> list[date]:
        """Covered calendar days of a one-time entry.

        A single day, or every day in [start, end) when the entry ends on a
        later date. Days outside the target year are dropped.
        """
        dtstart = unwrap_temporal(component.get("DTSTART"))
        start = to_date(dtstart)
        if start is None:
            return []

        end: Optional[date] = None
        if component.get("DTEND") is not None:
            end = to_date(component.get("DTEND"))
        elif component.get("DURATION") is not None:
            duration = getattr(component.get("DURATION"), "dt", None)
            if isinstance(duration, timedelta) and dtstart is not None:
                end = to_date(dtstart + duration)

        if end is not None and end > start:
            days = [start + timedelta(days=offset) for offset in range((end - start).days)]
        else:
            days = [start]

        if self.year is not None:
            days = [day for day in days if day.year == self.year]
        return days

    def _create_event(self, day: date, component: ICalEvent) -> Event:
        return Event(
            date=day,
            summary=str(component.get("SUMMARY")),
            calendar_name=self.calendar_name,
            color=self.color,
            icon=self.icon,
            all_day=is_all_day(component),
        )

    def _create_marker(
        self, component: ICalEvent, overrides: dict[str, list[DateValue]]
    ) -> RecurringEventMarker:
        dtstart = unwrap_temporal(component.get("DTSTART"))
        if dtstart is None:
            raise FeedParseError("recurring entry has no DTSTART")

        rrules = [prop.to_ical().decode("utf-8") for prop in _as_list(component.get("RRULE"))]
        uid = str(component.get("UID")) if component.get("UID") is not None else None

        exdates = list(_iter_exdates(component))
        if uid is not None:
            exdates.extend(overrides.get(uid, []))

        return RecurringEventMarker(
            rrule="\n".join(f"RRULE:{rule}" for rule in rrules),
            dtstart=dtstart,
            exdates=exdates,
            summary=str(component.get("SUMMARY")),
            uid=uid,
            calendar_name=self.calendar_name,
            color=self.color,
            icon=self.icon,
            all_day=is_all_day(component),
        )
