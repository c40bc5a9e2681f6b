"""Calendar event loading for one planner year.

Runs the ingestion pipeline:
- Load: read the calendar configuration; no enabled calendars means no
  calendar integration.
- Fetch+Parse: each enabled calendar in turn; one-time events go straight
  into the store, recurring markers are held back.
- Expand: every held marker is expanded over Jan 1..Dec 31 of the year.
- Report: store statistics are surfaced through diagnostics.
"""

from __future__ import annotations

import logging
import traceback
from datetime import date
from pathlib import Path
from typing import Optional, Union

import httpx

from .config_loader import DEFAULT_CONFIG_PATH, CalendarConfiguration, load_calendar_config
from .diagnostics import DiagnosticsSink, default_diagnostics
from .event_store import EventStore
from .exceptions import CalendarIntegrationError
from .ical_fetcher import ICalFetcher
from .ical_parser import ICalParser
from .models import CalendarDescriptor, CalendarOutcome, RecurringEventMarker
from .rrule_expander import RecurrenceExpander

logger = logging.getLogger(__name__)

TRACEBACK_LINES = 5


class CalendarEventLoader:
    """Builds an EventStore for one year from the configured calendars."""

    def __init__(
        self,
        config: CalendarConfiguration,
        diagnostics: Optional[DiagnosticsSink] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        """Initialize the loader.

        Args:
            config: Loaded calendar configuration
            diagnostics: Sink for progress and warning lines
            client: Optional shared HTTP client for feed downloads
        """
        self.config = config
        self._diagnostics = default_diagnostics(diagnostics)
        self._client = client
        self.outcomes: list[CalendarOutcome] = []

    def load(self, year: int) -> Optional[EventStore]:
        """Run the pipeline for a year.

        Returns:
            The populated store, or None when no calendars are enabled
        """
        calendars = self.config.enabled_calendars
        if not calendars:
            logger.debug("No enabled calendars; calendar integration inactive")
            return None

        settings = self.config.settings
        self._diagnostics.info(f"Loading events from {len(calendars)} calendar(s)...")

        store = EventStore(max_events_per_day=settings.max_events_per_day)
        self.outcomes = []
        markers: list[RecurringEventMarker] = []

        with ICalFetcher(settings, diagnostics=self._diagnostics, client=self._client) as fetcher:
            for calendar in calendars:
                try:
                    outcome, calendar_markers = self._process_calendar(
                        calendar, fetcher, store, year
                    )
                except (CalendarIntegrationError, ValueError, TypeError, OSError) as e:
                    self._diagnostics.warn(f"Skipping calendar {calendar.name}: {e}")
                    outcome = CalendarOutcome(calendar_name=calendar.name, error_message=str(e))
                    calendar_markers = []
                self.outcomes.append(outcome)
                markers.extend(calendar_markers)

        self._expand_markers(markers, store, year)

        stats = store.statistics()
        self._diagnostics.info(
            f"Loaded {stats.total_events} events across {stats.unique_dates} days"
        )
        return store

    def _process_calendar(
        self,
        calendar: CalendarDescriptor,
        fetcher: ICalFetcher,
        store: EventStore,
        year: int,
    ) -> tuple[CalendarOutcome, list[RecurringEventMarker]]:
        """Fetch and parse one calendar, inserting its one-time events."""
        settings = self.config.settings

        fetched = fetcher.fetch_feed(calendar.url, calendar_name=calendar.name)
        if not fetched.success:
            return (
                CalendarOutcome(
                    calendar_name=calendar.name,
                    fetch_failure=fetched.failure,
                    error_message=fetched.error_message,
                ),
                [],
            )

        parser = ICalParser(
            calendar_name=calendar.name,
            color=calendar.color,
            icon=calendar.icon,
            year=year,
            diagnostics=self._diagnostics,
        )
        parsed = parser.parse_feed(
            fetched.content,
            skip_all_day=settings.skip_all_day,
            exclude_patterns=settings.exclude_patterns,
        )
        if not parsed.success:
            return (
                CalendarOutcome(
                    calendar_name=calendar.name,
                    parse_failure=parsed.failure,
                    error_message=parsed.error_message,
                ),
                [],
            )

        markers: list[RecurringEventMarker] = []
        event_count = 0
        for item in parsed.items:
            if item.kind == "recurring":
                markers.append(item)
            else:
                store.add_event(item)
                event_count += 1

        logger.debug(
            "Calendar %s: %d event(s), %d recurring marker(s)",
            calendar.name,
            event_count,
            len(markers),
        )
        return (
            CalendarOutcome(
                calendar_name=calendar.name,
                event_count=event_count,
                marker_count=len(markers),
            ),
            markers,
        )

    def _expand_markers(
        self, markers: list[RecurringEventMarker], store: EventStore, year: int
    ) -> None:
        if not markers:
            return

        self._diagnostics.info(f"Expanding {len(markers)} recurring event(s)...")
        expander = RecurrenceExpander(diagnostics=self._diagnostics)
        year_start = date(year, 1, 1)
        year_end = date(year, 12, 31)
        for marker in markers:
            for event in expander.expand(marker, year_start, year_end):
                store.add_event(event)


def load_events(
    year: int,
    config_path: Union[str, Path] = DEFAULT_CONFIG_PATH,
    diagnostics: Optional[DiagnosticsSink] = None,
    client: Optional[httpx.Client] = None,
) -> Optional[EventStore]:
    """Load events from the calendars configured in a YAML file.

    Any failure escaping the pipeline is logged and turned into None, so
    callers treat "no calendar data" as a normal state.

    Args:
        year: Target year
        config_path: Path to calendars.yml
        diagnostics: Sink for progress and warning lines
        client: Optional shared HTTP client for feed downloads

    Returns:
        EventStore with loaded events, or None if there is no configuration,
        no enabled calendar, or the run failed
    """
    sink = default_diagnostics(diagnostics)
    try:
        config = load_calendar_config(config_path, diagnostics=sink)
        if config is None:
            return None
        return CalendarEventLoader(config, diagnostics=sink, client=client).load(year)
    # Last-resort boundary for the whole run
    except Exception as e:
        sink.warn(f"Failed to load calendar events: {e}")
        trace = traceback.format_exception(type(e), e, e.__traceback__)
        sink.warn("".join(trace[-TRACEBACK_LINES:]).rstrip())
        return None
