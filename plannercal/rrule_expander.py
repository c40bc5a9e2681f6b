"""RRULE expansion of recurring-event markers into dated events."""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Optional, Union

from dateutil.rrule import rruleset, rrulestr

from .diagnostics import DiagnosticsSink, default_diagnostics
from .exceptions import RecurrenceExpansionError
from .models import Event, RecurringEventMarker

logger = logging.getLogger(__name__)


def to_naive_datetime(value: Union[date, datetime]) -> datetime:
    """Wall-clock datetime for a date or datetime, with tzinfo dropped.

    Occurrence days are read in the zone the entry was written in, so
    rules are evaluated on naive wall-clock values.
    """
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    return datetime.combine(value, time.min)


def build_rule_set(marker: RecurringEventMarker) -> rruleset:
    """Build the rule set for a marker, including its EXDATEs.

    Raises:
        RecurrenceExpansionError: If the rule text cannot be parsed
    """
    dtstart = to_naive_datetime(marker.dtstart)
    try:
        parsed = rrulestr(marker.rrule, dtstart=dtstart, forceset=True, ignoretz=True)
    except (ValueError, TypeError) as e:
        raise RecurrenceExpansionError(f"Invalid RRULE {marker.rrule!r}: {e}") from e

    start_tz = marker.dtstart.tzinfo if isinstance(marker.dtstart, datetime) else None
    for exdate in marker.exdates:
        if isinstance(exdate, datetime):
            if exdate.tzinfo is not None and start_tz is not None:
                exdate = exdate.astimezone(start_tz)
            parsed.exdate(exdate.replace(tzinfo=None))
        else:
            # Date exclusions apply to the occurrence at the entry's start time
            parsed.exdate(datetime.combine(exdate, dtstart.time()))
    return parsed


class RecurrenceExpander:
    """Expands recurring markers into one Event per occurrence."""

    def __init__(self, diagnostics: Optional[DiagnosticsSink] = None) -> None:
        self._diagnostics = default_diagnostics(diagnostics)

    def expand(
        self, marker: RecurringEventMarker, interval_start: date, interval_end: date
    ) -> list[Event]:
        """Expand a marker within the closed interval [interval_start, interval_end].

        Evaluation stops at the end of the interval, so unbounded rules are
        safe to expand.

        Args:
            marker: Recurring marker produced by the parser
            interval_start: First day of the interval
            interval_end: Last day of the interval (inclusive)

        Returns:
            One Event per occurrence; empty if the rule cannot be evaluated
        """
        try:
            rule_set = build_rule_set(marker)
            window_start = datetime.combine(interval_start, time.min)
            window_end = datetime.combine(interval_end, time.max)
            occurrences = rule_set.between(window_start, window_end, inc=True)
        except RecurrenceExpansionError as e:
            self._diagnostics.warn(f"Error expanding recurring event {marker.summary!r}: {e.message}")
            return []
        except (ValueError, TypeError, OverflowError) as e:
            self._diagnostics.warn(f"Error expanding recurring event {marker.summary!r}: {e}")
            return []

        events = [
            Event(
                date=occurrence.date(),
                summary=marker.summary,
                calendar_name=marker.calendar_name,
                color=marker.color,
                icon=marker.icon,
                all_day=marker.all_day,
            )
            for occurrence in occurrences
        ]
        logger.debug(
            "Expanded %r into %d occurrence(s) between %s and %s",
            marker.summary,
            len(events),
            interval_start,
            interval_end,
        )
        return events
