"""plannercal - calendar feed ingestion for planner generation.

Turns configured iCalendar subscriptions into a per-day collection of
events for one planner year. Entry point: ``load_events(year, config_path)``.
"""

__version__ = "0.1.0"

from .event_store import EventStore
from .loader import CalendarEventLoader, load_events
from .models import CalendarDescriptor, Event, PipelineSettings, RecurringEventMarker

__all__ = [
    "CalendarDescriptor",
    "CalendarEventLoader",
    "Event",
    "EventStore",
    "PipelineSettings",
    "RecurringEventMarker",
    "load_events",
]
