"""Data models for calendar event ingestion."""

from __future__ import annotations

from datetime import date as dt_date
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_COLOR = "CCCCCC"
DEFAULT_ICON = "•"


class CalendarDescriptor(BaseModel):
    """One configured calendar subscription."""

    name: str = Field(..., min_length=1, description="Human-readable calendar name")
    url: str = Field(..., description="iCalendar feed URL")
    color: str = Field(default=DEFAULT_COLOR, description="Hex color code (6 digits, no #)")
    icon: str = Field(default=DEFAULT_ICON, description="Display icon for this calendar's events")
    enabled: bool = Field(default=True, description="Whether the calendar is processed")

    model_config = ConfigDict(frozen=True)


class PipelineSettings(BaseModel):
    """Pipeline-wide tuning parameters for one run."""

    # Cache settings
    cache_enabled: bool = True
    cache_directory: str = ".cache/ical"
    cache_ttl_seconds: int = Field(default=86_400, ge=0)

    # Network settings
    timeout_seconds: float = Field(default=10, gt=0)
    max_retries: int = Field(default=3, ge=1)
    retry_delay_seconds: float = Field(default=2, ge=0)

    # Filter settings
    max_events_per_day: int = Field(default=3, ge=1)
    skip_all_day: bool = False
    exclude_patterns: tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)


class Event(BaseModel):
    """A calendar event occupying exactly one day."""

    kind: Literal["event"] = "event"
    date: dt_date
    summary: str
    calendar_name: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    all_day: bool = True

    model_config = ConfigDict(frozen=True)

    def __lt__(self, other: Event) -> bool:
        return self.date < other.date

    def week_number(self, year_start_monday: dt_date) -> int:
        """Calculate which week this date falls in (1-indexed).

        Args:
            year_start_monday: The Monday of week 1

        Returns:
            The week number (1-53 within the planner year)
        """
        return (self.date - year_start_monday).days // 7 + 1

    @property
    def day_of_week(self) -> str:
        """Day name of the event date (e.g. "Monday")."""
        return self.date.strftime("%A")

    def display_label(self, include_icon: bool = True) -> str:
        """Short display label for rendering.

        Args:
            include_icon: Whether to prefix the calendar icon

        Returns:
            Icon and summary joined by a space
        """
        parts = []
        if include_icon and self.icon:
            parts.append(self.icon)
        parts.append(self.summary)
        return " ".join(parts)

    def matches(self, other: Event) -> bool:
        """Check if this event matches another by date and summary."""
        return self.date == other.date and self.summary == other.summary


class RecurringEventMarker(BaseModel):
    """A recurring feed entry whose occurrences are expanded later.

    Carries the raw RRULE text and the provenance the expanded events inherit.
    """

    kind: Literal["recurring"] = "recurring"
    rrule: str
    dtstart: Union[datetime, dt_date]
    exdates: list[Union[datetime, dt_date]] = Field(default_factory=list)
    summary: str
    uid: Optional[str] = None
    calendar_name: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    all_day: bool = True


ParsedItem = Annotated[Union[Event, RecurringEventMarker], Field(discriminator="kind")]


class FetchFailure(str, Enum):
    """Reasons a feed fetch produced no content."""

    INVALID_URL = "invalid_url"
    RETRIES_EXHAUSTED = "retries_exhausted"


class FetchResult(BaseModel):
    """Result of fetching one feed."""

    success: bool
    content: Optional[str] = None
    failure: Optional[FetchFailure] = None
    error_message: Optional[str] = None
    attempts: int = 0
    from_cache: bool = False


class ParseFailure(str, Enum):
    """Reasons a whole feed produced no items."""

    MALFORMED_FEED = "malformed_feed"


class ParseResult(BaseModel):
    """Result of parsing one feed."""

    success: bool
    items: list[ParsedItem] = Field(default_factory=list)
    failure: Optional[ParseFailure] = None
    error_message: Optional[str] = None

    # Entries dropped by filters or per-entry errors
    skipped: int = 0

    @property
    def events(self) -> list[Event]:
        """Concrete one-day events."""
        return [item for item in self.items if item.kind == "event"]

    @property
    def markers(self) -> list[RecurringEventMarker]:
        """Recurring entries awaiting expansion."""
        return [item for item in self.items if item.kind == "recurring"]


class CalendarOutcome(BaseModel):
    """What one calendar contributed to a run."""

    calendar_name: str
    fetch_failure: Optional[FetchFailure] = None
    parse_failure: Optional[ParseFailure] = None
    error_message: Optional[str] = None
    event_count: int = 0
    marker_count: int = 0

    @property
    def succeeded(self) -> bool:
        """True when the calendar was fetched and parsed."""
        return self.fetch_failure is None and self.parse_failure is None


class StoreStatistics(BaseModel):
    """Aggregate counts over an event store."""

    total_events: int = 0
    unique_dates: int = 0
    max_events_on_single_day: int = 0
    dates_with_multiple_events: int = 0
