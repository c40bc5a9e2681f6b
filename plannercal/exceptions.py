"""Calendar integration exceptions for error handling."""

from typing import Optional


class CalendarIntegrationError(Exception):
    """Base exception for calendar integration errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class FeedFetchError(CalendarIntegrationError):
    """Exception raised when a single fetch attempt fails."""


class FeedRedirectError(FeedFetchError):
    """Exception raised when a feed redirects more often than allowed."""


class FeedParseError(CalendarIntegrationError):
    """Exception raised when feed content cannot be parsed."""


class RecurrenceExpansionError(CalendarIntegrationError):
    """Exception raised when a recurrence rule cannot be evaluated."""
