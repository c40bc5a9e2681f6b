"""Diagnostics sink for user-facing pipeline progress and warnings.

Components report progress (calendars loaded, cache hits, fetch outcomes,
event totals) through a sink rather than writing to the console, so callers
decide where the lines go and tests can inspect them directly.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol
from urllib.parse import urlsplit, urlunsplit


class DiagnosticsSink(Protocol):
    """Protocol for pipeline diagnostics."""

    def info(self, message: str) -> None:
        """Report progress.

        Args:
            message: Human-readable progress line
        """
        ...

    def warn(self, message: str) -> None:
        """Report a recoverable problem.

        Args:
            message: Human-readable diagnostic line
        """
        ...


class LoggingDiagnostics:
    """Diagnostics sink that forwards to a standard logger."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger("plannercal")

    def info(self, message: str) -> None:
        self._logger.info(message)

    def warn(self, message: str) -> None:
        self._logger.warning(message)


def default_diagnostics(diagnostics: Optional[DiagnosticsSink]) -> DiagnosticsSink:
    """Return the given sink, or a logging-backed one when none is given."""
    return diagnostics if diagnostics is not None else LoggingDiagnostics()


def sanitize_url(url: object) -> str:
    """Hide query-string content of a URL for display.

    Calendar feed URLs often carry private tokens in the query string.

    Args:
        url: URL to sanitize

    Returns:
        URL with any query replaced by ``[REDACTED]``, or ``[INVALID URL]``
    """
    if not isinstance(url, str):
        return "[INVALID URL]"
    try:
        parts = urlsplit(url)
    except ValueError:
        return "[INVALID URL]"
    if not parts.query:
        return url
    return urlunsplit(parts._replace(query="[REDACTED]"))
