"""Disk cache for raw calendar feeds with TTL expiry and atomic writes."""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Optional, Union

from .diagnostics import DiagnosticsSink, default_diagnostics

logger = logging.getLogger(__name__)

CACHE_FILE_EXTENSION = ".ics"


class FeedCache:
    """Raw feed text cached on disk, one file per URL.

    Entries are named by the SHA-256 of the URL and hold the feed text
    verbatim. Staleness is judged purely by file modification time.
    """

    def __init__(
        self,
        directory: Union[str, Path],
        ttl_seconds: int,
        diagnostics: Optional[DiagnosticsSink] = None,
    ) -> None:
        """Create a FeedCache.

        The directory is created if needed. If that fails the cache stays
        disabled for its lifetime.

        Args:
            directory: Directory holding cache entries
            ttl_seconds: Maximum age of a usable entry
            diagnostics: Sink for cache warnings
        """
        self._directory = Path(directory)
        self._ttl_seconds = ttl_seconds
        self._diagnostics = default_diagnostics(diagnostics)
        self.enabled = self._setup_directory()

    @property
    def directory(self) -> Path:
        return self._directory

    def _setup_directory(self) -> bool:
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self._diagnostics.warn(f"Failed to create cache directory: {e}")
            return False
        return True

    def path_for(self, url: str) -> Path:
        """Cache file path for a URL."""
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()
        return self._directory / f"{digest}{CACHE_FILE_EXTENSION}"

    def read(self, url: str, now: Optional[float] = None) -> Optional[str]:
        """Return cached content if present and within TTL.

        Args:
            url: Feed URL
            now: Current epoch seconds (defaults to time.time())

        Returns:
            Cached feed text, or None on miss or stale entry
        """
        if not self.enabled:
            return None

        path = self.path_for(url)
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.debug("Could not stat cache entry %s: %s", path, e)
            return None

        age_seconds = (now if now is not None else time.time()) - mtime
        if age_seconds > self._ttl_seconds:
            logger.debug("Cache entry %s is stale (%.0fs old)", path.name, age_seconds)
            return None

        try:
            # newline="" keeps CRLF line endings exactly as fetched
            with open(path, encoding="utf-8", newline="") as fh:
                return fh.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Could not read cache entry %s: %s", path, e)
            return None

    def write(self, url: str, content: str) -> bool:
        """Persist feed content for a URL.

        Writes to a temporary file in the cache directory then os.replace()
        into place. Failures are reported, never raised.

        Returns:
            True if the entry was written
        """
        if not self.enabled:
            return False

        path = self.path_for(url)
        tmp_name: Optional[str] = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=str(self._directory), suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
                fh.write(content)
            os.replace(tmp_name, path)
        except OSError as e:
            self._diagnostics.warn(f"Failed to write cache: {e}")
            if tmp_name:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
            return False

        logger.debug("Cached %d characters to %s", len(content), path.name)
        return True

    def clear(self, url: Optional[str] = None) -> None:
        """Remove the entry for one URL, or every entry when url is None."""
        if not self.enabled:
            return

        if url is not None:
            with contextlib.suppress(FileNotFoundError):
                self.path_for(url).unlink()
            return

        shutil.rmtree(self._directory, ignore_errors=True)
        self.enabled = self._setup_directory()
