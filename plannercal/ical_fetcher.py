"""HTTP client for downloading iCalendar feeds with caching and retries."""

from __future__ import annotations

import logging
import time
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from .diagnostics import DiagnosticsSink, default_diagnostics, sanitize_url
from .exceptions import FeedFetchError, FeedRedirectError
from .feed_cache import FeedCache
from .models import FetchFailure, FetchResult, PipelineSettings

logger = logging.getLogger(__name__)

USER_AGENT = "plannercal Calendar Integration"
MAX_REDIRECTS = 5


def create_http_client(
    settings: PipelineSettings, transport: Optional[httpx.BaseTransport] = None
) -> httpx.Client:
    """Create the HTTP client used for feed downloads.

    Args:
        settings: Pipeline settings (network timeout)
        transport: Optional transport override, e.g. httpx.MockTransport in tests

    Returns:
        Client configured with the feed timeout and User-Agent; redirects
        are followed by the fetcher itself
    """
    return httpx.Client(
        transport=transport,
        timeout=httpx.Timeout(settings.timeout_seconds),
        verify=True,
        headers={"User-Agent": USER_AGENT},
    )


class ICalFetcher:
    """Synchronous feed downloader with a TTL disk cache and bounded retries."""

    def __init__(
        self,
        settings: PipelineSettings,
        diagnostics: Optional[DiagnosticsSink] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            settings: Pipeline settings (cache, timeout and retry values)
            diagnostics: Sink for progress and failure lines
            client: Optional shared HTTP client; the fetcher does not close it
        """
        self.settings = settings
        self._diagnostics = default_diagnostics(diagnostics)
        self._client = client
        self._owns_client = client is None

        self.cache: Optional[FeedCache] = None
        if settings.cache_enabled:
            self.cache = FeedCache(
                settings.cache_directory, settings.cache_ttl_seconds, diagnostics=self._diagnostics
            )

        logger.debug(
            "ICal fetcher initialized (cache: %s, shared_client: %s)",
            self.cache_enabled,
            not self._owns_client,
        )

    def __enter__(self) -> ICalFetcher:
        return self

    def __exit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        self.close()

    @property
    def cache_enabled(self) -> bool:
        return self.cache is not None and self.cache.enabled

    def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._client is not None and self._owns_client:
            self._client.close()
            logger.debug("Closed HTTP client")
            self._client = None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = create_http_client(self.settings)
            self._owns_client = True
        return self._client

    @staticmethod
    def is_valid_url(url: Any) -> bool:
        """Check that a URL is a well-formed HTTP or HTTPS URL."""
        if not isinstance(url, str) or not url:
            return False
        try:
            parsed = urlparse(url)
            if parsed.scheme not in ("http", "https") or not parsed.hostname:
                return False
            httpx.URL(url)
        except (ValueError, httpx.InvalidURL):
            return False
        return True

    def fetch(self, url: Any, calendar_name: Optional[str] = None) -> Optional[str]:
        """Fetch feed text for a URL.

        Args:
            url: Feed URL to fetch
            calendar_name: Calendar name used in diagnostics

        Returns:
            Feed text, or None on failure
        """
        return self.fetch_feed(url, calendar_name).content

    def fetch_feed(self, url: Any, calendar_name: Optional[str] = None) -> FetchResult:
        """Fetch feed text for a URL, reporting why a fetch failed.

        A fresh cache entry bypasses the network entirely. Otherwise up to
        ``max_retries`` attempts are made with ``retry_delay_seconds`` between
        failed attempts. A successful download is written back to the cache.

        Args:
            url: Feed URL to fetch
            calendar_name: Calendar name used in diagnostics

        Returns:
            FetchResult with content on success, or a FetchFailure reason
        """
        name = calendar_name or "calendar"

        if not self.is_valid_url(url):
            message = f"Invalid URL for calendar {name}: {sanitize_url(url)}"
            self._diagnostics.warn(message)
            return FetchResult(success=False, failure=FetchFailure.INVALID_URL, error_message=message)

        if self.cache is not None:
            cached = self.cache.read(url)
            if cached is not None:
                self._diagnostics.info(f"Using cached data for {name}")
                return FetchResult(success=True, content=cached, from_cache=True)
            logger.debug("Cache miss for %s", name)

        result = self._fetch_with_retries(url, name)

        if result.success and result.content is not None and self.cache is not None:
            self.cache.write(url, result.content)

        return result

    def _fetch_with_retries(self, url: str, name: str) -> FetchResult:
        max_retries = self.settings.max_retries
        last_error = "no attempts made"

        for attempt in range(1, max_retries + 1):
            try:
                content = self._fetch_once(url)
            except FeedFetchError as e:
                last_error = e.message
                if attempt < max_retries:
                    self._diagnostics.warn(f"Fetch attempt {attempt} failed for {name}: {e.message}")
                    time.sleep(self.settings.retry_delay_seconds)
                continue

            self._diagnostics.info(f"Fetched {name} from network (attempt {attempt})")
            return FetchResult(success=True, content=content, attempts=attempt)

        message = f"Failed to fetch {name} after {max_retries} attempts: {last_error}"
        self._diagnostics.warn(message)
        return FetchResult(
            success=False,
            failure=FetchFailure.RETRIES_EXHAUSTED,
            error_message=message,
            attempts=max_retries,
        )

    def _fetch_once(self, url: str) -> str:
        """Perform a single GET, following up to MAX_REDIRECTS redirects.

        Redirects are walked here rather than by the client, so an injected
        client behaves the same whatever its own redirect settings are.

        Raises:
            FeedRedirectError: The redirect limit was exceeded
            FeedFetchError: Any network error or non-2xx response
        """
        client = self._get_client()
        redirects = 0
        try:
            response = client.get(
                url,
                headers={"User-Agent": USER_AGENT},
                timeout=self.settings.timeout_seconds,
                follow_redirects=False,
            )
            while response.next_request is not None:
                if redirects >= MAX_REDIRECTS:
                    raise FeedRedirectError(f"Too many redirects for {sanitize_url(url)}")
                redirects += 1
                response = client.send(response.next_request, follow_redirects=False)
        except httpx.TimeoutException as e:
            raise FeedFetchError(f"Request timeout after {self.settings.timeout_seconds}s") from e
        except httpx.HTTPError as e:
            raise FeedFetchError(f"Network error: {type(e).__name__}") from e

        if not response.is_success:
            raise FeedFetchError(
                f"HTTP error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        logger.debug(
            "Fetched %s (%d bytes, %d redirect(s))",
            sanitize_url(url),
            len(response.content),
            redirects,
        )
        return response.text

    def clear_cache(self, url: Optional[str] = None) -> None:
        """Clear the cache entry for one URL, or the whole cache."""
        if self.cache is not None:
            self.cache.clear(url)
