"""Shared fixtures for plannercal tests."""

from collections.abc import Generator
from typing import Any, Callable, Optional

import httpx
import pytest

from plannercal.ical_fetcher import create_http_client
from plannercal.models import PipelineSettings


class RecordingDiagnostics:
    """Diagnostics sink that keeps every line for inspection."""

    def __init__(self) -> None:
        self.infos: list[str] = []
        self.warnings: list[str] = []

    def info(self, message: str) -> None:
        self.infos.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def all_lines(self) -> list[str]:
        return self.infos + self.warnings


def pytest_configure(config: Any) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Whole-pipeline tests")


@pytest.fixture
def diagnostics() -> RecordingDiagnostics:
    return RecordingDiagnostics()


@pytest.fixture
def settings(tmp_path: Any) -> PipelineSettings:
    """Pipeline settings with an isolated cache and no retry delay."""
    return PipelineSettings(
        cache_directory=str(tmp_path / "cache"),
        cache_ttl_seconds=3600,
        timeout_seconds=5,
        max_retries=3,
        retry_delay_seconds=0,
    )


@pytest.fixture
def make_ics() -> Callable[..., str]:
    """Build iCalendar text from VEVENT bodies.

    Each argument is the property block of one VEVENT, one property per line.
    """

    def _make(*events: str) -> str:
        lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//plannercal tests//EN"]
        for index, body in enumerate(events):
            props = [line.strip() for line in body.strip().splitlines() if line.strip()]
            lines.append("BEGIN:VEVENT")
            if not any(prop.startswith("UID") for prop in props):
                lines.append(f"UID:event-{index}@plannercal.test")
            lines.append("DTSTAMP:20250101T000000Z")
            lines.extend(props)
            lines.append("END:VEVENT")
        lines.append("END:VCALENDAR")
        return "\r\n".join(lines) + "\r\n"

    return _make


class FeedServer:
    """Routes for an httpx.MockTransport, counting requests per URL."""

    def __init__(self) -> None:
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.calls: list[str] = []

    def add_feed(self, url: str, body: str, status_code: int = 200) -> None:
        self.routes[url] = lambda request: httpx.Response(status_code, text=body)

    def add_route(self, url: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[url] = handler

    def call_count(self, url: Optional[str] = None) -> int:
        if url is None:
            return len(self.calls)
        return sum(1 for called in self.calls if called == url)

    def handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        handler = self.routes.get(url)
        if handler is None:
            return httpx.Response(404, text="not found")
        return handler(request)


@pytest.fixture
def feed_server() -> FeedServer:
    return FeedServer()


@pytest.fixture
def http_client(
    settings: PipelineSettings, feed_server: FeedServer
) -> Generator[httpx.Client, None, None]:
    """HTTP client whose requests are answered by feed_server."""
    client = create_http_client(settings, transport=httpx.MockTransport(feed_server.handle))
    yield client
    client.close()
