"""
Integration tests for the calendar loading pipeline.

Config file, fetcher, parser, expander and store are exercised together;
only the network is replaced by httpx.MockTransport.
"""

from datetime import date
from pathlib import Path
from unittest.mock import patch

import pytest

from plannercal import CalendarEventLoader, load_events
from plannercal.config_loader import load_calendar_config
from plannercal.ical_parser import ICalParser
from plannercal.models import FetchFailure, ParseFailure

pytestmark = pytest.mark.integration

WORK_URL = "https://example.com/work.ics"
HOME_URL = "https://example.com/home.ics"


@pytest.fixture
def write_config(tmp_path):
    """Write a calendars.yml with an isolated cache directory."""

    def _write(calendars_yaml: str, filters_yaml: str = "") -> Path:
        cache_dir = tmp_path / "cache"
        path = tmp_path / "calendars.yml"
        path.write_text(
            f"""
calendars:
{calendars_yaml}
cache:
  directory: {cache_dir}
network:
  retry_delay_seconds: 0
filters:
  max_events_per_day: 3
{filters_yaml}
""",
            encoding="utf-8",
        )
        return path

    return _write


STANDUP = """
    UID:standup@example.com
    SUMMARY:Standup
    DTSTART;VALUE=DATE:20250101
    RRULE:FREQ=DAILY
"""


def test_daily_standup_fills_every_day(write_config, make_ics, feed_server, http_client, diagnostics):
    feed_server.add_feed(WORK_URL, make_ics(STANDUP))
    config_path = write_config(f"  - name: Work\n    url: {WORK_URL}\n")

    store = load_events(2025, config_path=config_path, diagnostics=diagnostics, client=http_client)

    assert store is not None
    assert store.total_events == 365
    assert len(store.dates_with_events()) == 365
    assert all(store.event_count(day) == 1 for day in store.dates_with_events())
    assert store.date_for_day(date(2025, 6, 1)).summary == "Standup"
    assert "Loading events from 1 calendar(s)..." in diagnostics.infos
    assert "Expanding 1 recurring event(s)..." in diagnostics.infos
    assert "Loaded 365 events across 365 days" in diagnostics.infos


def test_invalid_calendar_url_does_not_stop_others(
    write_config, make_ics, feed_server, http_client, diagnostics
):
    feed_server.add_feed(
        HOME_URL,
        make_ics(
            """
            SUMMARY:Dentist
            DTSTART:20250312T150000Z
            DTEND:20250312T160000Z
            """
        ),
    )
    config_path = write_config(
        "  - name: Broken\n    url: not-a-url\n"
        f"  - name: Home\n    url: {HOME_URL}\n    icon: H\n"
    )

    store = load_events(2025, config_path=config_path, diagnostics=diagnostics, client=http_client)

    assert store is not None
    assert [e.display_label() for e in store.dates_for_month(3)] == ["H Dentist"]
    assert "Invalid URL for calendar Broken: not-a-url" in diagnostics.warnings


def test_missing_config_returns_none(tmp_path, diagnostics):
    assert load_events(2025, config_path=tmp_path / "missing.yml", diagnostics=diagnostics) is None


def test_all_calendars_disabled_returns_none(write_config, feed_server, http_client, diagnostics):
    config_path = write_config(f"  - name: Work\n    url: {WORK_URL}\n    enabled: false\n")

    assert load_events(2025, config_path=config_path, diagnostics=diagnostics, client=http_client) is None
    assert feed_server.call_count() == 0


def test_unexpected_failure_returns_none(write_config, diagnostics):
    config_path = write_config(f"  - name: Work\n    url: {WORK_URL}\n")

    with patch.object(CalendarEventLoader, "load", side_effect=RuntimeError("disk on fire")):
        store = load_events(2025, config_path=config_path, diagnostics=diagnostics)

    assert store is None
    assert diagnostics.warnings[0] == "Failed to load calendar events: disk on fire"
    assert "RuntimeError: disk on fire" in diagnostics.warnings[1]


def test_exclusions_and_cap_apply_across_calendars(
    write_config, make_ics, feed_server, http_client, diagnostics
):
    feed_server.add_feed(
        WORK_URL,
        make_ics(
            """
            SUMMARY:Planning
            DTSTART;VALUE=DATE:20250203
            """,
            """
            SUMMARY:Review
            DTSTART;VALUE=DATE:20250203
            """,
            """
            SUMMARY:Team Lunch (cancelled)
            DTSTART;VALUE=DATE:20250203
            """,
        ),
    )
    feed_server.add_feed(
        HOME_URL,
        make_ics(
            """
            SUMMARY:Gym
            DTSTART;VALUE=DATE:20250203
            """,
            """
            SUMMARY:Groceries
            DTSTART;VALUE=DATE:20250203
            """,
        ),
    )
    config_path = write_config(
        f"  - name: Work\n    url: {WORK_URL}\n  - name: Home\n    url: {HOME_URL}\n",
        filters_yaml='  exclude_patterns:\n    - "cancelled"\n',
    )

    store = load_events(2025, config_path=config_path, diagnostics=diagnostics, client=http_client)

    assert [e.summary for e in store.events_for_date(date(2025, 2, 3))] == [
        "Planning",
        "Review",
        "Gym",
    ]
    assert store.dropped_events == 1


def test_one_time_events_take_precedence_over_recurring(
    write_config, make_ics, feed_server, http_client, diagnostics
):
    feed_server.add_feed(WORK_URL, make_ics(STANDUP))
    feed_server.add_feed(
        HOME_URL,
        make_ics(
            """
            SUMMARY:Holiday
            DTSTART;VALUE=DATE:20250101
            """
        ),
    )
    config_path = write_config(
        f"  - name: Work\n    url: {WORK_URL}\n  - name: Home\n    url: {HOME_URL}\n",
        filters_yaml="",
    )
    config = load_calendar_config(config_path, diagnostics=diagnostics)
    config.settings = config.settings.model_copy(update={"max_events_per_day": 1})

    store = CalendarEventLoader(config, diagnostics=diagnostics, client=http_client).load(2025)

    assert store.date_for_day(date(2025, 1, 1)).summary == "Holiday"
    assert store.date_for_day(date(2025, 1, 2)).summary == "Standup"


def test_outcomes_record_each_calendar(
    write_config, make_ics, feed_server, http_client, diagnostics
):
    feed_server.add_feed(WORK_URL, "garbage that is not a calendar")
    feed_server.add_feed(HOME_URL, make_ics(STANDUP))
    config_path = write_config(
        f"  - name: Work\n    url: {WORK_URL}\n"
        f"  - name: Home\n    url: {HOME_URL}\n"
        "  - name: Gone\n    url: https://example.com/gone.ics\n"
    )
    config = load_calendar_config(config_path, diagnostics=diagnostics)
    loader = CalendarEventLoader(config, diagnostics=diagnostics, client=http_client)

    store = loader.load(2025)

    work, home, gone = loader.outcomes
    assert work.parse_failure == ParseFailure.MALFORMED_FEED
    assert home.succeeded and home.marker_count == 1
    assert gone.fetch_failure == FetchFailure.RETRIES_EXHAUSTED
    assert store.total_events == 365


def test_second_run_uses_cache(write_config, make_ics, feed_server, http_client, diagnostics):
    feed_server.add_feed(WORK_URL, make_ics(STANDUP))
    config_path = write_config(f"  - name: Work\n    url: {WORK_URL}\n")

    load_events(2025, config_path=config_path, diagnostics=diagnostics, client=http_client)
    store = load_events(2025, config_path=config_path, diagnostics=diagnostics, client=http_client)

    assert store.total_events == 365
    assert feed_server.call_count(WORK_URL) == 1
    assert "Using cached data for Work" in diagnostics.infos


def flaky_parse_feed(error):
    """parse_feed replacement that raises ``error`` for the Work calendar only."""
    original = ICalParser.parse_feed

    def parse_feed(self, feed_text, *args, **kwargs):
        if self.calendar_name == "Work":
            raise error
        return original(self, feed_text, *args, **kwargs)

    return parse_feed


def test_calendar_failure_is_isolated(write_config, make_ics, feed_server, http_client, diagnostics):
    feed_server.add_feed(WORK_URL, make_ics(STANDUP))
    feed_server.add_feed(HOME_URL, make_ics(STANDUP))
    config_path = write_config(
        f"  - name: Work\n    url: {WORK_URL}\n  - name: Home\n    url: {HOME_URL}\n"
    )
    config = load_calendar_config(config_path, diagnostics=diagnostics)
    loader = CalendarEventLoader(config, diagnostics=diagnostics, client=http_client)

    with patch.object(ICalParser, "parse_feed", flaky_parse_feed(ValueError("bad component"))):
        store = loader.load(2025)

    assert store.total_events == 365
    assert "Skipping calendar Work: bad component" in diagnostics.warnings
    assert loader.outcomes[0].error_message == "bad component"
    assert loader.outcomes[1].succeeded


def test_programming_error_reaches_run_guard(write_config, make_ics, feed_server, http_client, diagnostics):
    feed_server.add_feed(WORK_URL, make_ics(STANDUP))
    config_path = write_config(f"  - name: Work\n    url: {WORK_URL}\n")

    with patch.object(ICalParser, "parse_feed", flaky_parse_feed(RuntimeError("bug"))):
        store = load_events(2025, config_path=config_path, diagnostics=diagnostics, client=http_client)

    assert store is None
    assert "Failed to load calendar events: bug" in diagnostics.warnings
