"""Command-line entry for plannercal.

Loads the configured calendars for a year and prints what the planner
would highlight. Useful for checking a calendars.yml before generating.
"""

from __future__ import annotations

import argparse
import calendar
import sys
from datetime import date
from typing import Optional

from .config_loader import DEFAULT_CONFIG_PATH, load_calendar_config
from .ical_fetcher import ICalFetcher
from .loader import load_events
from .logging_config import configure_logging


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the plannercal CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="plannercal",
        description="Load calendar feed events for a planner year",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m plannercal --year 2025                   # Load and summarize 2025
  python -m plannercal --year 2025 --month 3         # Also list March events
  python -m plannercal --clear-cache                 # Drop cached feeds first
        """,
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        metavar="PATH",
        help=f"Calendar configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--year",
        type=int,
        default=date.today().year,
        help="Planner year (default: current year)",
    )
    parser.add_argument(
        "--month",
        type=int,
        choices=range(1, 13),
        metavar="N",
        help="List the events of month N (1-12)",
    )
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        help="Remove cached feeds before loading",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def _clear_cache(config_path: str) -> None:
    config = load_calendar_config(config_path)
    if config is None or not config.settings.cache_enabled:
        return
    with ICalFetcher(config.settings) as fetcher:
        fetcher.clear_cache()


def main(argv: Optional[list[str]] = None) -> int:
    """Run the plannercal CLI.

    Returns:
        Process exit code; 0 even when no calendar data is available
    """
    args = _create_parser().parse_args(argv)
    configure_logging(debug_mode=args.debug)

    if args.clear_cache:
        _clear_cache(args.config)

    store = load_events(args.year, config_path=args.config)
    if store is None:
        print("No calendar integration configured.")
        return 0

    stats = store.statistics()
    print(f"{args.year}: {stats.total_events} events across {stats.unique_dates} days")
    print(f"Busiest day: {stats.max_events_on_single_day} event(s)")
    print(f"Days with multiple events: {stats.dates_with_multiple_events}")

    if args.month:
        print()
        print(f"{calendar.month_name[args.month]} {args.year}")
        for event in store.dates_for_month(args.month):
            calendar_name = event.calendar_name or "-"
            print(f"  {event.date.isoformat()}  {event.display_label()}  [{calendar_name}]")

    return 0


if __name__ == "__main__":
    sys.exit(main())
