"""plannercal.config_loader

Calendar configuration loader.

- Reads a YAML file describing calendar subscriptions plus cache, network
  and filter settings.
- A missing file disables calendar integration (returns None).
- Malformed entries and settings are skipped or defaulted one at a time;
  a bad entry never aborts the whole load.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import ValidationError

from .diagnostics import DiagnosticsSink, default_diagnostics
from .models import DEFAULT_COLOR, DEFAULT_ICON, CalendarDescriptor, PipelineSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/calendars.yml"

DEFAULT_CACHE_CONFIG: dict[str, Any] = {
    "enabled": True,
    "directory": ".cache/ical",
    "ttl_hours": 24,
}

DEFAULT_NETWORK_CONFIG: dict[str, Any] = {
    "timeout_seconds": 10,
    "max_retries": 3,
    "retry_delay_seconds": 2,
}

DEFAULT_FILTER_CONFIG: dict[str, Any] = {
    "skip_all_day": False,
    "max_events_per_day": 3,
    "exclude_patterns": [],
}


@dataclass
class CalendarConfiguration:
    """Loaded calendar configuration.

    Fields:
        calendars: every valid calendar entry, enabled or not
        settings: pipeline-wide tuning parameters
        source_path: file the configuration was read from, if any
    """

    calendars: list[CalendarDescriptor] = field(default_factory=list)
    settings: PipelineSettings = field(default_factory=PipelineSettings)
    source_path: Optional[Path] = None

    @property
    def enabled_calendars(self) -> list[CalendarDescriptor]:
        """Calendars that should be fetched."""
        return [calendar for calendar in self.calendars if calendar.enabled]

    def any(self) -> bool:
        """Check if any calendars are configured."""
        return bool(self.calendars)

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        diagnostics: Optional[DiagnosticsSink] = None,
        source_path: Optional[Path] = None,
    ) -> CalendarConfiguration:
        """Create a configuration from a plain mapping, applying defaults.

        Each calendar entry is validated on its own. Settings that are the
        wrong type or out of range fall back to their defaults with a warning.
        """
        sink = default_diagnostics(diagnostics)
        if data is None:
            data = {}

        calendars = _load_calendars(data.get("calendars"), sink)

        cache = _section(data, "cache", DEFAULT_CACHE_CONFIG, sink)
        network = _section(data, "network", DEFAULT_NETWORK_CONFIG, sink)
        filters = _section(data, "filters", DEFAULT_FILTER_CONFIG, sink)

        ttl_hours = _coerce_number(cache, "ttl_hours", DEFAULT_CACHE_CONFIG["ttl_hours"], 0, sink)

        settings = PipelineSettings(
            cache_enabled=_coerce_bool(cache, "enabled", DEFAULT_CACHE_CONFIG["enabled"], sink),
            cache_directory=str(cache.get("directory") or DEFAULT_CACHE_CONFIG["directory"]),
            cache_ttl_seconds=int(ttl_hours * 3600),
            timeout_seconds=_coerce_number(
                network, "timeout_seconds", DEFAULT_NETWORK_CONFIG["timeout_seconds"], 0.001, sink
            ),
            max_retries=int(
                _coerce_number(network, "max_retries", DEFAULT_NETWORK_CONFIG["max_retries"], 1, sink)
            ),
            retry_delay_seconds=_coerce_number(
                network, "retry_delay_seconds", DEFAULT_NETWORK_CONFIG["retry_delay_seconds"], 0, sink
            ),
            max_events_per_day=int(
                _coerce_number(
                    filters, "max_events_per_day", DEFAULT_FILTER_CONFIG["max_events_per_day"], 1, sink
                )
            ),
            skip_all_day=_coerce_bool(
                filters, "skip_all_day", DEFAULT_FILTER_CONFIG["skip_all_day"], sink
            ),
            exclude_patterns=_coerce_patterns(filters.get("exclude_patterns"), sink),
        )

        return cls(calendars=calendars, settings=settings, source_path=source_path)


def _section(
    data: dict[str, Any], key: str, defaults: dict[str, Any], sink: DiagnosticsSink
) -> dict[str, Any]:
    """Merge one settings section over its defaults."""
    merged = dict(defaults)
    raw = data.get(key)
    if raw is None:
        return merged
    if not isinstance(raw, dict):
        sink.warn(f"Calendar config section '{key}' is not a mapping; using defaults")
        return merged
    merged.update(raw)
    return merged


def _coerce_number(
    section: dict[str, Any], key: str, default: float, minimum: float, sink: DiagnosticsSink
) -> float:
    raw = section.get(key, default)
    if isinstance(raw, bool):
        sink.warn(f"Calendar config {key}={raw!r} is not a number; using default {default}")
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        sink.warn(f"Calendar config {key}={raw!r} is not a number; using default {default}")
        return default
    if value < minimum:
        sink.warn(f"Calendar config {key}={raw!r} below minimum {minimum}; using default {default}")
        return default
    return value


def _coerce_bool(section: dict[str, Any], key: str, default: bool, sink: DiagnosticsSink) -> bool:
    raw = section.get(key, default)
    if isinstance(raw, bool):
        return raw
    sink.warn(f"Calendar config {key}={raw!r} is not true/false; using default {default}")
    return default


def _coerce_patterns(raw: Any, sink: DiagnosticsSink) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        return (raw,)
    if not isinstance(raw, (list, tuple)):
        sink.warn("Calendar config exclude_patterns is not a list; ignoring it")
        return ()
    return tuple(str(pattern) for pattern in raw if pattern is not None)


def _load_calendars(raw: Any, sink: DiagnosticsSink) -> list[CalendarDescriptor]:
    """Validate calendar entries one at a time, skipping bad ones."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        sink.warn("Calendar config 'calendars' is not a list; no calendars loaded")
        return []

    calendars: list[CalendarDescriptor] = []
    for entry in raw:
        if not isinstance(entry, dict):
            sink.warn(f"Skipping invalid calendar entry: {entry!r}")
            continue
        if not entry.get("name") or not entry.get("url"):
            sink.warn(f"Skipping calendar entry without name or url: {entry.get('name')!r}")
            continue

        try:
            calendars.append(
                CalendarDescriptor(
                    name=str(entry["name"]),
                    url=str(entry["url"]),
                    color=str(entry.get("color") or DEFAULT_COLOR),
                    icon=str(entry.get("icon") or DEFAULT_ICON),
                    enabled=entry.get("enabled", True),
                )
            )
        except ValidationError as e:
            sink.warn(f"Skipping invalid calendar {entry.get('name')!r}: {e.error_count()} error(s)")
            logger.debug("Calendar entry validation failed: %s", e)

    return calendars


def load_calendar_config(
    path: Union[str, Path, None] = None, diagnostics: Optional[DiagnosticsSink] = None
) -> Optional[CalendarConfiguration]:
    """Load calendar configuration from a YAML file.

    Args:
        path: Path to the config file (default: config/calendars.yml)
        diagnostics: Sink for warnings about skipped entries

    Returns:
        CalendarConfiguration, or None when the file does not exist.

    Behavior:
    - If the file is missing: returns None (calendar integration disabled).
    - If the file cannot be read, is not valid YAML, or its top level is not
      a mapping: warns and returns a configuration with no calendars.
    """
    sink = default_diagnostics(diagnostics)
    p = Path(path) if path else Path(DEFAULT_CONFIG_PATH)
    logger.debug("Attempting to load calendar config from %s", p)

    if not p.exists():
        logger.debug("Calendar config %s not found; calendar integration disabled", p)
        return None

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        sink.warn(f"YAML syntax error in {p}: {e}")
        return CalendarConfiguration(source_path=p)
    except OSError as e:
        sink.warn(f"Error reading calendar configuration {p}: {e}")
        return CalendarConfiguration(source_path=p)

    # safe_load returns None for an empty file
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        sink.warn(f"Invalid config format in {p}")
        return CalendarConfiguration(source_path=p)

    config = CalendarConfiguration.from_dict(raw, diagnostics=sink, source_path=p)
    logger.debug(
        "Loaded %d calendar(s) (%d enabled) from %s",
        len(config.calendars),
        len(config.enabled_calendars),
        p,
    )
    return config
