"""
Shared utility functions for parsing and data manipulation

Provides common helpers for:
- String parsing: Environment variable conversion (parse_bool, parse_int, parse_float, split_csv)
- Entity ID sanitization: Converting hostnames to MQTT-safe topic segments
- Time-of-day parsing: Strict HH:MM values used by lockout and display schedules
- Data coercion: Safe type conversion with fallback defaults
"""

from __future__ import annotations

import re
from typing import Any

_HHMM_RE = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")


def sanitize_hostname_for_topic(hostname: str) -> str:
    """Convert hostnames to MQTT topic-safe identifiers."""
    return hostname.lower().replace(".", "_").replace(" ", "_")


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Interpret env-style booleans."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_int(value: str | None, default: int) -> int:
    """Best-effort int parser with fallback."""
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_float(value: str | None, default: float) -> float:
    """Best-effort float parser with fallback."""
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def split_csv(value: str | None) -> list[str]:
    """Split comma-separated strings into trimmed tokens."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_hhmm(value: str | None) -> tuple[int, int] | None:
    """Parse a 24h ``HH:MM`` string into (hour, minute). Returns None if invalid."""
    if not value:
        return None
    match = _HHMM_RE.match(value.strip())
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def format_hhmm(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def coerce_bool(value: Any, default: bool) -> bool:
    """Coerce a JSON value to bool, accepting env-style strings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return parse_bool(value, default)
    if isinstance(value, int | float):
        return bool(value)
    return default


def coerce_int(value: Any, default: int) -> int:
    """Coerce a JSON value to int; bools and garbage fall back to the default."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        try:
            return int(value)
        except (OverflowError, ValueError):
            return default
    if isinstance(value, str):
        return parse_int(value.strip(), default)
    return default
