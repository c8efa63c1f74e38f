"""
DateTime utility functions for the Attribution Worker
"""

from datetime import datetime, timezone
from typing import Any, Optional

# Sorts before any real timestamp
EARLIEST_UTC = datetime.min.replace(tzinfo=timezone.utc)


def now_utc() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def parse_iso_timestamp(timestamp_str: str) -> Optional[datetime]:
    """
    Parse ISO timestamp string to timezone-aware datetime object.
    Handles both 'Z' suffix and '+00:00' formats; naive values are taken as UTC.

    Args:
        timestamp_str: ISO timestamp string (e.g., "2025-07-20T10:00:00.000Z")

    Returns:
        timezone-aware datetime object or None if parsing fails
    """
    try:
        if timestamp_str.endswith("Z"):
            parsed = datetime.fromisoformat(timestamp_str[:-1] + "+00:00")
        else:
            parsed = datetime.fromisoformat(timestamp_str)
    except (ValueError, TypeError, AttributeError):
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def coerce_timestamp(value: Any) -> Optional[datetime]:
    """Coerce an ISO string, epoch milliseconds or datetime into an aware UTC datetime"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit():
            return coerce_timestamp(int(stripped))
        return parse_iso_timestamp(stripped)
    return None


def to_iso(value: datetime) -> str:
    """Render an aware datetime as an ISO-8601 UTC string with a Z suffix"""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def epoch_millis(value: datetime) -> int:
    """Milliseconds since the epoch for an aware datetime"""
    return int(value.timestamp() * 1000)
