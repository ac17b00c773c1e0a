"""
Utility helper functions for safe data handling.
"""
from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def safe_str(value: Any, default: str = "") -> str:
    """
    Safely convert value to string, handling None.

    Args:
        value: Any value to convert
        default: Default string if value is None

    Returns:
        String representation or default
    """
    if value is None:
        return default
    return str(value)


def safe_upper(value: Any) -> str:
    """
    Safely uppercase and strip a value, handling None.

    Used for status codes, which arrive as "ft", " FT" or "FT".
    """
    if value is None:
        return ""
    return str(value).strip().upper()


def safe_int(value: Any, default: int = 0) -> int:
    """
    Safely convert value to int, handling None and invalid values.

    Args:
        value: Any value to convert
        default: Default int if conversion fails

    Returns:
        Integer or default
    """
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def format_kickoff_time(timestamp: Optional[int], tz_name: Optional[str]) -> str:
    """
    Convert a Unix timestamp to an HH:MM kickoff time in the fixture's timezone.

    Args:
        timestamp: Unix timestamp in seconds
        tz_name: IANA timezone name (e.g., "UTC", "Europe/London")

    Returns:
        "HH:MM", or "00:00" if the timestamp is missing or invalid
    """
    if timestamp is None:
        return "00:00"
    try:
        tz = ZoneInfo(tz_name) if tz_name else timezone.utc
    except (ZoneInfoNotFoundError, ValueError):
        tz = timezone.utc
    try:
        kickoff = datetime.fromtimestamp(int(timestamp), tz=tz)
    except (OverflowError, OSError, ValueError, TypeError):
        return "00:00"
    return kickoff.strftime("%H:%M")
