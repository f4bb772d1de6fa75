"""
Date and Time utilities

This module handles upstream timestamp parsing, XMLTV time formatting and
the calendar days a regeneration run covers.
"""
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo
import logging

logger = logging.getLogger(__name__)

XMLTV_TIME_FORMAT = "%Y%m%d%H%M%S %z"


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def _normalize_iso8601_string(date_str: str) -> str:
    """Normalize ISO8601 string by replacing 'Z' with '+00:00'

    Args:
        date_str: ISO8601 datetime string

    Returns:
        Normalized string with explicit timezone offset
    """
    return date_str.replace('Z', '+00:00') if date_str.endswith('Z') else date_str


def parse_iso8601_to_utc(date_str: str) -> datetime:
    """
    Parse ISO8601 date string and convert to UTC datetime

    Naive timestamps are taken to be UTC.

    Args:
        date_str: ISO8601 datetime string (e.g., '2025-10-09T00:00:00Z' or '2025-10-09T00:00:00+01:00')

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the date string format is invalid
    """
    try:
        normalized = _normalize_iso8601_string(date_str.strip())
        dt = datetime.fromisoformat(normalized)
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, AttributeError) as e:
        raise DateFormatError(f"Invalid ISO8601 datetime format: '{date_str}'") from e


def format_xmltv_time(value: datetime, target_tz: str) -> str:
    """
    Format a timezone-aware datetime as XMLTV time in the target timezone

    Args:
        value: Timezone-aware datetime
        target_tz: IANA timezone name

    Returns:
        XMLTV time like '20240101210000 +0100'
    """
    return value.astimezone(ZoneInfo(target_tz)).strftime(XMLTV_TIME_FORMAT)


def schedule_days(now: datetime, target_tz: str) -> tuple[date, date]:
    """Return (today, tomorrow) as calendar dates in the target timezone."""
    today = now.astimezone(ZoneInfo(target_tz)).date()
    return today, today + timedelta(days=1)
