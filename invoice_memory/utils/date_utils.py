"""
Date utility functions for invoice processing.

Provides parsing of the date notations found on German and English
supplier invoices and the day arithmetic used by duplicate detection.
"""

import re
from datetime import UTC, date, datetime


# Invoice date notations with their strptime formats
DATE_FORMATS: list[tuple[str, str]] = [
    # European formats
    (r"^\d{1,2}\.\d{1,2}\.\d{4}$", "%d.%m.%Y"),  # DD.MM.YYYY
    (r"^\d{1,2}-\d{1,2}-\d{4}$", "%d-%m-%Y"),  # DD-MM-YYYY
    (r"^\d{1,2}/\d{1,2}/\d{4}$", "%d/%m/%Y"),  # DD/MM/YYYY
    # ISO format
    (r"^\d{4}-\d{2}-\d{2}$", "%Y-%m-%d"),  # YYYY-MM-DD
    (r"^\d{4}/\d{2}/\d{2}$", "%Y/%m/%d"),  # YYYY/MM/DD
]


def parse_date(
    value: str | date | datetime | None,
    formats: list[tuple[str, str]] | None = None,
    default: date | None = None,
) -> date | None:
    """
    Parse an invoice date into a date object.

    Accepts the European day-first notations, plain ISO dates and full
    ISO-8601 timestamps (including a trailing ``Z``). Timestamps are
    converted to UTC before the calendar date is taken.

    Args:
        value: String representation of the date, or a date/datetime.
        formats: Optional list of (pattern, strptime_format) tuples.
        default: Default value if parsing fails.

    Returns:
        Parsed date object or default value.

    Example:
        parse_date("15.01.2024") -> date(2024, 1, 15)
        parse_date("2024-01-15T00:00:00.000Z") -> date(2024, 1, 15)
    """
    if value is None:
        return default

    if isinstance(value, datetime):
        return to_utc(value).date()

    if isinstance(value, date):
        return value

    date_string = value.strip()
    if not date_string:
        return default

    if formats is None:
        formats = DATE_FORMATS

    for pattern, date_format in formats:
        if re.match(pattern, date_string):
            try:
                return datetime.strptime(date_string, date_format).date()
            except ValueError:
                continue

    try:
        return to_utc(datetime.fromisoformat(date_string)).date()
    except ValueError:
        return default


def to_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to UTC.

    Naive datetimes are assumed to already be in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_date(d: date | datetime) -> str:
    """Format a date as ISO-8601 (YYYY-MM-DD)."""
    if isinstance(d, datetime):
        d = to_utc(d).date()
    return d.isoformat()


def date_difference_days(
    date1: date | str,
    date2: date | str,
) -> int | None:
    """
    Calculate the difference between two dates in days.

    Args:
        date1: First date.
        date2: Second date.

    Returns:
        Number of days between dates (positive if date2 > date1), or None
        when either value cannot be parsed.
    """
    parsed1 = parse_date(date1)
    parsed2 = parse_date(date2)
    if parsed1 is None or parsed2 is None:
        return None

    return (parsed2 - parsed1).days


def get_current_timestamp() -> datetime:
    """Get the current UTC timestamp."""
    return datetime.now(UTC)
