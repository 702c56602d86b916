from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def is_day_key(value: object) -> bool:
    """True for a `YYYY-MM-DD` string naming a real calendar day."""
    return parse_day(value) is not None


def parse_day(value: object) -> date | None:
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        # Matches the pattern but not the calendar (e.g. 2024-02-30).
        return None


def format_day(day: date) -> str:
    return day.isoformat()


def to_day(value: date | datetime) -> date:
    # datetime is a date subclass; truncate it explicitly.
    if isinstance(value, datetime):
        return value.date()
    return value


def previous_day(day: date) -> date:
    return day - timedelta(days=1)


def days_between(start: date, end: date) -> int:
    return (end - start).days


def parse_instant(value: object) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive timestamps are rejected: without an offset the instant is unknown.
    """
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed.astimezone(timezone.utc)


def format_instant(value: datetime) -> str:
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def written_day(value: object) -> date | None:
    """The calendar day as written in a bare day or a full timestamp.

    Legacy periods stored both forms. The day comes from the text itself,
    not from the instant converted to UTC.
    """
    day = parse_day(value)
    if day is not None or not isinstance(value, str):
        return day
    try:
        datetime.fromisoformat(value)
    except ValueError:
        return None
    return parse_day(value[:10])
