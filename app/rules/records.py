"""Parsing of raw task record fields.

Task rows come from a third-party table sync and are frequently partial:
dates may be epoch milliseconds, ISO strings, or garbage; progress may be a
fraction, a percentage, a "50%" string, or missing. Parsers here never
raise; they return ``None`` (dates) or ``0`` (progress) for malformed input.
"""

import math
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any

DAY_SECONDS = 24 * 60 * 60


def as_text(value: Any) -> str:
    """Render a loosely-typed field value as plain text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return ", ".join(part for part in (as_text(item) for item in value) if part)
    if isinstance(value, dict):
        # Rich text / option cells carry their display value under "text" or "name"
        for key in ("text", "name", "value"):
            if value.get(key):
                return as_text(value[key])
        return ""
    return str(value)


def extract_assignee(value: Any) -> str:
    """Join person-field entries into a comma separated name list."""
    if isinstance(value, list):
        names = []
        for item in value:
            if isinstance(item, dict):
                candidate = item.get("name") or item.get("en_name") or item.get("id")
                if candidate:
                    names.append(str(candidate))
            elif isinstance(item, str) and item:
                names.append(item)
        return ", ".join(names)
    if isinstance(value, str):
        return value
    return ""


def parse_date(value: Any, tz: tzinfo = timezone.utc) -> date | datetime | None:
    """Parse a due/start date field.

    Args:
        value: Epoch milliseconds, ISO date, or ISO datetime string
        tz: Zone used for epoch values and naive datetimes

    Returns:
        A ``date`` for date-only input, an aware ``datetime`` otherwise,
        or None if the value is absent or unparseable
    """
    if value is None or value == "" or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=tz)
    if isinstance(value, date):
        return value

    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000, tz=tz)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=tz)

    return None


def format_date(value: date | datetime | None, tz: tzinfo = timezone.utc) -> str | None:
    """Format a parsed date as ``YYYY-MM-DD`` in the given zone."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.astimezone(tz).date().isoformat()
    return value.isoformat()


def days_until(
    end: date | datetime | None,
    today: date,
    tz: tzinfo = timezone.utc,
) -> int | None:
    """Whole days from the start of ``today`` to ``end``, rounded up.

    Negative when ``end`` lies before today.
    """
    if end is None:
        return None
    if not isinstance(end, datetime):
        return (end - today).days

    start_of_today = datetime.combine(today, time.min, tzinfo=tz)
    delta: timedelta = end - start_of_today
    return math.ceil(delta.total_seconds() / DAY_SECONDS)


def parse_progress(value: Any) -> float:
    """Parse a progress field into a 0-100 percentage.

    Fractions (values up to 1) are scaled to percentages. Malformed or
    missing values count as 0.
    """
    if value is None or value == "" or isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.replace("%", "").strip())
        except ValueError:
            return 0.0
    else:
        return 0.0

    if not math.isfinite(number):
        return 0.0
    return number * 100 if number <= 1 else number
