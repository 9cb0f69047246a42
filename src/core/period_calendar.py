"""
Period Calendar Module

Provides the date bucketing utilities shared by anomaly detection,
periodic summaries and forecasting.

Key Concepts:
- Granularity: daily / weekly / monthly bucket size
- Anchored week: weeks counted from the Monday of an analysis start date,
  so "week 1" is always the week the caller asked to start from
- ISO week key: YYYY-Www using the ISO year (used for anomaly buckets)
- Month key: YYYY-MM
"""
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Union

from src.core.error_taxonomy import InvalidParameterError

DateLike = Union[date, datetime, str]


class Granularity(Enum):
    """Aggregation bucket size."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value: Union["Granularity", str, None], default: "Granularity" = None) -> "Granularity":
        """Accept an enum member or its string value (case-insensitive)."""
        if value is None or value == "":
            return default or cls.WEEKLY
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidParameterError(
                f"Unknown granularity '{value}'. Expected one of: {[g.value for g in cls]}",
                context={"granularity": value},
            )


WEEKDAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

# Typical monthly mean temperature (°C) used when no forecast is available
SEASONAL_TEMPERATURE_BY_MONTH = {
    1: 5.0,
    2: 6.0,
    3: 10.0,
    4: 15.0,
    5: 20.0,
    6: 24.0,
    7: 28.0,
    8: 29.0,
    9: 25.0,
    10: 19.0,
    11: 13.0,
    12: 7.0,
}


def parse_date(value: DateLike) -> date:
    """
    Normalize a date-like value to a date.

    Accepts date, datetime (time part dropped) and ISO strings
    ("2024-03-01" or "2024-03-01T10:00:00").
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            raise InvalidParameterError(f"Invalid date: '{value}'", context={"value": value})
    raise InvalidParameterError(f"Unsupported date type: {type(value).__name__}")


def adjust_to_monday(d: date) -> date:
    """Return the Monday of the week containing d."""
    return d - timedelta(days=d.weekday())


def anchored_week_index(d: date, anchor: date) -> int:
    """
    Zero-based week number of d counted from the Monday of anchor.

    Dates before the anchor week are clamped into week 0.
    """
    days = (adjust_to_monday(d) - adjust_to_monday(anchor)).days
    return max(days // 7, 0)


def iso_week_key(d: date) -> str:
    """ISO week key, e.g. 2024-W01 (uses the ISO year, not the calendar year)."""
    iso_year, iso_week, _ = d.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def month_key(d: date) -> str:
    """Calendar month key, e.g. 2024-03."""
    return f"{d.year:04d}-{d.month:02d}"


def period_key(d: date, granularity: Granularity) -> str:
    """Bucket key for d at the given granularity."""
    if granularity == Granularity.WEEKLY:
        return iso_week_key(d)
    if granularity == Granularity.MONTHLY:
        return month_key(d)
    return d.isoformat()


def weekday_label(d: date) -> str:
    return WEEKDAY_LABELS[d.weekday()]


def seasonal_temperature(month: int) -> float:
    """Typical temperature for a calendar month."""
    if month not in SEASONAL_TEMPERATURE_BY_MONTH:
        raise InvalidParameterError(f"Month must be 1-12, got {month}")
    return SEASONAL_TEMPERATURE_BY_MONTH[month]


def format_period_for_display(key: str) -> str:
    """
    Human-friendly rendering of a bucket key.

    - "2024-03"     -> "March 2024"
    - "2024-W05"    -> "2024 week 05"
    - "2024-03-15"  -> "March 15, 2024"
    Anything unparseable is returned unchanged.
    """
    if "-W" in key:
        year, _, week = key.partition("-W")
        return f"{year} week {week}"
    try:
        if len(key) == 7 and key[4] == "-":
            return datetime.strptime(key, "%Y-%m").strftime("%B %Y")
        if len(key) == 10:
            parsed = datetime.strptime(key, "%Y-%m-%d")
            return f"{parsed.strftime('%B')} {parsed.day}, {parsed.year}"
    except ValueError:
        pass
    return key
