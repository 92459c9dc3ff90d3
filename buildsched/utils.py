# buildsched/utils.py
from datetime import date, datetime, timedelta
from typing import Optional

DATE_FORMAT = "%Y-%m-%d"

# Formats accepted from user input and from the backing store.
_INPUT_FORMATS = [
    "%Y-%m-%d",             # '2024-06-01'
    "%Y-%m-%d %H:%M:%S",    # '2024-06-01 08:00:00'
    "%Y-%m-%dT%H:%M:%S",    # '2024-06-01T08:00:00'
    "%m/%d/%Y",             # '6/1/2024'
    "%m/%d/%y",             # '6/1/24'
    "%m/%d/%Y %H:%M",
]


def parse_date(value) -> Optional[date]:
    """
    Coerce a date-like value to a calendar date.
    Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    # ISO timestamps with offsets or fractions: keep the date part.
    if len(text) > 10 and text[4:5] == "-" and text[10:11] in ("T", " "):
        text_date = text[:10]
        try:
            return datetime.strptime(text_date, DATE_FORMAT).date()
        except ValueError:
            pass
    for fmt in _INPUT_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            pass
    return None


def require_date(value, field: str = "date") -> date:
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"Could not parse {field}: {value!r}")
    return parsed


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def compute_duration(start: date, end: date) -> int:
    """
    Inclusive day count between start and end.
    A single-day task has a duration of 1.
    """
    return (end - start).days + 1


def end_from_duration(start: date, duration_days: int) -> date:
    """Inclusive end date for a task of duration_days starting on start."""
    return start + timedelta(days=max(1, duration_days) - 1)


def format_duration(days: int) -> str:
    if days == 1:
        return "1 day"
    if days < 7:
        return f"{days} days"
    weeks, remaining = divmod(days, 7)
    if remaining == 0:
        return "1 week" if weeks == 1 else f"{weeks} weeks"
    return f"{weeks}w {remaining}d"


def format_us_date(value: date) -> str:
    return value.strftime("%m/%d/%Y")


def round_currency(amount) -> float:
    try:
        return round(float(amount or 0.0), 2)
    except (TypeError, ValueError):
        return 0.0
