"""Date parsing for user input and imported statements."""

from datetime import date, datetime, timedelta
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import MO, relativedelta

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

PERIODS = ("this-month", "this-year", "this-week", "last-month", "last-year", "last-week")

STATEMENT_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y")


def _period_start(unit: str, today: date) -> Optional[date]:
    if unit == "week":
        return today + relativedelta(weekday=MO(-1))
    if unit == "month":
        return today.replace(day=1)
    if unit == "year":
        return today.replace(month=1, day=1)
    return None


def _relative_date(text: str, today: date) -> Optional[date]:
    named = {"today": 0, "yesterday": -1, "tomorrow": 1}
    if text in named:
        return today + timedelta(days=named[text])

    direction, _, unit = text.partition(" ")
    step = {"last": -1, "this": 0, "next": 1}.get(direction)
    if step is None:
        return None

    if unit in WEEKDAYS and direction == "last":
        days_ago = (today.weekday() - WEEKDAYS.index(unit)) % 7 or 7
        return today - timedelta(days=days_ago)

    start = _period_start(unit, today)
    if start is None:
        return None
    return start + relativedelta(**{f"{unit}s": step})


def parse_date(date_str: str) -> date:
    """Parse a user-entered date.

    Accepts anything dateutil understands plus a few relative forms:
    "today", "yesterday", "tomorrow", "last monday" and "last/this/next"
    followed by "week", "month" or "year" (the first day of that period).

    Raises:
        ValueError: If the string is not a date
    """
    text = " ".join(date_str.strip().lower().split())
    relative = _relative_date(text, date.today())
    if relative is not None:
        return relative
    try:
        return date_parser.parse(text).date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{date_str}': {e}") from e


def get_date_range(period: str) -> tuple[date, date]:
    """Return the (start, end) dates of a named period.

    "this-*" periods end today; "last-*" periods cover the whole previous
    week, month or year.

    Raises:
        ValueError: If the period is not one of PERIODS
    """
    key = period.strip().lower()
    if key not in PERIODS:
        raise ValueError(f"Unknown period: '{period}'. Supported periods: {', '.join(PERIODS)}")

    today = date.today()
    which, _, unit = key.partition("-")
    start = _period_start(unit, today)
    if which == "this":
        return start, today
    previous = start - relativedelta(**{f"{unit}s": 1})
    return previous, start - timedelta(days=1)


def parse_statement_date(date_str: str) -> date:
    """Parse a date column from an imported statement row.

    Only unambiguous statement layouts are accepted: ISO ``YYYY-MM-DD`` and
    US ``M/D/YYYY``. Free-form and relative dates are rejected so that a
    description or amount column is never mistaken for a date.

    Raises:
        ValueError: If the value is not a statement date
    """
    value = date_str.strip().strip('"').strip()
    for fmt in STATEMENT_DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Could not parse statement date '{value}'")
