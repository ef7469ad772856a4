"""Tests for date parsing."""

from datetime import date, timedelta

import pytest
from dateutil.relativedelta import relativedelta

from budgetsync.utils.date_parser import get_date_range, parse_date, parse_statement_date


def monday_of(day: date) -> date:
    return day - timedelta(days=day.weekday())


def test_parse_absolute_dates():
    """ISO and written dates are accepted."""
    assert parse_date("2024-01-15") == date(2024, 1, 15)
    assert parse_date("January 15, 2024") == date(2024, 1, 15)


@pytest.mark.parametrize(
    "text,offset",
    [("today", 0), ("Yesterday", -1), (" tomorrow ", 1)],
)
def test_parse_named_days(text, offset):
    """Named days are relative to today."""
    assert parse_date(text) == date.today() + timedelta(days=offset)


def test_parse_month_periods():
    """Month periods resolve to the first day of the month."""
    first = date.today().replace(day=1)

    assert parse_date("this month") == first
    assert parse_date("last month") == first - relativedelta(months=1)
    assert parse_date("next month") == first + relativedelta(months=1)


def test_parse_year_periods():
    """Year periods resolve to January 1."""
    first = date.today().replace(month=1, day=1)

    assert parse_date("this year") == first
    assert parse_date("last  year") == first - relativedelta(years=1)
    assert parse_date("next year") == first + relativedelta(years=1)


def test_parse_week_periods():
    """Week periods resolve to a Monday."""
    monday = monday_of(date.today())

    assert parse_date("this week") == monday
    assert parse_date("last week") == monday - timedelta(days=7)
    assert parse_date("next week") == monday + timedelta(days=7)


def test_parse_last_weekday():
    """'last friday' is the most recent Friday before today."""
    result = parse_date("last friday")

    assert result.weekday() == 4
    assert 1 <= (date.today() - result).days <= 7


def test_parse_invalid_date():
    """Unparsable input raises ValueError."""
    with pytest.raises(ValueError, match="Could not parse date"):
        parse_date("not a date")


def test_this_periods_end_today():
    """this-* ranges run from the period start to today."""
    today = date.today()

    assert get_date_range("this-month") == (today.replace(day=1), today)
    assert get_date_range("this-year") == (today.replace(month=1, day=1), today)
    assert get_date_range("this-week") == (monday_of(today), today)


def test_last_periods_are_complete():
    """last-* ranges cover the whole previous period."""
    today = date.today()
    first = today.replace(day=1)

    assert get_date_range("last-month") == (first - relativedelta(months=1), first - timedelta(days=1))
    start, end = get_date_range("last-year")
    assert (start, end) == (date(today.year - 1, 1, 1), date(today.year - 1, 12, 31))
    start, end = get_date_range("last-week")
    assert start == monday_of(today) - timedelta(days=7)
    assert end - start == timedelta(days=6)


def test_unknown_period():
    with pytest.raises(ValueError, match="Unknown period"):
        get_date_range("next-decade")


@pytest.mark.parametrize(
    "text,expected",
    [
        ("2024-01-05", date(2024, 1, 5)),
        ('"01/05/2024"', date(2024, 1, 5)),
        ("1/5/2024", date(2024, 1, 5)),
    ],
)
def test_statement_dates(text, expected):
    """Statement rows use ISO or US month-first dates."""
    assert parse_statement_date(text) == expected


@pytest.mark.parametrize("text", ["today", "Jan 5 2024", "2024/13/01", "42.10"])
def test_statement_dates_reject_free_form(text):
    """Relative and free-form dates are not statement dates."""
    with pytest.raises(ValueError):
        parse_statement_date(text)
