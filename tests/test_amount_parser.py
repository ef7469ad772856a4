"""Tests for amount parsing."""

from decimal import Decimal

import pytest

from budgetsync.domain.entities import TransactionType
from budgetsync.utils.amount_parser import parse_amount, split_signed_amount


@pytest.mark.parametrize(
    "text,expected",
    [
        ("123.45", Decimal("123.45")),
        ("+5", Decimal("5")),
        ("-$1,234.56", Decimal("-1234.56")),
        ("€ 12", Decimal("12")),
        ("(42.10)", Decimal("-42.10")),
        ("42.10-", Decimal("-42.10")),
        (".50", Decimal("0.50")),
    ],
)
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


@pytest.mark.parametrize("text", ["", "   ", "abc", "NaN", "Infinity", "(12.00", "1.2.3", "12 apples"])
def test_parse_amount_rejects(text):
    with pytest.raises(ValueError, match="Could not parse amount"):
        parse_amount(text)


def test_split_signed_amount():
    assert split_signed_amount(Decimal("-3")) == (Decimal("3"), TransactionType.EXPENSE)
    assert split_signed_amount(Decimal("3")) == (Decimal("3"), TransactionType.INCOME)
