"""Amount parsing utilities."""

import re
from decimal import Decimal, InvalidOperation

from budgetsync.domain.entities import TransactionType

_AMOUNT = re.compile(
    r"""^
    (?P<open>\()?
    (?P<sign>[-+])?
    [$€£¥]?
    (?P<digits>\d[\d,]*(?:\.\d*)?|\.\d+)
    (?P<trailing>-)?
    (?P<close>\))?
    $""",
    re.VERBOSE,
)


def parse_amount(amount_str: str) -> Decimal:
    """Parse a signed amount as written on statements and on the command line.

    Accepts a leading sign, one currency symbol, thousands separators, and
    the accounting forms "(12.50)" and "12.50-" for negatives, e.g.
    "-$1,234.56".

    Raises:
        ValueError: If the string is not an amount
    """
    text = (amount_str or "").replace(" ", "")
    match = _AMOUNT.match(text)
    if match is None or bool(match["open"]) != bool(match["close"]):
        raise ValueError(f"Could not parse amount '{amount_str}'")

    try:
        amount = Decimal(match["digits"].replace(",", ""))
    except InvalidOperation as e:
        raise ValueError(f"Could not parse amount '{amount_str}'") from e

    negative = bool(match["open"]) or match["sign"] == "-" or bool(match["trailing"])
    return -amount if negative else amount


def split_signed_amount(amount: Decimal) -> tuple[Decimal, TransactionType]:
    """Split a signed amount into a magnitude and the type its sign implies.

    Negative amounts are expenses, zero and positive amounts are income.
    """
    if amount < 0:
        return -amount, TransactionType.EXPENSE
    return amount, TransactionType.INCOME
