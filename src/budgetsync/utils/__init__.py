"""Utility functions for budgetsync."""

from budgetsync.utils.date_parser import parse_date, parse_statement_date
from budgetsync.utils.amount_parser import parse_amount, split_signed_amount
from budgetsync.utils.ids import new_batch_id, new_local_id

__all__ = [
    "parse_date",
    "parse_statement_date",
    "parse_amount",
    "split_signed_amount",
    "new_batch_id",
    "new_local_id",
]
