"""Default datasets and categories, and the category fallback rule."""

from dataclasses import replace
from typing import Optional

from budgetsync.domain.constants import DEFAULT_CATEGORIES, FALLBACK_CATEGORY_NAME
from budgetsync.domain.entities import Category, DatasetData, TransactionType


def default_categories() -> list[Category]:
    """Return fresh copies of the default categories."""
    return [
        Category(
            id=category_id,
            name=name,
            color=color,
            monthly_budget=budget,
            applies_to=TransactionType.EXPENSE,
        )
        for category_id, name, color, budget in DEFAULT_CATEGORIES
    ]


def default_dataset_data() -> DatasetData:
    """Return an empty dataset seeded with the default categories."""
    return DatasetData(categories=default_categories())


def fallback_category(
    categories: list[Category], excluding: Optional[str] = None
) -> Optional[Category]:
    """Pick the category that orphaned records are re-pointed to.

    Prefers a category named "Other" (by id or name), then the first
    remaining category. Returns None when no candidate is left.
    """
    candidates = [c for c in categories if c.id != excluding]
    key = FALLBACK_CATEGORY_NAME.lower()
    for category in candidates:
        if category.id.lower() == key or category.name.lower() == key:
            return category
    for category in candidates:
        if key in category.name.lower():
            return category
    return candidates[0] if candidates else None


def repair_category_references(data: DatasetData) -> int:
    """Re-point transactions and recurring rules whose category is missing.

    Mutates ``data`` in place and returns the number of records changed.
    Nothing is changed when the dataset has no category at all.
    """
    valid = {c.id for c in data.categories}
    fallback = fallback_category(data.categories)
    if fallback is None:
        return 0

    repaired = 0
    transactions = []
    for txn in data.transactions:
        if txn.category_id not in valid:
            txn = replace(txn, category_id=fallback.id)
            repaired += 1
        transactions.append(txn)
    data.transactions = transactions

    rules = []
    for rule in data.recurring_rules:
        if rule.category_id not in valid:
            rule = replace(rule, category_id=fallback.id)
            repaired += 1
        rules.append(rule)
    data.recurring_rules = rules
    return repaired
