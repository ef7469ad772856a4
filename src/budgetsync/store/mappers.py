"""Mapper functions between domain entities and the persisted local document.

The document is plain JSON with camelCase keys:

    {"datasets": [{"id", "name", "kind", "ownerId"}],
     "activeDatasetId": "...",
     "dataByDataset": {"<id>": {"categories": [], "transactions": [], ...}}}

Amounts are written as strings so that Decimal values survive the round trip.
"""

import json
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from budgetsync.domain import entities as domain
from budgetsync.domain.errors import CorruptDocumentError

DATA_KEYS = {
    domain.Collection.CATEGORIES: "categories",
    domain.Collection.TRANSACTIONS: "transactions",
    domain.Collection.SAVINGS_GOALS: "savingsGoals",
    domain.Collection.FINANCIAL_GOALS: "financialGoals",
    domain.Collection.DEBTS: "debts",
    domain.Collection.RECURRING_RULES: "recurringRules",
}


@dataclass
class LocalDocument:
    """In-memory form of the persisted multi-dataset document."""

    datasets: list[domain.DatasetInfo] = field(default_factory=list)
    active_dataset_id: str = ""
    data_by_dataset: dict[str, domain.DatasetData] = field(default_factory=dict)


def _opt_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value))


def _opt_decimal(value: Any) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


def _opt_date(value: Any) -> Optional[date]:
    return None if value is None else date.fromisoformat(value)


def _opt_iso(value: Optional[date]) -> Optional[str]:
    return None if value is None else value.isoformat()


def category_to_dict(category: domain.Category) -> dict[str, Any]:
    """Convert a Category entity to its document form."""
    return {
        "id": category.id,
        "name": category.name,
        "color": category.color,
        "monthlyBudget": _opt_str(category.monthly_budget),
        "appliesTo": category.applies_to.value if category.applies_to else None,
    }


def category_from_dict(raw: dict[str, Any]) -> domain.Category:
    """Convert a document category to a Category entity."""
    applies_to = raw.get("appliesTo")
    return domain.Category(
        id=raw["id"],
        name=raw["name"],
        color=raw.get("color") or "#94a3b8",
        monthly_budget=_opt_decimal(raw.get("monthlyBudget")),
        applies_to=domain.TransactionType(applies_to) if applies_to else None,
    )


def transaction_to_dict(txn: domain.Transaction) -> dict[str, Any]:
    """Convert a Transaction entity to its document form."""
    return {
        "id": txn.id,
        "date": txn.date.isoformat(),
        "type": txn.type.value,
        "amount": str(txn.amount),
        "description": txn.description,
        "categoryId": txn.category_id,
        "merchant": txn.merchant,
        "notes": txn.notes,
        "externalId": txn.external_id,
        "accountId": txn.account_id,
        "authorId": txn.author_id,
        "importBatchId": txn.import_batch_id,
    }


def transaction_from_dict(raw: dict[str, Any]) -> domain.Transaction:
    """Convert a document transaction to a Transaction entity."""
    return domain.Transaction(
        id=raw["id"],
        date=date.fromisoformat(raw["date"]),
        type=domain.TransactionType(raw["type"]),
        amount=_decimal(raw["amount"]),
        description=raw.get("description") or "",
        category_id=raw.get("categoryId"),
        merchant=raw.get("merchant"),
        notes=raw.get("notes"),
        external_id=raw.get("externalId"),
        account_id=raw.get("accountId"),
        author_id=raw.get("authorId"),
        import_batch_id=raw.get("importBatchId"),
    )


def savings_goal_to_dict(goal: domain.SavingsGoal) -> dict[str, Any]:
    return {"id": goal.id, "name": goal.name, "target": str(goal.target), "current": str(goal.current)}


def savings_goal_from_dict(raw: dict[str, Any]) -> domain.SavingsGoal:
    return domain.SavingsGoal(
        id=raw["id"],
        name=raw["name"],
        target=_decimal(raw["target"]),
        current=_decimal(raw.get("current", "0")),
    )


def financial_goal_to_dict(goal: domain.FinancialGoal) -> dict[str, Any]:
    return {
        "id": goal.id,
        "name": goal.name,
        "type": goal.goal_type,
        "target": str(goal.target),
        "current": str(goal.current),
        "targetDate": _opt_iso(goal.target_date),
    }


def financial_goal_from_dict(raw: dict[str, Any]) -> domain.FinancialGoal:
    return domain.FinancialGoal(
        id=raw["id"],
        name=raw["name"],
        goal_type=raw.get("type", ""),
        target=_decimal(raw["target"]),
        current=_decimal(raw.get("current", "0")),
        target_date=_opt_date(raw.get("targetDate")),
    )


def debt_to_dict(debt: domain.Debt) -> dict[str, Any]:
    return {
        "id": debt.id,
        "name": debt.name,
        "currentBalance": str(debt.current_balance),
        "originalBalance": _opt_str(debt.original_balance),
        "interestRate": str(debt.interest_rate),
        "minPayment": str(debt.min_payment),
        "targetDate": _opt_iso(debt.target_date),
    }


def debt_from_dict(raw: dict[str, Any]) -> domain.Debt:
    return domain.Debt(
        id=raw["id"],
        name=raw["name"],
        current_balance=_decimal(raw["currentBalance"]),
        original_balance=_opt_decimal(raw.get("originalBalance")),
        interest_rate=_decimal(raw.get("interestRate", "0")),
        min_payment=_decimal(raw.get("minPayment", "0")),
        target_date=_opt_date(raw.get("targetDate")),
    )


def recurring_rule_to_dict(rule: domain.RecurringRule) -> dict[str, Any]:
    return {
        "id": rule.id,
        "description": rule.description,
        "amount": str(rule.amount),
        "type": rule.type.value,
        "frequency": rule.frequency.value,
        "nextDate": rule.next_date.isoformat(),
        "categoryId": rule.category_id,
    }


def recurring_rule_from_dict(raw: dict[str, Any]) -> domain.RecurringRule:
    return domain.RecurringRule(
        id=raw["id"],
        description=raw["description"],
        amount=_decimal(raw["amount"]),
        type=domain.TransactionType(raw["type"]),
        frequency=domain.Frequency(raw["frequency"]),
        next_date=date.fromisoformat(raw["nextDate"]),
        category_id=raw.get("categoryId"),
    )


TO_DICT = {
    domain.Collection.CATEGORIES: category_to_dict,
    domain.Collection.TRANSACTIONS: transaction_to_dict,
    domain.Collection.SAVINGS_GOALS: savings_goal_to_dict,
    domain.Collection.FINANCIAL_GOALS: financial_goal_to_dict,
    domain.Collection.DEBTS: debt_to_dict,
    domain.Collection.RECURRING_RULES: recurring_rule_to_dict,
}

FROM_DICT = {
    domain.Collection.CATEGORIES: category_from_dict,
    domain.Collection.TRANSACTIONS: transaction_from_dict,
    domain.Collection.SAVINGS_GOALS: savings_goal_from_dict,
    domain.Collection.FINANCIAL_GOALS: financial_goal_from_dict,
    domain.Collection.DEBTS: debt_from_dict,
    domain.Collection.RECURRING_RULES: recurring_rule_from_dict,
}


def dataset_data_to_dict(data: domain.DatasetData) -> dict[str, Any]:
    """Convert all collections of a dataset to document form."""
    raw: dict[str, Any] = {
        key: [TO_DICT[collection](record) for record in data.records(collection)]
        for collection, key in DATA_KEYS.items()
    }
    raw["lastImportBatchIds"] = list(data.last_import_batch_ids)
    return raw


def dataset_data_from_dict(raw: dict[str, Any]) -> domain.DatasetData:
    """Convert a document dataset entry to DatasetData.

    Missing collections are treated as empty.
    """
    data = domain.DatasetData()
    for collection, key in DATA_KEYS.items():
        setattr(data, collection.value, [FROM_DICT[collection](item) for item in raw.get(key) or []])
    data.last_import_batch_ids = list(raw.get("lastImportBatchIds") or [])
    return data


def document_to_json(document: LocalDocument) -> str:
    """Serialize the whole local document."""
    payload = {
        "datasets": [
            {"id": d.id, "name": d.name, "kind": d.kind.value, "ownerId": d.owner_id}
            for d in document.datasets
        ],
        "activeDatasetId": document.active_dataset_id,
        "dataByDataset": {
            dataset_id: dataset_data_to_dict(data)
            for dataset_id, data in document.data_by_dataset.items()
        },
    }
    return json.dumps(payload, sort_keys=True)


def document_from_json(raw: str) -> LocalDocument:
    """Parse a serialized local document.

    Raises:
        CorruptDocumentError: If the payload is not a valid document
    """
    try:
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise TypeError("document root is not an object")
        datasets = [
            domain.DatasetInfo(
                id=d["id"],
                name=d.get("name") or d["id"],
                kind=domain.DatasetKind(d.get("kind") or domain.DatasetKind.PERSONAL.value),
                owner_id=d.get("ownerId"),
            )
            for d in payload.get("datasets") or []
        ]
        data_by_dataset = {
            dataset_id: dataset_data_from_dict(entry)
            for dataset_id, entry in (payload.get("dataByDataset") or {}).items()
        }
        return LocalDocument(
            datasets=datasets,
            active_dataset_id=payload.get("activeDatasetId") or "",
            data_by_dataset=data_by_dataset,
        )
    except (ValueError, KeyError, TypeError, AttributeError, InvalidOperation) as e:
        raise CorruptDocumentError(f"Local document could not be parsed: {e}") from e
