"""Domain model entities for budgetsync.

These are pure data classes representing business concepts, independent of
how a dataset is persisted. The same entities flow through the local store,
the local document and the remote wire format.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from budgetsync.domain.errors import ValidationError


class TransactionType(str, Enum):
    """Semantic sign of a transaction; amounts are always magnitudes."""

    INCOME = "income"
    EXPENSE = "expense"


class Role(str, Enum):
    """Membership role within a shared dataset."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class DatasetKind(str, Enum):
    """Kind of remote dataset."""

    PERSONAL = "personal"
    SHARED = "shared"


class StorageMode(str, Enum):
    """Whether the local store is the durable copy or a read cache."""

    LOCAL = "local"
    REMOTE = "remote"


class Frequency(str, Enum):
    """Recurrence frequency for recurring rules."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Collection(str, Enum):
    """Collections owned by a dataset.

    The value doubles as the DatasetData attribute name and the remote
    table name.
    """

    TRANSACTIONS = "transactions"
    CATEGORIES = "categories"
    SAVINGS_GOALS = "savings_goals"
    FINANCIAL_GOALS = "financial_goals"
    DEBTS = "debts"
    RECURRING_RULES = "recurring_rules"


@dataclass(frozen=True)
class DatasetInfo:
    """Dataset (profile or budget) descriptor."""

    id: str
    name: str
    kind: DatasetKind = DatasetKind.PERSONAL
    owner_id: Optional[str] = None


@dataclass(frozen=True)
class Membership:
    """A user's role in a dataset."""

    dataset_id: str
    user_id: str
    role: Role


@dataclass(frozen=True)
class Category:
    """Category domain entity."""

    id: str
    name: str
    color: str = "#94a3b8"
    monthly_budget: Optional[Decimal] = None
    applies_to: Optional[TransactionType] = None


@dataclass(frozen=True)
class Transaction:
    """Transaction domain entity.

    The amount is a non-negative magnitude; the sign lives in ``type``.
    """

    id: str
    date: date
    type: TransactionType
    amount: Decimal
    description: str
    category_id: Optional[str] = None
    merchant: Optional[str] = None
    notes: Optional[str] = None
    external_id: Optional[str] = None
    account_id: Optional[str] = None
    author_id: Optional[str] = None
    import_batch_id: Optional[str] = None

    def __post_init__(self):
        if self.amount < 0:
            raise ValidationError(
                f"Transaction amount must be a non-negative magnitude, got {self.amount}"
            )


@dataclass(frozen=True)
class SavingsGoal:
    """Savings goal domain entity."""

    id: str
    name: str
    target: Decimal
    current: Decimal = Decimal("0")


@dataclass(frozen=True)
class FinancialGoal:
    """Financial goal domain entity."""

    id: str
    name: str
    goal_type: str
    target: Decimal
    current: Decimal = Decimal("0")
    target_date: Optional[date] = None


@dataclass(frozen=True)
class Debt:
    """Debt domain entity."""

    id: str
    name: str
    current_balance: Decimal
    original_balance: Optional[Decimal] = None
    interest_rate: Decimal = Decimal("0")
    min_payment: Decimal = Decimal("0")
    target_date: Optional[date] = None


@dataclass(frozen=True)
class RecurringRule:
    """Recurring transaction rule."""

    id: str
    description: str
    amount: Decimal
    type: TransactionType
    frequency: Frequency
    next_date: date
    category_id: Optional[str] = None


@dataclass
class DatasetData:
    """All collections owned by one dataset."""

    categories: list[Category] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    savings_goals: list[SavingsGoal] = field(default_factory=list)
    financial_goals: list[FinancialGoal] = field(default_factory=list)
    debts: list[Debt] = field(default_factory=list)
    recurring_rules: list[RecurringRule] = field(default_factory=list)
    last_import_batch_ids: list[str] = field(default_factory=list)

    def records(self, collection: Collection) -> list:
        """Return the list backing a collection."""
        return getattr(self, collection.value)

    def is_empty(self) -> bool:
        """Return True if no collection holds any record."""
        return not any(self.records(c) for c in Collection)


ENTITY_TYPES = {
    Collection.TRANSACTIONS: Transaction,
    Collection.CATEGORIES: Category,
    Collection.SAVINGS_GOALS: SavingsGoal,
    Collection.FINANCIAL_GOALS: FinancialGoal,
    Collection.DEBTS: Debt,
    Collection.RECURRING_RULES: RecurringRule,
}


@dataclass(frozen=True)
class QuarantinedDocument:
    """A persisted document that failed to parse, kept for debugging."""

    id: int
    key: str
    payload: str
    reason: str
    quarantined_at: datetime
