"""Transaction domain service."""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from budgetsync.domain.constants import SyncSettings
from budgetsync.domain.defaults import fallback_category
from budgetsync.domain.entities import Collection, Membership, Role, Transaction, TransactionType
from budgetsync.domain.errors import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    amount_too_large,
    category_not_found,
    not_allowed,
    record_not_found,
)
from budgetsync.domain.mutations import MutationOutcome, OptimisticMutationController
from budgetsync.store.local_store import LocalStore
from budgetsync.utils.amount_parser import split_signed_amount
from budgetsync.utils.ids import new_local_id

EDITABLE_FIELDS = {"date", "type", "amount", "description", "category_id", "merchant", "notes", "account_id"}


class PermissionPolicy:
    """Client-side check of who may change which transaction.

    Owners and admins may change any record of the dataset. A plain member
    may only change records they authored. Without a user (local-only mode)
    everything is allowed. The remote store enforces the same rule; this
    check only gives an earlier, clearer message.
    """

    def __init__(
        self,
        user_id: Optional[str] = None,
        membership: Optional[Membership] = None,
        shared: bool = False,
    ):
        self.user_id = user_id
        self.membership = membership
        self.shared = shared

    def can_modify(self, record: Transaction) -> bool:
        """Return True if the current user may change the record."""
        if self.user_id is None:
            return True
        if self.membership is not None and self.membership.role in (Role.OWNER, Role.ADMIN):
            return True
        return record.author_id == self.user_id

    def check(self, action: str, record: Transaction) -> None:
        """Raise PermissionDeniedError if the user may not change the record."""
        if not self.can_modify(record):
            raise PermissionDeniedError(not_allowed(action, self.shared))


class TransactionService:
    """Service for managing transactions of the active dataset."""

    def __init__(
        self,
        store: LocalStore,
        controller: OptimisticMutationController,
        permissions: Optional[PermissionPolicy] = None,
        settings: Optional[SyncSettings] = None,
    ):
        """Initialize transaction service.

        Args:
            store: Local store holding the active dataset
            controller: Mutation controller used for every write
            permissions: Permission policy, allow-all if omitted
            settings: Limits such as the maximum amount
        """
        self.store = store
        self.controller = controller
        self.permissions = permissions or PermissionPolicy()
        self.settings = settings or SyncSettings()

    def _validate_amount(self, amount: Decimal) -> None:
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")
        if amount >= self.settings.max_amount:
            raise ValidationError(amount_too_large(self.settings.max_amount))

    def _resolve_category_id(self, category_id: Optional[str]) -> Optional[str]:
        categories = self.store.get_active().categories
        if category_id is None:
            fallback = fallback_category(categories)
            return fallback.id if fallback else None
        if not any(c.id == category_id for c in categories):
            raise NotFoundError(category_not_found(category_id))
        return category_id

    async def add_transaction(
        self,
        date: date,
        amount: Decimal,
        description: str,
        type: Optional[TransactionType] = None,
        category_id: Optional[str] = None,
        merchant: Optional[str] = None,
        notes: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> MutationOutcome:
        """Add a transaction.

        Args:
            date: Transaction date
            amount: Amount; its sign gives the type when ``type`` is omitted
                (negative means expense)
            description: Description, required
            type: Optional explicit type, the amount's magnitude is used
            category_id: Optional category ID, the fallback category if omitted
            merchant: Optional merchant
            notes: Optional notes
            account_id: Optional account reference

        Returns:
            MutationOutcome of the write

        Raises:
            ValidationError: If the description is empty or the amount is
                zero or too large
            NotFoundError: If the category doesn't exist
        """
        description = (description or "").strip()
        if not description:
            raise ValidationError("Description is required")
        if type is None:
            amount, type = split_signed_amount(amount)
        else:
            amount = abs(amount)
        self._validate_amount(amount)

        txn = Transaction(
            id=new_local_id("tx"),
            date=date,
            type=type,
            amount=amount,
            description=description,
            category_id=self._resolve_category_id(category_id),
            merchant=merchant,
            notes=notes,
            account_id=account_id,
            author_id=self.permissions.user_id,
        )
        return await self.controller.create(Collection.TRANSACTIONS, txn)

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """Get a transaction of the active dataset by ID."""
        return self.store.get_record(Collection.TRANSACTIONS, transaction_id)

    def _require(self, transaction_id: str) -> Transaction:
        txn = self.get_transaction(transaction_id)
        if txn is None:
            raise NotFoundError(record_not_found("Transaction", transaction_id))
        return txn

    async def edit_transaction(self, transaction_id: str, **changes: Any) -> MutationOutcome:
        """Update transaction fields.

        Args:
            transaction_id: Transaction ID to update
            changes: Fields to change, e.g. ``amount=Decimal("12.50")``

        Raises:
            NotFoundError: If the transaction or category doesn't exist
            PermissionDeniedError: If the user may not edit the transaction
            ValidationError: If a field is unknown or invalid
        """
        txn = self._require(transaction_id)
        self.permissions.check("edit", txn)

        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot edit fields: {', '.join(sorted(unknown))}")
        if not changes:
            raise ValidationError("Nothing to update")
        if "description" in changes:
            changes["description"] = (changes["description"] or "").strip()
            if not changes["description"]:
                raise ValidationError("Description is required")
        if "amount" in changes:
            self._validate_amount(changes["amount"])
        if "category_id" in changes:
            changes["category_id"] = self._resolve_category_id(changes["category_id"])

        return await self.controller.update(Collection.TRANSACTIONS, transaction_id, **changes)

    async def delete_transaction(self, transaction_id: str) -> MutationOutcome:
        """Delete a transaction.

        Raises:
            NotFoundError: If the transaction doesn't exist
            PermissionDeniedError: If the user may not delete the transaction
        """
        txn = self._require(transaction_id)
        self.permissions.check("delete", txn)
        return await self.controller.delete(Collection.TRANSACTIONS, transaction_id)

    def list_transactions(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        category_id: Optional[str] = None,
    ) -> list[Transaction]:
        """List transactions of the active dataset, oldest first.

        Args:
            start_date: Optional start date filter (inclusive)
            end_date: Optional end date filter (inclusive)
            category_id: Optional category ID filter

        Returns:
            List of transaction entities
        """
        transactions = self.store.get_active().transactions
        if start_date is not None:
            transactions = [t for t in transactions if t.date >= start_date]
        if end_date is not None:
            transactions = [t for t in transactions if t.date <= end_date]
        if category_id is not None:
            transactions = [t for t in transactions if t.category_id == category_id]
        return sorted(transactions, key=lambda t: t.date)
