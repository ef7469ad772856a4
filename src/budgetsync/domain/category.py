"""Category domain service."""

from decimal import Decimal
from typing import Optional

from budgetsync.domain.entities import Category, Collection, TransactionType
from budgetsync.domain.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    category_not_found,
    duplicate_category_name,
)
from budgetsync.domain.mutations import MutationOutcome, OptimisticMutationController
from budgetsync.store.local_store import LocalStore
from budgetsync.utils.ids import new_local_id


class CategoryService:
    """Service for managing categories of the active dataset."""

    def __init__(self, store: LocalStore, controller: OptimisticMutationController):
        """Initialize category service.

        Args:
            store: Local store holding the active dataset
            controller: Mutation controller used for every write
        """
        self.store = store
        self.controller = controller

    def list_categories(self) -> list[Category]:
        """List categories of the active dataset in display order."""
        return self.store.get_active().categories

    def get_category(self, category_id: str) -> Optional[Category]:
        """Get category by ID."""
        return self.store.get_record(Collection.CATEGORIES, category_id)

    def resolve(self, token: str) -> Optional[Category]:
        """Find a category by ID or by name, ignoring case.

        Returns:
            Category or None if nothing matches
        """
        key = (token or "").strip().lower()
        if not key:
            return None
        categories = self.list_categories()
        for category in categories:
            if category.id.lower() == key:
                return category
        for category in categories:
            if category.name.lower() == key:
                return category
        return None

    async def create_category(
        self,
        name: str,
        color: Optional[str] = None,
        monthly_budget: Optional[Decimal] = None,
        applies_to: Optional[TransactionType] = None,
    ) -> MutationOutcome:
        """Create a category.

        Args:
            name: Category name, unique within the dataset
            color: Optional display color
            monthly_budget: Optional monthly budget ceiling
            applies_to: Optional transaction type the category is meant for

        Raises:
            ValidationError: If the name is empty or the budget negative
            ConflictError: If a category with that name already exists
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Category name is required")
        if monthly_budget is not None and monthly_budget < 0:
            raise ValidationError("Monthly budget cannot be negative")
        if any(c.name.lower() == name.lower() for c in self.list_categories()):
            raise ConflictError(duplicate_category_name(name))

        category = Category(
            id=new_local_id("cat"),
            name=name,
            color=color or Category.color,
            monthly_budget=monthly_budget,
            applies_to=applies_to,
        )
        return await self.controller.create(Collection.CATEGORIES, category)

    async def delete_category(self, token: str) -> MutationOutcome:
        """Delete a category by ID or name.

        Transactions and recurring rules using it are moved to the fallback
        category ("Other", else the first remaining one) before it goes.

        Raises:
            NotFoundError: If the category doesn't exist
            ValidationError: If it is the last category
        """
        category = self.resolve(token)
        if category is None:
            raise NotFoundError(category_not_found(token))
        return await self.controller.delete_category(category.id)
