"""Shared domain error messages and error types."""


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class PermissionDeniedError(DomainError):
    """The current user may not perform the operation.

    Raised for client-side permission checks and inferred from remote
    writes that came back with no rows under a visibility rule.
    """


class TransientNetworkError(DomainError):
    """A remote call failed in a way that may succeed if retried."""


class ImportFormatError(DomainError):
    """A single imported row or record could not be parsed."""

    def __init__(self, message: str, row_number: int | None = None):
        super().__init__(message)
        self.row_number = row_number


class SourceNotReadyError(DomainError):
    """The bank feed is still processing and has no data yet."""

    def __init__(self, message: str, request_id: str | None = None):
        super().__init__(message)
        self.request_id = request_id


class StaleDatasetError(DomainError):
    """A response arrived for a dataset that is no longer active."""


def dataset_not_found(dataset_id: str) -> str:
    """Return message for missing dataset."""
    return f"Dataset '{dataset_id}' not found"


def record_not_found(collection: str, record_id: str) -> str:
    """Return message for a missing record in a collection."""
    return f"{collection} record '{record_id}' not found"


def category_not_found(category_id: str) -> str:
    """Return message for missing category by ID."""
    return f"Category '{category_id}' not found"


def duplicate_category_name(name: str) -> str:
    """Return message for a category name already in use."""
    return f"Category '{name}' already exists"


def last_category_delete_blocked() -> str:
    """Return message when the only remaining category would be deleted."""
    return "Cannot delete the last category"


def not_allowed(action: str, shared: bool) -> str:
    """Return the user-facing permission message for an action."""
    if shared:
        return (
            f"You can only {action} transactions you added "
            "(unless you're the budget owner or an admin)."
        )
    return f"You don't have permission to {action} this transaction."


def amount_too_large(max_amount) -> str:
    """Return message for an amount at or beyond the supported maximum."""
    return f"Amount too large (max: {max_amount:,.2f})"


def source_not_ready(request_id: str | None = None) -> str:
    """Return message when the bank feed is still processing after all retries."""
    suffix = f" (Request ID: {request_id})" if request_id else ""
    return (
        "Transactions are still processing. Please wait a few minutes "
        f"and try importing again.{suffix}"
    )


class CorruptDocumentError(DomainError):
    """The persisted local document could not be parsed."""
