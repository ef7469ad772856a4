"""Helpers for frozen record entities."""

from dataclasses import fields, replace
from typing import Any

from budgetsync.domain.errors import ValidationError


def apply_patch(record, patch: dict[str, Any]):
    """Return a copy of a frozen entity with patched fields.

    Raises:
        ValidationError: If the patch names a field the entity does not have
            or tries to change the record ID
    """
    names = {f.name for f in fields(record)}
    unknown = set(patch) - names
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
    if "id" in patch and patch["id"] != record.id:
        raise ValidationError("Record IDs cannot be changed")
    return replace(record, **patch)
