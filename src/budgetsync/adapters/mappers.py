"""Mapper functions between domain entities and remote wire dictionaries.

Wire dictionaries use the entity field names in snake_case with a few
renames (the author is ``user_id``, a financial goal's kind is ``type``).
Amounts travel as strings and dates as ISO strings. The import batch tag is
a local-only marker and never leaves the process.
"""

import types
from dataclasses import fields
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Union, get_args, get_origin

from budgetsync.domain.entities import ENTITY_TYPES, Collection, DatasetInfo, DatasetKind, Membership, Role

RENAMES = {
    Collection.TRANSACTIONS: {"author_id": "user_id"},
    Collection.FINANCIAL_GOALS: {"goal_type": "type"},
}

LOCAL_ONLY_FIELDS = {
    Collection.TRANSACTIONS: {"import_batch_id"},
}


def _to_wire_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def _unwrap_optional(annotation: Any) -> Any:
    if get_origin(annotation) in (Union, types.UnionType):
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _from_wire_value(value: Any, annotation: Any) -> Any:
    if value is None:
        return None
    target = _unwrap_optional(annotation)
    if target is Decimal:
        return Decimal(str(value))
    if target is date:
        # Remote timestamps may carry a time part
        return date.fromisoformat(str(value)[:10])
    if isinstance(target, type) and issubclass(target, Enum):
        return target(value)
    return value


def patch_to_wire(collection: Collection, patch: dict[str, Any]) -> dict[str, Any]:
    """Convert a field-name to value patch to wire form."""
    renames = RENAMES.get(collection, {})
    local_only = LOCAL_ONLY_FIELDS.get(collection, set())
    return {
        renames.get(name, name): _to_wire_value(value)
        for name, value in patch.items()
        if name not in local_only
    }


def record_to_wire(collection: Collection, record) -> dict[str, Any]:
    """Convert an entity to its wire dictionary."""
    return patch_to_wire(collection, {f.name: getattr(record, f.name) for f in fields(record)})


def record_from_wire(collection: Collection, raw: dict[str, Any]):
    """Convert a wire dictionary to an entity.

    Unknown wire keys (dataset id, timestamps) are ignored.
    """
    entity_type = ENTITY_TYPES[collection]
    renames = RENAMES.get(collection, {})
    kwargs = {}
    for f in fields(entity_type):
        key = renames.get(f.name, f.name)
        if key in raw:
            kwargs[f.name] = _from_wire_value(raw[key], f.type)
    kwargs["id"] = str(raw["id"])
    return entity_type(**kwargs)


def dataset_from_wire(raw: dict[str, Any]) -> DatasetInfo:
    """Convert a remote dataset row to a DatasetInfo."""
    return DatasetInfo(
        id=str(raw["id"]),
        name=raw.get("name") or str(raw["id"]),
        kind=DatasetKind(raw.get("type") or DatasetKind.PERSONAL.value),
        owner_id=raw.get("owner_id"),
    )


def membership_from_wire(raw: dict[str, Any]) -> Membership:
    """Convert a remote membership row to a Membership."""
    return Membership(
        dataset_id=str(raw["dataset_id"]),
        user_id=str(raw["user_id"]),
        role=Role(raw["role"]),
    )
