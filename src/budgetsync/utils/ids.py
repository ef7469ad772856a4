"""Identifier helpers."""

import uuid


def new_local_id(prefix: str = "tx") -> str:
    """Return an opaque locally generated identifier such as ``tx_1f3a...``."""
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


def new_batch_id() -> str:
    """Return an identifier for an import batch."""
    return f"batch_{uuid.uuid4().hex[:12]}"
