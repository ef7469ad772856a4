"""Tunables and defaults shared across the sync core."""

from dataclasses import dataclass
from decimal import Decimal

# Remote amount columns are DECIMAL(10, 2)
MAX_AMOUNT = Decimal("99999999.99")

DEFAULT_DATASET_ID = "p_default"
DEFAULT_DATASET_NAME = "Default"
PERSONAL_DATASET_NAME = "Personal Budget"

FALLBACK_CATEGORY_NAME = "Other"

# (id, name, color, monthly budget)
DEFAULT_CATEGORIES = [
    ("rent", "Rent", "#f87171", Decimal("1200")),
    ("groceries", "Groceries", "#4ade80", Decimal("300")),
    ("transport", "Transport", "#60a5fa", Decimal("150")),
    ("fun", "Fun", "#c084fc", Decimal("200")),
    ("bills", "Bills", "#facc15", Decimal("250")),
    ("other", "Other", "#94a3b8", Decimal("0")),
]

ACTIVE_DATASET_PREFERENCE = "activeDatasetId"


@dataclass(frozen=True)
class SyncSettings:
    """Timing and limit settings injected into the sync services."""

    watchdog_interval: float = 2.0
    activity_cooldown: float = 1.0
    import_max_retries: int = 3
    import_base_delay: float = 2.0
    bank_history_days: int = 30
    max_amount: Decimal = MAX_AMOUNT
