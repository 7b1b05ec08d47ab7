"""
Inventory Domain Models (``shopfloor_modules.inventory.models``).

Responsibility
--------------
Frozen value objects for the stock ledger: item snapshots, ledger entries,
scrap outcomes, low-stock alerts, material issues and replay verification
results.

Architecture
------------
Layer: **Modules** -- pure domain data structures.  No database identity, no
I/O; used as DTOs between the service layer and callers.

Invariants
----------
- ``LedgerEntry.qty`` is strictly positive; direction comes from ``type``.
- ``ScrapOutcome.deducted_qty + shortfall_qty == requested_qty``.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from shopfloor_kernel.db.types import ZERO, to_decimal
from shopfloor_kernel.logging_config import get_logger

logger = get_logger("modules.inventory.models")


class TransactionType(str, Enum):
    IN = "IN"
    OUT = "OUT"


class ReferenceType(str, Enum):
    """What caused a ledger entry."""
    OPENING = "OPENING"
    DN = "DN"
    RETURN = "RETURN"
    SCRAP = "SCRAP"
    ADJUST = "ADJUST"
    GRN = "GRN"
    ISSUE = "ISSUE"


@dataclass(frozen=True)
class InventoryItemInfo:
    id: UUID
    item_code: str | None
    item_name: str
    unit: str
    available_qty: Decimal
    reserved_qty: Decimal
    reorder_level: Decimal | None = None
    last_purchase_rate: Decimal | None = None
    category: str | None = None

    @property
    def free_qty(self) -> Decimal:
        return self.available_qty - self.reserved_qty


@dataclass(frozen=True)
class LedgerEntry:
    """One immutable stock movement with its post-movement balance."""
    id: UUID
    item_id: UUID
    seq: int
    type: TransactionType
    reference_type: ReferenceType
    reference_id: UUID | None
    qty: Decimal
    balance_after: Decimal
    rate: Decimal | None = None
    remarks: str | None = None

    def __post_init__(self):
        if self.qty <= 0:
            logger.warning(
                "ledger_entry_qty_invalid",
                extra={"entry_id": str(self.id), "qty": str(self.qty)},
            )
            raise ValueError("Ledger entry qty must be positive")

    @property
    def signed_qty(self) -> Decimal:
        return self.qty if self.type == TransactionType.IN else -self.qty


@dataclass(frozen=True)
class ScrapOutcome:
    """
    Result of a scrap movement.

    ``entry`` is None when nothing was on hand to deduct.
    """
    item_id: UUID
    requested_qty: Decimal
    deducted_qty: Decimal
    shortfall_qty: Decimal
    entry: LedgerEntry | None

    def __post_init__(self):
        if self.deducted_qty + self.shortfall_qty != self.requested_qty:
            raise ValueError("deducted + shortfall must equal requested")

    @property
    def clamped(self) -> bool:
        return self.shortfall_qty > 0


@dataclass(frozen=True)
class LowStockAlert:
    item_id: UUID
    item_name: str
    item_code: str | None
    available_qty: Decimal
    reorder_level: Decimal


@dataclass(frozen=True)
class LedgerMismatch:
    seq: int
    expected_balance: Decimal
    recorded_balance: Decimal


@dataclass(frozen=True)
class LedgerVerification:
    """Replay of an item's ledger from zero."""
    item_id: UUID
    entries_checked: int
    replayed_balance: Decimal
    available_qty: Decimal
    mismatches: tuple[LedgerMismatch, ...] = ()

    @property
    def is_consistent(self) -> bool:
        return not self.mismatches and self.replayed_balance == self.available_qty


@dataclass(frozen=True)
class WastageLine:
    item_id: UUID
    item_name: str
    qty: Decimal
    reason: str | None
    reference_type: str | None
    reference_id: UUID | None


@dataclass(frozen=True)
class MaterialIssueLine:
    """
    One item handed to a job.  ``wastage_qty`` is consumed on top of
    ``qty`` and leaves the ledger in the same OUT entry.
    """
    item_id: UUID
    qty: Decimal
    wastage_qty: Decimal = ZERO

    def __post_init__(self):
        object.__setattr__(self, "qty", to_decimal(self.qty, "qty"))
        object.__setattr__(self, "wastage_qty", to_decimal(self.wastage_qty, "wastage_qty"))
        if self.qty <= 0:
            logger.warning(
                "material_issue_qty_invalid",
                extra={"item_id": str(self.item_id), "qty": self.qty},
            )
            raise ValueError("qty must be greater than 0")
        if self.wastage_qty < 0:
            raise ValueError("wastage_qty must be >= 0")

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "MaterialIssueLine":
        item_id = data.get("item_id") or data["inventory_item_id"]
        return cls(
            item_id=item_id if isinstance(item_id, UUID) else UUID(str(item_id)),
            qty=data["qty"],
            wastage_qty=data.get("wastage_qty", data.get("wastage")) or ZERO,
        )

    @property
    def total_qty(self) -> Decimal:
        return self.qty + self.wastage_qty

    def to_json(self) -> dict[str, str]:
        return {
            "item_id": str(self.item_id),
            "qty": str(self.qty),
            "wastage_qty": str(self.wastage_qty),
        }


@dataclass(frozen=True)
class MaterialIssueInfo:
    id: UUID
    production_job_id: UUID
    project_id: UUID
    issued_at: datetime
    lines: tuple[MaterialIssueLine, ...]
    remarks: str | None = None
    ledger_entries: tuple[LedgerEntry, ...] = ()

    @property
    def total_wastage(self) -> Decimal:
        return sum((line.wastage_qty for line in self.lines), ZERO)
