"""
Returns Domain Models (``shopfloor_modules.returns.models``).

Return status and disposition enums, the line input, and frozen DTOs for
return records and inspection results.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from shopfloor_kernel.db.types import to_decimal
from shopfloor_kernel.logging_config import get_logger
from shopfloor_modules.inventory.models import LedgerEntry, ScrapOutcome

logger = get_logger("modules.returns.models")


class ReturnStatus(str, Enum):
    PENDING = "PENDING"
    INSPECTED = "INSPECTED"


class ReturnOutcome(str, Enum):
    """Disposition chosen at inspection."""
    REWORK = "REWORK"
    SCRAP = "SCRAP"
    ACCEPT_RETURN = "ACCEPT_RETURN"
    REPLACE = "REPLACE"


@dataclass(frozen=True)
class ReturnItemInput:
    """One returned quantity against a delivery note line."""
    dn_item_id: UUID
    qty: Decimal
    reason: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "qty", to_decimal(self.qty, "qty"))
        if self.qty <= 0:
            logger.warning(
                "return_item_qty_invalid",
                extra={"dn_item_id": str(self.dn_item_id), "qty": self.qty},
            )
            raise ValueError("qty must be greater than 0")

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "ReturnItemInput":
        return cls(
            dn_item_id=data.get("dn_item_id") or data["dn_line_id"],
            qty=data["qty"],
            reason=data.get("reason"),
        )


@dataclass(frozen=True)
class ReturnItemInfo:
    id: UUID
    dn_item_id: UUID
    qty: Decimal
    inventory_item_id: UUID | None = None
    reason: str | None = None


@dataclass(frozen=True)
class ReturnRecordInfo:
    id: UUID
    return_number: str
    delivery_note_id: UUID
    client_id: UUID
    status: ReturnStatus
    items: tuple[ReturnItemInfo, ...] = ()
    invoice_id: UUID | None = None
    reason: str | None = None
    notes: str | None = None
    outcome: ReturnOutcome | None = None
    inspected_at: datetime | None = None
    inspection_notes: str | None = None
    rework_job_id: UUID | None = None
    credit_amount: Decimal | None = None
    replacement_dn_id: UUID | None = None

    def __post_init__(self):
        if (self.status == ReturnStatus.INSPECTED) != (self.outcome is not None):
            logger.warning(
                "return_outcome_inconsistent",
                extra={"return_id": str(self.id), "status": self.status.value},
            )
            raise ValueError("outcome is set exactly when the return is INSPECTED")


@dataclass(frozen=True)
class InspectionResult:
    """
    What an inspection did.

    ``ledger_entries`` holds the IN entries of an accepted return and the
    OUT entries of a scrap; ``scrap_outcomes`` keeps the clamping detail
    for each scrapped line.
    """
    return_record: ReturnRecordInfo
    ledger_entries: tuple[LedgerEntry, ...] = ()
    scrap_outcomes: tuple[ScrapOutcome, ...] = ()
    rework_job_id: UUID | None = None
    credit_amount: Decimal | None = None

    @property
    def credit_note_emitted(self) -> bool:
        return self.credit_amount is not None and self.credit_amount > 0
