"""
Dispatch Domain Models (``shopfloor_modules.dispatch.models``).

Responsibility
--------------
Delivery-note status enum, line input, and frozen DTOs for notes, lines,
tracking points and acknowledgements.

Invariants
----------
- A line always satisfies ``0 <= loaded_qty <= qty`` and, once set,
  ``0 <= delivered_qty <= loaded_qty``.  ``DNItemInfo`` refuses to exist
  otherwise.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from shopfloor_kernel.db.types import ZERO, to_decimal
from shopfloor_kernel.logging_config import get_logger
from shopfloor_modules.inventory.models import LedgerEntry

logger = get_logger("modules.dispatch.models")


class DNStatus(str, Enum):
    DRAFT = "DRAFT"
    LOADING = "LOADING"
    DISPATCHED = "DISPATCHED"
    DELIVERED = "DELIVERED"
    RETURNED = "RETURNED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class DNItemInput:
    """One requested line when creating a delivery note."""
    qty: Decimal
    description: str = ""
    inventory_item_id: UUID | None = None
    production_job_id: UUID | None = None
    uom: str | None = None
    remarks: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "qty", to_decimal(self.qty, "qty"))
        if self.qty <= 0:
            logger.warning("dn_item_qty_invalid", extra={"qty": self.qty})
            raise ValueError("qty must be greater than 0")

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "DNItemInput":
        return cls(
            qty=data["qty"],
            description=data.get("description") or data.get("item_name") or "",
            inventory_item_id=data.get("inventory_item_id"),
            production_job_id=data.get("production_job_id"),
            uom=data.get("uom"),
            remarks=data.get("remarks"),
        )


@dataclass(frozen=True)
class DNItemInfo:
    id: UUID
    line_no: int
    qty: Decimal
    loaded_qty: Decimal
    delivered_qty: Decimal | None = None
    description: str = ""
    inventory_item_id: UUID | None = None
    production_job_id: UUID | None = None
    uom: str | None = None
    remarks: str | None = None

    def __post_init__(self):
        if self.loaded_qty < 0 or self.loaded_qty > self.qty:
            logger.warning(
                "dn_item_loaded_qty_out_of_bounds",
                extra={"dn_item_id": str(self.id), "loaded_qty": self.loaded_qty, "qty": self.qty},
            )
            raise ValueError("loaded_qty must be within 0..qty")
        if self.delivered_qty is not None and (
            self.delivered_qty < 0 or self.delivered_qty > self.loaded_qty
        ):
            logger.warning(
                "dn_item_delivered_qty_out_of_bounds",
                extra={
                    "dn_item_id": str(self.id),
                    "delivered_qty": self.delivered_qty,
                    "loaded_qty": self.loaded_qty,
                },
            )
            raise ValueError("delivered_qty must be within 0..loaded_qty")

    @property
    def returnable_qty(self) -> Decimal:
        """Upper bound for a return against this line."""
        if self.delivered_qty is not None:
            return self.delivered_qty
        return self.loaded_qty or ZERO


@dataclass(frozen=True)
class DeliveryNoteInfo:
    id: UUID
    dn_number: str
    project_id: UUID
    client_id: UUID
    address: str
    status: DNStatus
    items: tuple[DNItemInfo, ...] = ()
    vehicle_id: UUID | None = None
    driver_id: UUID | None = None
    dispatched_at: datetime | None = None
    delivered_at: datetime | None = None
    remarks: str | None = None
    loading_photos: tuple[str, ...] = ()

    def item(self, item_id: UUID) -> DNItemInfo:
        for line in self.items:
            if line.id == item_id:
                return line
        raise KeyError(item_id)


@dataclass(frozen=True)
class TrackingInfo:
    id: UUID
    delivery_note_id: UUID
    recorded_at: datetime
    latitude: Decimal | None = None
    longitude: Decimal | None = None
    location: str | None = None
    remarks: str | None = None


@dataclass(frozen=True)
class AcknowledgementInfo:
    id: UUID
    delivery_note_id: UUID
    acknowledged_at: datetime
    received_by: str | None = None
    remarks: str | None = None
    signature_ref: str | None = None
    site_photos: tuple[str, ...] = ()


@dataclass(frozen=True)
class DispatchResult:
    """The dispatched note and the ledger OUT entries written for it."""
    delivery_note: DeliveryNoteInfo
    ledger_entries: tuple[LedgerEntry, ...] = field(default_factory=tuple)
