"""
Dispatch Module (``shopfloor_modules.dispatch``).

Responsibility
--------------
Delivery notes: creation against a project, loading, vehicle assignment,
dispatch with ledger OUT entries, tracking, delivery with acknowledgement,
cancellation and return marking.

Invariants
----------
- ``0 <= loaded_qty <= qty`` and ``0 <= delivered_qty <= loaded_qty`` on
  every line.
- A vehicle is IN_USE exactly while a LOADING or DISPATCHED note holds it.
- Dispatch is all-or-nothing across the note, its vehicle and the ledger.

Failure Modes
-------------
- ``DispatchBlockedError`` when a dispatch guard fails.
- ``QuantityExceededError`` for loaded or delivered quantities out of range.
- ``InsufficientStockError`` when a line cannot be taken from stock.

``DispatchService`` lives in ``shopfloor_modules.dispatch.service``.
"""

from shopfloor_modules.dispatch.config import DispatchConfig
from shopfloor_modules.dispatch.models import (
    AcknowledgementInfo,
    DeliveryNoteInfo,
    DispatchResult,
    DNItemInfo,
    DNItemInput,
    DNStatus,
    TrackingInfo,
)
from shopfloor_modules.dispatch.workflows import DN_WORKFLOW, holds_vehicle, next_dn_statuses

__all__ = [
    "AcknowledgementInfo",
    "DN_WORKFLOW",
    "DNItemInfo",
    "DNItemInput",
    "DNStatus",
    "DeliveryNoteInfo",
    "DispatchConfig",
    "DispatchResult",
    "TrackingInfo",
    "holds_vehicle",
    "next_dn_statuses",
]
