"""
Inventory Module (``shopfloor_modules.inventory``).

Responsibility
--------------
Item master and the append-only stock ledger.  ``StockLedger`` is the only
writer of ``available_qty``: dispatch, return acceptance, scrap and
adjustments all go through it inside the caller's unit of work.

Architecture
------------
Layer: **Modules**.  ``models`` (enums + frozen DTOs), ``orm`` (item,
transaction, wastage and material issue tables), ``ledger`` (locked balance
arithmetic), ``service`` (item master, reservations, material issues,
alerts), ``config``.

Invariants
----------
- Replaying an item's entries in ``seq`` order from zero reproduces every
  ``balance_after`` and the final ``available_qty``.
- Ledger rows are never updated or deleted.
- Scrap never drives a balance below zero; shortfalls are logged.

Failure Modes
-------------
- ``InsufficientStockError`` when an OUT movement exceeds the balance.
- ``InventoryItemNotFoundError`` for unknown or foreign-tenant items.

Audit Relevance
---------------
The ledger itself is the stock audit trail.  Item creation, adjustments,
reservations and low-stock alerts also write AuditLog rows.
"""

from shopfloor_modules.inventory.config import InventoryConfig
from shopfloor_modules.inventory.ledger import StockLedger
from shopfloor_modules.inventory.models import (
    InventoryItemInfo,
    LedgerEntry,
    LedgerVerification,
    LowStockAlert,
    MaterialIssueInfo,
    MaterialIssueLine,
    ReferenceType,
    ScrapOutcome,
    TransactionType,
)
from shopfloor_modules.inventory.service import InventoryService

__all__ = [
    "InventoryConfig",
    "InventoryItemInfo",
    "InventoryService",
    "LedgerEntry",
    "LedgerVerification",
    "LowStockAlert",
    "MaterialIssueInfo",
    "MaterialIssueLine",
    "ReferenceType",
    "ScrapOutcome",
    "StockLedger",
    "TransactionType",
]
