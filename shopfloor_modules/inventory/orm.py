"""
Module: shopfloor_modules.inventory.orm
Responsibility: SQLAlchemy ORM persistence for the item master, the
    append-only stock ledger, wastage records and material issues.

Architecture position: Modules > Inventory > ORM.  Inherits from
    TenantScopedBase (shopfloor_kernel.db.base).

Invariants enforced:
    - Quantities use Decimal (Numeric(38,9)) -- never float.
    - (item_id, seq) is unique: a ledger position is taken exactly once.
    - StockTransaction.qty > 0 (CHECK); direction comes from ``type``.
    - StockTransaction rows are append-only (db/immutability.py).
    - InventoryItemModel.available_qty is written only by StockLedger.

Failure modes:
    - IntegrityError on duplicate (tenant_id, item_code) or (item_id, seq).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from shopfloor_kernel.db.base import TenantScopedBase


class InventoryItemModel(TenantScopedBase):
    """
    Stock-keeping record.

    ``ledger_seq`` is the position of the item's latest ledger entry; it is
    bumped under the item row lock, so replay order never depends on
    timestamps.
    """

    __tablename__ = "inventory_items"

    __table_args__ = (
        UniqueConstraint("tenant_id", "item_code", name="uq_inventory_item_code"),
        Index("idx_inventory_item_name", "tenant_id", "item_name"),
    )

    item_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    item_name: Mapped[str] = mapped_column(String(255))
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    unit: Mapped[str] = mapped_column(String(20), default="NOS")

    opening_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    available_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    reserved_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    reorder_level: Mapped[Decimal | None] = mapped_column(nullable=True)
    last_purchase_rate: Mapped[Decimal | None] = mapped_column(nullable=True)

    ledger_seq: Mapped[int] = mapped_column(default=0)
    last_low_stock_alert_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(self):
        from shopfloor_modules.inventory.models import InventoryItemInfo
        return InventoryItemInfo(
            id=self.id,
            item_code=self.item_code,
            item_name=self.item_name,
            unit=self.unit,
            available_qty=self.available_qty,
            reserved_qty=self.reserved_qty,
            reorder_level=self.reorder_level,
            last_purchase_rate=self.last_purchase_rate,
            category=self.category,
        )

    def __repr__(self) -> str:
        return f"<InventoryItemModel {self.item_code or self.item_name}: {self.available_qty}>"


class StockTransactionModel(TenantScopedBase):
    """One append-only ledger entry with the item balance after it."""

    __tablename__ = "stock_transactions"
    __entity_name__ = "StockTransaction"

    __table_args__ = (
        UniqueConstraint("item_id", "seq", name="uq_stock_txn_item_seq"),
        CheckConstraint("qty > 0", name="ck_stock_txn_qty_positive"),
        Index("idx_stock_txn_reference", "reference_type", "reference_id"),
    )

    item_id: Mapped[UUID] = mapped_column(ForeignKey("inventory_items.id"))
    seq: Mapped[int] = mapped_column()

    # TransactionType / ReferenceType stored as string
    type: Mapped[str] = mapped_column(String(50))
    reference_type: Mapped[str] = mapped_column(String(50))
    reference_id: Mapped[UUID | None] = mapped_column(nullable=True)

    qty: Mapped[Decimal] = mapped_column()
    rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    balance_after: Mapped[Decimal] = mapped_column()
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self):
        from shopfloor_modules.inventory.models import LedgerEntry, ReferenceType, TransactionType
        return LedgerEntry(
            id=self.id,
            item_id=self.item_id,
            seq=self.seq,
            type=TransactionType(self.type),
            reference_type=ReferenceType(self.reference_type),
            reference_id=self.reference_id,
            qty=self.qty,
            balance_after=self.balance_after,
            rate=self.rate,
            remarks=self.remarks,
        )

    def __repr__(self) -> str:
        return f"<StockTransaction {self.item_id}#{self.seq} {self.type} {self.qty} -> {self.balance_after}>"


class WastageRecordModel(TenantScopedBase):
    """
    Scrapped quantity as reported.

    ``qty`` is the full scrapped quantity even when the ledger could only
    deduct part of it; ``stock_transaction_id`` is None when nothing was on
    hand.
    """

    __tablename__ = "wastage_records"

    __table_args__ = (
        Index("idx_wastage_item", "item_id"),
        Index("idx_wastage_reference", "reference_type", "reference_id"),
    )

    item_id: Mapped[UUID] = mapped_column(ForeignKey("inventory_items.id"))
    qty: Mapped[Decimal] = mapped_column()
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[UUID | None] = mapped_column(nullable=True)
    stock_transaction_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("stock_transactions.id"), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<WastageRecord {self.item_id}: {self.qty}>"


class MaterialIssueModel(TenantScopedBase):
    """
    Material handed to a production job.

    ``items`` is a JSON list of ``{item_id, qty, wastage_qty}`` as issued;
    the matching ledger OUT entries carry ``reference_id == id``.
    """

    __tablename__ = "material_issues"

    __table_args__ = (
        Index("idx_material_issue_job", "production_job_id"),
    )

    production_job_id: Mapped[UUID] = mapped_column(ForeignKey("production_jobs.id"))
    project_id: Mapped[UUID] = mapped_column()
    issued_at: Mapped[datetime] = mapped_column()
    items: Mapped[list] = mapped_column(JSON)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self, ledger_entries=()):
        from shopfloor_modules.inventory.models import MaterialIssueInfo, MaterialIssueLine
        return MaterialIssueInfo(
            id=self.id,
            production_job_id=self.production_job_id,
            project_id=self.project_id,
            issued_at=self.issued_at,
            lines=tuple(MaterialIssueLine.from_mapping(line) for line in self.items),
            remarks=self.remarks,
            ledger_entries=tuple(ledger_entries),
        )

    def __repr__(self) -> str:
        return f"<MaterialIssue {self.production_job_id}: {len(self.items)} lines>"
