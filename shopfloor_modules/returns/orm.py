"""
Module: shopfloor_modules.returns.orm
Responsibility: SQLAlchemy ORM persistence for return records and their
    lines.

Architecture position: Modules > Returns > ORM.

Invariants enforced:
    - (tenant_id, return_number) is unique.
    - Return line quantities are positive (CHECK).
    - outcome is NULL while PENDING and set once INSPECTED (CHECK).
    - replacement_dn_id is set at most once, on REPLACE returns only.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopfloor_kernel.db.base import TenantScopedBase


class ReturnRecordModel(TenantScopedBase):
    __tablename__ = "return_records"

    __table_args__ = (
        UniqueConstraint("tenant_id", "return_number", name="uq_return_number"),
        CheckConstraint(
            "(status = 'PENDING' AND outcome IS NULL) OR (status = 'INSPECTED' AND outcome IS NOT NULL)",
            name="ck_return_outcome_matches_status",
        ),
        Index("idx_return_status", "tenant_id", "status"),
        Index("idx_return_dn", "delivery_note_id"),
    )

    return_number: Mapped[str] = mapped_column(String(50))
    delivery_note_id: Mapped[UUID] = mapped_column(ForeignKey("delivery_notes.id"))
    client_id: Mapped[UUID] = mapped_column()
    invoice_id: Mapped[UUID | None] = mapped_column(nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ReturnStatus / ReturnOutcome enums stored as strings
    status: Mapped[str] = mapped_column(String(50), default="PENDING")
    outcome: Mapped[str | None] = mapped_column(String(50), nullable=True)

    inspected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    inspected_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    inspection_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rework_job_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("rework_jobs.id"), nullable=True,
    )
    credit_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    replacement_dn_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("delivery_notes.id"), nullable=True,
    )

    items: Mapped[list["ReturnItemModel"]] = relationship(
        back_populates="return_record",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReturnItemModel.line_no",
    )

    def to_dto(self):
        from shopfloor_modules.returns.models import ReturnOutcome, ReturnRecordInfo, ReturnStatus
        return ReturnRecordInfo(
            id=self.id,
            return_number=self.return_number,
            delivery_note_id=self.delivery_note_id,
            client_id=self.client_id,
            status=ReturnStatus(self.status),
            items=tuple(line.to_dto() for line in self.items),
            invoice_id=self.invoice_id,
            reason=self.reason,
            notes=self.notes,
            outcome=ReturnOutcome(self.outcome) if self.outcome else None,
            inspected_at=self.inspected_at,
            inspection_notes=self.inspection_notes,
            rework_job_id=self.rework_job_id,
            credit_amount=self.credit_amount,
            replacement_dn_id=self.replacement_dn_id,
        )

    def __repr__(self) -> str:
        return f"<ReturnRecordModel {self.return_number} {self.status}>"


class ReturnItemModel(TenantScopedBase):
    __tablename__ = "return_items"

    __table_args__ = (
        UniqueConstraint("return_record_id", "line_no", name="uq_return_item_line"),
        CheckConstraint("qty > 0", name="ck_return_item_qty_positive"),
    )

    return_record_id: Mapped[UUID] = mapped_column(ForeignKey("return_records.id"))
    line_no: Mapped[int] = mapped_column()
    dn_item_id: Mapped[UUID] = mapped_column(ForeignKey("delivery_note_items.id"))
    inventory_item_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("inventory_items.id"), nullable=True,
    )
    qty: Mapped[Decimal] = mapped_column()
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    return_record: Mapped["ReturnRecordModel"] = relationship(back_populates="items")

    def to_dto(self):
        from shopfloor_modules.returns.models import ReturnItemInfo
        return ReturnItemInfo(
            id=self.id,
            dn_item_id=self.dn_item_id,
            qty=self.qty,
            inventory_item_id=self.inventory_item_id,
            reason=self.reason,
        )
