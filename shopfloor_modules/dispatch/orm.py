"""
Module: shopfloor_modules.dispatch.orm
Responsibility: SQLAlchemy ORM persistence for delivery notes, their lines,
    tracking points and delivery acknowledgements.

Architecture position: Modules > Dispatch > ORM.

Invariants enforced:
    - Line quantities: CHECK (qty > 0), CHECK (0 <= loaded_qty <= qty),
      CHECK (delivered_qty IS NULL OR 0 <= delivered_qty <= loaded_qty).
    - (delivery_note_id, line_no) is unique; lines keep creation order.
    - DeliveryTracking rows are append-only (shopfloor_kernel.db.immutability).
    - At most one acknowledgement per delivery note.
    - vehicle_id / driver_id are plain references so a vehicle or driver
      can be deleted once no in-flight note holds it; delivered notes keep
      the ids as history.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopfloor_kernel.db.base import TenantScopedBase
from shopfloor_kernel.domain.json_fields import parse_json_list


class DeliveryNoteModel(TenantScopedBase):
    __tablename__ = "delivery_notes"

    __table_args__ = (
        UniqueConstraint("tenant_id", "dn_number", name="uq_delivery_note_number"),
        Index("idx_dn_status", "tenant_id", "status"),
        Index("idx_dn_vehicle_status", "vehicle_id", "status"),
        Index("idx_dn_driver_status", "driver_id", "status"),
    )

    dn_number: Mapped[str] = mapped_column(String(50))
    project_id: Mapped[UUID] = mapped_column(ForeignKey("projects.id"))
    client_id: Mapped[UUID] = mapped_column()
    address: Mapped[str] = mapped_column(Text)

    # DNStatus enum stored as string
    status: Mapped[str] = mapped_column(String(50), default="DRAFT")

    vehicle_id: Mapped[UUID | None] = mapped_column(nullable=True)
    driver_id: Mapped[UUID | None] = mapped_column(nullable=True)
    dispatched_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    loading_photos: Mapped[list | None] = mapped_column(JSON, nullable=True)

    items: Mapped[list["DNItemModel"]] = relationship(
        back_populates="delivery_note",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DNItemModel.line_no",
    )

    def item(self, item_id: UUID) -> "DNItemModel | None":
        for line in self.items:
            if line.id == item_id:
                return line
        return None

    def to_dto(self):
        from shopfloor_modules.dispatch.models import DeliveryNoteInfo, DNStatus
        return DeliveryNoteInfo(
            id=self.id,
            dn_number=self.dn_number,
            project_id=self.project_id,
            client_id=self.client_id,
            address=self.address,
            status=DNStatus(self.status),
            items=tuple(line.to_dto() for line in self.items),
            vehicle_id=self.vehicle_id,
            driver_id=self.driver_id,
            dispatched_at=self.dispatched_at,
            delivered_at=self.delivered_at,
            remarks=self.remarks,
            loading_photos=tuple(parse_json_list(self.loading_photos, "loading_photos")),
        )

    def __repr__(self) -> str:
        return f"<DeliveryNoteModel {self.dn_number} {self.status}>"


class DNItemModel(TenantScopedBase):
    __tablename__ = "delivery_note_items"

    __table_args__ = (
        UniqueConstraint("delivery_note_id", "line_no", name="uq_dn_item_line"),
        CheckConstraint("qty > 0", name="ck_dn_item_qty_positive"),
        CheckConstraint(
            "loaded_qty >= 0 AND loaded_qty <= qty",
            name="ck_dn_item_loaded_within_qty",
        ),
        CheckConstraint(
            "delivered_qty IS NULL OR (delivered_qty >= 0 AND delivered_qty <= loaded_qty)",
            name="ck_dn_item_delivered_within_loaded",
        ),
        Index("idx_dn_item_inventory", "inventory_item_id"),
    )

    delivery_note_id: Mapped[UUID] = mapped_column(ForeignKey("delivery_notes.id"))
    line_no: Mapped[int] = mapped_column()
    inventory_item_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("inventory_items.id"), nullable=True,
    )
    production_job_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("production_jobs.id"), nullable=True,
    )
    description: Mapped[str] = mapped_column(String(500), default="")
    uom: Mapped[str | None] = mapped_column(String(50), nullable=True)
    qty: Mapped[Decimal] = mapped_column()
    loaded_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    delivered_qty: Mapped[Decimal | None] = mapped_column(nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    delivery_note: Mapped["DeliveryNoteModel"] = relationship(back_populates="items")

    def to_dto(self):
        from shopfloor_modules.dispatch.models import DNItemInfo
        return DNItemInfo(
            id=self.id,
            line_no=self.line_no,
            qty=self.qty,
            loaded_qty=self.loaded_qty,
            delivered_qty=self.delivered_qty,
            description=self.description,
            inventory_item_id=self.inventory_item_id,
            production_job_id=self.production_job_id,
            uom=self.uom,
            remarks=self.remarks,
        )

    def __repr__(self) -> str:
        return f"<DNItemModel #{self.line_no} {self.loaded_qty}/{self.qty}>"


class DeliveryTrackingModel(TenantScopedBase):
    """One reported position of a dispatched delivery note.  Append-only."""

    __tablename__ = "delivery_tracking"
    __entity_name__ = "DeliveryTracking"

    __table_args__ = (
        Index("idx_tracking_dn", "delivery_note_id", "recorded_at"),
    )

    delivery_note_id: Mapped[UUID] = mapped_column(ForeignKey("delivery_notes.id"))
    latitude: Mapped[Decimal | None] = mapped_column(nullable=True)
    longitude: Mapped[Decimal | None] = mapped_column(nullable=True)
    location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column()

    def to_dto(self):
        from shopfloor_modules.dispatch.models import TrackingInfo
        return TrackingInfo(
            id=self.id,
            delivery_note_id=self.delivery_note_id,
            recorded_at=self.recorded_at,
            latitude=self.latitude,
            longitude=self.longitude,
            location=self.location,
            remarks=self.remarks,
        )


class DeliveryAcknowledgementModel(TenantScopedBase):
    __tablename__ = "delivery_acknowledgements"

    __table_args__ = (
        UniqueConstraint("delivery_note_id", name="uq_acknowledgement_dn"),
    )

    delivery_note_id: Mapped[UUID] = mapped_column(ForeignKey("delivery_notes.id"))
    received_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    signature_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)
    site_photos: Mapped[list | None] = mapped_column(JSON, nullable=True)
    acknowledged_at: Mapped[datetime] = mapped_column()

    def to_dto(self):
        from shopfloor_modules.dispatch.models import AcknowledgementInfo
        return AcknowledgementInfo(
            id=self.id,
            delivery_note_id=self.delivery_note_id,
            acknowledged_at=self.acknowledged_at,
            received_by=self.received_by,
            remarks=self.remarks,
            signature_ref=self.signature_ref,
            site_photos=tuple(parse_json_list(self.site_photos, "site_photos")),
        )
