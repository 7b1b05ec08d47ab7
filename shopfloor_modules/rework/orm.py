"""
Module: shopfloor_modules.rework.orm
Responsibility: SQLAlchemy ORM persistence for rework jobs.

Architecture position: Modules > Rework > ORM.

Invariants enforced:
    - Exactly one of source_production_job_id / source_delivery_note_id is
      set (CHECK constraint plus a service guard).
    - source_return_id is a plain reference: return records point back at
      their rework job, so a foreign key here would make the two tables
      depend on each other.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from shopfloor_kernel.db.base import TenantScopedBase
from shopfloor_kernel.domain.json_fields import parse_json_list


class ReworkJobModel(TenantScopedBase):
    __tablename__ = "rework_jobs"

    __table_args__ = (
        UniqueConstraint("tenant_id", "rework_number", name="uq_rework_number"),
        CheckConstraint(
            "(source_production_job_id IS NULL) <> (source_delivery_note_id IS NULL)",
            name="ck_rework_single_source",
        ),
        Index("idx_rework_status", "tenant_id", "status"),
        Index("idx_rework_source_job", "source_production_job_id"),
    )

    rework_number: Mapped[str] = mapped_column(String(50))

    source_production_job_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("production_jobs.id"), nullable=True,
    )
    source_delivery_note_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("delivery_notes.id"), nullable=True,
    )
    source_return_id: Mapped[UUID | None] = mapped_column(nullable=True)
    qc_record_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("qc_records.id"), nullable=True,
    )

    assignee_id: Mapped[UUID | None] = mapped_column(nullable=True)

    # ReworkStatus enum stored as string
    status: Mapped[str] = mapped_column(String(50), default="OPEN")

    expected_hours: Mapped[Decimal | None] = mapped_column(nullable=True)
    actual_hours: Mapped[Decimal | None] = mapped_column(nullable=True)
    material_needed: Mapped[list | None] = mapped_column(JSON, nullable=True)
    defect_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(self):
        from shopfloor_modules.rework.models import ReworkJobInfo, ReworkStatus
        return ReworkJobInfo(
            id=self.id,
            rework_number=self.rework_number,
            status=ReworkStatus(self.status),
            source_production_job_id=self.source_production_job_id,
            source_delivery_note_id=self.source_delivery_note_id,
            source_return_id=self.source_return_id,
            qc_record_id=self.qc_record_id,
            assignee_id=self.assignee_id,
            expected_hours=self.expected_hours,
            actual_hours=self.actual_hours,
            material_needed=parse_json_list(self.material_needed, "material_needed"),
            defect_description=self.defect_description,
            notes=self.notes,
            completed_at=self.completed_at,
        )

    def __repr__(self) -> str:
        return f"<ReworkJobModel {self.rework_number} {self.status}>"
