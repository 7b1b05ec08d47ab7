"""
Module: shopfloor_modules.quality.orm
Responsibility: SQLAlchemy ORM persistence for QC inspection records.

Architecture position: Modules > Quality > ORM.

Invariants enforced:
    - QC records are append-only: the ORM listeners in
      shopfloor_kernel.db.immutability reject UPDATE and DELETE.
    - Exactly one of production_job_id / delivery_note_id is set.
    - ``seq`` comes from the tenant's QC counter, so "latest" never depends
      on timestamp resolution.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from shopfloor_kernel.db.base import TenantScopedBase
from shopfloor_kernel.domain.json_fields import parse_json_list


class QCRecordModel(TenantScopedBase):
    __tablename__ = "qc_records"
    __entity_name__ = "QCRecord"

    __table_args__ = (
        CheckConstraint(
            "(production_job_id IS NULL) <> (delivery_note_id IS NULL)",
            name="ck_qc_single_target",
        ),
        Index("idx_qc_job", "production_job_id", "seq"),
        Index("idx_qc_dn", "delivery_note_id", "seq"),
        Index("idx_qc_stage_log", "stage_log_id", "seq"),
    )

    seq: Mapped[int] = mapped_column()
    production_job_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("production_jobs.id"), nullable=True,
    )
    delivery_note_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("delivery_notes.id"), nullable=True,
    )
    stage_log_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("production_stage_logs.id"), nullable=True,
    )
    stage: Mapped[str | None] = mapped_column(String(100), nullable=True)
    inspector_id: Mapped[UUID] = mapped_column()

    # QCStatus enum stored as string
    qc_status: Mapped[str] = mapped_column(String(50))

    defects: Mapped[list | None] = mapped_column(JSON, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    inspected_at: Mapped[datetime] = mapped_column()

    def to_dto(self):
        from shopfloor_modules.quality.models import QCRecordInfo, QCStatus
        return QCRecordInfo(
            id=self.id,
            qc_status=QCStatus(self.qc_status),
            inspector_id=self.inspector_id,
            inspected_at=self.inspected_at,
            seq=self.seq,
            production_job_id=self.production_job_id,
            delivery_note_id=self.delivery_note_id,
            stage_log_id=self.stage_log_id,
            stage=self.stage,
            defects=parse_json_list(self.defects, "defects"),
            remarks=self.remarks,
        )

    def __repr__(self) -> str:
        return f"<QCRecordModel #{self.seq} {self.qc_status}>"
