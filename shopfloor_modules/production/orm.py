"""
Module: shopfloor_modules.production.orm
Responsibility: SQLAlchemy ORM persistence for production jobs and their
    per-visit stage logs.

Architecture position: Modules > Production > ORM.  Inherits from
    TenantScopedBase (shopfloor_kernel.db.base).

Invariants enforced:
    - Hours and quantities use Decimal (Numeric(38,9)).
    - (job_id, seq) and (job_id, stage, visit) are unique: re-entering a
      stage creates a new visit rather than reusing an old log.
    - The ``stage_index`` column is a write-time snapshot only.  DTOs never
      read it; callers pass the index resolved from the current stage list.
    - Jobs are never deleted; CANCELLED is terminal.

Failure modes:
    - IntegrityError on duplicate (tenant_id, job_number).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopfloor_kernel.db.base import TenantScopedBase
from shopfloor_kernel.domain.json_fields import parse_json_list


class ProductionJobModel(TenantScopedBase):
    """One unit of planned manufacturing work for a project sub-group."""

    __tablename__ = "production_jobs"

    __table_args__ = (
        UniqueConstraint("tenant_id", "job_number", name="uq_production_job_number"),
        Index("idx_production_job_project", "project_id"),
        Index("idx_production_job_status", "tenant_id", "status"),
    )

    project_id: Mapped[UUID] = mapped_column(ForeignKey("projects.id"))
    sub_group: Mapped[str | None] = mapped_column(String(255), nullable=True)
    job_number: Mapped[str] = mapped_column(String(50))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    stage: Mapped[str] = mapped_column(String(100))
    stage_index: Mapped[int | None] = mapped_column(nullable=True)

    # JobStatus enum stored as string
    status: Mapped[str] = mapped_column(String(50), default="NOT_STARTED")

    planned_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    planned_hours: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    actual_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    actual_hours: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    assignee_id: Mapped[UUID | None] = mapped_column(nullable=True)

    stage_logs: Mapped[list["ProductionStageLogModel"]] = relationship(
        back_populates="job",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ProductionStageLogModel.seq",
    )

    def open_log(self) -> "ProductionStageLogModel | None":
        for log in reversed(self.stage_logs):
            if log.completed_at is None:
                return log
        return None

    def latest_log_for(self, stage: str) -> "ProductionStageLogModel | None":
        for log in reversed(self.stage_logs):
            if log.stage == stage:
                return log
        return None

    def to_dto(self, stage_index: int | None):
        from shopfloor_modules.production.models import JobStatus, ProductionJobInfo
        return ProductionJobInfo(
            id=self.id,
            project_id=self.project_id,
            job_number=self.job_number,
            stage=self.stage,
            stage_index=stage_index,
            status=JobStatus(self.status),
            planned_qty=self.planned_qty,
            planned_hours=self.planned_hours,
            actual_qty=self.actual_qty,
            actual_hours=self.actual_hours,
            sub_group=self.sub_group,
            description=self.description,
            assignee_id=self.assignee_id,
        )

    def __repr__(self) -> str:
        return f"<ProductionJobModel {self.job_number} {self.stage}/{self.status}>"


class ProductionStageLogModel(TenantScopedBase):
    """
    One visit of a job to one stage.

    ``photos`` is a JSON list; always reassign it (never append in place) so
    the change is tracked.  ``notes`` grows by ``"\\n"``-joined appends.
    """

    __tablename__ = "production_stage_logs"

    __table_args__ = (
        UniqueConstraint("job_id", "seq", name="uq_stage_log_job_seq"),
        UniqueConstraint("job_id", "stage", "visit", name="uq_stage_log_visit"),
        Index("idx_stage_log_job_stage", "job_id", "stage"),
    )

    job_id: Mapped[UUID] = mapped_column(ForeignKey("production_jobs.id"))
    stage: Mapped[str] = mapped_column(String(100))
    visit: Mapped[int] = mapped_column(default=1)
    seq: Mapped[int] = mapped_column()

    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    hours_logged: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    output_qty: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    qc_status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    photos: Mapped[list | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    performed_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    job: Mapped["ProductionJobModel"] = relationship(
        back_populates="stage_logs",
    )

    def to_dto(self):
        from shopfloor_modules.production.models import StageLogInfo
        return StageLogInfo(
            id=self.id,
            job_id=self.job_id,
            stage=self.stage,
            visit=self.visit,
            seq=self.seq,
            started_at=self.started_at,
            completed_at=self.completed_at,
            hours_logged=self.hours_logged,
            output_qty=self.output_qty,
            qc_status=self.qc_status,
            photos=tuple(parse_json_list(self.photos, "photos")),
            notes=self.notes,
            performed_by_id=self.performed_by_id,
        )

    def __repr__(self) -> str:
        return f"<ProductionStageLogModel {self.stage}#{self.visit} open={self.completed_at is None}>"
