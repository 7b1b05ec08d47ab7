"""
Quality Module Service (``shopfloor_modules.quality.service``).

Responsibility
--------------
The QC gate.  ``record_qc`` appends one inspection record against a
production job or a delivery note and applies its consequences:

- production job: the latest log of the inspected stage takes the new
  status; a FAIL moves the job to REWORK (from any non-terminal status)
  and can open a rework job in the same unit of work.
- delivery note: nothing changes on the note.  Any FAIL record on the note
  blocks dispatch for good; later PASS or NA records do not clear it.

Audit Relevance
---------------
QC_RECORD_CREATE for every inspection (REWORK_CREATE as well when a
rework job is opened).  FAIL inspections raise a QC_FAIL notification
after commit.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import exists, select

from shopfloor_kernel.domain.context import OperationContext
from shopfloor_kernel.domain.json_fields import parse_json_list
from shopfloor_kernel.exceptions import (
    DeliveryNoteNotFoundError,
    InvalidTransitionError,
    QCRecordNotFoundError,
    ValidationError,
)
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.audit_log import AuditAction
from shopfloor_kernel.services.audit_logger import AuditLogger
from shopfloor_kernel.services.notifications import (
    Notification,
    NotificationPublisher,
    NotificationType,
)
from shopfloor_kernel.services.sequence_service import SequenceService
from shopfloor_kernel.services.unit_of_work import UnitOfWork
from shopfloor_modules.dispatch.orm import DeliveryNoteModel
from shopfloor_modules.production.models import JobStatus
from shopfloor_modules.production.service import ProductionJobService
from shopfloor_modules.production.workflows import can_force_rework
from shopfloor_modules.quality.models import QCRecordInfo, QCResult, QCStatus
from shopfloor_modules.quality.orm import QCRecordModel
from shopfloor_modules.rework.service import ReworkService

logger = get_logger("modules.quality.service")

QC_SEQUENCE = "QC"


def _parse_status(value: QCStatus | str) -> QCStatus:
    if isinstance(value, QCStatus):
        return value
    try:
        return QCStatus(str(value).upper())
    except ValueError as exc:
        raise ValidationError("qc_status", "must be PASS, FAIL, or NA") from exc


class QualityService:
    """Records inspections and applies the QC gate."""

    def __init__(
        self,
        notifications: NotificationPublisher | None = None,
        production: ProductionJobService | None = None,
        rework: ReworkService | None = None,
    ):
        self._notifications = notifications or NotificationPublisher()
        self._production = production or ProductionJobService()
        self._rework = rework or ReworkService(self._notifications, self._production)

    # =========================================================================
    # Recording
    # =========================================================================

    def record_qc(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        qc_status: QCStatus | str,
        production_job_id: UUID | None = None,
        delivery_note_id: UUID | None = None,
        stage: str | None = None,
        defects: Iterable[Any] | str | None = None,
        remarks: str | None = None,
        create_rework: bool = False,
        rework_assignee_id: UUID | None = None,
        expected_hours: object = None,
        inspector_id: UUID | None = None,
    ) -> QCResult:
        """
        Append one QC record and apply the gate.

        Raises:
            ValidationError: not exactly one target, or an unknown status.
            ProductionJobNotFoundError / DeliveryNoteNotFoundError.
            InvalidTransitionError: FAIL against a CANCELLED job.
        """
        if (production_job_id is None) == (delivery_note_id is None):
            raise ValidationError(
                "target", "exactly one of production_job_id or delivery_note_id is required",
            )
        status = _parse_status(qc_status)
        inspector = inspector_id or ctx.actor_id
        now = uow.clock.now()

        job = None
        stage_log = None
        if production_job_id is not None:
            job = self._production.get_model(uow, ctx, production_job_id, lock=True)
            if status == QCStatus.FAIL and not can_force_rework(JobStatus(job.status)):
                raise InvalidTransitionError(
                    "ProductionJob", str(job.id), job.status, JobStatus.REWORK.value,
                    reason="job is cancelled",
                )
            stage = stage or job.stage
            stage_log = job.latest_log_for(stage)
            if stage_log is not None:
                stage_log.qc_status = status.value
                stage_log.updated_by_id = ctx.actor_id
        else:
            dn = uow.session.get(DeliveryNoteModel, delivery_note_id)
            if dn is None or dn.tenant_id != ctx.tenant_id:
                raise DeliveryNoteNotFoundError(str(delivery_note_id))
            stage = None

        record = QCRecordModel(
            tenant_id=ctx.tenant_id,
            seq=SequenceService(uow.session).next_value(ctx.tenant_id, QC_SEQUENCE),
            production_job_id=production_job_id,
            delivery_note_id=delivery_note_id,
            stage_log_id=stage_log.id if stage_log is not None else None,
            stage=stage,
            inspector_id=inspector,
            qc_status=status.value,
            defects=parse_json_list(defects, "defects") or None,
            remarks=remarks,
            inspected_at=now,
            created_by_id=ctx.actor_id,
        )
        uow.session.add(record)
        uow.flush()

        job_status = job.status if job is not None else None
        rework_job_id = None
        if status == QCStatus.FAIL:
            if job is not None:
                self._production.force_rework(uow, ctx, job.id)
                job_status = JobStatus.REWORK.value
            if create_rework:
                rework = self._rework.create_rework(
                    uow,
                    ctx,
                    source_production_job_id=production_job_id,
                    source_delivery_note_id=delivery_note_id,
                    assignee_id=rework_assignee_id,
                    expected_hours=expected_hours,
                    defect_description=remarks,
                    qc_record_id=record.id,
                )
                rework_job_id = rework.id

        AuditLogger(uow).record(
            ctx,
            AuditAction.QC_RECORD_CREATE,
            "QCRecord",
            record.id,
            new_data={
                "production_job_id": production_job_id,
                "delivery_note_id": delivery_note_id,
                "stage": stage,
                "qc_status": status,
                "defects": record.defects,
                "job_status": job_status,
                "rework_job_id": rework_job_id,
            },
        )

        if status == QCStatus.FAIL:
            target_link = (
                f"/production/jobs/{production_job_id}" if production_job_id
                else f"/dispatch/{delivery_note_id}"
            )
            self._notifications.publish(
                uow,
                Notification(
                    tenant_id=ctx.tenant_id,
                    type=NotificationType.QC_FAIL,
                    title="QC Inspection Failed",
                    message=(
                        f"QC inspection failed for production job at stage: {stage}"
                        if production_job_id else "QC inspection failed for delivery note"
                    ),
                    link=target_link,
                    metadata={
                        "production_job_id": str(production_job_id) if production_job_id else None,
                        "delivery_note_id": str(delivery_note_id) if delivery_note_id else None,
                        "stage": stage,
                        "qc_record_id": str(record.id),
                    },
                ),
            )
            logger.warning(
                "qc_failed",
                extra={
                    "qc_record_id": str(record.id),
                    "production_job_id": str(production_job_id) if production_job_id else None,
                    "delivery_note_id": str(delivery_note_id) if delivery_note_id else None,
                    "stage": stage,
                    "rework_job_id": str(rework_job_id) if rework_job_id else None,
                },
            )
        else:
            logger.info(
                "qc_recorded",
                extra={"qc_record_id": str(record.id), "qc_status": status.value},
            )

        return QCResult(record=record.to_dto(), job_status=job_status, rework_job_id=rework_job_id)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_record(self, uow: UnitOfWork, ctx: OperationContext, record_id: UUID) -> QCRecordInfo:
        record = uow.session.get(QCRecordModel, record_id)
        if record is None or record.tenant_id != ctx.tenant_id:
            raise QCRecordNotFoundError(str(record_id))
        return record.to_dto()

    def list_records(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        production_job_id: UUID | None = None,
        delivery_note_id: UUID | None = None,
        qc_status: QCStatus | str | None = None,
    ) -> list[QCRecordInfo]:
        """Newest first."""
        stmt = select(QCRecordModel).where(QCRecordModel.tenant_id == ctx.tenant_id)
        if production_job_id is not None:
            stmt = stmt.where(QCRecordModel.production_job_id == production_job_id)
        if delivery_note_id is not None:
            stmt = stmt.where(QCRecordModel.delivery_note_id == delivery_note_id)
        if qc_status is not None:
            stmt = stmt.where(QCRecordModel.qc_status == _parse_status(qc_status).value)
        rows = uow.session.execute(stmt.order_by(QCRecordModel.seq.desc())).scalars().all()
        return [row.to_dto() for row in rows]

    def latest_status_for_log(
        self, uow: UnitOfWork, ctx: OperationContext, stage_log_id: UUID,
    ) -> QCStatus | None:
        """The most recent record's status for one stage visit; None if never inspected."""
        value = uow.session.execute(
            select(QCRecordModel.qc_status)
            .where(
                QCRecordModel.tenant_id == ctx.tenant_id,
                QCRecordModel.stage_log_id == stage_log_id,
            )
            .order_by(QCRecordModel.seq.desc())
            .limit(1)
        ).scalar_one_or_none()
        return QCStatus(value) if value is not None else None

    def has_failing_qc(self, uow: UnitOfWork, ctx: OperationContext, delivery_note_id: UUID) -> bool:
        """True once any inspection of the delivery note has failed."""
        return uow.session.execute(
            select(
                exists().where(
                    QCRecordModel.tenant_id == ctx.tenant_id,
                    QCRecordModel.delivery_note_id == delivery_note_id,
                    QCRecordModel.qc_status == QCStatus.FAIL.value,
                )
            )
        ).scalar_one()
