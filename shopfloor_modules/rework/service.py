"""
Rework Module Service (``shopfloor_modules.rework.service``).

Responsibility
--------------
Create, update and complete rework jobs.  Creation against a production
job puts that job into REWORK; completion resumes it on a fresh visit of
its current stage.

Architecture
------------
Layer: **Modules**.  Called directly and by the QC gate and returns
processor inside their units of work.

Audit Relevance
---------------
REWORK_CREATE on creation, REWORK_UPDATE on every update.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import select

from shopfloor_kernel.db.types import to_optional_decimal
from shopfloor_kernel.domain.context import OperationContext
from shopfloor_kernel.domain.json_fields import parse_json_list
from shopfloor_kernel.exceptions import (
    DeliveryNoteNotFoundError,
    InvalidTransitionError,
    ReworkJobNotFoundError,
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
from shopfloor_kernel.services.stage_resolver import StageResolver
from shopfloor_kernel.services.unit_of_work import UnitOfWork
from shopfloor_modules.dispatch.orm import DeliveryNoteModel
from shopfloor_modules.production.service import ProductionJobService
from shopfloor_modules.rework.models import ReworkJobInfo, ReworkStatus
from shopfloor_modules.rework.orm import ReworkJobModel
from shopfloor_modules.rework.workflows import next_rework_statuses

logger = get_logger("modules.rework.service")

_UNSET: Any = object()


def _parse_status(value: ReworkStatus | str) -> ReworkStatus:
    if isinstance(value, ReworkStatus):
        return value
    try:
        return ReworkStatus(str(value).upper())
    except ValueError as exc:
        raise ValidationError("status", f"unknown rework status {value!r}") from exc


class ReworkService:
    """Rework jobs raised by QC failures, returns, or by hand."""

    def __init__(
        self,
        notifications: NotificationPublisher | None = None,
        production: ProductionJobService | None = None,
    ):
        self._notifications = notifications or NotificationPublisher()
        self._production = production or ProductionJobService()

    def _get(self, uow: UnitOfWork, ctx: OperationContext, rework_id: UUID) -> ReworkJobModel:
        rework = uow.session.get(ReworkJobModel, rework_id)
        if rework is None or rework.tenant_id != ctx.tenant_id:
            raise ReworkJobNotFoundError(str(rework_id))
        return rework

    def get_rework(self, uow: UnitOfWork, ctx: OperationContext, rework_id: UUID) -> ReworkJobInfo:
        return self._get(uow, ctx, rework_id).to_dto()

    def list_reworks(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        status: ReworkStatus | str | None = None,
        assignee_id: UUID | None = None,
        source_production_job_id: UUID | None = None,
        source_delivery_note_id: UUID | None = None,
    ) -> list[ReworkJobInfo]:
        stmt = select(ReworkJobModel).where(ReworkJobModel.tenant_id == ctx.tenant_id)
        if status is not None:
            stmt = stmt.where(ReworkJobModel.status == _parse_status(status).value)
        if assignee_id is not None:
            stmt = stmt.where(ReworkJobModel.assignee_id == assignee_id)
        if source_production_job_id is not None:
            stmt = stmt.where(ReworkJobModel.source_production_job_id == source_production_job_id)
        if source_delivery_note_id is not None:
            stmt = stmt.where(ReworkJobModel.source_delivery_note_id == source_delivery_note_id)
        rows = uow.session.execute(stmt.order_by(ReworkJobModel.rework_number)).scalars().all()
        return [row.to_dto() for row in rows]

    def create_rework(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        source_production_job_id: UUID | None = None,
        source_delivery_note_id: UUID | None = None,
        assignee_id: UUID | None = None,
        expected_hours: object = None,
        material_needed: Iterable[Any] | str | None = None,
        defect_description: str | None = None,
        notes: str | None = None,
        source_return_id: UUID | None = None,
        qc_record_id: UUID | None = None,
    ) -> ReworkJobInfo:
        """
        Open a rework job against exactly one source.

        A production-job source is moved to REWORK in the same unit of
        work.

        Raises:
            ValidationError: zero or two sources, or negative hours.
            ProductionJobNotFoundError / DeliveryNoteNotFoundError.
            InvalidTransitionError: the source job is CANCELLED.
        """
        if (source_production_job_id is None) == (source_delivery_note_id is None):
            raise ValidationError(
                "source",
                "exactly one of source_production_job_id or source_delivery_note_id is required",
            )
        hours = to_optional_decimal(expected_hours, "expected_hours")
        if hours is not None and hours < 0:
            raise ValidationError("expected_hours", "cannot be negative")

        if source_production_job_id is not None:
            self._production.force_rework(uow, ctx, source_production_job_id)
        else:
            dn = uow.session.get(DeliveryNoteModel, source_delivery_note_id)
            if dn is None or dn.tenant_id != ctx.tenant_id:
                raise DeliveryNoteNotFoundError(str(source_delivery_note_id))

        tenant = StageResolver(uow).tenant(ctx.tenant_id)
        rework_number = SequenceService(uow.session).next_document_number(
            ctx.tenant_id, "RW", tenant.code, uow.clock.now().date(),
        )
        materials = parse_json_list(material_needed, "material_needed")
        rework = ReworkJobModel(
            tenant_id=ctx.tenant_id,
            rework_number=rework_number,
            source_production_job_id=source_production_job_id,
            source_delivery_note_id=source_delivery_note_id,
            source_return_id=source_return_id,
            qc_record_id=qc_record_id,
            assignee_id=assignee_id,
            status=ReworkStatus.OPEN.value,
            expected_hours=hours,
            material_needed=materials or None,
            defect_description=defect_description,
            notes=notes,
            created_by_id=ctx.actor_id,
        )
        uow.session.add(rework)
        uow.flush()

        AuditLogger(uow).record(
            ctx,
            AuditAction.REWORK_CREATE,
            "ReworkJob",
            rework.id,
            new_data={
                "rework_number": rework_number,
                "source_production_job_id": source_production_job_id,
                "source_delivery_note_id": source_delivery_note_id,
                "source_return_id": source_return_id,
                "qc_record_id": qc_record_id,
                "assignee_id": assignee_id,
                "status": ReworkStatus.OPEN,
            },
        )
        self._notifications.publish(
            uow,
            Notification(
                tenant_id=ctx.tenant_id,
                type=NotificationType.REWORK_CREATED,
                title="New Rework Job Created",
                message=f"Rework job {rework_number} has been created",
                link=f"/rework/{rework.id}",
                metadata={
                    "rework_job_id": str(rework.id),
                    "assignee_id": str(assignee_id) if assignee_id else None,
                },
            ),
        )
        logger.info(
            "rework_job_created",
            extra={
                "rework_id": str(rework.id),
                "rework_number": rework_number,
                "source_production_job_id": (
                    str(source_production_job_id) if source_production_job_id else None
                ),
                "source_delivery_note_id": (
                    str(source_delivery_note_id) if source_delivery_note_id else None
                ),
            },
        )
        return rework.to_dto()

    def update_rework(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        rework_id: UUID,
        status: ReworkStatus | str | None = None,
        assignee_id: UUID | None = _UNSET,
        actual_hours: object = None,
        material_needed: Iterable[Any] | str | None = None,
        notes: str | None = None,
    ) -> ReworkJobInfo:
        """
        Change status, assignee, hours, materials or notes.

        Moving to COMPLETED stamps ``completed_at`` and resumes a source
        production job that is still in REWORK.
        """
        rework = self._get(uow, ctx, rework_id)
        current = ReworkStatus(rework.status)
        target = _parse_status(status) if status is not None else None
        hours = to_optional_decimal(actual_hours, "actual_hours")
        if hours is not None and hours < 0:
            raise ValidationError("actual_hours", "cannot be negative")

        if target is not None and target != current:
            allowed = next_rework_statuses(current)
            if target not in allowed:
                raise InvalidTransitionError(
                    "ReworkJob", str(rework.id), current.value, target.value,
                    allowed=tuple(sorted(s.value for s in allowed)),
                )

        old_data = {
            "status": rework.status,
            "assignee_id": rework.assignee_id,
            "actual_hours": rework.actual_hours,
        }
        changes: dict[str, Any] = {}
        if target is not None and target != current:
            rework.status = target.value
            changes["status"] = target
        if assignee_id is not _UNSET:
            rework.assignee_id = assignee_id
            changes["assignee_id"] = assignee_id
        if hours is not None:
            rework.actual_hours = hours
            changes["actual_hours"] = hours
        if material_needed is not None:
            rework.material_needed = parse_json_list(material_needed, "material_needed")
            changes["material_needed"] = rework.material_needed
        if notes is not None:
            rework.notes = notes
            changes["notes"] = notes
        if not changes:
            raise ValidationError("rework", "no changes supplied")

        resumed = False
        if target == ReworkStatus.COMPLETED and current != ReworkStatus.COMPLETED:
            rework.completed_at = uow.clock.now()
            if rework.source_production_job_id is not None:
                resumed = self._production.resume_after_rework(
                    uow, ctx, rework.source_production_job_id,
                )
                changes["source_job_resumed"] = resumed
        rework.updated_by_id = ctx.actor_id
        uow.flush()

        AuditLogger(uow).record(
            ctx,
            AuditAction.REWORK_UPDATE,
            "ReworkJob",
            rework.id,
            old_data=old_data,
            new_data=changes,
        )
        logger.info(
            "rework_job_updated",
            extra={
                "rework_id": str(rework.id),
                "from_status": current.value,
                "to_status": rework.status,
                "source_job_resumed": resumed,
            },
        )
        return rework.to_dto()

    def start_rework(self, uow: UnitOfWork, ctx: OperationContext, rework_id: UUID) -> ReworkJobInfo:
        return self.update_rework(uow, ctx, rework_id, status=ReworkStatus.IN_PROGRESS)

    def complete_rework(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        rework_id: UUID,
        actual_hours: object = None,
    ) -> ReworkJobInfo:
        return self.update_rework(
            uow, ctx, rework_id, status=ReworkStatus.COMPLETED, actual_hours=actual_hours,
        )

    def cancel_rework(self, uow: UnitOfWork, ctx: OperationContext, rework_id: UUID) -> ReworkJobInfo:
        return self.update_rework(uow, ctx, rework_id, status=ReworkStatus.CANCELLED)
