"""
Production Module Service (``shopfloor_modules.production.service``).

Responsibility
--------------
Job creation, the status/stage state machine, hour and output logging,
assignment and photo attachment.  Two narrow hooks (``force_rework`` and
``resume_after_rework``) let the QC gate and rework tracker move a job
inside their own operation without a second audit fact.

Architecture
------------
Layer: **Modules**.  Methods take ``(uow, ctx, ...)``, flush, and never
commit.  Stage order always comes from ``StageResolver`` at call time.

Invariants
----------
- Status moves follow ``next_job_statuses``; CANCELLED is terminal.
- Without an override, a listed stage never moves backward.
- A job has at most one open stage log and it belongs to the job's
  current stage.  Entering IN_PROGRESS twice does not open a second log
  nor reset ``started_at``.
- ``actual_hours``/``actual_qty`` only grow, by the same deltas written
  to the stage logs.

Audit Relevance
---------------
PRODUCTION_JOB_CREATE, PRODUCTION_STATUS_CHANGE (or
PRODUCTION_STAGE_OVERRIDE when a backward move was forced),
PRODUCTION_HOURS_LOGGED, PRODUCTION_JOB_ASSIGN, PRODUCTION_PHOTOS_ATTACH.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import select

from shopfloor_kernel.db.types import ZERO, to_decimal, to_optional_decimal
from shopfloor_kernel.domain.context import OperationContext
from shopfloor_kernel.domain.json_fields import parse_json_list
from shopfloor_kernel.domain.stages import StageList
from shopfloor_kernel.exceptions import (
    InvalidTransitionError,
    ProductionJobNotFoundError,
    StageTransitionError,
    ValidationError,
)
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.audit_log import AuditAction
from shopfloor_kernel.services.audit_logger import AuditLogger
from shopfloor_kernel.services.sequence_service import SequenceService
from shopfloor_kernel.services.stage_resolver import StageResolver
from shopfloor_kernel.services.unit_of_work import UnitOfWork
from shopfloor_modules.production.config import ProductionConfig
from shopfloor_modules.production.models import (
    HoursLogResult,
    JobStatus,
    JobTransitionResult,
    ProductionJobInfo,
    StageLogInfo,
    StageMove,
)
from shopfloor_modules.production.orm import ProductionJobModel, ProductionStageLogModel
from shopfloor_modules.production.workflows import (
    can_force_rework,
    classify_stage_move,
    next_job_statuses,
)
from shopfloor_modules.project.service import ProjectService

logger = get_logger("modules.production.service")

QC_FAIL = "FAIL"


def _parse_status(value: JobStatus | str | None) -> JobStatus | None:
    if value is None or isinstance(value, JobStatus):
        return value
    try:
        return JobStatus(str(value).upper())
    except ValueError as exc:
        raise ValidationError("status", f"unknown job status {value!r}") from exc


def _clean_photos(photos: object) -> list[str]:
    return [str(p) for p in parse_json_list(photos, "photos") if str(p).strip()]


class ProductionJobService:
    """
    Orchestrates production jobs through tenant-configured stages.

    Contract:
        Every public method takes the caller's UnitOfWork and
        OperationContext; nothing is committed here.
    """

    def __init__(self, config: ProductionConfig | None = None):
        self._config = config or ProductionConfig.with_defaults()
        self._projects = ProjectService()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _get(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        job_id: UUID,
        lock: bool = False,
    ) -> ProductionJobModel:
        if lock:
            job = uow.session.get(
                ProductionJobModel, job_id, with_for_update=True, populate_existing=True,
            )
        else:
            job = uow.session.get(ProductionJobModel, job_id)
        if job is None or job.tenant_id != ctx.tenant_id:
            raise ProductionJobNotFoundError(str(job_id))
        return job

    def get_model(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        job_id: UUID,
        lock: bool = False,
    ) -> ProductionJobModel:
        """The tenant-checked ORM row, for modules acting on a job inside their own operation."""
        return self._get(uow, ctx, job_id, lock=lock)

    @staticmethod
    def _stages(uow: UnitOfWork, ctx: OperationContext) -> StageList:
        return StageResolver(uow).stages(ctx.tenant_id)

    def get_job(self, uow: UnitOfWork, ctx: OperationContext, job_id: UUID) -> ProductionJobInfo:
        """The job with ``stage_index`` taken from the tenant's current list."""
        job = self._get(uow, ctx, job_id)
        stages = self._stages(uow, ctx)
        return job.to_dto(stage_index=stages.index_of(job.stage))

    def list_jobs(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        project_id: UUID | None = None,
        status: JobStatus | str | None = None,
    ) -> list[ProductionJobInfo]:
        stmt = select(ProductionJobModel).where(ProductionJobModel.tenant_id == ctx.tenant_id)
        if project_id is not None:
            stmt = stmt.where(ProductionJobModel.project_id == project_id)
        wanted = _parse_status(status)
        if wanted is not None:
            stmt = stmt.where(ProductionJobModel.status == wanted.value)
        stmt = stmt.order_by(ProductionJobModel.job_number)
        jobs = uow.session.execute(stmt).scalars().all()
        stages = self._stages(uow, ctx)
        return [job.to_dto(stage_index=stages.index_of(job.stage)) for job in jobs]

    def list_stage_logs(
        self, uow: UnitOfWork, ctx: OperationContext, job_id: UUID,
    ) -> list[StageLogInfo]:
        job = self._get(uow, ctx, job_id)
        return [log.to_dto() for log in job.stage_logs]

    # ------------------------------------------------------------------
    # Stage log helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _open_new_log(
        ctx: OperationContext,
        job: ProductionJobModel,
        stage: str,
        started_at: datetime | None = None,
    ) -> ProductionStageLogModel:
        visit = sum(1 for log in job.stage_logs if log.stage == stage) + 1
        seq = max((log.seq for log in job.stage_logs), default=0) + 1
        log = ProductionStageLogModel(
            tenant_id=ctx.tenant_id,
            stage=stage,
            visit=visit,
            seq=seq,
            started_at=started_at,
            hours_logged=ZERO,
            output_qty=ZERO,
            created_by_id=ctx.actor_id,
        )
        job.stage_logs.append(log)
        logger.debug(
            "stage_log_opened",
            extra={"job_id": str(job.id), "stage": stage, "visit": visit, "seq": seq},
        )
        return log

    @staticmethod
    def _close(log: ProductionStageLogModel, now: datetime, ctx: OperationContext) -> None:
        log.completed_at = now
        log.updated_by_id = ctx.actor_id

    def _current_open_log(
        self,
        ctx: OperationContext,
        job: ProductionJobModel,
        now: datetime,
        start: bool,
    ) -> ProductionStageLogModel:
        """
        Find-or-create the open log of the job's current stage.

        An open log left on another stage is closed first.  With ``start``
        the log's ``started_at`` is set if it is still empty.
        """
        log = job.open_log()
        if log is not None and log.stage != job.stage:
            self._close(log, now, ctx)
            log = None
        if log is None:
            log = self._open_new_log(ctx, job, job.stage, started_at=now if start else None)
        elif start and log.started_at is None:
            log.started_at = now
        return log

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_job(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        project_id: UUID,
        planned_qty: object = ZERO,
        planned_hours: object = ZERO,
        sub_group: str | None = None,
        description: str | None = None,
        assignee_id: UUID | None = None,
        job_number: str | None = None,
    ) -> ProductionJobInfo:
        """
        Create a NOT_STARTED job at the tenant's first stage.

        Raises:
            ProjectNotFoundError: unknown project or another tenant's.
            StagesNotConfiguredError: the tenant has no usable stage list.
        """
        qty = to_decimal(planned_qty, "planned_qty")
        hours = to_decimal(planned_hours, "planned_hours")
        if qty < 0:
            raise ValidationError("planned_qty", "cannot be negative")
        if hours < 0:
            raise ValidationError("planned_hours", "cannot be negative")

        self._projects.get_model(uow, ctx, project_id)
        resolver = StageResolver(uow)
        stages = resolver.stages(ctx.tenant_id)
        first = stages.first()

        if job_number is None:
            tenant = resolver.tenant(ctx.tenant_id)
            job_number = SequenceService(uow.session).next_document_number(
                ctx.tenant_id, "JOB", tenant.code, uow.clock.now().date(),
            )

        job = ProductionJobModel(
            id=uuid4(),
            tenant_id=ctx.tenant_id,
            project_id=project_id,
            sub_group=sub_group,
            job_number=job_number,
            description=description,
            stage=first,
            stage_index=0,
            status=JobStatus.NOT_STARTED.value,
            planned_qty=qty,
            planned_hours=hours,
            actual_qty=ZERO,
            actual_hours=ZERO,
            assignee_id=assignee_id,
            created_by_id=ctx.actor_id,
        )
        uow.session.add(job)
        self._open_new_log(ctx, job, first)
        uow.flush()

        AuditLogger(uow).record(
            ctx,
            AuditAction.PRODUCTION_JOB_CREATE,
            "ProductionJob",
            job.id,
            new_data={
                "job_number": job_number,
                "project_id": project_id,
                "stage": first,
                "status": JobStatus.NOT_STARTED,
                "planned_qty": qty,
                "planned_hours": hours,
            },
        )
        logger.info(
            "production_job_created",
            extra={
                "job_id": str(job.id),
                "job_number": job_number,
                "stage": first,
                "stage_count": len(stages),
            },
        )
        return job.to_dto(stage_index=stages.index_of(first))

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _check_stage_move(
        self,
        ctx: OperationContext,
        job: ProductionJobModel,
        stages: StageList,
        target: str,
        override: bool,
        justification: str | None,
    ) -> bool:
        """Returns True when the move needed (and got) an override."""
        move = classify_stage_move(stages, job.stage, target)
        if move != StageMove.BACKWARD:
            return False
        if not override:
            raise StageTransitionError(
                str(job.id), job.stage, target, "backward stage move requires override",
            )
        if not self._config.allow_backward_override:
            raise StageTransitionError(
                str(job.id), job.stage, target, "backward stage overrides are disabled",
            )
        if not ctx.has_override():
            raise StageTransitionError(
                str(job.id), job.stage, target,
                f"role {ctx.role or 'none'} cannot override stage order",
            )
        if self._config.require_override_justification and not (justification or "").strip():
            raise ValidationError("justification", "required for a backward stage override")
        return True

    def transition(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        job_id: UUID,
        status: JobStatus | str | None = None,
        stage: str | None = None,
        output_qty: object = None,
        override: bool = False,
        justification: str | None = None,
        performed_by_id: UUID | None = None,
        at: datetime | None = None,
    ) -> JobTransitionResult:
        """
        Move a job to a new status and/or stage.

        Completing a stage whose log has not failed QC moves the job to the
        next listed stage as NOT_STARTED; at the last stage it stays
        COMPLETED.

        Raises:
            InvalidTransitionError: the status table forbids the move.
            StageTransitionError: backward move without a usable override.
        """
        target = _parse_status(status)
        if target is None and stage is None:
            raise ValidationError("status", "status or stage is required")
        if stage is not None and not stage.strip():
            raise ValidationError("stage", "cannot be blank")
        output = to_optional_decimal(output_qty, "output_qty")
        if output is not None:
            if output < 0:
                raise ValidationError("output_qty", "cannot be negative")
            if target != JobStatus.COMPLETED:
                raise ValidationError("output_qty", "only applies when completing a stage")

        job = self._get(uow, ctx, job_id, lock=True)
        stages = self._stages(uow, ctx)
        from_status = JobStatus(job.status)
        from_stage = job.stage
        attempted = target.value if target is not None else from_status.value

        if from_status == JobStatus.CANCELLED:
            raise InvalidTransitionError(
                "ProductionJob", str(job.id), from_status.value, attempted,
                reason="job is cancelled",
            )

        stage_change = stage is not None and stage != job.stage
        status_change = target is not None and target != from_status
        if target is not None and not status_change:
            # Re-entering IN_PROGRESS is idempotent; any other repeat needs a stage move.
            if from_status != JobStatus.IN_PROGRESS and not stage_change:
                raise InvalidTransitionError(
                    "ProductionJob", str(job.id), from_status.value, attempted,
                    allowed=tuple(sorted(s.value for s in next_job_statuses(from_status))),
                    reason=f"job is already {from_status.value}",
                )
        if status_change and target not in next_job_statuses(from_status):
            raise InvalidTransitionError(
                "ProductionJob", str(job.id), from_status.value, target.value,
                allowed=tuple(sorted(s.value for s in next_job_statuses(from_status))),
            )

        override_used = False
        if stage_change:
            override_used = self._check_stage_move(
                ctx, job, stages, stage, override, justification,
            )

        now = at or uow.clock.now()
        actor = performed_by_id or ctx.actor_id

        if stage_change:
            open_log = job.open_log()
            if open_log is not None:
                self._close(open_log, now, ctx)
            job.stage = stage
            self._open_new_log(ctx, job, stage)
            if override_used:
                logger.warning(
                    "production_stage_override",
                    extra={
                        "job_id": str(job.id),
                        "from_stage": from_stage,
                        "to_stage": stage,
                        "role": ctx.role,
                        "justification": justification,
                    },
                )

        effective = target or from_status
        auto_advanced = False
        completed_log = None

        match effective:
            case JobStatus.IN_PROGRESS:
                log = self._current_open_log(ctx, job, now, start=True)
                log.performed_by_id = actor
            case JobStatus.COMPLETED if status_change:
                log = self._current_open_log(ctx, job, now, start=True)
                if output is not None:
                    delta = output - log.output_qty
                    log.output_qty = output
                    if delta > 0:
                        job.actual_qty = job.actual_qty + delta
                log.performed_by_id = actor
                self._close(log, now, ctx)
                completed_log = log
                next_stage = stages.next_after(job.stage)
                if log.qc_status != QC_FAIL and next_stage is not None:
                    job.stage = next_stage
                    self._open_new_log(ctx, job, next_stage)
                    effective = JobStatus.NOT_STARTED
                    auto_advanced = True
            case JobStatus.REWORK if status_change:
                open_log = job.open_log()
                if open_log is not None:
                    self._close(open_log, now, ctx)
            case JobStatus.NOT_STARTED | JobStatus.COMPLETED | JobStatus.REWORK | JobStatus.CANCELLED:
                pass
            case _:
                raise ValueError(f"Unknown job status: {effective}")

        job.status = effective.value
        job.stage_index = stages.index_of(job.stage)
        job.updated_by_id = ctx.actor_id
        uow.flush()

        new_data = {
            "status": effective,
            "stage": job.stage,
            "auto_advanced": auto_advanced,
        }
        if completed_log is not None:
            new_data["completed_stage"] = completed_log.stage
            new_data["output_qty"] = completed_log.output_qty
        if override_used:
            new_data["justification"] = justification
            new_data["role"] = ctx.role
        AuditLogger(uow).record(
            ctx,
            AuditAction.PRODUCTION_STAGE_OVERRIDE if override_used
            else AuditAction.PRODUCTION_STATUS_CHANGE,
            "ProductionJob",
            job.id,
            old_data={"status": from_status, "stage": from_stage},
            new_data=new_data,
        )
        logger.info(
            "production_job_transitioned",
            extra={
                "job_id": str(job.id),
                "from_status": from_status.value,
                "to_status": effective.value,
                "from_stage": from_stage,
                "to_stage": job.stage,
                "auto_advanced": auto_advanced,
            },
        )
        return JobTransitionResult(
            job=job.to_dto(stage_index=stages.index_of(job.stage)),
            from_status=from_status,
            from_stage=from_stage,
            auto_advanced=auto_advanced,
            override_used=override_used,
        )

    # ------------------------------------------------------------------
    # Hooks for the QC gate and rework tracker (no audit of their own)
    # ------------------------------------------------------------------

    def force_rework(
        self, uow: UnitOfWork, ctx: OperationContext, job_id: UUID,
    ) -> tuple[JobStatus, ProductionJobModel]:
        """
        Put a job into REWORK after a failing inspection.

        Allowed from every non-terminal status.  Returns the previous
        status and the job.
        """
        job = self._get(uow, ctx, job_id, lock=True)
        previous = JobStatus(job.status)
        if not can_force_rework(previous):
            raise InvalidTransitionError(
                "ProductionJob", str(job.id), previous.value, JobStatus.REWORK.value,
                reason="job is cancelled",
            )
        if previous != JobStatus.REWORK:
            open_log = job.open_log()
            if open_log is not None:
                self._close(open_log, uow.clock.now(), ctx)
            job.status = JobStatus.REWORK.value
            job.updated_by_id = ctx.actor_id
            uow.flush()
        logger.info(
            "production_job_forced_to_rework",
            extra={"job_id": str(job.id), "from_status": previous.value},
        )
        return previous, job

    def resume_after_rework(
        self, uow: UnitOfWork, ctx: OperationContext, job_id: UUID,
    ) -> bool:
        """REWORK -> IN_PROGRESS on a fresh visit of the current stage.  False if not in REWORK."""
        job = self._get(uow, ctx, job_id, lock=True)
        if job.status != JobStatus.REWORK.value:
            logger.info(
                "production_job_resume_skipped",
                extra={"job_id": str(job.id), "status": job.status},
            )
            return False
        self._current_open_log(ctx, job, uow.clock.now(), start=True)
        job.status = JobStatus.IN_PROGRESS.value
        job.updated_by_id = ctx.actor_id
        uow.flush()
        logger.info("production_job_resumed_after_rework", extra={"job_id": str(job.id)})
        return True

    # ------------------------------------------------------------------
    # Logging work
    # ------------------------------------------------------------------

    def log_hours(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        job_id: UUID,
        hours: object,
        output_qty: object = None,
        notes: str | None = None,
        photos: Iterable[str] | str | None = None,
        performed_by_id: UUID | None = None,
    ) -> HoursLogResult:
        """Accumulate hours/output on the current stage log and mirror them into the job."""
        hours_value = to_decimal(hours, "hours")
        if hours_value <= 0:
            raise ValidationError("hours", "must be greater than 0")
        output = to_optional_decimal(output_qty, "output_qty")
        if output is not None and output < 0:
            raise ValidationError("output_qty", "cannot be negative")

        job = self._get(uow, ctx, job_id, lock=True)
        if job.status == JobStatus.CANCELLED.value:
            raise InvalidTransitionError(
                "ProductionJob", str(job.id), job.status, job.status,
                reason="cannot log hours on a cancelled job",
            )

        now = uow.clock.now()
        log = self._current_open_log(ctx, job, now, start=True)
        log.hours_logged = log.hours_logged + hours_value
        job.actual_hours = job.actual_hours + hours_value
        if output is not None and output > 0:
            log.output_qty = log.output_qty + output
            job.actual_qty = job.actual_qty + output
        if notes and notes.strip():
            log.notes = f"{log.notes}\n{notes}" if log.notes else notes
        new_photos = _clean_photos(photos)
        if new_photos:
            log.photos = parse_json_list(log.photos, "photos") + new_photos
        log.performed_by_id = performed_by_id or ctx.actor_id
        log.updated_by_id = ctx.actor_id
        job.updated_by_id = ctx.actor_id
        uow.flush()

        AuditLogger(uow).record(
            ctx,
            AuditAction.PRODUCTION_HOURS_LOGGED,
            "ProductionJob",
            job.id,
            new_data={
                "stage": log.stage,
                "visit": log.visit,
                "hours": hours_value,
                "output_qty": output,
                "photo_count": len(new_photos),
            },
        )
        logger.info(
            "production_hours_logged",
            extra={
                "job_id": str(job.id),
                "stage": log.stage,
                "hours": hours_value,
                "output_qty": output,
                "actual_hours": job.actual_hours,
            },
        )
        stages = self._stages(uow, ctx)
        return HoursLogResult(
            job=job.to_dto(stage_index=stages.index_of(job.stage)),
            log=log.to_dto(),
        )

    def assign_job(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        job_id: UUID,
        assignee_id: UUID | None,
    ) -> ProductionJobInfo:
        job = self._get(uow, ctx, job_id)
        if job.status == JobStatus.CANCELLED.value:
            raise InvalidTransitionError(
                "ProductionJob", str(job.id), job.status, job.status,
                reason="cannot assign a cancelled job",
            )
        previous = job.assignee_id
        job.assignee_id = assignee_id
        job.updated_by_id = ctx.actor_id
        uow.flush()
        AuditLogger(uow).record(
            ctx,
            AuditAction.PRODUCTION_JOB_ASSIGN,
            "ProductionJob",
            job.id,
            old_data={"assignee_id": previous},
            new_data={"assignee_id": assignee_id},
        )
        return job.to_dto(stage_index=self._stages(uow, ctx).index_of(job.stage))

    def attach_photos(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        job_id: UUID,
        photos: Iterable[str] | str,
    ) -> StageLogInfo:
        """Append photo references to the open log, or to the latest log when none is open."""
        new_photos = _clean_photos(photos)
        if not new_photos:
            raise ValidationError("photos", "at least one photo is required")
        job = self._get(uow, ctx, job_id)
        log = job.open_log() or job.latest_log_for(job.stage)
        if log is None:
            log = self._open_new_log(ctx, job, job.stage)
        log.photos = parse_json_list(log.photos, "photos") + new_photos
        log.updated_by_id = ctx.actor_id
        uow.flush()
        AuditLogger(uow).record(
            ctx,
            AuditAction.PRODUCTION_PHOTOS_ATTACH,
            "ProductionJob",
            job.id,
            new_data={"stage": log.stage, "visit": log.visit, "photos": new_photos},
        )
        return log.to_dto()
