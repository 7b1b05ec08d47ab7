"""
Production Domain Models (``shopfloor_modules.production.models``).

Responsibility
--------------
Job status enum and frozen DTOs for production jobs, their stage logs and
transition outcomes.

Invariants
----------
- ``ProductionJobInfo.stage_index`` is the index of ``stage`` in the
  tenant's stage list at the time the DTO was built, or None when the stage
  is not listed.
- A ``StageLogInfo`` is open while ``completed_at`` is None.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from shopfloor_kernel.logging_config import get_logger

logger = get_logger("modules.production.models")


class JobStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    REWORK = "REWORK"
    CANCELLED = "CANCELLED"


class StageMove(str, Enum):
    """How a requested stage relates to the current one."""
    SAME = "SAME"
    FORWARD = "FORWARD"
    BACKWARD = "BACKWARD"
    UNLISTED = "UNLISTED"


@dataclass(frozen=True)
class ProductionJobInfo:
    id: UUID
    project_id: UUID
    job_number: str
    stage: str
    stage_index: int | None
    status: JobStatus
    planned_qty: Decimal
    planned_hours: Decimal
    actual_qty: Decimal
    actual_hours: Decimal
    sub_group: str | None = None
    description: str | None = None
    assignee_id: UUID | None = None

    def __post_init__(self):
        if self.actual_qty < 0 or self.actual_hours < 0:
            logger.warning(
                "production_job_actuals_negative",
                extra={"job_id": str(self.id)},
            )
            raise ValueError("actual_qty and actual_hours cannot be negative")


@dataclass(frozen=True)
class StageLogInfo:
    """One visit of a job to one stage."""
    id: UUID
    job_id: UUID
    stage: str
    visit: int
    seq: int
    started_at: datetime | None
    completed_at: datetime | None
    hours_logged: Decimal
    output_qty: Decimal
    qc_status: str | None = None
    photos: tuple[str, ...] = ()
    notes: str | None = None
    performed_by_id: UUID | None = None

    @property
    def is_open(self) -> bool:
        return self.completed_at is None


@dataclass(frozen=True)
class JobTransitionResult:
    """Outcome of one ``transition`` call."""
    job: ProductionJobInfo
    from_status: JobStatus
    from_stage: str
    auto_advanced: bool = False
    override_used: bool = False

    @property
    def to_status(self) -> JobStatus:
        return self.job.status

    @property
    def to_stage(self) -> str:
        return self.job.stage


@dataclass(frozen=True)
class HoursLogResult:
    job: ProductionJobInfo
    log: StageLogInfo
