"""
Production Module (``shopfloor_modules.production``).

Responsibility
--------------
Production jobs moving through a tenant's ordered stage list, one stage
log per visit.  Status follows a fixed table; stage order follows the
tenant's configuration, read at call time.

Architecture
------------
Layer: **Modules**.  ``models`` (enums + frozen DTOs), ``orm`` (job and
stage-log tables), ``workflows`` (status table and stage ordering),
``config`` (override policy), ``service`` (``ProductionJobService``).
The service is imported from ``shopfloor_modules.production.service``
directly so the QC gate and rework tracker can depend on it without an
import cycle.

Invariants
----------
- CANCELLED is terminal.
- Backward moves between listed stages need an override role.
- Completing a stage that has not failed QC advances the job to the next
  listed stage as NOT_STARTED.

Failure Modes
-------------
- ``InvalidTransitionError`` for moves outside the status table.
- ``StageTransitionError`` for backward moves without an override.
- ``StagesNotConfiguredError`` when the tenant has no stage list.

Audit Relevance
---------------
Every successful operation writes exactly one AuditLog row.
"""

from shopfloor_modules.production.config import ProductionConfig
from shopfloor_modules.production.models import (
    HoursLogResult,
    JobStatus,
    JobTransitionResult,
    ProductionJobInfo,
    StageLogInfo,
    StageMove,
)
from shopfloor_modules.production.workflows import (
    JOB_WORKFLOW,
    classify_stage_move,
    next_job_statuses,
)

__all__ = [
    "HoursLogResult",
    "JOB_WORKFLOW",
    "JobStatus",
    "JobTransitionResult",
    "ProductionConfig",
    "ProductionJobInfo",
    "StageLogInfo",
    "StageMove",
    "classify_stage_move",
    "next_job_statuses",
]
