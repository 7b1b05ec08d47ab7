"""
Production Workflows.

The job status machine and the stage-ordering rule.  ``next_job_statuses``
is the single place the status table lives; ``classify_stage_move`` is the
single place stage order is compared.
"""

from shopfloor_kernel.domain.stages import StageList
from shopfloor_kernel.domain.workflow import Guard, Transition, Workflow
from shopfloor_kernel.logging_config import get_logger
from shopfloor_modules.production.models import JobStatus, StageMove

logger = get_logger("modules.production.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

STAGE_NOT_FAILED = Guard(
    name="stage_not_failed",
    description="The closing stage log's QC status is not FAIL",
)

NEXT_STAGE_EXISTS = Guard(
    name="next_stage_exists",
    description="The tenant's stage list has a stage after the current one",
)

logger.info(
    "production_workflow_guards_defined",
    extra={"guards": [STAGE_NOT_FAILED.name, NEXT_STAGE_EXISTS.name]},
)


# -----------------------------------------------------------------------------
# Job Workflow
# -----------------------------------------------------------------------------

JOB_WORKFLOW = Workflow(
    name="production_job",
    description="Production job status across tenant-configured stages",
    initial_state=JobStatus.NOT_STARTED.value,
    states=tuple(s.value for s in JobStatus),
    transitions=(
        Transition("NOT_STARTED", "IN_PROGRESS", action="start"),
        Transition("NOT_STARTED", "CANCELLED", action="cancel"),
        Transition("IN_PROGRESS", "COMPLETED", action="complete"),
        Transition("IN_PROGRESS", "REWORK", action="send_to_rework"),
        Transition("IN_PROGRESS", "CANCELLED", action="cancel"),
        Transition("COMPLETED", "IN_PROGRESS", action="reopen"),
        Transition("REWORK", "IN_PROGRESS", action="resume"),
        Transition("REWORK", "CANCELLED", action="cancel"),
        # COMPLETED with a passing stage and a next stage re-enters the pipeline.
        Transition("COMPLETED", "NOT_STARTED", action="advance_stage", guard=NEXT_STAGE_EXISTS),
    ),
    terminal_states=(JobStatus.CANCELLED.value,),
)

logger.info(
    "production_job_workflow_registered",
    extra={
        "workflow_name": JOB_WORKFLOW.name,
        "state_count": len(JOB_WORKFLOW.states),
        "transition_count": len(JOB_WORKFLOW.transitions),
        "initial_state": JOB_WORKFLOW.initial_state,
    },
)


def next_job_statuses(current: JobStatus) -> frozenset[JobStatus]:
    """Statuses a caller may request from ``current``."""
    match current:
        case JobStatus.NOT_STARTED:
            return frozenset({JobStatus.IN_PROGRESS, JobStatus.CANCELLED})
        case JobStatus.IN_PROGRESS:
            return frozenset({JobStatus.COMPLETED, JobStatus.REWORK, JobStatus.CANCELLED})
        case JobStatus.COMPLETED:
            return frozenset({JobStatus.IN_PROGRESS})
        case JobStatus.REWORK:
            return frozenset({JobStatus.IN_PROGRESS, JobStatus.CANCELLED})
        case JobStatus.CANCELLED:
            return frozenset()
        case _:
            raise ValueError(f"Unknown job status: {current}")


def can_force_rework(current: JobStatus) -> bool:
    """A failing QC sends any non-terminal job to REWORK."""
    return current != JobStatus.CANCELLED


def classify_stage_move(stages: StageList, current: str, target: str) -> StageMove:
    """
    Compare two stages by their position in the tenant's list.

    Either stage missing from the list makes the move UNLISTED, which is
    always allowed.
    """
    if current == target:
        return StageMove.SAME
    i = stages.index_of(current)
    j = stages.index_of(target)
    if i is None or j is None:
        return StageMove.UNLISTED
    if j < i:
        return StageMove.BACKWARD
    return StageMove.FORWARD
