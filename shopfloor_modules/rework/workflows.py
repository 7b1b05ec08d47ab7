"""
Rework Workflows.

OPEN work can be picked up, finished or dropped; COMPLETED and CANCELLED
are terminal.
"""

from shopfloor_kernel.domain.workflow import Guard, Transition, Workflow
from shopfloor_kernel.logging_config import get_logger
from shopfloor_modules.rework.models import ReworkStatus

logger = get_logger("modules.rework.workflows")


SOURCE_JOB_IN_REWORK = Guard(
    name="source_job_in_rework",
    description="Completion resumes the source production job only while it is in REWORK",
)

REWORK_WORKFLOW = Workflow(
    name="rework_job",
    description="Corrective work raised by QC failures and returns",
    initial_state=ReworkStatus.OPEN.value,
    states=tuple(s.value for s in ReworkStatus),
    transitions=(
        Transition("OPEN", "IN_PROGRESS", action="start"),
        Transition("OPEN", "COMPLETED", action="complete", guard=SOURCE_JOB_IN_REWORK),
        Transition("OPEN", "CANCELLED", action="cancel"),
        Transition("IN_PROGRESS", "COMPLETED", action="complete", guard=SOURCE_JOB_IN_REWORK),
        Transition("IN_PROGRESS", "CANCELLED", action="cancel"),
    ),
    terminal_states=(ReworkStatus.COMPLETED.value, ReworkStatus.CANCELLED.value),
)

logger.info(
    "rework_workflow_registered",
    extra={
        "workflow_name": REWORK_WORKFLOW.name,
        "state_count": len(REWORK_WORKFLOW.states),
        "transition_count": len(REWORK_WORKFLOW.transitions),
    },
)


def next_rework_statuses(current: ReworkStatus) -> frozenset[ReworkStatus]:
    match current:
        case ReworkStatus.OPEN:
            return frozenset({ReworkStatus.IN_PROGRESS, ReworkStatus.COMPLETED, ReworkStatus.CANCELLED})
        case ReworkStatus.IN_PROGRESS:
            return frozenset({ReworkStatus.COMPLETED, ReworkStatus.CANCELLED})
        case ReworkStatus.COMPLETED | ReworkStatus.CANCELLED:
            return frozenset()
        case _:
            raise ValueError(f"Unknown rework status: {current}")
