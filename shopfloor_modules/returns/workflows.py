"""
Returns Workflows.

A return is inspected once.  The outcome chosen at inspection decides the
ledger and rework side effects; the status table itself is two states.
"""

from shopfloor_kernel.domain.workflow import Guard, Transition, Workflow
from shopfloor_kernel.logging_config import get_logger
from shopfloor_modules.returns.models import ReturnOutcome, ReturnStatus

logger = get_logger("modules.returns.workflows")


NOT_YET_INSPECTED = Guard(
    name="not_yet_inspected",
    description="The return is still PENDING",
)

RETURN_WORKFLOW = Workflow(
    name="return_record",
    description="Customer return from receipt to disposition",
    initial_state=ReturnStatus.PENDING.value,
    states=tuple(s.value for s in ReturnStatus),
    transitions=(
        Transition("PENDING", "INSPECTED", action="inspect_rework", guard=NOT_YET_INSPECTED),
        Transition(
            "PENDING", "INSPECTED", action="inspect_scrap", guard=NOT_YET_INSPECTED, moves_stock=True,
        ),
        Transition(
            "PENDING", "INSPECTED", action="inspect_accept", guard=NOT_YET_INSPECTED, moves_stock=True,
        ),
        Transition("PENDING", "INSPECTED", action="inspect_replace", guard=NOT_YET_INSPECTED),
    ),
    terminal_states=(ReturnStatus.INSPECTED.value,),
)

logger.info(
    "returns_workflow_registered",
    extra={
        "workflow_name": RETURN_WORKFLOW.name,
        "state_count": len(RETURN_WORKFLOW.states),
        "transition_count": len(RETURN_WORKFLOW.transitions),
    },
)


def next_return_statuses(current: ReturnStatus) -> frozenset[ReturnStatus]:
    match current:
        case ReturnStatus.PENDING:
            return frozenset({ReturnStatus.INSPECTED})
        case ReturnStatus.INSPECTED:
            return frozenset()
        case _:
            raise ValueError(f"Unknown return status: {current}")


def inspection_action(outcome: ReturnOutcome) -> str:
    match outcome:
        case ReturnOutcome.REWORK:
            return "inspect_rework"
        case ReturnOutcome.SCRAP:
            return "inspect_scrap"
        case ReturnOutcome.ACCEPT_RETURN:
            return "inspect_accept"
        case ReturnOutcome.REPLACE:
            return "inspect_replace"
        case _:
            raise ValueError(f"Unknown return outcome: {outcome}")


def moves_stock(outcome: ReturnOutcome) -> bool:
    """SCRAP and ACCEPT_RETURN write ledger entries; REWORK and REPLACE do not."""
    return inspection_action(outcome) in RETURN_WORKFLOW.stock_moving_actions()
