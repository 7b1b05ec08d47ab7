"""
Dispatch Workflows.

The delivery-note lifecycle.  ``next_dn_statuses`` is the single exhaustive
table; the guards below are checked by ``DispatchService`` before the
matching transition runs.
"""

from shopfloor_kernel.domain.workflow import Guard, Transition, Workflow
from shopfloor_kernel.logging_config import get_logger
from shopfloor_modules.dispatch.models import DNStatus

logger = get_logger("modules.dispatch.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

LOADED_WITHIN_QTY = Guard(
    name="loaded_within_qty",
    description="Every loaded quantity is between 0 and the line quantity",
)

VEHICLE_ASSIGNED = Guard(
    name="vehicle_assigned",
    description="A vehicle holds the note before it leaves",
)

ALL_LINES_LOADED = Guard(
    name="all_lines_loaded",
    description="Every line has a loaded quantity above zero",
)

NO_FAILING_QC = Guard(
    name="no_failing_qc",
    description="The latest QC record for the note is not FAIL",
)

DELIVERED_WITHIN_LOADED = Guard(
    name="delivered_within_loaded",
    description="Every delivered quantity is between 0 and the loaded quantity",
)

logger.info(
    "dispatch_workflow_guards_defined",
    extra={
        "guards": [
            LOADED_WITHIN_QTY.name,
            VEHICLE_ASSIGNED.name,
            ALL_LINES_LOADED.name,
            NO_FAILING_QC.name,
            DELIVERED_WITHIN_LOADED.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# Delivery Note Workflow
# -----------------------------------------------------------------------------

DN_WORKFLOW = Workflow(
    name="delivery_note",
    description="Delivery note from draft to delivery and return",
    initial_state=DNStatus.DRAFT.value,
    states=tuple(s.value for s in DNStatus),
    transitions=(
        Transition("DRAFT", "LOADING", action="load", guard=LOADED_WITHIN_QTY),
        Transition("LOADING", "LOADING", action="load", guard=LOADED_WITHIN_QTY),
        Transition("DRAFT", "CANCELLED", action="cancel"),
        Transition("LOADING", "CANCELLED", action="cancel"),
        Transition("LOADING", "DISPATCHED", action="dispatch", guard=VEHICLE_ASSIGNED, moves_stock=True),
        Transition("LOADING", "DISPATCHED", action="dispatch", guard=ALL_LINES_LOADED, moves_stock=True),
        Transition("LOADING", "DISPATCHED", action="dispatch", guard=NO_FAILING_QC, moves_stock=True),
        Transition("DISPATCHED", "DELIVERED", action="deliver", guard=DELIVERED_WITHIN_LOADED),
        Transition("DELIVERED", "RETURNED", action="mark_returned"),
    ),
    terminal_states=(DNStatus.RETURNED.value, DNStatus.CANCELLED.value),
)

logger.info(
    "dispatch_workflow_registered",
    extra={
        "workflow_name": DN_WORKFLOW.name,
        "state_count": len(DN_WORKFLOW.states),
        "transition_count": len(DN_WORKFLOW.transitions),
        "initial_state": DN_WORKFLOW.initial_state,
    },
)


def next_dn_statuses(current: DNStatus) -> frozenset[DNStatus]:
    match current:
        case DNStatus.DRAFT:
            return frozenset({DNStatus.LOADING, DNStatus.CANCELLED})
        case DNStatus.LOADING:
            return frozenset({DNStatus.LOADING, DNStatus.DISPATCHED, DNStatus.CANCELLED})
        case DNStatus.DISPATCHED:
            return frozenset({DNStatus.DELIVERED})
        case DNStatus.DELIVERED:
            return frozenset({DNStatus.RETURNED})
        case DNStatus.RETURNED | DNStatus.CANCELLED:
            return frozenset()
        case _:
            raise ValueError(f"Unknown delivery note status: {current}")


def holds_vehicle(status: DNStatus) -> bool:
    """In-flight notes are the only ones allowed to hold a vehicle lock."""
    return status in (DNStatus.LOADING, DNStatus.DISPATCHED)
