"""
Fleet Workflows.

Vehicle and driver status machines.  ``next_vehicle_statuses`` and
``next_driver_statuses`` are the only places the allowed moves are decided.
"""

from shopfloor_kernel.domain.workflow import Guard, Transition, Workflow
from shopfloor_kernel.logging_config import get_logger
from shopfloor_modules.fleet.models import DriverStatus, VehicleStatus

logger = get_logger("modules.fleet.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

VEHICLE_AVAILABLE = Guard(
    name="vehicle_available",
    description="Vehicle status is AVAILABLE at the moment of the update",
)

NOT_IN_FLIGHT = Guard(
    name="not_in_flight",
    description="No LOADING or DISPATCHED delivery note references the resource",
)


# -----------------------------------------------------------------------------
# Vehicle Workflow
# -----------------------------------------------------------------------------

VEHICLE_WORKFLOW = Workflow(
    name="fleet_vehicle",
    description="Vehicle allocation and maintenance",
    initial_state=VehicleStatus.AVAILABLE.value,
    states=tuple(s.value for s in VehicleStatus),
    transitions=(
        Transition("AVAILABLE", "IN_USE", action="acquire", guard=VEHICLE_AVAILABLE),
        Transition("IN_USE", "AVAILABLE", action="release"),
        Transition("AVAILABLE", "MAINTENANCE", action="send_to_maintenance"),
        Transition("IN_USE", "MAINTENANCE", action="send_to_maintenance", guard=NOT_IN_FLIGHT),
        Transition("IN_USE", "AVAILABLE", action="set_available", guard=NOT_IN_FLIGHT),
        Transition("MAINTENANCE", "AVAILABLE", action="return_from_maintenance"),
    ),
)

logger.info(
    "fleet_vehicle_workflow_registered",
    extra={
        "workflow_name": VEHICLE_WORKFLOW.name,
        "state_count": len(VEHICLE_WORKFLOW.states),
        "transition_count": len(VEHICLE_WORKFLOW.transitions),
        "initial_state": VEHICLE_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Driver Workflow
# -----------------------------------------------------------------------------

DRIVER_WORKFLOW = Workflow(
    name="fleet_driver",
    description="Driver activation",
    initial_state=DriverStatus.ACTIVE.value,
    states=tuple(s.value for s in DriverStatus),
    transitions=(
        Transition("ACTIVE", "INACTIVE", action="deactivate", guard=NOT_IN_FLIGHT),
        Transition("INACTIVE", "ACTIVE", action="activate"),
    ),
)

logger.info(
    "fleet_driver_workflow_registered",
    extra={
        "workflow_name": DRIVER_WORKFLOW.name,
        "state_count": len(DRIVER_WORKFLOW.states),
        "transition_count": len(DRIVER_WORKFLOW.transitions),
        "initial_state": DRIVER_WORKFLOW.initial_state,
    },
)


def next_vehicle_statuses(current: VehicleStatus) -> frozenset[VehicleStatus]:
    """Statuses a vehicle may move to from ``current`` (any actor)."""
    match current:
        case VehicleStatus.AVAILABLE:
            return frozenset({VehicleStatus.IN_USE, VehicleStatus.MAINTENANCE})
        case VehicleStatus.IN_USE:
            return frozenset({VehicleStatus.AVAILABLE, VehicleStatus.MAINTENANCE})
        case VehicleStatus.MAINTENANCE:
            return frozenset({VehicleStatus.AVAILABLE})
        case _:
            raise ValueError(f"Unknown vehicle status: {current}")


def next_driver_statuses(current: DriverStatus) -> frozenset[DriverStatus]:
    match current:
        case DriverStatus.ACTIVE:
            return frozenset({DriverStatus.INACTIVE})
        case DriverStatus.INACTIVE:
            return frozenset({DriverStatus.ACTIVE})
        case _:
            raise ValueError(f"Unknown driver status: {current}")
