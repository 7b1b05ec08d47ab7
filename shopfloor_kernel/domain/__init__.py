"""Pure domain values: clock, operation context, stage list."""

from shopfloor_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from shopfloor_kernel.domain.context import OperationContext
from shopfloor_kernel.domain.stages import StageList

__all__ = [
    "Clock",
    "DeterministicClock",
    "OperationContext",
    "StageList",
    "SystemClock",
]
