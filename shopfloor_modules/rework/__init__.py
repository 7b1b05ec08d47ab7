"""
Rework Module (``shopfloor_modules.rework``).

Corrective work items spawned by failing QC inspections or by returns
inspected as REWORK.  ``ReworkService`` lives in
``shopfloor_modules.rework.service``.
"""

from shopfloor_modules.rework.models import ReworkJobInfo, ReworkStatus
from shopfloor_modules.rework.workflows import REWORK_WORKFLOW, next_rework_statuses

__all__ = [
    "REWORK_WORKFLOW",
    "ReworkJobInfo",
    "ReworkStatus",
    "next_rework_statuses",
]
