"""
Returns Module (``shopfloor_modules.returns``).

Customer returns against delivered notes and their inspected disposition:
rework, scrap, or accept back into stock with an optional credit-note
fact.  ``ReturnsService`` lives in ``shopfloor_modules.returns.service``.
"""

from shopfloor_modules.returns.models import (
    InspectionResult,
    ReturnItemInput,
    ReturnOutcome,
    ReturnRecordInfo,
    ReturnStatus,
)
from shopfloor_modules.returns.workflows import RETURN_WORKFLOW, moves_stock, next_return_statuses

__all__ = [
    "InspectionResult",
    "RETURN_WORKFLOW",
    "ReturnItemInput",
    "ReturnOutcome",
    "ReturnRecordInfo",
    "ReturnStatus",
    "moves_stock",
    "next_return_statuses",
]
