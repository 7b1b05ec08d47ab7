"""
Quality Module (``shopfloor_modules.quality``).

Responsibility
--------------
The QC gate between production and dispatch.  Inspections are append-only
records; the latest record decides a stage visit's displayed QC status and
whether a delivery note may be dispatched.

Failure Modes
-------------
- ``ValidationError`` when a record names zero or two targets.
- ``InvalidTransitionError`` when failing a CANCELLED job.

``QualityService`` lives in ``shopfloor_modules.quality.service``.
"""

from shopfloor_modules.quality.models import QCRecordInfo, QCResult, QCStatus

__all__ = [
    "QCRecordInfo",
    "QCResult",
    "QCStatus",
]
