"""
Quality Domain Models (``shopfloor_modules.quality.models``).

QC status enum, the frozen QC record DTO and the outcome of one
inspection.  A record targets exactly one production job or delivery note.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from shopfloor_kernel.logging_config import get_logger

logger = get_logger("modules.quality.models")


class QCStatus(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    NA = "NA"


@dataclass(frozen=True)
class QCRecordInfo:
    id: UUID
    qc_status: QCStatus
    inspector_id: UUID
    inspected_at: datetime
    seq: int
    production_job_id: UUID | None = None
    delivery_note_id: UUID | None = None
    stage_log_id: UUID | None = None
    stage: str | None = None
    defects: list[Any] = field(default_factory=list)
    remarks: str | None = None

    def __post_init__(self):
        if (self.production_job_id is None) == (self.delivery_note_id is None):
            logger.warning("qc_record_target_invalid", extra={"qc_record_id": str(self.id)})
            raise ValueError("Exactly one of production_job_id or delivery_note_id must be set")

    @property
    def failed(self) -> bool:
        return self.qc_status == QCStatus.FAIL


@dataclass(frozen=True)
class QCResult:
    """What one ``record_qc`` call changed."""
    record: QCRecordInfo
    job_status: str | None = None
    rework_job_id: UUID | None = None

    @property
    def dn_action(self) -> str | None:
        """DN_PASSED / DN_FAILED for delivery-note inspections."""
        if self.record.delivery_note_id is None:
            return None
        return "DN_FAILED" if self.record.failed else "DN_PASSED"
