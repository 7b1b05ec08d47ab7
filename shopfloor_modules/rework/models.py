"""
Rework Domain Models (``shopfloor_modules.rework.models``).

Rework status enum and the frozen rework job DTO.  A rework job points at
exactly one source: a production job or a delivery note.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from shopfloor_kernel.logging_config import get_logger

logger = get_logger("modules.rework.models")


class ReworkStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class ReworkJobInfo:
    id: UUID
    rework_number: str
    status: ReworkStatus
    source_production_job_id: UUID | None = None
    source_delivery_note_id: UUID | None = None
    source_return_id: UUID | None = None
    qc_record_id: UUID | None = None
    assignee_id: UUID | None = None
    expected_hours: Decimal | None = None
    actual_hours: Decimal | None = None
    material_needed: list[Any] = field(default_factory=list)
    defect_description: str | None = None
    notes: str | None = None
    completed_at: datetime | None = None

    def __post_init__(self):
        if (self.source_production_job_id is None) == (self.source_delivery_note_id is None):
            logger.warning(
                "rework_source_invalid",
                extra={"rework_id": str(self.id)},
            )
            raise ValueError(
                "Exactly one of source_production_job_id or source_delivery_note_id must be set"
            )

    @property
    def is_open(self) -> bool:
        return self.status in (ReworkStatus.OPEN, ReworkStatus.IN_PROGRESS)
