"""Project Domain Models."""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class ProjectStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ON_HOLD = "ON_HOLD"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class ProjectInfo:
    id: UUID
    name: str
    project_code: str
    client_id: UUID
    status: ProjectStatus = ProjectStatus.ACTIVE
