"""
Module: shopfloor_modules.project.orm
Responsibility: SQLAlchemy ORM persistence for projects.

Architecture position: Modules > Project > ORM.  ``client_id`` references
    the client master owned by the CRM side (no FK).

Failure modes:
    - IntegrityError on duplicate (tenant_id, project_code).
"""

from uuid import UUID

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from shopfloor_kernel.db.base import TenantScopedBase


class ProjectModel(TenantScopedBase):
    __tablename__ = "projects"

    __table_args__ = (
        UniqueConstraint("tenant_id", "project_code", name="uq_project_code"),
    )

    name: Mapped[str] = mapped_column(String(255))
    project_code: Mapped[str] = mapped_column(String(50))
    client_id: Mapped[UUID] = mapped_column()
    status: Mapped[str] = mapped_column(String(50), default="ACTIVE")

    def to_dto(self):
        from shopfloor_modules.project.models import ProjectInfo, ProjectStatus
        return ProjectInfo(
            id=self.id,
            name=self.name,
            project_code=self.project_code,
            client_id=self.client_id,
            status=ProjectStatus(self.status),
        )

    def __repr__(self) -> str:
        return f"<ProjectModel {self.project_code}>"
