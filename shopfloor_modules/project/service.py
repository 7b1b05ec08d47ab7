"""
Project Module Service (``shopfloor_modules.project.service``).

Creation and tenant-scoped lookup.  Other modules call ``get_model`` to
check that a referenced project exists and belongs to the caller's tenant.
"""

from uuid import UUID

from sqlalchemy import select

from shopfloor_kernel.domain.context import OperationContext
from shopfloor_kernel.exceptions import DuplicateCodeError, ProjectNotFoundError, ValidationError
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.audit_log import AuditAction
from shopfloor_kernel.services.audit_logger import AuditLogger
from shopfloor_kernel.services.unit_of_work import UnitOfWork
from shopfloor_modules.project.models import ProjectInfo, ProjectStatus
from shopfloor_modules.project.orm import ProjectModel

logger = get_logger("modules.project.service")


class ProjectService:

    def create_project(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        name: str,
        project_code: str,
        client_id: UUID,
    ) -> ProjectInfo:
        if not name or not name.strip():
            raise ValidationError("name", "is required")
        if not project_code or not project_code.strip():
            raise ValidationError("project_code", "is required")
        if client_id is None:
            raise ValidationError("client_id", "is required")

        code = project_code.strip()
        existing = uow.session.execute(
            select(ProjectModel.id).where(
                ProjectModel.tenant_id == ctx.tenant_id,
                ProjectModel.project_code == code,
            )
        ).first()
        if existing is not None:
            raise DuplicateCodeError("Project", code)

        project = ProjectModel(
            tenant_id=ctx.tenant_id,
            name=name.strip(),
            project_code=code,
            client_id=client_id,
            status=ProjectStatus.ACTIVE.value,
            created_by_id=ctx.actor_id,
        )
        uow.session.add(project)
        uow.flush()
        AuditLogger(uow).record(
            ctx,
            AuditAction.PROJECT_CREATE,
            "Project",
            project.id,
            new_data={"name": project.name, "project_code": code, "client_id": client_id},
        )
        logger.info(
            "project_created",
            extra={"project_id": str(project.id), "project_code": code},
        )
        return project.to_dto()

    def get_model(self, uow: UnitOfWork, ctx: OperationContext, project_id: UUID) -> ProjectModel:
        project = uow.session.get(ProjectModel, project_id)
        if project is None or project.tenant_id != ctx.tenant_id:
            raise ProjectNotFoundError(str(project_id))
        return project

    def get_project(self, uow: UnitOfWork, ctx: OperationContext, project_id: UUID) -> ProjectInfo:
        return self.get_model(uow, ctx, project_id).to_dto()
