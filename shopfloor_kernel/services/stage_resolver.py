"""
StageResolver -- reads a tenant's stage configuration.

Responsibility:
    The boundary between the stored (loosely typed) stage list and the
    StageList value object.  Everything past this point works with a
    StageList.  Missing or malformed configuration is reported as
    StagesNotConfiguredError, never defaulted.

Architecture position:
    Kernel > Services.
"""

from uuid import UUID

from shopfloor_kernel.domain.context import OperationContext
from shopfloor_kernel.domain.stages import StageList
from shopfloor_kernel.exceptions import TenantNotFoundError
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.audit_log import AuditAction
from shopfloor_kernel.models.tenant import Tenant
from shopfloor_kernel.services.audit_logger import AuditLogger
from shopfloor_kernel.services.unit_of_work import UnitOfWork

logger = get_logger("services.stage_resolver")


class StageResolver:
    def __init__(self, uow: UnitOfWork):
        self._uow = uow

    def tenant(self, tenant_id: UUID) -> Tenant:
        tenant = self._uow.session.get(Tenant, tenant_id)
        if tenant is None:
            raise TenantNotFoundError(str(tenant_id))
        return tenant

    def stages(self, tenant_id: UUID) -> StageList:
        tenant = self.tenant(tenant_id)
        return StageList.parse(tenant.production_stages, tenant_id=tenant_id)

    def first_stage(self, tenant_id: UUID) -> str:
        return self.stages(tenant_id).first()

    def next_stage(self, tenant_id: UUID, current_stage: str) -> str | None:
        return self.stages(tenant_id).next_after(current_stage)

    def index_of(self, tenant_id: UUID, stage: str) -> int | None:
        return self.stages(tenant_id).index_of(stage)


def create_tenant(
    uow: UnitOfWork,
    actor_id: UUID,
    name: str,
    code: str,
    production_stages: object = None,
    tenant_id: UUID | None = None,
) -> Tenant:
    """
    Create a tenant.  A stage list, when given, must parse.

    Not tenant-scoped itself, so it takes the acting user directly.
    """
    if not code or not code.strip():
        raise ValueError("tenant code is required")
    stored = None
    if production_stages is not None:
        stored = StageList.parse(production_stages).to_list()
    tenant = Tenant(
        name=name,
        code=code.strip().upper(),
        production_stages=stored,
        created_by_id=actor_id,
    )
    if tenant_id is not None:
        tenant.id = tenant_id
    uow.session.add(tenant)
    uow.flush()
    AuditLogger(uow).record(
        OperationContext(tenant_id=tenant.id, actor_id=actor_id),
        AuditAction.TENANT_CREATE,
        "Tenant",
        tenant.id,
        new_data={"name": name, "code": tenant.code, "production_stages": stored},
    )
    logger.info(
        "tenant_created",
        extra={"tenant_code": tenant.code, "stage_count": len(stored or [])},
    )
    return tenant


def set_production_stages(
    uow: UnitOfWork,
    ctx: OperationContext,
    production_stages: object,
) -> StageList:
    """Replace the tenant's stage list.  Jobs keep their stage names; stage indexes are recomputed on read."""
    resolver = StageResolver(uow)
    tenant = resolver.tenant(ctx.tenant_id)
    stage_list = StageList.parse(production_stages, tenant_id=ctx.tenant_id)
    old = tenant.production_stages
    tenant.production_stages = stage_list.to_list()
    tenant.updated_by_id = ctx.actor_id
    uow.flush()
    AuditLogger(uow).record(
        ctx,
        AuditAction.TENANT_STAGES_UPDATE,
        "Tenant",
        tenant.id,
        old_data={"production_stages": old},
        new_data={"production_stages": stage_list.to_list()},
    )
    return stage_list
