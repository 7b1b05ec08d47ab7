"""
OperationContext -- who is acting, for which tenant.

Responsibility:
    Every public service operation takes an OperationContext as an explicit
    argument.  There is no ambient "current user" or "current tenant".

Architecture position:
    Kernel > Domain -- pure value object.
"""

from dataclasses import dataclass, field
from uuid import UUID

from shopfloor_kernel.logging_config import LogContext

# Roles allowed to move a production job to an earlier stage.
DEFAULT_OVERRIDE_ROLES: frozenset[str] = frozenset({"DIRECTOR", "PROJECT_MANAGER"})


@dataclass(frozen=True)
class OperationContext:
    """
    Tenant, actor and role for one operation.

    ``role`` is whatever the auth layer resolved; the kernel only compares it
    against override role sets.
    """

    tenant_id: UUID
    actor_id: UUID
    role: str | None = None
    correlation_id: str | None = None
    override_roles: frozenset[str] = field(default=DEFAULT_OVERRIDE_ROLES)

    def __post_init__(self):
        if self.tenant_id is None:
            raise ValueError("tenant_id is required")
        if self.actor_id is None:
            raise ValueError("actor_id is required")

    def has_override(self) -> bool:
        return self.role is not None and self.role.upper() in self.override_roles

    def with_role(self, role: str | None) -> "OperationContext":
        return OperationContext(
            tenant_id=self.tenant_id,
            actor_id=self.actor_id,
            role=role,
            correlation_id=self.correlation_id,
            override_roles=self.override_roles,
        )

    def bind_logging(self, operation: str, entity_id: UUID | None = None):
        """Bind tenant/actor/operation into LogContext for a ``with`` block."""
        return LogContext.bind(
            tenant_id=str(self.tenant_id),
            actor_id=str(self.actor_id),
            correlation_id=self.correlation_id,
            operation=operation,
            entity_id=str(entity_id) if entity_id is not None else None,
        )
