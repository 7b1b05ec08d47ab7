"""
AuditLogger -- writes the one audit fact each state change produces.

Responsibility:
    Append an AuditLog row (tenant, user, action, entity type/id, old and
    new data) inside the caller's unit of work, as close to the mutation as
    possible.  Because the row shares the business transaction, a rolled
    back operation leaves no audit fact behind.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - Best-effort: the row is written inside a SAVEPOINT.  If the write
      fails, only the savepoint is rolled back, the failure is logged as
      ``audit_write_failed`` and the business operation continues.
    - Pending business writes are flushed *before* the savepoint opens, so
      a constraint error in business data is never mistaken for an audit
      failure and swallowed.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

from shopfloor_kernel.domain.context import OperationContext
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.audit_log import AuditAction, AuditLog
from shopfloor_kernel.services.unit_of_work import UnitOfWork

logger = get_logger("services.audit")


def to_audit_value(value: Any) -> Any:
    """Make a value JSON-safe for the old_data/new_data columns."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): to_audit_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_audit_value(v) for v in value]
    return str(value)


class AuditLogger:
    """Best-effort audit writer bound to one unit of work."""

    def __init__(self, uow: UnitOfWork):
        self._uow = uow

    def record(
        self,
        ctx: OperationContext,
        action: AuditAction,
        entity_type: str,
        entity_id: UUID | str,
        old_data: Mapping[str, Any] | None = None,
        new_data: Mapping[str, Any] | None = None,
        system: bool = False,
    ) -> AuditLog | None:
        """
        Append one audit row.  Returns None when the write failed.

        ``system=True`` records the fact without a user (low-stock alerts
        and other facts no person triggered directly).
        """
        session = self._uow.session
        session.flush()

        try:
            entry = AuditLog(
                tenant_id=ctx.tenant_id,
                user_id=None if system else ctx.actor_id,
                action=action.value,
                entity_type=entity_type,
                entity_id=str(entity_id),
                old_data=to_audit_value(old_data) if old_data is not None else None,
                new_data=to_audit_value(new_data) if new_data is not None else None,
                recorded_at=self._uow.clock.now(),
            )
            with session.begin_nested():
                session.add(entry)
        except Exception:
            logger.error(
                "audit_write_failed",
                extra={
                    "action": action.value,
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                },
                exc_info=True,
            )
            return None

        logger.debug(
            "audit_recorded",
            extra={
                "action": action.value,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
            },
        )
        return entry
