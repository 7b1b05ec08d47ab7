"""
Module: shopfloor_kernel.models.audit_log
Responsibility: ORM persistence for the audit trail -- one row per
    successful state-changing operation.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit rows are append-only; no UPDATE or DELETE (ORM listener in
      db/immutability.py).

Audit relevance:
    AuditLog IS the audit trail.  Rows carry (tenant, user, action,
    entity_type, entity_id, old_data, new_data).
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from shopfloor_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Auditable actions.

    Every member is one class of state change that writes exactly one
    AuditLog row when it succeeds.
    """

    # Tenant / project
    TENANT_CREATE = "TENANT_CREATE"
    TENANT_STAGES_UPDATE = "TENANT_STAGES_UPDATE"
    PROJECT_CREATE = "PROJECT_CREATE"

    # Production
    PRODUCTION_JOB_CREATE = "PRODUCTION_JOB_CREATE"
    PRODUCTION_STATUS_CHANGE = "PRODUCTION_STATUS_CHANGE"
    PRODUCTION_STAGE_OVERRIDE = "PRODUCTION_STAGE_OVERRIDE"
    PRODUCTION_HOURS_LOGGED = "PRODUCTION_HOURS_LOGGED"
    PRODUCTION_JOB_ASSIGN = "PRODUCTION_JOB_ASSIGN"
    PRODUCTION_PHOTOS_ATTACH = "PRODUCTION_PHOTOS_ATTACH"

    # Quality / rework
    QC_RECORD_CREATE = "QC_RECORD_CREATE"
    REWORK_CREATE = "REWORK_CREATE"
    REWORK_UPDATE = "REWORK_UPDATE"

    # Delivery notes
    DN_CREATE = "DN_CREATE"
    DN_LOADING_UPDATE = "DN_LOADING_UPDATE"
    DN_VEHICLE_ASSIGN = "DN_VEHICLE_ASSIGN"
    DN_DISPATCH = "DN_DISPATCH"
    DN_TRACKING_ADD = "DN_TRACKING_ADD"
    DN_DELIVER = "DN_DELIVER"
    DN_CANCEL = "DN_CANCEL"
    DN_MARK_RETURNED = "DN_MARK_RETURNED"

    # Inventory
    INVENTORY_ITEM_CREATE = "INVENTORY_ITEM_CREATE"
    STOCK_ADJUSTMENT = "STOCK_ADJUSTMENT"
    STOCK_RESERVE = "STOCK_RESERVE"
    STOCK_UNRESERVE = "STOCK_UNRESERVE"
    LOW_STOCK_ALERT = "LOW_STOCK_ALERT"
    MATERIAL_ISSUE = "MATERIAL_ISSUE"

    # Returns
    RETURN_CREATE = "RETURN_CREATE"
    RETURN_INSPECT = "RETURN_INSPECT"
    RETURN_REPLACEMENT_CREATE = "RETURN_REPLACEMENT_CREATE"

    # Fleet
    VEHICLE_CREATE = "VEHICLE_CREATE"
    VEHICLE_UPDATE = "VEHICLE_UPDATE"
    VEHICLE_DELETE = "VEHICLE_DELETE"
    DRIVER_CREATE = "DRIVER_CREATE"
    DRIVER_UPDATE = "DRIVER_UPDATE"
    DRIVER_DELETE = "DRIVER_DELETE"


class AuditLog(Base):
    """
    One audit fact.

    Not a TrackedBase: the row is immutable, and user_id may be None for
    system-generated facts such as low-stock alerts.
    """

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_tenant_entity", "tenant_id", "entity_type", "entity_id"),
        Index("idx_audit_tenant_action", "tenant_id", "action"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    old_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    new_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.entity_type}:{self.entity_id}>"
