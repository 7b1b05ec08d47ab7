"""Kernel ORM models: tenants, audit trail, notifications."""

from shopfloor_kernel.models.audit_log import AuditAction, AuditLog
from shopfloor_kernel.models.notification import NotificationRecord
from shopfloor_kernel.models.tenant import Tenant

__all__ = [
    "AuditAction",
    "AuditLog",
    "NotificationRecord",
    "Tenant",
]
