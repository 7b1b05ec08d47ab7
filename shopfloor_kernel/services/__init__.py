"""Kernel services: unit of work, audit, numbering, outbound sinks."""

from shopfloor_kernel.services.audit_logger import AuditLogger
from shopfloor_kernel.services.finance_sink import (
    CreditNoteFact,
    FinancePublisher,
    InMemoryFinanceSink,
)
from shopfloor_kernel.services.notifications import (
    InMemoryNotificationSink,
    Notification,
    NotificationPublisher,
    NotificationType,
)
from shopfloor_kernel.services.sequence_service import SequenceService
from shopfloor_kernel.services.stage_resolver import StageResolver
from shopfloor_kernel.services.unit_of_work import UnitOfWork, unit_of_work

__all__ = [
    "AuditLogger",
    "CreditNoteFact",
    "FinancePublisher",
    "InMemoryFinanceSink",
    "InMemoryNotificationSink",
    "Notification",
    "NotificationPublisher",
    "NotificationType",
    "SequenceService",
    "StageResolver",
    "UnitOfWork",
    "unit_of_work",
]
