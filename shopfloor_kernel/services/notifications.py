"""
Notifications -- fire-and-forget messages to operators.

Responsibility:
    Carry QC_FAIL, REWORK_CREATED and RETURN_CREATED events (plus
    LOW_STOCK) to whatever delivers them: an in-process list, the log, or
    the notifications table.  Publication is queued on the unit of work and
    happens only after the business transaction commits, so a rolled back
    operation never notifies anyone.

Architecture position:
    Kernel > Services -- outbound port plus adapters.

Invariants enforced:
    - A sink failure is logged as ``notification_publish_failed`` and
      swallowed.  It never reaches the caller and never rolls anything back.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.notification import NotificationRecord
from shopfloor_kernel.services.unit_of_work import UnitOfWork

logger = get_logger("services.notifications")


class NotificationType(str, Enum):
    QC_FAIL = "QC_FAIL"
    REWORK_CREATED = "REWORK_CREATED"
    RETURN_CREATED = "RETURN_CREATED"
    LOW_STOCK = "LOW_STOCK"


@dataclass(frozen=True)
class Notification:
    tenant_id: UUID
    type: NotificationType
    title: str
    message: str
    link: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    def publish(self, notification: Notification) -> None: ...


class InMemoryNotificationSink:
    """Keeps published notifications in a list.  Used by tests and tooling."""

    def __init__(self):
        self.published: list[Notification] = []

    def publish(self, notification: Notification) -> None:
        self.published.append(notification)

    def of_type(self, notification_type: NotificationType) -> list[Notification]:
        return [n for n in self.published if n.type == notification_type]


class LoggingNotificationSink:
    """Default sink: one structured log line per notification."""

    def publish(self, notification: Notification) -> None:
        logger.info(
            "notification_published",
            extra={
                "notification_type": notification.type.value,
                "title": notification.title,
                "link": notification.link,
                "notification_metadata": notification.metadata,
            },
        )


class DatabaseNotificationSink:
    """
    Persists notifications in their own short transaction.

    Runs after the business commit, so it opens a fresh session from
    ``session_factory`` rather than reusing the caller's.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def publish(self, notification: Notification) -> None:
        session = self._session_factory()
        try:
            session.add(
                NotificationRecord(
                    tenant_id=notification.tenant_id,
                    type=notification.type.value,
                    title=notification.title,
                    message=notification.message,
                    link=notification.link,
                    metadata_json=dict(notification.metadata) or None,
                )
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class NotificationPublisher:
    """Queues notifications on a unit of work; delivers them after commit."""

    def __init__(self, sink: NotificationSink | None = None):
        self._sink = sink or LoggingNotificationSink()

    def publish(self, uow: UnitOfWork, notification: Notification) -> None:
        uow.after_commit(
            f"notify:{notification.type.value}",
            lambda: self._deliver(notification),
        )

    def _deliver(self, notification: Notification) -> None:
        try:
            self._sink.publish(notification)
        except Exception:
            logger.warning(
                "notification_publish_failed",
                extra={
                    "notification_type": notification.type.value,
                    "tenant_id": str(notification.tenant_id),
                },
                exc_info=True,
            )
