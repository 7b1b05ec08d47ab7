"""
Module: shopfloor_kernel.models.notification
Responsibility: Persisted notifications written by DatabaseNotificationSink.
Architecture position: Kernel > Models.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from shopfloor_kernel.db.base import Base, UUIDString


class NotificationRecord(Base):
    __tablename__ = "notifications"

    __table_args__ = (
        Index("idx_notification_tenant_type", "tenant_id", "type"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    type: Mapped[str] = mapped_column(String(50))
    title: Mapped[str] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text)
    link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
