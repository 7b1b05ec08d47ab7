"""
Module: shopfloor_kernel.models.tenant
Responsibility: Tenant row holding the per-tenant production stage list and
    the short code used in document numbers.
Architecture position: Kernel > Models.

The stage list column is stored as JSON but may hold a JSON-encoded string
written by older clients.  It is only ever read through
StageList.parse() (see services/stage_resolver.py).
"""

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from shopfloor_kernel.db.base import TrackedBase


class Tenant(TrackedBase):
    __tablename__ = "tenants"

    __table_args__ = (
        UniqueConstraint("code", name="uq_tenant_code"),
    )

    name: Mapped[str] = mapped_column(String(255))
    code: Mapped[str] = mapped_column(String(20))
    production_stages: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Tenant {self.code}>"
