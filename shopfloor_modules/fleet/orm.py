"""
Module: shopfloor_modules.fleet.orm
Responsibility: SQLAlchemy ORM persistence for vehicles and drivers.

Architecture position: Modules > Fleet > ORM.

Invariants enforced:
    - Vehicle.status moves to IN_USE only through VehicleAllocator.acquire
      (compare-and-set UPDATE), and back to AVAILABLE on delivery or
      cancellation.
    - number_plate is unique per tenant.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from shopfloor_kernel.db.base import TenantScopedBase


class DriverModel(TenantScopedBase):
    __tablename__ = "drivers"

    __table_args__ = (
        Index("idx_driver_status", "tenant_id", "status"),
    )

    name: Mapped[str] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    license_no: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(50), default="ACTIVE")

    def to_dto(self):
        from shopfloor_modules.fleet.models import DriverInfo, DriverStatus
        return DriverInfo(
            id=self.id,
            name=self.name,
            status=DriverStatus(self.status),
            phone=self.phone,
            license_no=self.license_no,
        )

    def __repr__(self) -> str:
        return f"<DriverModel {self.name} {self.status}>"


class VehicleModel(TenantScopedBase):
    __tablename__ = "vehicles"

    __table_args__ = (
        UniqueConstraint("tenant_id", "number_plate", name="uq_vehicle_plate"),
        Index("idx_vehicle_status", "tenant_id", "status"),
    )

    number_plate: Mapped[str] = mapped_column(String(50))
    vehicle_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    capacity: Mapped[Decimal | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(50), default="AVAILABLE")
    driver_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("drivers.id", ondelete="SET NULL"), nullable=True,
    )

    def to_dto(self):
        from shopfloor_modules.fleet.models import VehicleInfo, VehicleStatus
        return VehicleInfo(
            id=self.id,
            number_plate=self.number_plate,
            status=VehicleStatus(self.status),
            vehicle_type=self.vehicle_type,
            capacity=self.capacity,
            driver_id=self.driver_id,
        )

    def __repr__(self) -> str:
        return f"<VehicleModel {self.number_plate} {self.status}>"
