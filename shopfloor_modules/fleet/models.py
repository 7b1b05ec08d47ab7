"""
Fleet Domain Models (``shopfloor_modules.fleet.models``).

Vehicle and driver status enums and frozen DTOs.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID


class VehicleStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    IN_USE = "IN_USE"
    MAINTENANCE = "MAINTENANCE"


class DriverStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


@dataclass(frozen=True)
class VehicleInfo:
    id: UUID
    number_plate: str
    status: VehicleStatus
    vehicle_type: str | None = None
    capacity: Decimal | None = None
    driver_id: UUID | None = None

    @property
    def is_available(self) -> bool:
        return self.status == VehicleStatus.AVAILABLE


@dataclass(frozen=True)
class DriverInfo:
    id: UUID
    name: str
    status: DriverStatus
    phone: str | None = None
    license_no: str | None = None
