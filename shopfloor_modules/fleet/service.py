"""
Fleet Module Service (``shopfloor_modules.fleet.service``).

Responsibility
--------------
Vehicle and driver records (``FleetService``) and the allocation primitive
the delivery-note lifecycle uses (``VehicleAllocator``).

Architecture
------------
Layer: **Modules**.  Methods take ``(uow, ctx, ...)`` and never commit.

Invariants
----------
- Acquisition is a compare-and-set ``UPDATE vehicles SET status='IN_USE'
  WHERE id=:id AND status='AVAILABLE'``.  Exactly one of two concurrent
  callers sees rowcount 1; the other gets ``VehicleNotAvailableError``.
- A vehicle or driver referenced by a LOADING/DISPATCHED delivery note is
  never deleted, made AVAILABLE, sent to MAINTENANCE or deactivated;
  those calls raise ``ResourceInUseError``.
- IN_USE is never set by hand; only ``acquire`` sets it.
- Manual status changes, edits and deletes read the vehicle or driver
  row under ``SELECT ... FOR UPDATE``, so they never overwrite a
  concurrent acquisition.  Driver exclusivity checks run after the driver
  row is locked.

Audit Relevance
---------------
VEHICLE_CREATE/UPDATE/DELETE and DRIVER_CREATE/UPDATE/DELETE.  Allocation
and release are audited by the delivery-note operation that triggered them.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update

from shopfloor_kernel.db.types import to_optional_decimal
from shopfloor_kernel.domain.context import OperationContext
from shopfloor_kernel.exceptions import (
    DriverInactiveError,
    DriverNotFoundError,
    DuplicateCodeError,
    InvalidTransitionError,
    ResourceInUseError,
    ValidationError,
    VehicleNotAvailableError,
    VehicleNotFoundError,
)
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.audit_log import AuditAction
from shopfloor_kernel.services.audit_logger import AuditLogger
from shopfloor_kernel.services.unit_of_work import UnitOfWork
from shopfloor_modules.fleet.models import (
    DriverInfo,
    DriverStatus,
    VehicleInfo,
    VehicleStatus,
)
from shopfloor_modules.fleet.orm import DriverModel, VehicleModel
from shopfloor_modules.fleet.workflows import next_driver_statuses, next_vehicle_statuses

logger = get_logger("modules.fleet.service")

IN_FLIGHT_DN_STATUSES = ("LOADING", "DISPATCHED")


def _get_vehicle(
    uow: UnitOfWork, ctx: OperationContext, vehicle_id: UUID, lock: bool = False,
) -> VehicleModel:
    if lock:
        vehicle = uow.session.get(
            VehicleModel, vehicle_id, with_for_update=True, populate_existing=True,
        )
    else:
        vehicle = uow.session.get(VehicleModel, vehicle_id)
    if vehicle is None or vehicle.tenant_id != ctx.tenant_id:
        raise VehicleNotFoundError(str(vehicle_id))
    return vehicle


def _get_driver(
    uow: UnitOfWork, ctx: OperationContext, driver_id: UUID, lock: bool = False,
) -> DriverModel:
    if lock:
        driver = uow.session.get(
            DriverModel, driver_id, with_for_update=True, populate_existing=True,
        )
    else:
        driver = uow.session.get(DriverModel, driver_id)
    if driver is None or driver.tenant_id != ctx.tenant_id:
        raise DriverNotFoundError(str(driver_id))
    return driver


def in_flight_delivery_note(
    uow: UnitOfWork,
    ctx: OperationContext,
    vehicle_id: UUID | None = None,
    driver_id: UUID | None = None,
    exclude_dn_id: UUID | None = None,
) -> UUID | None:
    """Id of a LOADING/DISPATCHED delivery note holding the vehicle or driver."""
    from shopfloor_modules.dispatch.orm import DeliveryNoteModel

    stmt = select(DeliveryNoteModel.id).where(
        DeliveryNoteModel.tenant_id == ctx.tenant_id,
        DeliveryNoteModel.status.in_(IN_FLIGHT_DN_STATUSES),
    )
    if vehicle_id is not None:
        stmt = stmt.where(DeliveryNoteModel.vehicle_id == vehicle_id)
    if driver_id is not None:
        stmt = stmt.where(DeliveryNoteModel.driver_id == driver_id)
    if exclude_dn_id is not None:
        stmt = stmt.where(DeliveryNoteModel.id != exclude_dn_id)
    return uow.session.execute(stmt.limit(1)).scalar_one_or_none()


class VehicleAllocator:
    """Acquire/release of vehicles for in-flight delivery notes."""

    def __init__(self, uow: UnitOfWork):
        self._uow = uow
        self._session = uow.session

    def _refresh(self, vehicle_id: UUID) -> VehicleModel:
        return self._session.execute(
            select(VehicleModel)
            .where(VehicleModel.id == vehicle_id)
            .execution_options(populate_existing=True)
        ).scalar_one()

    def lock_driver(self, ctx: OperationContext, driver_id: UUID) -> DriverModel:
        """Row-lock the driver so in-flight checks on it serialize."""
        return _get_driver(self._uow, ctx, driver_id, lock=True)

    def acquire(
        self,
        ctx: OperationContext,
        vehicle_id: UUID,
        driver_id: UUID | None = None,
    ) -> VehicleModel:
        """
        AVAILABLE -> IN_USE, binding the driver when one is given.

        Raises:
            VehicleNotFoundError / DriverNotFoundError: unknown ids.
            DriverInactiveError: driver is not ACTIVE.
            VehicleNotAvailableError: the vehicle was not AVAILABLE when the
                update ran.
        """
        _get_vehicle(self._uow, ctx, vehicle_id)
        if driver_id is not None:
            driver = self.lock_driver(ctx, driver_id)
            if driver.status != DriverStatus.ACTIVE.value:
                raise DriverInactiveError(str(driver_id), driver.status)

        values = {
            "status": VehicleStatus.IN_USE.value,
            "updated_by_id": ctx.actor_id,
        }
        if driver_id is not None:
            values["driver_id"] = driver_id

        result = self._session.execute(
            update(VehicleModel)
            .where(
                VehicleModel.id == vehicle_id,
                VehicleModel.tenant_id == ctx.tenant_id,
                VehicleModel.status == VehicleStatus.AVAILABLE.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        vehicle = self._refresh(vehicle_id)
        if result.rowcount != 1:
            logger.warning(
                "vehicle_acquire_conflict",
                extra={"vehicle_id": str(vehicle_id), "status": vehicle.status},
            )
            raise VehicleNotAvailableError(str(vehicle_id), vehicle.status)

        logger.info(
            "vehicle_acquired",
            extra={
                "vehicle_id": str(vehicle_id),
                "driver_id": str(driver_id) if driver_id else None,
            },
        )
        return vehicle

    def release(
        self,
        ctx: OperationContext,
        vehicle_id: UUID,
        clear_driver: bool = False,
    ) -> VehicleModel:
        """IN_USE -> AVAILABLE.  A vehicle already out of IN_USE is left as is."""
        vehicle = _get_vehicle(self._uow, ctx, vehicle_id)
        if vehicle.status == VehicleStatus.IN_USE.value:
            vehicle.status = VehicleStatus.AVAILABLE.value
        if clear_driver:
            vehicle.driver_id = None
        vehicle.updated_by_id = ctx.actor_id
        self._session.flush()
        logger.info(
            "vehicle_released",
            extra={
                "vehicle_id": str(vehicle_id),
                "vehicle_status": vehicle.status,
                "driver_cleared": clear_driver,
            },
        )
        return vehicle


class FleetService:
    """Vehicle and driver CRUD with in-flight protection."""

    # =========================================================================
    # Vehicles
    # =========================================================================

    def get_vehicle(self, uow: UnitOfWork, ctx: OperationContext, vehicle_id: UUID) -> VehicleInfo:
        return _get_vehicle(uow, ctx, vehicle_id).to_dto()

    def list_vehicles(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        status: VehicleStatus | None = None,
    ) -> list[VehicleInfo]:
        stmt = (
            select(VehicleModel)
            .where(VehicleModel.tenant_id == ctx.tenant_id)
            .order_by(VehicleModel.number_plate)
        )
        if status is not None:
            stmt = stmt.where(VehicleModel.status == VehicleStatus(status).value)
        return [v.to_dto() for v in uow.session.execute(stmt).scalars().all()]

    def create_vehicle(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        number_plate: str,
        vehicle_type: str | None = None,
        capacity: Decimal | None = None,
        driver_id: UUID | None = None,
    ) -> VehicleInfo:
        if not number_plate or not number_plate.strip():
            raise ValidationError("number_plate", "is required")
        plate = number_plate.strip().upper()
        self._ensure_unique_plate(uow, ctx, plate)
        if driver_id is not None:
            _get_driver(uow, ctx, driver_id)

        vehicle = VehicleModel(
            tenant_id=ctx.tenant_id,
            number_plate=plate,
            vehicle_type=vehicle_type,
            capacity=to_optional_decimal(capacity, "capacity"),
            status=VehicleStatus.AVAILABLE.value,
            driver_id=driver_id,
            created_by_id=ctx.actor_id,
        )
        uow.session.add(vehicle)
        uow.flush()
        AuditLogger(uow).record(
            ctx,
            AuditAction.VEHICLE_CREATE,
            "Vehicle",
            vehicle.id,
            new_data={"number_plate": plate, "vehicle_type": vehicle_type, "driver_id": driver_id},
        )
        logger.info("vehicle_created", extra={"vehicle_id": str(vehicle.id), "number_plate": plate})
        return vehicle.to_dto()

    def update_vehicle(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        vehicle_id: UUID,
        number_plate: str | None = None,
        vehicle_type: str | None = None,
        capacity: Decimal | None = None,
        driver_id: UUID | None = None,
        clear_driver: bool = False,
    ) -> VehicleInfo:
        """
        Edit descriptive fields.  Changing the driver of a vehicle on an
        in-flight delivery note is a ``ResourceInUseError``.
        """
        vehicle = _get_vehicle(uow, ctx, vehicle_id, lock=True)
        old = self._vehicle_snapshot(vehicle)

        if number_plate is not None:
            plate = number_plate.strip().upper()
            if plate != vehicle.number_plate:
                self._ensure_unique_plate(uow, ctx, plate)
                vehicle.number_plate = plate
        if vehicle_type is not None:
            vehicle.vehicle_type = vehicle_type
        if capacity is not None:
            vehicle.capacity = to_optional_decimal(capacity, "capacity")

        new_driver = None if clear_driver else driver_id
        if clear_driver or (driver_id is not None and driver_id != vehicle.driver_id):
            dn_id = in_flight_delivery_note(uow, ctx, vehicle_id=vehicle_id)
            if dn_id is not None:
                raise ResourceInUseError("Vehicle", str(vehicle_id), str(dn_id))
            if new_driver is not None:
                _get_driver(uow, ctx, new_driver)
            vehicle.driver_id = new_driver

        vehicle.updated_by_id = ctx.actor_id
        uow.flush()
        AuditLogger(uow).record(
            ctx,
            AuditAction.VEHICLE_UPDATE,
            "Vehicle",
            vehicle.id,
            old_data=old,
            new_data=self._vehicle_snapshot(vehicle),
        )
        return vehicle.to_dto()

    def set_vehicle_status(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        vehicle_id: UUID,
        status: VehicleStatus | str,
    ) -> VehicleInfo:
        """
        Manual status change (maintenance in/out, manual release).

        IN_USE is reserved for allocation; moving a vehicle held by an
        in-flight delivery note raises ``ResourceInUseError``.
        """
        target = VehicleStatus(status)
        vehicle = _get_vehicle(uow, ctx, vehicle_id, lock=True)
        current = VehicleStatus(vehicle.status)
        if target == current:
            return vehicle.to_dto()

        allowed = next_vehicle_statuses(current) - {VehicleStatus.IN_USE}
        if target not in allowed:
            raise InvalidTransitionError(
                entity_type="Vehicle",
                entity_id=str(vehicle_id),
                current=current.value,
                attempted=target.value,
                allowed=sorted(s.value for s in allowed),
                reason="IN_USE is set only by vehicle assignment" if target == VehicleStatus.IN_USE else None,
            )

        dn_id = in_flight_delivery_note(uow, ctx, vehicle_id=vehicle_id)
        if dn_id is not None:
            logger.warning(
                "vehicle_status_change_blocked",
                extra={"vehicle_id": str(vehicle_id), "delivery_note_id": str(dn_id)},
            )
            raise ResourceInUseError("Vehicle", str(vehicle_id), str(dn_id))

        vehicle.status = target.value
        vehicle.updated_by_id = ctx.actor_id
        uow.flush()
        AuditLogger(uow).record(
            ctx,
            AuditAction.VEHICLE_UPDATE,
            "Vehicle",
            vehicle.id,
            old_data={"status": current.value},
            new_data={"status": target.value},
        )
        logger.info(
            "vehicle_status_changed",
            extra={"vehicle_id": str(vehicle_id), "from_status": current.value, "to_status": target.value},
        )
        return vehicle.to_dto()

    def delete_vehicle(self, uow: UnitOfWork, ctx: OperationContext, vehicle_id: UUID) -> None:
        vehicle = _get_vehicle(uow, ctx, vehicle_id, lock=True)
        dn_id = in_flight_delivery_note(uow, ctx, vehicle_id=vehicle_id)
        if dn_id is not None:
            raise ResourceInUseError("Vehicle", str(vehicle_id), str(dn_id))
        old = self._vehicle_snapshot(vehicle)
        uow.session.delete(vehicle)
        uow.flush()
        AuditLogger(uow).record(
            ctx, AuditAction.VEHICLE_DELETE, "Vehicle", vehicle_id, old_data=old,
        )
        logger.info("vehicle_deleted", extra={"vehicle_id": str(vehicle_id)})

    def _ensure_unique_plate(self, uow: UnitOfWork, ctx: OperationContext, plate: str) -> None:
        existing = uow.session.execute(
            select(VehicleModel.id).where(
                VehicleModel.tenant_id == ctx.tenant_id,
                VehicleModel.number_plate == plate,
            )
        ).first()
        if existing is not None:
            raise DuplicateCodeError("Vehicle", plate)

    @staticmethod
    def _vehicle_snapshot(vehicle: VehicleModel) -> dict:
        return {
            "number_plate": vehicle.number_plate,
            "vehicle_type": vehicle.vehicle_type,
            "capacity": vehicle.capacity,
            "status": vehicle.status,
            "driver_id": vehicle.driver_id,
        }

    # =========================================================================
    # Drivers
    # =========================================================================

    def get_driver(self, uow: UnitOfWork, ctx: OperationContext, driver_id: UUID) -> DriverInfo:
        return _get_driver(uow, ctx, driver_id).to_dto()

    def create_driver(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        name: str,
        phone: str | None = None,
        license_no: str | None = None,
    ) -> DriverInfo:
        if not name or not name.strip():
            raise ValidationError("name", "is required")
        driver = DriverModel(
            tenant_id=ctx.tenant_id,
            name=name.strip(),
            phone=phone,
            license_no=license_no,
            status=DriverStatus.ACTIVE.value,
            created_by_id=ctx.actor_id,
        )
        uow.session.add(driver)
        uow.flush()
        AuditLogger(uow).record(
            ctx,
            AuditAction.DRIVER_CREATE,
            "Driver",
            driver.id,
            new_data={"name": driver.name, "license_no": license_no},
        )
        logger.info("driver_created", extra={"driver_id": str(driver.id)})
        return driver.to_dto()

    def update_driver(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        driver_id: UUID,
        name: str | None = None,
        phone: str | None = None,
        license_no: str | None = None,
    ) -> DriverInfo:
        driver = _get_driver(uow, ctx, driver_id)
        old = {"name": driver.name, "phone": driver.phone, "license_no": driver.license_no}
        if name is not None:
            if not name.strip():
                raise ValidationError("name", "must not be blank")
            driver.name = name.strip()
        if phone is not None:
            driver.phone = phone
        if license_no is not None:
            driver.license_no = license_no
        driver.updated_by_id = ctx.actor_id
        uow.flush()
        AuditLogger(uow).record(
            ctx,
            AuditAction.DRIVER_UPDATE,
            "Driver",
            driver.id,
            old_data=old,
            new_data={"name": driver.name, "phone": driver.phone, "license_no": driver.license_no},
        )
        return driver.to_dto()

    def set_driver_status(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        driver_id: UUID,
        status: DriverStatus | str,
    ) -> DriverInfo:
        target = DriverStatus(status)
        driver = _get_driver(uow, ctx, driver_id, lock=True)
        current = DriverStatus(driver.status)
        if target == current:
            return driver.to_dto()
        if target not in next_driver_statuses(current):
            raise InvalidTransitionError(
                entity_type="Driver",
                entity_id=str(driver_id),
                current=current.value,
                attempted=target.value,
                allowed=sorted(s.value for s in next_driver_statuses(current)),
            )
        if target == DriverStatus.INACTIVE:
            dn_id = in_flight_delivery_note(uow, ctx, driver_id=driver_id)
            if dn_id is not None:
                raise ResourceInUseError("Driver", str(driver_id), str(dn_id))

        driver.status = target.value
        driver.updated_by_id = ctx.actor_id
        uow.flush()
        AuditLogger(uow).record(
            ctx,
            AuditAction.DRIVER_UPDATE,
            "Driver",
            driver.id,
            old_data={"status": current.value},
            new_data={"status": target.value},
        )
        return driver.to_dto()

    def delete_driver(self, uow: UnitOfWork, ctx: OperationContext, driver_id: UUID) -> None:
        driver = _get_driver(uow, ctx, driver_id, lock=True)
        dn_id = in_flight_delivery_note(uow, ctx, driver_id=driver_id)
        if dn_id is not None:
            raise ResourceInUseError("Driver", str(driver_id), str(dn_id))

        uow.session.execute(
            update(VehicleModel)
            .where(
                VehicleModel.tenant_id == ctx.tenant_id,
                VehicleModel.driver_id == driver_id,
            )
            .values(driver_id=None, updated_by_id=ctx.actor_id)
            .execution_options(synchronize_session="fetch")
        )
        old = {"name": driver.name, "license_no": driver.license_no, "status": driver.status}
        uow.session.delete(driver)
        uow.flush()
        AuditLogger(uow).record(
            ctx, AuditAction.DRIVER_DELETE, "Driver", driver_id, old_data=old,
        )
        logger.info("driver_deleted", extra={"driver_id": str(driver_id)})
