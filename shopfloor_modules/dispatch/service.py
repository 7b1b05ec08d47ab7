"""
Dispatch Module Service (``shopfloor_modules.dispatch.service``).

Responsibility
--------------
The delivery-note lifecycle: create, load, assign a vehicle, dispatch,
track, deliver, cancel and mark returned.

Architecture
------------
Layer: **Modules**.  Methods take ``(uow, ctx, ...)``, flush, and never
commit.  Stock moves go through ``StockLedger``; vehicle locks go through
``VehicleAllocator``; the QC gate is asked through ``QualityService``.

Invariants
----------
- Every guard is checked before the first write of a transition, so a
  refused dispatch leaves no ledger row and no balance change.
- Dispatch locks inventory items in id order.
- A note holds a vehicle lock only while LOADING or DISPATCHED: delivery
  and cancellation release it in the same unit of work.

Audit Relevance
---------------
DN_CREATE, DN_LOADING_UPDATE, DN_VEHICLE_ASSIGN, DN_DISPATCH,
DN_TRACKING_ADD, DN_DELIVER, DN_CANCEL, DN_MARK_RETURNED.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select

from shopfloor_kernel.db.types import ZERO, to_decimal, to_optional_decimal
from shopfloor_kernel.domain.context import OperationContext
from shopfloor_kernel.domain.json_fields import parse_json_list
from shopfloor_kernel.exceptions import (
    DeliveryNoteItemNotFoundError,
    DeliveryNoteNotFoundError,
    DispatchBlockedError,
    InvalidTransitionError,
    InventoryItemNotFoundError,
    QuantityExceededError,
    ResourceInUseError,
    ValidationError,
)
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.audit_log import AuditAction
from shopfloor_kernel.services.audit_logger import AuditLogger
from shopfloor_kernel.services.sequence_service import SequenceService
from shopfloor_kernel.services.stage_resolver import StageResolver
from shopfloor_kernel.services.unit_of_work import UnitOfWork
from shopfloor_modules.dispatch.config import DispatchConfig
from shopfloor_modules.dispatch.models import (
    AcknowledgementInfo,
    DeliveryNoteInfo,
    DispatchResult,
    DNItemInput,
    DNStatus,
    TrackingInfo,
)
from shopfloor_modules.dispatch.orm import (
    DeliveryAcknowledgementModel,
    DeliveryNoteModel,
    DeliveryTrackingModel,
    DNItemModel,
)
from shopfloor_modules.dispatch.workflows import holds_vehicle, next_dn_statuses
from shopfloor_modules.fleet.service import VehicleAllocator, in_flight_delivery_note
from shopfloor_modules.inventory.ledger import StockLedger
from shopfloor_modules.inventory.models import ReferenceType
from shopfloor_modules.inventory.orm import InventoryItemModel
from shopfloor_modules.production.service import ProductionJobService
from shopfloor_modules.project.service import ProjectService
from shopfloor_modules.quality.service import QualityService

logger = get_logger("modules.dispatch.service")


def _parse_status(value: DNStatus | str) -> DNStatus:
    if isinstance(value, DNStatus):
        return value
    try:
        return DNStatus(str(value).upper())
    except ValueError as exc:
        raise ValidationError("status", f"unknown delivery note status {value!r}") from exc


class DispatchService:
    """
    Delivery notes from DRAFT to DELIVERED (and RETURNED).

    Contract:
        Each public method is one transition of the note.  Callers run it
        inside ``UnitOfWork.transaction()`` so the note, its lines, the
        vehicle and the ledger commit or roll back together.
    """

    def __init__(
        self,
        config: DispatchConfig | None = None,
        quality: QualityService | None = None,
    ):
        self._config = config or DispatchConfig.with_defaults()
        self._quality = quality or QualityService()
        self._projects = ProjectService()
        self._production = ProductionJobService()

    # =========================================================================
    # Lookups
    # =========================================================================

    def _get(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        dn_id: UUID,
        lock: bool = False,
    ) -> DeliveryNoteModel:
        if lock:
            dn = uow.session.get(
                DeliveryNoteModel, dn_id, with_for_update=True, populate_existing=True,
            )
        else:
            dn = uow.session.get(DeliveryNoteModel, dn_id)
        if dn is None or dn.tenant_id != ctx.tenant_id:
            raise DeliveryNoteNotFoundError(str(dn_id))
        return dn

    def get_model(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        dn_id: UUID,
        lock: bool = False,
    ) -> DeliveryNoteModel:
        return self._get(uow, ctx, dn_id, lock=lock)

    def get_delivery_note(self, uow: UnitOfWork, ctx: OperationContext, dn_id: UUID) -> DeliveryNoteInfo:
        return self._get(uow, ctx, dn_id).to_dto()

    def list_delivery_notes(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        status: DNStatus | str | None = None,
        project_id: UUID | None = None,
        client_id: UUID | None = None,
    ) -> list[DeliveryNoteInfo]:
        stmt = select(DeliveryNoteModel).where(DeliveryNoteModel.tenant_id == ctx.tenant_id)
        if status is not None:
            stmt = stmt.where(DeliveryNoteModel.status == _parse_status(status).value)
        if project_id is not None:
            stmt = stmt.where(DeliveryNoteModel.project_id == project_id)
        if client_id is not None:
            stmt = stmt.where(DeliveryNoteModel.client_id == client_id)
        rows = uow.session.execute(stmt.order_by(DeliveryNoteModel.dn_number)).scalars().all()
        return [row.to_dto() for row in rows]

    def list_tracking(self, uow: UnitOfWork, ctx: OperationContext, dn_id: UUID) -> list[TrackingInfo]:
        self._get(uow, ctx, dn_id)
        rows = uow.session.execute(
            select(DeliveryTrackingModel)
            .where(
                DeliveryTrackingModel.tenant_id == ctx.tenant_id,
                DeliveryTrackingModel.delivery_note_id == dn_id,
            )
            .order_by(DeliveryTrackingModel.recorded_at, DeliveryTrackingModel.created_at)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def get_acknowledgement(
        self, uow: UnitOfWork, ctx: OperationContext, dn_id: UUID,
    ) -> AcknowledgementInfo | None:
        self._get(uow, ctx, dn_id)
        ack = self._acknowledgement(uow, dn_id)
        return ack.to_dto() if ack is not None else None

    @staticmethod
    def _acknowledgement(uow: UnitOfWork, dn_id: UUID) -> DeliveryAcknowledgementModel | None:
        return uow.session.execute(
            select(DeliveryAcknowledgementModel).where(
                DeliveryAcknowledgementModel.delivery_note_id == dn_id,
            )
        ).scalar_one_or_none()

    @staticmethod
    def _require(dn: DeliveryNoteModel, target: DNStatus, reason: str | None = None) -> DNStatus:
        current = DNStatus(dn.status)
        allowed = next_dn_statuses(current)
        if target not in allowed:
            raise InvalidTransitionError(
                "DeliveryNote", str(dn.id), current.value, target.value,
                allowed=tuple(sorted(s.value for s in allowed)),
                reason=reason,
            )
        return current

    # =========================================================================
    # Create
    # =========================================================================

    def create_delivery_note(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        project_id: UUID,
        client_id: UUID,
        address: str,
        items: Sequence[DNItemInput | Mapping[str, Any]],
        remarks: str | None = None,
        dn_number: str | None = None,
    ) -> DeliveryNoteInfo:
        """
        Create a DRAFT note with its lines.

        Raises:
            ValidationError: missing address or items, a non-positive line
                quantity, or a client that is not the project's client.
            ProjectNotFoundError / InventoryItemNotFoundError /
            ProductionJobNotFoundError for bad references.
        """
        if not address or not address.strip():
            raise ValidationError("address", "is required")
        if client_id is None:
            raise ValidationError("client_id", "is required")
        if not items:
            raise ValidationError("items", "at least one item is required")
        try:
            lines = [
                item if isinstance(item, DNItemInput) else DNItemInput.from_mapping(dict(item))
                for item in items
            ]
        except (KeyError, ValueError) as exc:
            raise ValidationError("items", str(exc)) from exc

        project = self._projects.get_model(uow, ctx, project_id)
        if project.client_id != client_id:
            raise ValidationError("client_id", "does not match the project's client")
        for line in lines:
            if line.inventory_item_id is not None:
                item = uow.session.get(InventoryItemModel, line.inventory_item_id)
                if item is None or item.tenant_id != ctx.tenant_id:
                    raise InventoryItemNotFoundError(str(line.inventory_item_id))
            if line.production_job_id is not None:
                self._production.get_model(uow, ctx, line.production_job_id)

        if dn_number is None:
            tenant = StageResolver(uow).tenant(ctx.tenant_id)
            dn_number = SequenceService(uow.session).next_document_number(
                ctx.tenant_id, "DN", tenant.code, uow.clock.now().date(),
            )

        dn = DeliveryNoteModel(
            tenant_id=ctx.tenant_id,
            dn_number=dn_number,
            project_id=project_id,
            client_id=client_id,
            address=address.strip(),
            status=DNStatus.DRAFT.value,
            remarks=remarks,
            created_by_id=ctx.actor_id,
        )
        for line_no, line in enumerate(lines, start=1):
            dn.items.append(
                DNItemModel(
                    tenant_id=ctx.tenant_id,
                    line_no=line_no,
                    inventory_item_id=line.inventory_item_id,
                    production_job_id=line.production_job_id,
                    description=line.description,
                    uom=line.uom,
                    qty=line.qty,
                    loaded_qty=ZERO,
                    remarks=line.remarks,
                    created_by_id=ctx.actor_id,
                )
            )
        uow.session.add(dn)
        uow.flush()

        AuditLogger(uow).record(
            ctx,
            AuditAction.DN_CREATE,
            "DeliveryNote",
            dn.id,
            new_data={
                "dn_number": dn_number,
                "project_id": project_id,
                "client_id": client_id,
                "status": DNStatus.DRAFT,
                "item_count": len(lines),
            },
        )
        logger.info(
            "delivery_note_created",
            extra={"dn_id": str(dn.id), "dn_number": dn_number, "item_count": len(lines)},
        )
        return dn.to_dto()

    # =========================================================================
    # Loading and vehicle assignment
    # =========================================================================

    def load(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        dn_id: UUID,
        lines: Mapping[UUID, object],
        photos: Iterable[str] | str | None = None,
    ) -> DeliveryNoteInfo:
        """
        Record loaded quantities; DRAFT/LOADING -> LOADING.

        Raises:
            InvalidTransitionError: the note is past LOADING.
            DeliveryNoteItemNotFoundError: a line id is not on this note.
            QuantityExceededError: loaded quantity above the line quantity.
        """
        dn = self._get(uow, ctx, dn_id, lock=True)
        current = self._require(dn, DNStatus.LOADING)

        updates: list[tuple[DNItemModel, Decimal]] = []
        for item_id, raw_qty in lines.items():
            line = dn.item(item_id)
            if line is None:
                raise DeliveryNoteItemNotFoundError(str(item_id))
            loaded = to_decimal(raw_qty, "loaded_qty")
            if loaded < 0:
                raise ValidationError("loaded_qty", "cannot be negative")
            if loaded > line.qty:
                raise QuantityExceededError("loaded_qty", "qty", line.qty, loaded)
            updates.append((line, loaded))

        for line, loaded in updates:
            line.loaded_qty = loaded
            line.updated_by_id = ctx.actor_id
        new_photos = [str(p) for p in parse_json_list(photos, "photos") if str(p).strip()]
        if new_photos:
            dn.loading_photos = parse_json_list(dn.loading_photos, "loading_photos") + new_photos
        dn.status = DNStatus.LOADING.value
        dn.updated_by_id = ctx.actor_id
        uow.flush()

        AuditLogger(uow).record(
            ctx,
            AuditAction.DN_LOADING_UPDATE,
            "DeliveryNote",
            dn.id,
            old_data={"status": current},
            new_data={
                "status": DNStatus.LOADING,
                "loaded": {str(line.id): loaded for line, loaded in updates},
                "photo_count": len(new_photos),
            },
        )
        logger.info(
            "delivery_note_loaded",
            extra={"dn_id": str(dn.id), "line_count": len(updates), "from_status": current.value},
        )
        return dn.to_dto()

    def assign_vehicle(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        dn_id: UUID,
        vehicle_id: UUID,
        driver_id: UUID | None = None,
    ) -> DeliveryNoteInfo:
        """
        Bind an AVAILABLE vehicle (and an ACTIVE driver) to a LOADING note.

        A vehicle already held by this note is released first.

        Raises:
            InvalidTransitionError: the note is not LOADING.
            VehicleNotAvailableError: lost the compare-and-set.
            DriverInactiveError / ResourceInUseError for the driver.
        """
        if vehicle_id is None:
            raise ValidationError("vehicle_id", "is required")
        dn = self._get(uow, ctx, dn_id, lock=True)
        if dn.status != DNStatus.LOADING.value:
            raise InvalidTransitionError(
                "DeliveryNote", str(dn.id), dn.status, DNStatus.LOADING.value,
                allowed=(DNStatus.LOADING.value,),
                reason="a vehicle can only be assigned while LOADING",
            )
        allocator = VehicleAllocator(uow)
        if driver_id is not None:
            allocator.lock_driver(ctx, driver_id)
            holder = in_flight_delivery_note(uow, ctx, driver_id=driver_id, exclude_dn_id=dn.id)
            if holder is not None:
                raise ResourceInUseError("Driver", str(driver_id), str(holder))

        previous = {"vehicle_id": dn.vehicle_id, "driver_id": dn.driver_id}
        if dn.vehicle_id is not None:
            allocator.release(ctx, dn.vehicle_id)
        allocator.acquire(ctx, vehicle_id, driver_id)

        dn.vehicle_id = vehicle_id
        dn.driver_id = driver_id
        dn.updated_by_id = ctx.actor_id
        uow.flush()

        AuditLogger(uow).record(
            ctx,
            AuditAction.DN_VEHICLE_ASSIGN,
            "DeliveryNote",
            dn.id,
            old_data=previous,
            new_data={"vehicle_id": vehicle_id, "driver_id": driver_id},
        )
        logger.info(
            "delivery_note_vehicle_assigned",
            extra={
                "dn_id": str(dn.id),
                "vehicle_id": str(vehicle_id),
                "driver_id": str(driver_id) if driver_id else None,
                "replaced_vehicle_id": (
                    str(previous["vehicle_id"]) if previous["vehicle_id"] else None
                ),
            },
        )
        return dn.to_dto()

    # =========================================================================
    # Dispatch
    # =========================================================================

    def dispatch(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        dn_id: UUID,
        dispatched_at: datetime | None = None,
        remarks: str | None = None,
    ) -> DispatchResult:
        """
        LOADING -> DISPATCHED with one ledger OUT per stocked line.

        Raises:
            InvalidTransitionError: the note is not LOADING.
            DispatchBlockedError: no vehicle, an unloaded line, or a failing
                QC record.
            InsufficientStockError: a line takes its item below zero (the
                caller's unit of work rolls back every earlier line).
        """
        dn = self._get(uow, ctx, dn_id, lock=True)
        current = self._require(dn, DNStatus.DISPATCHED, reason="only a LOADING note can be dispatched")

        if dn.vehicle_id is None:
            raise DispatchBlockedError(str(dn.id), "vehicle must be assigned before dispatch")
        unloaded = [line for line in dn.items if line.loaded_qty <= 0]
        if unloaded:
            raise DispatchBlockedError(
                str(dn.id),
                "all items must be loaded before dispatch "
                f"(unloaded lines: {', '.join(str(line.line_no) for line in unloaded)})",
            )
        if self._quality.has_failing_qc(uow, ctx, dn.id):
            raise DispatchBlockedError(str(dn.id), "delivery note has a failing QC record")

        now = dispatched_at or uow.clock.now()
        dn.status = DNStatus.DISPATCHED.value
        dn.dispatched_at = now
        if remarks:
            dn.remarks = remarks
        dn.updated_by_id = ctx.actor_id

        ledger = StockLedger(uow)
        entries = []
        stocked = sorted(
            (line for line in dn.items if line.inventory_item_id is not None),
            key=lambda line: (str(line.inventory_item_id), line.line_no),
        )
        for line in stocked:
            item = uow.session.get(InventoryItemModel, line.inventory_item_id)
            entries.append(
                ledger.record_out(
                    ctx,
                    line.inventory_item_id,
                    line.loaded_qty,
                    ReferenceType.DN,
                    reference_id=dn.id,
                    rate=item.last_purchase_rate if item is not None else None,
                    remarks=f"Dispatch: {dn.dn_number}",
                    allow_negative=self._config.allow_negative_stock,
                )
            )
        uow.flush()

        AuditLogger(uow).record(
            ctx,
            AuditAction.DN_DISPATCH,
            "DeliveryNote",
            dn.id,
            old_data={"status": current},
            new_data={
                "status": DNStatus.DISPATCHED,
                "dispatched_at": now,
                "vehicle_id": dn.vehicle_id,
                "stock_transaction_count": len(entries),
            },
        )
        logger.info(
            "delivery_note_dispatched",
            extra={
                "dn_id": str(dn.id),
                "dn_number": dn.dn_number,
                "vehicle_id": str(dn.vehicle_id),
                "stock_transaction_count": len(entries),
            },
        )
        return DispatchResult(delivery_note=dn.to_dto(), ledger_entries=tuple(entries))

    def add_tracking(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        dn_id: UUID,
        latitude: object = None,
        longitude: object = None,
        location: str | None = None,
        remarks: str | None = None,
    ) -> TrackingInfo:
        """Append a position report to a DISPATCHED note."""
        lat = to_optional_decimal(latitude, "latitude")
        lon = to_optional_decimal(longitude, "longitude")
        if lat is not None and not Decimal("-90") <= lat <= Decimal("90"):
            raise ValidationError("latitude", "must be between -90 and 90")
        if lon is not None and not Decimal("-180") <= lon <= Decimal("180"):
            raise ValidationError("longitude", "must be between -180 and 180")
        if lat is None and lon is None and not location and not remarks:
            raise ValidationError("tracking", "a position, location or remark is required")

        dn = self._get(uow, ctx, dn_id)
        if dn.status != DNStatus.DISPATCHED.value:
            raise InvalidTransitionError(
                "DeliveryNote", str(dn.id), dn.status, dn.status,
                allowed=(DNStatus.DISPATCHED.value,),
                reason="only DISPATCHED notes can be tracked",
            )

        point = DeliveryTrackingModel(
            tenant_id=ctx.tenant_id,
            delivery_note_id=dn.id,
            latitude=lat,
            longitude=lon,
            location=location,
            remarks=remarks,
            recorded_at=uow.clock.now(),
            created_by_id=ctx.actor_id,
        )
        uow.session.add(point)
        uow.flush()

        AuditLogger(uow).record(
            ctx,
            AuditAction.DN_TRACKING_ADD,
            "DeliveryTracking",
            point.id,
            new_data={
                "delivery_note_id": dn.id,
                "latitude": lat,
                "longitude": lon,
                "location": location,
            },
        )
        logger.debug("delivery_note_tracked", extra={"dn_id": str(dn.id), "location": location})
        return point.to_dto()

    # =========================================================================
    # Delivery, cancellation, return
    # =========================================================================

    def deliver(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        dn_id: UUID,
        delivered: Mapping[UUID, object] | None = None,
        received_by: str | None = None,
        remarks: str | None = None,
        signature_ref: str | None = None,
        site_photos: Iterable[str] | str | None = None,
        delivered_at: datetime | None = None,
    ) -> DeliveryNoteInfo:
        """
        DISPATCHED -> DELIVERED and release the vehicle.

        Lines not named in ``delivered`` are delivered in full (their loaded
        quantity).

        Raises:
            InvalidTransitionError: the note is not DISPATCHED.
            QuantityExceededError: delivered quantity above loaded quantity.
        """
        dn = self._get(uow, ctx, dn_id, lock=True)
        current = self._require(dn, DNStatus.DELIVERED)

        supplied = dict(delivered or {})
        quantities: list[tuple[DNItemModel, Decimal]] = []
        for item_id in supplied:
            if dn.item(item_id) is None:
                raise DeliveryNoteItemNotFoundError(str(item_id))
        for line in dn.items:
            if line.id in supplied:
                qty = to_decimal(supplied[line.id], "delivered_qty")
                if qty < 0:
                    raise ValidationError("delivered_qty", "cannot be negative")
                if qty > line.loaded_qty:
                    raise QuantityExceededError("delivered_qty", "loaded_qty", line.loaded_qty, qty)
            else:
                qty = line.loaded_qty
            quantities.append((line, qty))

        now = delivered_at or uow.clock.now()
        for line, qty in quantities:
            line.delivered_qty = qty
            line.updated_by_id = ctx.actor_id
        dn.status = DNStatus.DELIVERED.value
        dn.delivered_at = now
        if remarks:
            dn.remarks = remarks
        dn.updated_by_id = ctx.actor_id

        photos = [str(p) for p in parse_json_list(site_photos, "site_photos") if str(p).strip()]
        ack = self._acknowledgement(uow, dn.id)
        if ack is None:
            ack = DeliveryAcknowledgementModel(
                tenant_id=ctx.tenant_id,
                delivery_note_id=dn.id,
                created_by_id=ctx.actor_id,
            )
            uow.session.add(ack)
        else:
            ack.updated_by_id = ctx.actor_id
        ack.received_by = received_by
        ack.remarks = remarks
        ack.signature_ref = signature_ref
        ack.site_photos = photos or None
        ack.acknowledged_at = now

        if dn.vehicle_id is not None:
            VehicleAllocator(uow).release(
                ctx, dn.vehicle_id, clear_driver=self._config.clear_driver_on_release,
            )
        uow.flush()

        AuditLogger(uow).record(
            ctx,
            AuditAction.DN_DELIVER,
            "DeliveryNote",
            dn.id,
            old_data={"status": current},
            new_data={
                "status": DNStatus.DELIVERED,
                "delivered_at": now,
                "delivered": {str(line.id): qty for line, qty in quantities},
                "received_by": received_by,
            },
        )
        logger.info(
            "delivery_note_delivered",
            extra={
                "dn_id": str(dn.id),
                "dn_number": dn.dn_number,
                "vehicle_id": str(dn.vehicle_id) if dn.vehicle_id else None,
            },
        )
        return dn.to_dto()

    def cancel(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        dn_id: UUID,
        reason: str | None = None,
    ) -> DeliveryNoteInfo:
        """DRAFT/LOADING -> CANCELLED; a held vehicle is released and unbound."""
        dn = self._get(uow, ctx, dn_id, lock=True)
        current = self._require(dn, DNStatus.CANCELLED)
        released = dn.vehicle_id
        if released is not None and holds_vehicle(current):
            VehicleAllocator(uow).release(ctx, released)
        dn.vehicle_id = None
        dn.driver_id = None
        dn.status = DNStatus.CANCELLED.value
        if reason:
            dn.remarks = reason
        dn.updated_by_id = ctx.actor_id
        uow.flush()

        AuditLogger(uow).record(
            ctx,
            AuditAction.DN_CANCEL,
            "DeliveryNote",
            dn.id,
            old_data={"status": current, "vehicle_id": released},
            new_data={"status": DNStatus.CANCELLED, "reason": reason},
        )
        logger.info(
            "delivery_note_cancelled",
            extra={"dn_id": str(dn.id), "released_vehicle_id": str(released) if released else None},
        )
        return dn.to_dto()

    def mark_returned(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        dn_id: UUID,
        record_audit: bool = True,
    ) -> DeliveryNoteInfo:
        """
        DELIVERED -> RETURNED.  A note already RETURNED is left as is.

        The returns processor passes ``record_audit=False``: its own
        RETURN_CREATE fact covers the change.
        """
        dn = self._get(uow, ctx, dn_id, lock=True)
        if dn.status == DNStatus.RETURNED.value:
            return dn.to_dto()
        current = self._require(dn, DNStatus.RETURNED)
        dn.status = DNStatus.RETURNED.value
        dn.updated_by_id = ctx.actor_id
        uow.flush()
        if record_audit:
            AuditLogger(uow).record(
                ctx,
                AuditAction.DN_MARK_RETURNED,
                "DeliveryNote",
                dn.id,
                old_data={"status": current},
                new_data={"status": DNStatus.RETURNED},
            )
        logger.info("delivery_note_marked_returned", extra={"dn_id": str(dn.id)})
        return dn.to_dto()
