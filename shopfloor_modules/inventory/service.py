"""
Inventory Module Service (``shopfloor_modules.inventory.service``).

Responsibility
--------------
Item master operations around the stock ledger: item creation with opening
stock, signed adjustments, reservations, material issues to production
jobs, low-stock checks and the wastage report.  Every quantity change goes
through ``StockLedger``.

Architecture
------------
Layer: **Modules** -- orchestration over the caller's ``UnitOfWork``.
Methods take ``(uow, ctx, ...)``, flush, and never commit.

Invariants
----------
- ``available_qty`` is never assigned here; only ``StockLedger`` writes it.
- ``reserved_qty`` stays within ``0 <= reserved_qty <= available_qty`` at
  reservation time.
- A LOW_STOCK_ALERT audit fact is recorded at most once per item per
  ``InventoryConfig.low_stock_alert_window_hours``.

Failure Modes
-------------
- ``InventoryItemNotFoundError`` for unknown or foreign-tenant items.
- ``DuplicateCodeError`` for a repeated item code within a tenant.
- ``InsufficientStockError`` for adjustments, reservations or issues beyond
  stock.

Audit Relevance
---------------
INVENTORY_ITEM_CREATE, STOCK_ADJUSTMENT, STOCK_RESERVE, STOCK_UNRESERVE,
MATERIAL_ISSUE and LOW_STOCK_ALERT each write one AuditLog row.

Usage::

    service = InventoryService()
    with unit_of_work() as uow:
        item = service.create_item(uow, ctx, "Steel sheet", opening_qty=Decimal("50"))
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select

from shopfloor_kernel.db.types import ZERO, to_decimal, to_optional_decimal
from shopfloor_kernel.domain.context import OperationContext
from shopfloor_kernel.exceptions import (
    DuplicateCodeError,
    InsufficientStockError,
    InvalidTransitionError,
    InventoryItemNotFoundError,
    ValidationError,
)
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.audit_log import AuditAction
from shopfloor_kernel.services.audit_logger import AuditLogger
from shopfloor_kernel.services.notifications import (
    Notification,
    NotificationPublisher,
    NotificationType,
)
from shopfloor_kernel.services.unit_of_work import UnitOfWork
from shopfloor_modules.inventory.config import InventoryConfig
from shopfloor_modules.inventory.ledger import StockLedger
from shopfloor_modules.inventory.models import (
    InventoryItemInfo,
    LedgerEntry,
    LedgerVerification,
    LowStockAlert,
    MaterialIssueInfo,
    MaterialIssueLine,
    ReferenceType,
    ScrapOutcome,
    WastageLine,
)
from shopfloor_modules.inventory.orm import (
    InventoryItemModel,
    MaterialIssueModel,
    WastageRecordModel,
)
from shopfloor_modules.production.models import JobStatus
from shopfloor_modules.production.service import ProductionJobService

logger = get_logger("modules.inventory.service")


class InventoryService:
    """Item master, adjustments, reservations, issues and stock alerts."""

    def __init__(
        self,
        config: InventoryConfig | None = None,
        notifications: NotificationPublisher | None = None,
        production: ProductionJobService | None = None,
    ):
        self._config = config or InventoryConfig.with_defaults()
        self._notifications = notifications or NotificationPublisher()
        self._production = production or ProductionJobService()

    # =========================================================================
    # Lookups
    # =========================================================================

    def _get(self, uow: UnitOfWork, ctx: OperationContext, item_id: UUID) -> InventoryItemModel:
        item = uow.session.get(InventoryItemModel, item_id)
        if item is None or item.tenant_id != ctx.tenant_id:
            raise InventoryItemNotFoundError(str(item_id))
        return item

    def get_item(self, uow: UnitOfWork, ctx: OperationContext, item_id: UUID) -> InventoryItemInfo:
        return self._get(uow, ctx, item_id).to_dto()

    def ledger_entries(self, uow: UnitOfWork, ctx: OperationContext, item_id: UUID) -> list[LedgerEntry]:
        self._get(uow, ctx, item_id)
        return StockLedger(uow).entries(ctx.tenant_id, item_id)

    def verify_item(self, uow: UnitOfWork, ctx: OperationContext, item_id: UUID) -> LedgerVerification:
        return StockLedger(uow).verify(ctx.tenant_id, item_id)

    # =========================================================================
    # Item master
    # =========================================================================

    def create_item(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        item_name: str,
        item_code: str | None = None,
        unit: str = "NOS",
        category: str | None = None,
        opening_qty: object = ZERO,
        reorder_level: object = None,
        last_purchase_rate: object = None,
    ) -> InventoryItemInfo:
        """
        Create an item.  Opening stock is posted as an OPENING ledger entry.

        Postconditions:
            - ``available_qty == opening_qty`` and, when opening_qty > 0, the
              item's ledger holds exactly one OPENING IN entry.
        """
        if not item_name or not item_name.strip():
            raise ValidationError("item_name", "is required")
        opening = to_decimal(opening_qty, "opening_qty")
        if opening < 0:
            raise ValidationError("opening_qty", "must be >= 0")

        if item_code:
            existing = uow.session.execute(
                select(InventoryItemModel.id).where(
                    InventoryItemModel.tenant_id == ctx.tenant_id,
                    InventoryItemModel.item_code == item_code,
                )
            ).first()
            if existing is not None:
                raise DuplicateCodeError("InventoryItem", item_code)

        item = InventoryItemModel(
            tenant_id=ctx.tenant_id,
            item_code=item_code,
            item_name=item_name.strip(),
            unit=unit,
            category=category,
            opening_qty=opening,
            available_qty=ZERO,
            reserved_qty=ZERO,
            reorder_level=to_optional_decimal(reorder_level, "reorder_level"),
            last_purchase_rate=to_optional_decimal(last_purchase_rate, "last_purchase_rate"),
            ledger_seq=0,
            created_by_id=ctx.actor_id,
        )
        uow.session.add(item)
        uow.flush()

        if opening > 0:
            StockLedger(uow).record_in(
                ctx,
                item.id,
                opening,
                ReferenceType.OPENING,
                reference_id=item.id,
                rate=item.last_purchase_rate,
                remarks="Opening stock",
            )

        AuditLogger(uow).record(
            ctx,
            AuditAction.INVENTORY_ITEM_CREATE,
            "InventoryItem",
            item.id,
            new_data={
                "item_code": item_code,
                "item_name": item.item_name,
                "opening_qty": opening,
            },
        )
        logger.info(
            "inventory_item_created",
            extra={"item_id": str(item.id), "item_code": item_code, "opening_qty": opening},
        )
        return item.to_dto()

    # =========================================================================
    # Movements
    # =========================================================================

    def adjust_stock(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        item_id: UUID,
        delta: object,
        reason: str | None = None,
    ) -> LedgerEntry:
        """Signed stock correction (stock count, found/lost goods)."""
        self._get(uow, ctx, item_id)
        entry = StockLedger(uow).adjust(ctx, item_id, delta, remarks=reason)
        AuditLogger(uow).record(
            ctx,
            AuditAction.STOCK_ADJUSTMENT,
            "InventoryItem",
            item_id,
            old_data={"available_qty": entry.balance_after - entry.signed_qty},
            new_data={"available_qty": entry.balance_after, "reason": reason},
        )
        return entry

    def reserve(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        item_id: UUID,
        qty: object,
    ) -> InventoryItemInfo:
        """Earmark stock.  Reservations never move the ledger."""
        value = to_decimal(qty, "qty")
        if value <= 0:
            raise ValidationError("qty", "must be greater than 0")
        item = StockLedger(uow).lock_item(ctx.tenant_id, item_id)
        free = item.available_qty - item.reserved_qty
        if value > free:
            raise InsufficientStockError(str(item_id), free, value)
        old = item.reserved_qty
        item.reserved_qty = old + value
        item.updated_by_id = ctx.actor_id
        uow.flush()
        AuditLogger(uow).record(
            ctx,
            AuditAction.STOCK_RESERVE,
            "InventoryItem",
            item_id,
            old_data={"reserved_qty": old},
            new_data={"reserved_qty": item.reserved_qty},
        )
        return item.to_dto()

    def unreserve(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        item_id: UUID,
        qty: object,
    ) -> InventoryItemInfo:
        value = to_decimal(qty, "qty")
        if value <= 0:
            raise ValidationError("qty", "must be greater than 0")
        item = StockLedger(uow).lock_item(ctx.tenant_id, item_id)
        if value > item.reserved_qty:
            raise ValidationError(
                "qty", f"exceeds reserved quantity ({value} > {item.reserved_qty})",
            )
        old = item.reserved_qty
        item.reserved_qty = old - value
        item.updated_by_id = ctx.actor_id
        uow.flush()
        AuditLogger(uow).record(
            ctx,
            AuditAction.STOCK_UNRESERVE,
            "InventoryItem",
            item_id,
            old_data={"reserved_qty": old},
            new_data={"reserved_qty": item.reserved_qty},
        )
        return item.to_dto()

    def scrap(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        item_id: UUID,
        qty: object,
        reason: str | None = None,
        reference_type: ReferenceType = ReferenceType.SCRAP,
        reference_id: UUID | None = None,
    ) -> ScrapOutcome:
        """
        Write off ``qty``: a wastage record for the full quantity plus a
        clamped ledger OUT entry.

        No audit row here; the operation that scrapped (a return inspection)
        records it.
        """
        self._get(uow, ctx, item_id)
        outcome = StockLedger(uow).record_scrap(
            ctx,
            item_id,
            qty,
            reference_type=reference_type,
            reference_id=reference_id,
            remarks=reason,
        )
        uow.session.add(
            WastageRecordModel(
                tenant_id=ctx.tenant_id,
                item_id=item_id,
                qty=outcome.requested_qty,
                reason=reason,
                reference_type=reference_type.value,
                reference_id=reference_id,
                stock_transaction_id=outcome.entry.id if outcome.entry else None,
                created_by_id=ctx.actor_id,
            )
        )
        uow.flush()
        return outcome

    def issue_material(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        job_id: UUID,
        items: Sequence[MaterialIssueLine | Mapping[str, Any]],
        remarks: str | None = None,
    ) -> MaterialIssueInfo:
        """
        Hand stock to a production job.

        Each line leaves the ledger as one ISSUE OUT entry of
        ``qty + wastage_qty`` at the item's last purchase rate; lines with
        wastage also get a wastage record.  Items are locked in id order and
        the whole request is checked against free stock (available minus
        reserved) before anything moves.

        Raises:
            ValidationError: no items or a bad quantity.
            ProductionJobNotFoundError: unknown or foreign-tenant job.
            InvalidTransitionError: the job is cancelled.
            InsufficientStockError: free stock does not cover an item.
        """
        if not items:
            raise ValidationError("items", "at least one item is required")
        try:
            lines = [
                item if isinstance(item, MaterialIssueLine) else MaterialIssueLine.from_mapping(dict(item))
                for item in items
            ]
        except (KeyError, ValueError) as exc:
            raise ValidationError("items", str(exc)) from exc

        job = self._production.get_model(uow, ctx, job_id)
        if job.status == JobStatus.CANCELLED.value:
            raise InvalidTransitionError(
                "ProductionJob", str(job.id), job.status, job.status,
                reason="cannot issue material to a cancelled job",
            )

        requested: dict[UUID, Decimal] = {}
        for line in lines:
            requested[line.item_id] = requested.get(line.item_id, ZERO) + line.total_qty

        ledger = StockLedger(uow)
        locked = {}
        for item_id in sorted(requested, key=str):
            item = ledger.lock_item(ctx.tenant_id, item_id)
            free = item.available_qty - item.reserved_qty
            if requested[item_id] > free:
                logger.warning(
                    "material_issue_rejected",
                    extra={"item_id": str(item_id), "free": free, "requested": requested[item_id]},
                )
                raise InsufficientStockError(str(item_id), free, requested[item_id])
            locked[item_id] = item

        issue = MaterialIssueModel(
            id=uuid4(),
            tenant_id=ctx.tenant_id,
            production_job_id=job.id,
            project_id=job.project_id,
            issued_at=uow.clock.now(),
            items=[line.to_json() for line in lines],
            remarks=remarks,
            created_by_id=ctx.actor_id,
        )
        uow.session.add(issue)
        uow.flush()

        entries = []
        for line in lines:
            entry = ledger.record_out(
                ctx,
                line.item_id,
                line.total_qty,
                ReferenceType.ISSUE,
                reference_id=issue.id,
                rate=locked[line.item_id].last_purchase_rate,
                remarks=f"Issued to job {job.job_number}",
            )
            entries.append(entry)
            if line.wastage_qty > 0:
                uow.session.add(
                    WastageRecordModel(
                        tenant_id=ctx.tenant_id,
                        item_id=line.item_id,
                        qty=line.wastage_qty,
                        reason=f"Issue wastage for job {job.job_number}",
                        reference_type=ReferenceType.ISSUE.value,
                        reference_id=issue.id,
                        stock_transaction_id=entry.id,
                        created_by_id=ctx.actor_id,
                    )
                )
        uow.flush()

        AuditLogger(uow).record(
            ctx,
            AuditAction.MATERIAL_ISSUE,
            "MaterialIssue",
            issue.id,
            new_data={
                "production_job_id": job.id,
                "project_id": job.project_id,
                "items": issue.items,
            },
        )
        logger.info(
            "material_issued",
            extra={
                "issue_id": str(issue.id),
                "production_job_id": str(job.id),
                "line_count": len(lines),
            },
        )
        return issue.to_dto(ledger_entries=entries)

    def list_material_issues(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        job_id: UUID | None = None,
    ) -> list[MaterialIssueInfo]:
        stmt = select(MaterialIssueModel).where(MaterialIssueModel.tenant_id == ctx.tenant_id)
        if job_id is not None:
            stmt = stmt.where(MaterialIssueModel.production_job_id == job_id)
        rows = uow.session.execute(
            stmt.order_by(MaterialIssueModel.issued_at, MaterialIssueModel.id)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    # =========================================================================
    # Alerts and reports
    # =========================================================================

    def check_low_stock(self, uow: UnitOfWork, ctx: OperationContext) -> list[LowStockAlert]:
        """
        Items at or below their reorder level.

        Each returned item gets a LOW_STOCK_ALERT audit fact and a LOW_STOCK
        notification, unless one was already raised for it within the alert
        window.
        """
        now = uow.clock.now()
        window = timedelta(hours=self._config.low_stock_alert_window_hours)
        items = uow.session.execute(
            select(InventoryItemModel)
            .where(
                InventoryItemModel.tenant_id == ctx.tenant_id,
                InventoryItemModel.reorder_level.is_not(None),
                InventoryItemModel.available_qty <= InventoryItemModel.reorder_level,
            )
            .order_by(InventoryItemModel.item_name)
        ).scalars().all()

        alerts = []
        for item in items:
            last = item.last_low_stock_alert_at
            if last is not None and last.tzinfo is None:
                last = last.replace(tzinfo=now.tzinfo)
            if last is not None and now - last < window:
                continue
            item.last_low_stock_alert_at = now
            alert = LowStockAlert(
                item_id=item.id,
                item_name=item.item_name,
                item_code=item.item_code,
                available_qty=item.available_qty,
                reorder_level=item.reorder_level,
            )
            alerts.append(alert)
            AuditLogger(uow).record(
                ctx,
                AuditAction.LOW_STOCK_ALERT,
                "InventoryItem",
                item.id,
                new_data={
                    "available_qty": item.available_qty,
                    "reorder_level": item.reorder_level,
                },
                system=True,
            )
            self._notifications.publish(
                uow,
                Notification(
                    tenant_id=ctx.tenant_id,
                    type=NotificationType.LOW_STOCK,
                    title=f"Low stock: {item.item_name}",
                    message=(
                        f"{item.item_name} is at {item.available_qty} {item.unit}, "
                        f"reorder level {item.reorder_level}"
                    ),
                    link=f"/inventory/{item.id}",
                    metadata={"item_id": str(item.id)},
                ),
            )
        uow.flush()
        if alerts:
            logger.warning("low_stock_detected", extra={"item_count": len(alerts)})
        return alerts

    def wastage_report(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        item_id: UUID | None = None,
    ) -> list[WastageLine]:
        stmt = (
            select(WastageRecordModel, InventoryItemModel.item_name)
            .join(InventoryItemModel, InventoryItemModel.id == WastageRecordModel.item_id)
            .where(WastageRecordModel.tenant_id == ctx.tenant_id)
            .order_by(WastageRecordModel.created_at, WastageRecordModel.id)
        )
        if item_id is not None:
            stmt = stmt.where(WastageRecordModel.item_id == item_id)
        lines = []
        for record, item_name in uow.session.execute(stmt).all():
            lines.append(
                WastageLine(
                    item_id=record.item_id,
                    item_name=item_name,
                    qty=record.qty,
                    reason=record.reason,
                    reference_type=record.reference_type,
                    reference_id=record.reference_id,
                )
            )
        return lines

    def total_wasted(self, uow: UnitOfWork, ctx: OperationContext, item_id: UUID) -> Decimal:
        return sum(
            (line.qty for line in self.wastage_report(uow, ctx, item_id)),
            ZERO,
        )
