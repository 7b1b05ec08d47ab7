"""
Returns Module Service (``shopfloor_modules.returns.service``).

Responsibility
--------------
Record customer returns against delivered notes and apply the inspection
disposition: rework, scrap, accept back into stock or replace.  A REPLACE
return can open one replacement delivery note.

Architecture
------------
Layer: **Modules**.  Stock effects go through ``StockLedger`` and
``InventoryService.scrap``; rework through ``ReworkService``; the credit
note leaves through ``FinancePublisher`` after commit.

Invariants
----------
- A return is inspected at most once; the record row is locked before the
  status check.
- Across all returns, the quantity returned against a line never exceeds
  what the line delivered.  The note row is locked before the sum is read.
- Scrap never takes a balance below zero (the shortfall is logged by the
  ledger).

Audit Relevance
---------------
RETURN_CREATE on creation (which also moves the note to RETURNED) and
RETURN_INSPECT on inspection.  Opening a replacement note records
RETURN_REPLACEMENT_CREATE.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select

from shopfloor_kernel.db.types import ZERO, to_decimal
from shopfloor_kernel.domain.context import OperationContext
from shopfloor_kernel.exceptions import (
    DeliveryNoteItemNotFoundError,
    InvalidTransitionError,
    QuantityExceededError,
    ReturnAlreadyInspectedError,
    ReturnNotFoundError,
    ValidationError,
)
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.audit_log import AuditAction
from shopfloor_kernel.services.audit_logger import AuditLogger
from shopfloor_kernel.services.finance_sink import CreditNoteFact, FinancePublisher
from shopfloor_kernel.services.notifications import (
    Notification,
    NotificationPublisher,
    NotificationType,
)
from shopfloor_kernel.services.sequence_service import SequenceService
from shopfloor_kernel.services.stage_resolver import StageResolver
from shopfloor_kernel.services.unit_of_work import UnitOfWork
from shopfloor_modules.dispatch.models import DeliveryNoteInfo, DNItemInput, DNStatus
from shopfloor_modules.dispatch.service import DispatchService
from shopfloor_modules.inventory.ledger import StockLedger
from shopfloor_modules.inventory.models import ReferenceType
from shopfloor_modules.inventory.orm import InventoryItemModel
from shopfloor_modules.inventory.service import InventoryService
from shopfloor_modules.returns.models import (
    InspectionResult,
    ReturnItemInput,
    ReturnOutcome,
    ReturnRecordInfo,
    ReturnStatus,
)
from shopfloor_modules.returns.orm import ReturnItemModel, ReturnRecordModel
from shopfloor_modules.returns.workflows import moves_stock
from shopfloor_modules.rework.service import ReworkService

logger = get_logger("modules.returns.service")

RETURNABLE_DN_STATUSES = (DNStatus.DELIVERED, DNStatus.RETURNED)


def _parse_outcome(value: ReturnOutcome | str) -> ReturnOutcome:
    if isinstance(value, ReturnOutcome):
        return value
    try:
        return ReturnOutcome(str(value).upper())
    except ValueError as exc:
        raise ValidationError("outcome", f"unknown return outcome {value!r}") from exc


class ReturnsService:
    """Customer returns and their disposition."""

    def __init__(
        self,
        notifications: NotificationPublisher | None = None,
        finance: FinancePublisher | None = None,
        dispatch: DispatchService | None = None,
        rework: ReworkService | None = None,
        inventory: InventoryService | None = None,
    ):
        self._notifications = notifications or NotificationPublisher()
        self._finance = finance or FinancePublisher()
        self._dispatch = dispatch or DispatchService()
        self._rework = rework or ReworkService(notifications=self._notifications)
        self._inventory = inventory or InventoryService(notifications=self._notifications)

    def _get(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        return_id: UUID,
        lock: bool = False,
    ) -> ReturnRecordModel:
        if lock:
            record = uow.session.get(
                ReturnRecordModel, return_id, with_for_update=True, populate_existing=True,
            )
        else:
            record = uow.session.get(ReturnRecordModel, return_id)
        if record is None or record.tenant_id != ctx.tenant_id:
            raise ReturnNotFoundError(str(return_id))
        return record

    def get_return(self, uow: UnitOfWork, ctx: OperationContext, return_id: UUID) -> ReturnRecordInfo:
        return self._get(uow, ctx, return_id).to_dto()

    def list_returns(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        status: ReturnStatus | str | None = None,
        delivery_note_id: UUID | None = None,
        client_id: UUID | None = None,
    ) -> list[ReturnRecordInfo]:
        stmt = select(ReturnRecordModel).where(ReturnRecordModel.tenant_id == ctx.tenant_id)
        if status is not None:
            try:
                value = ReturnStatus(str(getattr(status, "value", status)).upper())
            except ValueError as exc:
                raise ValidationError("status", f"unknown return status {status!r}") from exc
            stmt = stmt.where(ReturnRecordModel.status == value.value)
        if delivery_note_id is not None:
            stmt = stmt.where(ReturnRecordModel.delivery_note_id == delivery_note_id)
        if client_id is not None:
            stmt = stmt.where(ReturnRecordModel.client_id == client_id)
        rows = uow.session.execute(stmt.order_by(ReturnRecordModel.return_number)).scalars().all()
        return [row.to_dto() for row in rows]

    # =========================================================================
    # Create
    # =========================================================================

    def create_return(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        delivery_note_id: UUID,
        items: Sequence[ReturnItemInput | Mapping[str, Any]],
        reason: str | None = None,
        invoice_id: UUID | None = None,
        client_id: UUID | None = None,
        notes: str | None = None,
        return_number: str | None = None,
    ) -> ReturnRecordInfo:
        """
        Record a PENDING return against a delivered note.

        The note moves to RETURNED in the same unit of work.  ``client_id``
        defaults to the note's client.

        Raises:
            ValidationError: no items, a non-positive quantity, or a client
                other than the note's.
            InvalidTransitionError: the note was never delivered.
            DeliveryNoteItemNotFoundError: a line is not on the note.
            QuantityExceededError: a quantity above what the line delivered
                less what earlier returns already took back.
        """
        if not items:
            raise ValidationError("items", "at least one item is required")
        try:
            lines = [
                item if isinstance(item, ReturnItemInput) else ReturnItemInput.from_mapping(dict(item))
                for item in items
            ]
        except (KeyError, ValueError) as exc:
            raise ValidationError("items", str(exc)) from exc

        dn = self._dispatch.get_model(uow, ctx, delivery_note_id, lock=True)
        if DNStatus(dn.status) not in RETURNABLE_DN_STATUSES:
            raise InvalidTransitionError(
                "DeliveryNote", str(dn.id), dn.status, DNStatus.RETURNED.value,
                allowed=tuple(s.value for s in RETURNABLE_DN_STATUSES),
                reason="only delivered notes can be returned",
            )
        if client_id is None:
            client_id = dn.client_id
        elif client_id != dn.client_id:
            raise ValidationError("client_id", "does not match the delivery note's client")

        returned = self._returned_so_far(
            uow, ctx, [line.dn_item_id for line in lines],
        )
        requested: dict[UUID, Decimal] = {}
        resolved = []
        for line in lines:
            dn_line = dn.item(line.dn_item_id)
            if dn_line is None:
                raise DeliveryNoteItemNotFoundError(str(line.dn_item_id))
            remaining = dn_line.to_dto().returnable_qty - returned.get(dn_line.id, ZERO)
            requested[dn_line.id] = requested.get(dn_line.id, ZERO) + line.qty
            if requested[dn_line.id] > remaining:
                logger.warning(
                    "return_qty_exceeds_remaining",
                    extra={
                        "dn_item_id": str(dn_line.id),
                        "remaining": remaining,
                        "requested": requested[dn_line.id],
                    },
                )
                raise QuantityExceededError(
                    "qty", "returnable_qty", remaining, requested[dn_line.id],
                )
            resolved.append((line, dn_line))

        if return_number is None:
            tenant = StageResolver(uow).tenant(ctx.tenant_id)
            return_number = SequenceService(uow.session).next_document_number(
                ctx.tenant_id, "RET", tenant.code, uow.clock.now().date(),
            )

        record = ReturnRecordModel(
            id=uuid4(),
            tenant_id=ctx.tenant_id,
            return_number=return_number,
            delivery_note_id=dn.id,
            client_id=client_id,
            invoice_id=invoice_id,
            reason=reason,
            notes=notes,
            status=ReturnStatus.PENDING.value,
            created_by_id=ctx.actor_id,
        )
        for line_no, (line, dn_line) in enumerate(resolved, start=1):
            record.items.append(
                ReturnItemModel(
                    tenant_id=ctx.tenant_id,
                    line_no=line_no,
                    dn_item_id=dn_line.id,
                    inventory_item_id=dn_line.inventory_item_id,
                    qty=line.qty,
                    reason=line.reason,
                    created_by_id=ctx.actor_id,
                )
            )
        uow.session.add(record)
        uow.flush()

        self._dispatch.mark_returned(uow, ctx, dn.id, record_audit=False)

        AuditLogger(uow).record(
            ctx,
            AuditAction.RETURN_CREATE,
            "ReturnRecord",
            record.id,
            new_data={
                "return_number": return_number,
                "delivery_note_id": dn.id,
                "invoice_id": invoice_id,
                "client_id": client_id,
                "reason": reason,
                "items": [
                    {"dn_item_id": line.dn_item_id, "qty": line.qty} for line, _ in resolved
                ],
            },
        )
        self._notifications.publish(
            uow,
            Notification(
                tenant_id=ctx.tenant_id,
                type=NotificationType.RETURN_CREATED,
                title="Return recorded",
                message=f"Return {return_number} recorded against {dn.dn_number}",
                link=f"/returns/{record.id}",
                metadata={"return_id": str(record.id), "delivery_note_id": str(dn.id)},
            ),
        )
        logger.info(
            "return_created",
            extra={
                "return_id": str(record.id),
                "return_number": return_number,
                "dn_id": str(dn.id),
                "line_count": len(resolved),
            },
        )
        return record.to_dto()

    # =========================================================================
    # Inspect
    # =========================================================================

    def inspect(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        return_id: UUID,
        outcome: ReturnOutcome | str,
        notes: str | None = None,
        rework_assignee_id: UUID | None = None,
        expected_hours: object = None,
    ) -> InspectionResult:
        """
        Apply the disposition of a PENDING return.

        REWORK opens a rework job sourced to the note.  SCRAP writes a
        wastage record and a clamped ledger OUT per stocked line.
        ACCEPT_RETURN writes a ledger IN per stocked line.  REPLACE moves
        nothing; the goods go back out on ``create_replacement_dn``.  SCRAP
        and ACCEPT_RETURN emit a credit-note fact after commit when the
        return names an invoice and the lines carry a known rate.

        Raises:
            ReturnAlreadyInspectedError: the return is not PENDING.
            ValidationError: unknown outcome.
        """
        disposition = _parse_outcome(outcome)
        record = self._get(uow, ctx, return_id, lock=True)
        if record.status != ReturnStatus.PENDING.value:
            raise ReturnAlreadyInspectedError(str(record.id), record.outcome)

        entries = []
        scraps = []
        rework_id = None
        credit = ZERO
        stocked = sorted(
            (line for line in record.items if line.inventory_item_id is not None),
            key=lambda line: (str(line.inventory_item_id), line.line_no),
        )

        match disposition:
            case ReturnOutcome.REWORK:
                rework = self._rework.create_rework(
                    uow,
                    ctx,
                    source_delivery_note_id=record.delivery_note_id,
                    assignee_id=rework_assignee_id,
                    expected_hours=expected_hours,
                    material_needed=[
                        {
                            "dn_item_id": str(line.dn_item_id),
                            "inventory_item_id": (
                                str(line.inventory_item_id) if line.inventory_item_id else None
                            ),
                            "qty": str(line.qty),
                        }
                        for line in record.items
                    ],
                    defect_description=record.reason,
                    notes=f"Return rework: {notes or 'N/A'}",
                    source_return_id=record.id,
                )
                rework_id = rework.id
                record.rework_job_id = rework_id
            case ReturnOutcome.SCRAP:
                for line in stocked:
                    result = self._inventory.scrap(
                        uow,
                        ctx,
                        line.inventory_item_id,
                        line.qty,
                        reason=f"Return scrap: {notes or 'N/A'}",
                        reference_type=ReferenceType.RETURN,
                        reference_id=record.id,
                    )
                    scraps.append(result)
                    if result.entry is not None:
                        entries.append(result.entry)
                    credit += self._line_value(uow, line)
            case ReturnOutcome.REPLACE:
                pass
            case ReturnOutcome.ACCEPT_RETURN:
                ledger = StockLedger(uow)
                for line in stocked:
                    item = uow.session.get(InventoryItemModel, line.inventory_item_id)
                    entries.append(
                        ledger.record_in(
                            ctx,
                            line.inventory_item_id,
                            line.qty,
                            ReferenceType.RETURN,
                            reference_id=record.id,
                            rate=item.last_purchase_rate if item is not None else None,
                            remarks=f"Return accepted: {notes or 'N/A'}",
                        )
                    )
                    credit += self._line_value(uow, line)
            case _:
                raise ValueError(f"Unknown return outcome: {disposition}")

        credit_amount = None
        if moves_stock(disposition) and record.invoice_id is not None and credit > 0:
            credit_amount = credit
            record.credit_amount = credit

        now = uow.clock.now()
        record.status = ReturnStatus.INSPECTED.value
        record.outcome = disposition.value
        record.inspected_at = now
        record.inspected_by_id = ctx.actor_id
        record.inspection_notes = notes
        record.updated_by_id = ctx.actor_id
        uow.flush()

        if credit_amount is not None:
            self._finance.publish_credit_note(
                uow,
                CreditNoteFact.for_return(
                    tenant_id=ctx.tenant_id,
                    return_id=record.id,
                    return_number=record.return_number,
                    invoice_id=record.invoice_id,
                    delivery_note_id=record.delivery_note_id,
                    outcome=disposition.value,
                    amount=credit_amount,
                ),
            )

        AuditLogger(uow).record(
            ctx,
            AuditAction.RETURN_INSPECT,
            "ReturnRecord",
            record.id,
            old_data={"status": ReturnStatus.PENDING},
            new_data={
                "status": ReturnStatus.INSPECTED,
                "outcome": disposition,
                "rework_job_id": rework_id,
                "credit_amount": credit_amount,
                "stock_transaction_count": len(entries),
            },
        )
        logger.info(
            "return_inspected",
            extra={
                "return_id": str(record.id),
                "outcome": disposition.value,
                "stock_transaction_count": len(entries),
                "credit_amount": credit_amount,
            },
        )
        return InspectionResult(
            return_record=record.to_dto(),
            ledger_entries=tuple(entries),
            scrap_outcomes=tuple(scraps),
            rework_job_id=rework_id,
            credit_amount=credit_amount,
        )

    # =========================================================================
    # Replacement
    # =========================================================================

    def create_replacement_dn(
        self,
        uow: UnitOfWork,
        ctx: OperationContext,
        return_id: UUID,
        items: Sequence[ReturnItemInput | Mapping[str, Any]],
        remarks: str | None = None,
    ) -> DeliveryNoteInfo:
        """
        Open a DRAFT delivery note that re-sends goods of a REPLACE return.

        The note goes to the original project, client and address.  Each
        line copies the original delivery note line and is capped by the
        quantity returned against it.  A return gets one replacement note.

        Raises:
            ValidationError: no items or a non-positive quantity.
            InvalidTransitionError: the return was not inspected as REPLACE,
                or already has a replacement note.
            DeliveryNoteItemNotFoundError: a line that was not returned.
            QuantityExceededError: more than was returned on a line.
        """
        if not items:
            raise ValidationError("items", "at least one item is required")
        try:
            lines = [
                item if isinstance(item, ReturnItemInput) else ReturnItemInput.from_mapping(dict(item))
                for item in items
            ]
        except (KeyError, ValueError) as exc:
            raise ValidationError("items", str(exc)) from exc

        record = self._get(uow, ctx, return_id, lock=True)
        if record.outcome != ReturnOutcome.REPLACE.value:
            raise InvalidTransitionError(
                "ReturnRecord", str(record.id), record.status, "REPLACED",
                reason="only returns inspected as REPLACE can be replaced",
            )
        if record.replacement_dn_id is not None:
            raise InvalidTransitionError(
                "ReturnRecord", str(record.id), record.status, "REPLACED",
                reason=f"replacement note {record.replacement_dn_id} already exists",
            )

        returned: dict[UUID, Decimal] = {}
        for line in record.items:
            returned[line.dn_item_id] = returned.get(line.dn_item_id, ZERO) + line.qty
        requested: dict[UUID, Decimal] = {}
        for line in lines:
            if line.dn_item_id not in returned:
                raise DeliveryNoteItemNotFoundError(str(line.dn_item_id))
            requested[line.dn_item_id] = requested.get(line.dn_item_id, ZERO) + line.qty
            if requested[line.dn_item_id] > returned[line.dn_item_id]:
                raise QuantityExceededError(
                    "qty", "returned_qty", returned[line.dn_item_id], requested[line.dn_item_id],
                )

        source = self._dispatch.get_model(uow, ctx, record.delivery_note_id)
        dn_lines = []
        for line in lines:
            original = source.item(line.dn_item_id)
            dn_lines.append(
                DNItemInput(
                    qty=line.qty,
                    description=original.description,
                    inventory_item_id=original.inventory_item_id,
                    production_job_id=original.production_job_id,
                    uom=original.uom,
                    remarks=line.reason,
                )
            )
        note = f"Replacement for return {record.return_number}."
        replacement = self._dispatch.create_delivery_note(
            uow,
            ctx,
            source.project_id,
            source.client_id,
            source.address,
            dn_lines,
            remarks=f"{note} {remarks}" if remarks else note,
        )

        record.replacement_dn_id = replacement.id
        record.updated_by_id = ctx.actor_id
        uow.flush()

        AuditLogger(uow).record(
            ctx,
            AuditAction.RETURN_REPLACEMENT_CREATE,
            "ReturnRecord",
            record.id,
            new_data={
                "replacement_dn_id": replacement.id,
                "dn_number": replacement.dn_number,
                "items": [{"dn_item_id": line.dn_item_id, "qty": line.qty} for line in lines],
            },
        )
        logger.info(
            "return_replacement_created",
            extra={
                "return_id": str(record.id),
                "replacement_dn_id": str(replacement.id),
                "line_count": len(lines),
            },
        )
        return replacement

    def _returned_so_far(
        self, uow: UnitOfWork, ctx: OperationContext, dn_item_ids: list[UUID],
    ) -> dict[UUID, Decimal]:
        """Quantity already recorded on earlier returns, per delivery note line."""
        rows = uow.session.execute(
            select(ReturnItemModel.dn_item_id, func.sum(ReturnItemModel.qty))
            .where(
                ReturnItemModel.tenant_id == ctx.tenant_id,
                ReturnItemModel.dn_item_id.in_(dn_item_ids),
            )
            .group_by(ReturnItemModel.dn_item_id)
        ).all()
        return {dn_item_id: to_decimal(total, "qty") for dn_item_id, total in rows}

    @staticmethod
    def _line_value(uow: UnitOfWork, line: ReturnItemModel) -> Decimal:
        item = uow.session.get(InventoryItemModel, line.inventory_item_id)
        if item is None or item.last_purchase_rate is None:
            return ZERO
        return line.qty * item.last_purchase_rate
