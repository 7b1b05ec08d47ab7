"""
StockLedger -- the only writer of ``InventoryItem.available_qty``.

Responsibility:
    Every stock movement is a paired write inside the caller's unit of
    work: append a StockTransaction carrying the computed ``balance_after``,
    then set the item's ``available_qty`` to that same value.  Nothing else
    in the codebase assigns ``available_qty``.

Architecture position:
    Modules > Inventory.  Used by DispatchService (OUT on dispatch),
    ReturnsService (IN on accept, clamped OUT on scrap) and
    InventoryService (opening stock, adjustments).

Invariants enforced:
    - The item row is locked (``SELECT ... FOR UPDATE``, fresh read via
      ``populate_existing``) before the balance is computed, so two
      concurrent movements on one item serialize and neither is lost.
    - Per item, ``seq`` is strictly increasing and replaying the entries in
      ``seq`` order from zero reproduces every ``balance_after`` and the
      final ``available_qty``.
    - ``record_out`` never takes stock below zero unless the caller
      explicitly allows it.
    - ``record_scrap`` clamps at zero: the entry records only what was
      actually on hand.  The shortfall is logged as ``stock_scrap_clamped``
      so reconciliation can pick it up.

Audit:
    The ledger does not write audit rows.  The business operation that
    moved the stock (dispatch, inspection, adjustment) records the single
    audit fact for the whole change.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from shopfloor_kernel.db.types import ZERO, to_decimal
from shopfloor_kernel.domain.context import OperationContext
from shopfloor_kernel.exceptions import (
    InsufficientStockError,
    InventoryItemNotFoundError,
    ValidationError,
)
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.services.unit_of_work import UnitOfWork
from shopfloor_modules.inventory.models import (
    LedgerEntry,
    LedgerMismatch,
    LedgerVerification,
    ReferenceType,
    ScrapOutcome,
    TransactionType,
)
from shopfloor_modules.inventory.orm import InventoryItemModel, StockTransactionModel

logger = get_logger("modules.inventory.ledger")


class StockLedger:
    """Append-only stock movements bound to one unit of work."""

    def __init__(self, uow: UnitOfWork):
        self._uow = uow
        self._session = uow.session

    def lock_item(self, tenant_id: UUID, item_id: UUID) -> InventoryItemModel:
        """Row-lock the item and re-read it from the database."""
        item = self._session.execute(
            select(InventoryItemModel)
            .where(
                InventoryItemModel.id == item_id,
                InventoryItemModel.tenant_id == tenant_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if item is None:
            raise InventoryItemNotFoundError(str(item_id))
        return item

    def _append(
        self,
        ctx: OperationContext,
        item: InventoryItemModel,
        txn_type: TransactionType,
        qty: Decimal,
        reference_type: ReferenceType,
        reference_id: UUID | None,
        rate: Decimal | None,
        remarks: str | None,
    ) -> StockTransactionModel:
        previous = item.available_qty
        if txn_type == TransactionType.IN:
            balance_after = previous + qty
        else:
            balance_after = previous - qty

        item.ledger_seq = item.ledger_seq + 1
        entry = StockTransactionModel(
            tenant_id=ctx.tenant_id,
            item_id=item.id,
            seq=item.ledger_seq,
            type=txn_type.value,
            reference_type=reference_type.value,
            reference_id=reference_id,
            qty=qty,
            rate=rate,
            balance_after=balance_after,
            remarks=remarks,
            created_by_id=ctx.actor_id,
        )
        self._session.add(entry)
        item.available_qty = balance_after
        item.updated_by_id = ctx.actor_id
        self._session.flush()

        logger.info(
            "stock_ledger_entry_recorded",
            extra={
                "item_id": str(item.id),
                "seq": entry.seq,
                "txn_type": txn_type.value,
                "reference_type": reference_type.value,
                "reference_id": str(reference_id) if reference_id else None,
                "qty": qty,
                "balance_before": previous,
                "balance_after": balance_after,
            },
        )
        return entry

    @staticmethod
    def _positive(qty: object) -> Decimal:
        value = to_decimal(qty, "qty")
        if value <= 0:
            raise ValidationError("qty", "must be greater than 0")
        return value

    def record_in(
        self,
        ctx: OperationContext,
        item_id: UUID,
        qty: object,
        reference_type: ReferenceType,
        reference_id: UUID | None = None,
        rate: Decimal | None = None,
        remarks: str | None = None,
    ) -> LedgerEntry:
        value = self._positive(qty)
        item = self.lock_item(ctx.tenant_id, item_id)
        entry = self._append(
            ctx, item, TransactionType.IN, value, reference_type, reference_id, rate, remarks,
        )
        return entry.to_dto()

    def record_out(
        self,
        ctx: OperationContext,
        item_id: UUID,
        qty: object,
        reference_type: ReferenceType,
        reference_id: UUID | None = None,
        rate: Decimal | None = None,
        remarks: str | None = None,
        allow_negative: bool = False,
    ) -> LedgerEntry:
        """
        Take stock out.

        Raises:
            InsufficientStockError: ``qty`` exceeds ``available_qty`` and
                ``allow_negative`` is False.
        """
        value = self._positive(qty)
        item = self.lock_item(ctx.tenant_id, item_id)
        if value > item.available_qty and not allow_negative:
            logger.warning(
                "stock_out_rejected",
                extra={
                    "item_id": str(item_id),
                    "available": item.available_qty,
                    "requested": value,
                },
            )
            raise InsufficientStockError(str(item_id), item.available_qty, value)
        entry = self._append(
            ctx, item, TransactionType.OUT, value, reference_type, reference_id, rate, remarks,
        )
        return entry.to_dto()

    def record_scrap(
        self,
        ctx: OperationContext,
        item_id: UUID,
        qty: object,
        reference_type: ReferenceType = ReferenceType.SCRAP,
        reference_id: UUID | None = None,
        remarks: str | None = None,
    ) -> ScrapOutcome:
        """
        Scrap up to ``qty``; never below zero.

        The entry's qty is what was actually deducted, so ledger replay
        still holds.  No entry is written when nothing is on hand.
        """
        requested = self._positive(qty)
        item = self.lock_item(ctx.tenant_id, item_id)
        on_hand = max(item.available_qty, ZERO)
        deducted = min(requested, on_hand)
        shortfall = requested - deducted

        if shortfall > 0:
            logger.warning(
                "stock_scrap_clamped",
                extra={
                    "item_id": str(item_id),
                    "requested": requested,
                    "available": item.available_qty,
                    "shortfall": shortfall,
                    "reference_type": reference_type.value,
                    "reference_id": str(reference_id) if reference_id else None,
                },
            )

        entry = None
        if deducted > 0:
            entry = self._append(
                ctx, item, TransactionType.OUT, deducted, reference_type, reference_id, None, remarks,
            ).to_dto()

        return ScrapOutcome(
            item_id=item_id,
            requested_qty=requested,
            deducted_qty=deducted,
            shortfall_qty=shortfall,
            entry=entry,
        )

    def adjust(
        self,
        ctx: OperationContext,
        item_id: UUID,
        delta: object,
        remarks: str | None = None,
        reference_id: UUID | None = None,
    ) -> LedgerEntry:
        """Signed correction.  A result below zero is rejected."""
        value = to_decimal(delta, "delta")
        if value == 0:
            raise ValidationError("delta", "must not be zero")
        item = self.lock_item(ctx.tenant_id, item_id)
        if value < 0 and item.available_qty + value < 0:
            raise InsufficientStockError(str(item_id), item.available_qty, -value)
        txn_type = TransactionType.IN if value > 0 else TransactionType.OUT
        entry = self._append(
            ctx, item, txn_type, abs(value), ReferenceType.ADJUST, reference_id, None, remarks,
        )
        return entry.to_dto()

    def entries(self, tenant_id: UUID, item_id: UUID) -> list[LedgerEntry]:
        rows = self._session.execute(
            select(StockTransactionModel)
            .where(
                StockTransactionModel.tenant_id == tenant_id,
                StockTransactionModel.item_id == item_id,
            )
            .order_by(StockTransactionModel.seq)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def verify(self, tenant_id: UUID, item_id: UUID) -> LedgerVerification:
        """Replay the item's entries from zero and compare every balance."""
        item = self._session.execute(
            select(InventoryItemModel)
            .where(
                InventoryItemModel.id == item_id,
                InventoryItemModel.tenant_id == tenant_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if item is None:
            raise InventoryItemNotFoundError(str(item_id))

        balance = ZERO
        mismatches = []
        entries = self.entries(tenant_id, item_id)
        for entry in entries:
            balance += entry.signed_qty
            if balance != entry.balance_after:
                mismatches.append(
                    LedgerMismatch(
                        seq=entry.seq,
                        expected_balance=balance,
                        recorded_balance=entry.balance_after,
                    )
                )

        result = LedgerVerification(
            item_id=item_id,
            entries_checked=len(entries),
            replayed_balance=balance,
            available_qty=item.available_qty,
            mismatches=tuple(mismatches),
        )
        if not result.is_consistent:
            logger.error(
                "stock_ledger_inconsistent",
                extra={
                    "item_id": str(item_id),
                    "replayed_balance": balance,
                    "available_qty": item.available_qty,
                    "mismatch_count": len(mismatches),
                },
            )
        return result

    replay = verify
