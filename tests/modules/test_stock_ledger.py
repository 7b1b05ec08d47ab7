"""
Append-only stock ledger.

Verifies:
- Every movement appends an entry whose balance_after is the new
  available_qty, with seq strictly increasing per item
- OUT below zero is rejected unless explicitly allowed
- Scrap clamps at zero and reports the shortfall
- Replaying the entries from zero reproduces every balance
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy import update

from shopfloor_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from shopfloor_kernel.exceptions import (
    InsufficientStockError,
    InventoryItemNotFoundError,
    ValidationError,
)
from shopfloor_modules.inventory.ledger import StockLedger
from shopfloor_modules.inventory.models import ReferenceType, TransactionType
from shopfloor_modules.inventory.orm import StockTransactionModel


class TestMovements:
    def test_opening_entry(self, uow, ctx, item):
        entries = StockLedger(uow).entries(ctx.tenant_id, item.id)
        assert len(entries) == 1
        assert entries[0].type == TransactionType.IN
        assert entries[0].reference_type == ReferenceType.OPENING
        assert entries[0].balance_after == Decimal("100")
        assert entries[0].seq == 1

    def test_in_and_out(self, uow, ctx, item):
        ledger = StockLedger(uow)
        grn = uuid4()
        entry_in = ledger.record_in(ctx, item.id, 20, ReferenceType.GRN, grn, rate=Decimal("9.5"))
        entry_out = ledger.record_out(ctx, item.id, "30", ReferenceType.ISSUE)

        assert entry_in.balance_after == Decimal("120")
        assert entry_in.reference_id == grn
        assert entry_out.balance_after == Decimal("90")
        assert entry_out.signed_qty == Decimal("-30")
        assert [e.seq for e in ledger.entries(ctx.tenant_id, item.id)] == [1, 2, 3]
        assert ledger.lock_item(ctx.tenant_id, item.id).available_qty == Decimal("90")

    def test_out_beyond_stock_rejected(self, uow, ctx, item, captured_logs):
        ledger = StockLedger(uow)
        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.record_out(ctx, item.id, 101, ReferenceType.DN)
        assert exc_info.value.available == Decimal("100")
        assert exc_info.value.requested == Decimal("101")
        assert len(ledger.entries(ctx.tenant_id, item.id)) == 1
        assert any(r["message"] == "stock_out_rejected" for r in captured_logs())

    def test_out_below_zero_when_allowed(self, uow, ctx, item):
        entry = StockLedger(uow).record_out(ctx, item.id, 105, ReferenceType.DN, allow_negative=True)
        assert entry.balance_after == Decimal("-5")

    @pytest.mark.parametrize("qty", [0, -3])
    def test_non_positive_qty_rejected(self, uow, ctx, item, qty):
        with pytest.raises(ValidationError):
            StockLedger(uow).record_in(ctx, item.id, qty, ReferenceType.GRN)

    def test_unknown_item(self, uow, ctx):
        with pytest.raises(InventoryItemNotFoundError):
            StockLedger(uow).record_in(ctx, uuid4(), 1, ReferenceType.GRN)

    def test_other_tenant_item_not_found(self, uow, other_ctx, item):
        with pytest.raises(InventoryItemNotFoundError):
            StockLedger(uow).record_out(other_ctx, item.id, 1, ReferenceType.DN)


class TestAdjust:
    def test_signed_adjustments(self, uow, ctx, item):
        ledger = StockLedger(uow)
        down = ledger.adjust(ctx, item.id, -4, remarks="count")
        up = ledger.adjust(ctx, item.id, "2")
        assert down.type == TransactionType.OUT
        assert up.type == TransactionType.IN
        assert up.balance_after == Decimal("98")
        assert up.reference_type == ReferenceType.ADJUST

    def test_zero_rejected(self, uow, ctx, item):
        with pytest.raises(ValidationError):
            StockLedger(uow).adjust(ctx, item.id, 0)

    def test_below_zero_rejected(self, uow, ctx, item):
        with pytest.raises(InsufficientStockError):
            StockLedger(uow).adjust(ctx, item.id, -101)


class TestScrap:
    def test_within_stock(self, uow, ctx, item):
        outcome = StockLedger(uow).record_scrap(ctx, item.id, 10)
        assert outcome.deducted_qty == Decimal("10")
        assert not outcome.clamped
        assert outcome.entry.balance_after == Decimal("90")

    def test_clamped_at_zero(self, uow, ctx, item, captured_logs):
        ledger = StockLedger(uow)
        ledger.record_out(ctx, item.id, 97, ReferenceType.DN)
        outcome = ledger.record_scrap(ctx, item.id, 5, ReferenceType.RETURN, uuid4())

        assert outcome.requested_qty == Decimal("5")
        assert outcome.deducted_qty == Decimal("3")
        assert outcome.shortfall_qty == Decimal("2")
        assert outcome.entry.qty == Decimal("3")
        assert outcome.entry.balance_after == Decimal("0")
        clamp_logs = [r for r in captured_logs() if r["message"] == "stock_scrap_clamped"]
        assert Decimal(clamp_logs[0]["shortfall"]) == Decimal("2")

    def test_nothing_on_hand_writes_no_entry(self, uow, ctx, item):
        ledger = StockLedger(uow)
        ledger.record_out(ctx, item.id, 100, ReferenceType.DN)
        outcome = ledger.record_scrap(ctx, item.id, 4)
        assert outcome.entry is None
        assert outcome.deducted_qty == Decimal("0")
        assert len(ledger.entries(ctx.tenant_id, item.id)) == 2


class TestVerify:
    def test_consistent_ledger(self, uow, ctx, item):
        ledger = StockLedger(uow)
        ledger.record_out(ctx, item.id, 10, ReferenceType.DN)
        result = ledger.verify(ctx.tenant_id, item.id)
        assert result.is_consistent
        assert result.entries_checked == 2
        assert result.replayed_balance == Decimal("90")

    def test_tampered_entry_detected(self, uow, ctx, item, captured_logs):
        ledger = StockLedger(uow)
        ledger.record_out(ctx, item.id, 10, ReferenceType.DN)
        unregister_immutability_listeners()
        try:
            uow.session.execute(
                update(StockTransactionModel)
                .where(StockTransactionModel.item_id == item.id, StockTransactionModel.seq == 2)
                .values(qty=Decimal("11"))
                .execution_options(synchronize_session=False)
            )
        finally:
            register_immutability_listeners()
        uow.session.expire_all()

        result = ledger.verify(ctx.tenant_id, item.id)
        assert not result.is_consistent
        assert result.mismatches[0].seq == 2
        assert any(r["message"] == "stock_ledger_inconsistent" for r in captured_logs())


_movements = st.lists(
    st.tuples(st.sampled_from(["in", "out", "scrap", "adjust"]), st.integers(min_value=1, max_value=60)),
    min_size=1,
    max_size=20,
)


@settings(
    max_examples=30,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
@given(opening=st.integers(min_value=0, max_value=100), movements=_movements)
def test_replay_reproduces_every_balance(uow, ctx, inventory_service, opening, movements):
    item = inventory_service.create_item(uow, ctx, f"Prop item {uuid4()}", opening_qty=opening)
    ledger = StockLedger(uow)
    for kind, qty in movements:
        try:
            if kind == "in":
                ledger.record_in(ctx, item.id, qty, ReferenceType.GRN)
            elif kind == "out":
                ledger.record_out(ctx, item.id, qty, ReferenceType.ISSUE)
            elif kind == "scrap":
                ledger.record_scrap(ctx, item.id, qty)
            else:
                ledger.adjust(ctx, item.id, -qty if qty % 2 else qty)
        except InsufficientStockError:
            pass

    entries = ledger.entries(ctx.tenant_id, item.id)
    assert [e.seq for e in entries] == list(range(1, len(entries) + 1))
    assert all(e.balance_after >= 0 for e in entries)

    result = ledger.verify(ctx.tenant_id, item.id)
    assert result.is_consistent
    assert result.available_qty >= 0
