"""
InventoryService: item master, adjustments, reservations, scrap, issues and alerts.

Verifies:
- Opening stock is a single OPENING ledger entry
- Reservations never touch the ledger and cannot exceed free stock
- Scrap records the full quantity as wastage while the ledger clamps at zero
- Material issues take qty plus wastage out of free stock as ISSUE entries
- Low-stock alerts are system audit facts, delivered after commit and
  suppressed inside the alert window
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from shopfloor_kernel.exceptions import (
    DuplicateCodeError,
    InsufficientStockError,
    InvalidTransitionError,
    InventoryItemNotFoundError,
    ProductionJobNotFoundError,
    ValidationError,
)
from shopfloor_kernel.models.audit_log import AuditLog
from shopfloor_kernel.services.notifications import NotificationType
from shopfloor_modules.inventory.config import InventoryConfig
from shopfloor_modules.inventory.models import ReferenceType, TransactionType
from shopfloor_modules.inventory.service import InventoryService


def _audits(session, entity_id, action):
    return session.execute(
        select(AuditLog).where(
            AuditLog.entity_id == str(entity_id),
            AuditLog.action == action,
        )
    ).scalars().all()


class TestCreateItem:
    def test_opening_stock_posted_to_ledger(self, uow, ctx, inventory_service, item):
        assert item.available_qty == Decimal("100")
        entries = inventory_service.ledger_entries(uow, ctx, item.id)
        assert [(e.reference_type, e.reference_id) for e in entries] == [
            (ReferenceType.OPENING, item.id),
        ]
        assert len(_audits(uow.session, item.id, "INVENTORY_ITEM_CREATE")) == 1

    def test_zero_opening_writes_no_entry(self, uow, ctx, inventory_service):
        empty = inventory_service.create_item(uow, ctx, "Gusset Plate")
        assert empty.available_qty == Decimal("0")
        assert inventory_service.ledger_entries(uow, ctx, empty.id) == []

    def test_duplicate_code_rejected(self, uow, ctx, inventory_service, item):
        with pytest.raises(DuplicateCodeError):
            inventory_service.create_item(uow, ctx, "Other Beam", item_code="SB-100")

    def test_negative_opening_rejected(self, uow, ctx, inventory_service):
        with pytest.raises(ValidationError):
            inventory_service.create_item(uow, ctx, "Gusset Plate", opening_qty=-1)

    def test_blank_name_rejected(self, uow, ctx, inventory_service):
        with pytest.raises(ValidationError):
            inventory_service.create_item(uow, ctx, "  ")

    def test_other_tenant_cannot_read(self, uow, other_ctx, inventory_service, item):
        with pytest.raises(InventoryItemNotFoundError):
            inventory_service.get_item(uow, other_ctx, item.id)


class TestAdjustStock:
    def test_adjustment_audited_with_before_and_after(self, uow, ctx, inventory_service, item):
        entry = inventory_service.adjust_stock(uow, ctx, item.id, -7, reason="cycle count")
        assert entry.type == TransactionType.OUT
        assert inventory_service.get_item(uow, ctx, item.id).available_qty == Decimal("93")

        (audit,) = _audits(uow.session, item.id, "STOCK_ADJUSTMENT")
        assert Decimal(str(audit.old_data["available_qty"])) == Decimal("100")
        assert Decimal(str(audit.new_data["available_qty"])) == Decimal("93")
        assert audit.new_data["reason"] == "cycle count"

    def test_cannot_adjust_below_zero(self, uow, ctx, inventory_service, item):
        with pytest.raises(InsufficientStockError):
            inventory_service.adjust_stock(uow, ctx, item.id, -150)
        assert _audits(uow.session, item.id, "STOCK_ADJUSTMENT") == []

    def test_unknown_item(self, uow, ctx, inventory_service):
        with pytest.raises(InventoryItemNotFoundError):
            inventory_service.adjust_stock(uow, ctx, uuid4(), 5)


class TestReservations:
    def test_reserve_reduces_free_not_available(self, uow, ctx, inventory_service, item):
        reserved = inventory_service.reserve(uow, ctx, item.id, 30)
        assert reserved.available_qty == Decimal("100")
        assert reserved.reserved_qty == Decimal("30")
        assert reserved.free_qty == Decimal("70")
        assert len(inventory_service.ledger_entries(uow, ctx, item.id)) == 1

    def test_reserve_beyond_free_rejected(self, uow, ctx, inventory_service, item):
        inventory_service.reserve(uow, ctx, item.id, 80)
        with pytest.raises(InsufficientStockError) as exc_info:
            inventory_service.reserve(uow, ctx, item.id, 21)
        assert exc_info.value.available == Decimal("20")

    def test_unreserve(self, uow, ctx, inventory_service, item):
        inventory_service.reserve(uow, ctx, item.id, 10)
        released = inventory_service.unreserve(uow, ctx, item.id, 4)
        assert released.reserved_qty == Decimal("6")
        with pytest.raises(ValidationError):
            inventory_service.unreserve(uow, ctx, item.id, 7)
        assert len(_audits(uow.session, item.id, "STOCK_UNRESERVE")) == 1

    @pytest.mark.parametrize("qty", [0, -1])
    def test_non_positive_rejected(self, uow, ctx, inventory_service, item, qty):
        with pytest.raises(ValidationError):
            inventory_service.reserve(uow, ctx, item.id, qty)


class TestScrap:
    def test_wastage_keeps_full_quantity_when_clamped(self, uow, ctx, inventory_service, item):
        inventory_service.adjust_stock(uow, ctx, item.id, -97)
        ref = uuid4()
        outcome = inventory_service.scrap(
            uow, ctx, item.id, 5, reason="bent", reference_type=ReferenceType.RETURN, reference_id=ref,
        )

        assert outcome.clamped
        assert outcome.entry.balance_after == Decimal("0")
        assert inventory_service.get_item(uow, ctx, item.id).available_qty == Decimal("0")
        (line,) = inventory_service.wastage_report(uow, ctx, item.id)
        assert line.qty == Decimal("5")
        assert line.reason == "bent"
        assert line.reference_type == "RETURN"
        assert line.reference_id == ref
        assert inventory_service.total_wasted(uow, ctx, item.id) == Decimal("5")

    def test_scrap_with_nothing_on_hand_still_records_wastage(self, uow, ctx, inventory_service, item):
        inventory_service.adjust_stock(uow, ctx, item.id, -100)
        outcome = inventory_service.scrap(uow, ctx, item.id, 2)
        assert outcome.entry is None
        assert inventory_service.total_wasted(uow, ctx, item.id) == Decimal("2")

    def test_report_spans_items(self, uow, ctx, inventory_service, item, second_item):
        inventory_service.scrap(uow, ctx, item.id, 1)
        inventory_service.scrap(uow, ctx, second_item.id, 3)
        report = inventory_service.wastage_report(uow, ctx)
        assert {(line.item_name, line.qty) for line in report} == {
            ("Steel Beam", Decimal("1")),
            ("Anchor Bolt", Decimal("3")),
        }
        assert inventory_service.total_wasted(uow, ctx, item.id) == Decimal("1")


class TestMaterialIssue:
    def test_issue_moves_qty_plus_wastage(self, uow, ctx, inventory_service, item, job):
        issue = inventory_service.issue_material(
            uow, ctx, job.id, [{"item_id": item.id, "qty": 8, "wastage_qty": 2}],
        )
        (entry,) = issue.ledger_entries
        assert entry.type == TransactionType.OUT
        assert entry.reference_type == ReferenceType.ISSUE
        assert entry.reference_id == issue.id
        assert entry.qty == Decimal("10")
        assert entry.rate == Decimal("10")
        assert inventory_service.get_item(uow, ctx, item.id).available_qty == Decimal("90")

        (wastage,) = inventory_service.wastage_report(uow, ctx, item.id)
        assert wastage.qty == Decimal("2")
        assert wastage.reference_type == "ISSUE"
        assert wastage.reference_id == issue.id
        assert issue.project_id == job.project_id
        assert len(_audits(uow.session, issue.id, "MATERIAL_ISSUE")) == 1

    def test_no_wastage_record_without_wastage(self, uow, ctx, inventory_service, item, job):
        inventory_service.issue_material(uow, ctx, job.id, [{"item_id": item.id, "qty": 5}])
        assert inventory_service.wastage_report(uow, ctx, item.id) == []

    def test_reserved_stock_is_not_issued(self, uow, ctx, inventory_service, item, job):
        inventory_service.reserve(uow, ctx, item.id, 95)
        with pytest.raises(InsufficientStockError) as exc_info:
            inventory_service.issue_material(
                uow, ctx, job.id, [{"item_id": item.id, "qty": 4, "wastage_qty": 2}],
            )
        assert exc_info.value.available == Decimal("5")
        assert exc_info.value.requested == Decimal("6")

    def test_shortfall_on_any_line_moves_nothing(
        self, uow, ctx, inventory_service, item, second_item, job,
    ):
        with pytest.raises(InsufficientStockError):
            inventory_service.issue_material(
                uow, ctx, job.id,
                [{"item_id": item.id, "qty": 10}, {"item_id": second_item.id, "qty": 51}],
            )
        assert len(inventory_service.ledger_entries(uow, ctx, item.id)) == 1
        assert inventory_service.list_material_issues(uow, ctx, job.id) == []

    def test_repeated_item_checked_in_total(self, uow, ctx, inventory_service, item, job):
        with pytest.raises(InsufficientStockError):
            inventory_service.issue_material(
                uow, ctx, job.id,
                [{"item_id": item.id, "qty": 60}, {"item_id": item.id, "qty": 41}],
            )

    def test_cancelled_job_rejected(self, uow, ctx, inventory_service, production_service, item, job):
        production_service.transition(uow, ctx, job.id, status="CANCELLED")
        with pytest.raises(InvalidTransitionError):
            inventory_service.issue_material(uow, ctx, job.id, [{"item_id": item.id, "qty": 1}])

    def test_foreign_job_rejected(self, uow, other_ctx, inventory_service, item, job):
        with pytest.raises(ProductionJobNotFoundError):
            inventory_service.issue_material(uow, other_ctx, job.id, [{"item_id": item.id, "qty": 1}])

    @pytest.mark.parametrize("line", [{"qty": 0}, {"qty": 1, "wastage_qty": -1}])
    def test_bad_lines_rejected(self, uow, ctx, inventory_service, item, job, line):
        with pytest.raises(ValidationError):
            inventory_service.issue_material(uow, ctx, job.id, [{"item_id": item.id, **line}])

    def test_empty_request_rejected(self, uow, ctx, inventory_service, job):
        with pytest.raises(ValidationError):
            inventory_service.issue_material(uow, ctx, job.id, [])

    def test_issues_listed_per_job(self, uow, ctx, inventory_service, item, job):
        first = inventory_service.issue_material(uow, ctx, job.id, [{"item_id": item.id, "qty": 1}])
        (listed,) = inventory_service.list_material_issues(uow, ctx, job.id)
        assert listed.id == first.id
        assert listed.lines[0].item_id == item.id
        assert listed.lines[0].qty == Decimal("1")
        assert inventory_service.verify_item(uow, ctx, item.id).is_consistent


class TestLowStock:
    @pytest.fixture
    def low_item(self, uow, ctx, inventory_service):
        return inventory_service.create_item(
            uow, ctx, "Weld Rod", item_code="WR-1", opening_qty=15, reorder_level=20,
        )

    def test_alert_raised_and_delivered_after_commit(
        self, uow, ctx, inventory_service, notification_sink, item, low_item,
    ):
        alerts = inventory_service.check_low_stock(uow, ctx)
        assert [a.item_id for a in alerts] == [low_item.id]
        assert alerts[0].available_qty == Decimal("15")
        assert notification_sink.of_type(NotificationType.LOW_STOCK) == []

        uow.commit()
        (notice,) = notification_sink.of_type(NotificationType.LOW_STOCK)
        assert notice.metadata == {"item_id": str(low_item.id)}

    def test_alert_is_a_system_audit_fact(self, uow, ctx, inventory_service, low_item):
        inventory_service.check_low_stock(uow, ctx)
        (audit,) = _audits(uow.session, low_item.id, "LOW_STOCK_ALERT")
        assert audit.user_id is None

    def test_at_reorder_level_counts_as_low(self, uow, ctx, inventory_service):
        edge = inventory_service.create_item(uow, ctx, "Shim", opening_qty=5, reorder_level=5)
        assert [a.item_id for a in inventory_service.check_low_stock(uow, ctx)] == [edge.id]

    def test_suppressed_within_window(
        self, uow, ctx, inventory_service, deterministic_clock, low_item,
    ):
        assert len(inventory_service.check_low_stock(uow, ctx)) == 1
        deterministic_clock.advance_hours(23)
        assert inventory_service.check_low_stock(uow, ctx) == []
        deterministic_clock.advance_hours(2)
        assert len(inventory_service.check_low_stock(uow, ctx)) == 1
        assert len(_audits(uow.session, low_item.id, "LOW_STOCK_ALERT")) == 2

    def test_window_is_configurable(self, uow, ctx, notifications, deterministic_clock, low_item):
        service = InventoryService(
            config=InventoryConfig.from_dict({"low_stock_alert_window_hours": 1}),
            notifications=notifications,
        )
        assert len(service.check_low_stock(uow, ctx)) == 1
        deterministic_clock.advance_hours(2)
        assert len(service.check_low_stock(uow, ctx)) == 1

    def test_invalid_window_rejected(self):
        with pytest.raises(ValueError):
            InventoryConfig(low_stock_alert_window_hours=0)


class TestVerifyItem:
    def test_service_exposes_ledger_check(self, uow, ctx, inventory_service, item):
        inventory_service.adjust_stock(uow, ctx, item.id, 5)
        result = inventory_service.verify_item(uow, ctx, item.id)
        assert result.is_consistent
        assert result.available_qty == Decimal("105")
