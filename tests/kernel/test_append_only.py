"""
Append-only rows: stock transactions, QC records, tracking and audit.

Verifies:
- Changing any content column of a protected row is blocked at flush
- Deleting a protected row is blocked at flush
- Metadata columns (updated_by_id) stay writable
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from shopfloor_kernel.exceptions import ImmutabilityViolationError
from shopfloor_kernel.models.audit_log import AuditLog
from shopfloor_modules.inventory.orm import StockTransactionModel
from shopfloor_modules.quality.models import QCStatus
from shopfloor_modules.quality.orm import QCRecordModel


def _opening_entry(session, item):
    return session.execute(
        select(StockTransactionModel).where(StockTransactionModel.item_id == item.id)
    ).scalars().one()


class TestStockTransactionImmutability:
    def test_update_blocked(self, session, item):
        entry = _opening_entry(session, item)
        entry.qty = entry.qty + 1
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "StockTransaction"
        assert "qty" in exc_info.value.reason

    def test_delete_blocked(self, session, item):
        entry = _opening_entry(session, item)
        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_metadata_update_allowed(self, session, item):
        entry = _opening_entry(session, item)
        entry.updated_by_id = uuid4()
        session.flush()


class TestQCRecordImmutability:
    def test_status_cannot_be_rewritten(self, session, uow, ctx, job, quality_service):
        result = quality_service.record_qc(uow, ctx, QCStatus.PASS, production_job_id=job.id)
        row = session.get(QCRecordModel, result.record.id)
        row.qc_status = QCStatus.FAIL.value
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestAuditLogImmutability:
    def test_audit_rows_cannot_be_deleted(self, session, tenant):
        row = session.execute(
            select(AuditLog).where(AuditLog.tenant_id == tenant.id)
        ).scalars().first()
        session.delete(row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
