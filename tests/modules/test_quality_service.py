"""
QualityService: inspections and the QC gate.

Verifies:
- An inspection targets exactly one of a production job or a delivery note
- A job inspection stamps the inspected stage's latest log
- FAIL forces the job into REWORK from any non-terminal status, can open a
  rework job, and notifies after commit
- For delivery notes any FAIL record blocks dispatch for good
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from shopfloor_kernel.exceptions import (
    DeliveryNoteNotFoundError,
    InvalidTransitionError,
    ProductionJobNotFoundError,
    QCRecordNotFoundError,
    ValidationError,
)
from shopfloor_kernel.models.audit_log import AuditLog
from shopfloor_kernel.services.notifications import NotificationType
from shopfloor_modules.production.models import JobStatus
from shopfloor_modules.quality.models import QCStatus
from shopfloor_modules.rework.models import ReworkStatus


def _actions(session):
    return session.execute(select(AuditLog.action)).scalars().all()


class TestTargets:
    def test_requires_a_target(self, uow, ctx, quality_service):
        with pytest.raises(ValidationError):
            quality_service.record_qc(uow, ctx, "PASS")

    def test_rejects_two_targets(self, uow, ctx, quality_service, job, draft_dn):
        with pytest.raises(ValidationError):
            quality_service.record_qc(
                uow, ctx, "PASS", production_job_id=job.id, delivery_note_id=draft_dn.id,
            )

    def test_rejects_unknown_status(self, uow, ctx, quality_service, job):
        with pytest.raises(ValidationError):
            quality_service.record_qc(uow, ctx, "MAYBE", production_job_id=job.id)

    def test_unknown_job(self, uow, ctx, quality_service):
        with pytest.raises(ProductionJobNotFoundError):
            quality_service.record_qc(uow, ctx, "PASS", production_job_id=uuid4())

    def test_other_tenant_note(self, uow, other_ctx, quality_service, draft_dn):
        with pytest.raises(DeliveryNoteNotFoundError):
            quality_service.record_qc(uow, other_ctx, "FAIL", delivery_note_id=draft_dn.id)


class TestJobInspection:
    def test_pass_stamps_stage_log(self, uow, ctx, quality_service, production_service, job):
        result = quality_service.record_qc(
            uow, ctx, QCStatus.PASS, production_job_id=job.id, defects='["minor burr"]',
        )
        assert result.record.stage == "CUTTING"
        assert result.record.inspector_id == ctx.actor_id
        assert result.record.defects == ["minor burr"]
        assert result.job_status == "NOT_STARTED"
        assert result.rework_job_id is None

        (log,) = production_service.list_stage_logs(uow, ctx, job.id)
        assert log.qc_status == "PASS"
        assert quality_service.latest_status_for_log(uow, ctx, log.id) == QCStatus.PASS
        assert "QC_RECORD_CREATE" in _actions(uow.session)

    def test_fail_forces_rework(self, uow, ctx, quality_service, production_service, job):
        production_service.transition(uow, ctx, job.id, status=JobStatus.IN_PROGRESS)
        result = quality_service.record_qc(uow, ctx, "fail", production_job_id=job.id)

        assert result.job_status == "REWORK"
        assert production_service.get_job(uow, ctx, job.id).status == JobStatus.REWORK
        (log,) = production_service.list_stage_logs(uow, ctx, job.id)
        assert log.qc_status == "FAIL"
        assert not log.is_open

    def test_fail_against_earlier_stage_still_reworks(self, uow, ctx, quality_service, production_service, job):
        production_service.transition(uow, ctx, job.id, status=JobStatus.IN_PROGRESS)
        production_service.transition(uow, ctx, job.id, status=JobStatus.COMPLETED)
        result = quality_service.record_qc(uow, ctx, "FAIL", production_job_id=job.id, stage="CUTTING")
        assert result.job_status == "REWORK"

    def test_fail_on_cancelled_job_rejected_without_record(
        self, uow, ctx, quality_service, production_service, job,
    ):
        production_service.transition(uow, ctx, job.id, status=JobStatus.CANCELLED)
        with pytest.raises(InvalidTransitionError):
            quality_service.record_qc(uow, ctx, "FAIL", production_job_id=job.id)
        assert quality_service.list_records(uow, ctx, production_job_id=job.id) == []

    def test_fail_can_open_rework_job(
        self, uow, ctx, quality_service, rework_service, notification_sink, job,
    ):
        result = quality_service.record_qc(
            uow, ctx, "FAIL", production_job_id=job.id, remarks="porosity",
            create_rework=True, expected_hours=3,
        )
        rework = rework_service.get_rework(uow, ctx, result.rework_job_id)
        assert rework.status == ReworkStatus.OPEN
        assert rework.source_production_job_id == job.id
        assert rework.qc_record_id == result.record.id
        assert rework.defect_description == "porosity"
        assert "REWORK_CREATE" in _actions(uow.session)

        assert notification_sink.published == []
        uow.commit()
        assert len(notification_sink.of_type(NotificationType.QC_FAIL)) == 1
        assert len(notification_sink.of_type(NotificationType.REWORK_CREATED)) == 1

    def test_pass_sends_no_notification(self, uow, ctx, quality_service, notification_sink, job):
        quality_service.record_qc(uow, ctx, "PASS", production_job_id=job.id)
        uow.commit()
        assert notification_sink.of_type(NotificationType.QC_FAIL) == []

    def test_fail_notification_names_stage(self, uow, ctx, quality_service, notification_sink, job):
        result = quality_service.record_qc(uow, ctx, "FAIL", production_job_id=job.id)
        uow.commit()
        (notice,) = notification_sink.of_type(NotificationType.QC_FAIL)
        assert notice.metadata["stage"] == "CUTTING"
        assert notice.metadata["qc_record_id"] == str(result.record.id)
        assert notice.link == f"/production/jobs/{job.id}"


class TestDeliveryNoteGate:
    def test_any_fail_sticks(self, uow, ctx, quality_service, draft_dn):
        assert not quality_service.has_failing_qc(uow, ctx, draft_dn.id)
        quality_service.record_qc(uow, ctx, "PASS", delivery_note_id=draft_dn.id)
        assert not quality_service.has_failing_qc(uow, ctx, draft_dn.id)
        quality_service.record_qc(uow, ctx, "FAIL", delivery_note_id=draft_dn.id)
        assert quality_service.has_failing_qc(uow, ctx, draft_dn.id)
        quality_service.record_qc(uow, ctx, "NA", delivery_note_id=draft_dn.id)
        quality_service.record_qc(uow, ctx, "PASS", delivery_note_id=draft_dn.id)
        assert quality_service.has_failing_qc(uow, ctx, draft_dn.id)

    def test_fail_on_other_note_ignored(self, uow, ctx, quality_service, make_dn, item, draft_dn):
        other = make_dn([{"inventory_item_id": item.id, "qty": 1}])
        quality_service.record_qc(uow, ctx, "FAIL", delivery_note_id=other.id)
        assert not quality_service.has_failing_qc(uow, ctx, draft_dn.id)

    def test_note_status_untouched(self, uow, ctx, quality_service, dispatch_service, draft_dn):
        result = quality_service.record_qc(uow, ctx, "FAIL", delivery_note_id=draft_dn.id)
        assert result.job_status is None
        assert result.record.stage is None
        assert dispatch_service.get_delivery_note(uow, ctx, draft_dn.id).status == draft_dn.status

    def test_fail_can_open_note_rework(self, uow, ctx, quality_service, rework_service, draft_dn):
        result = quality_service.record_qc(
            uow, ctx, "FAIL", delivery_note_id=draft_dn.id, create_rework=True,
        )
        rework = rework_service.get_rework(uow, ctx, result.rework_job_id)
        assert rework.source_delivery_note_id == draft_dn.id
        assert rework.source_production_job_id is None


class TestQueries:
    def test_newest_first_and_filtered(self, uow, ctx, quality_service, job, draft_dn):
        first = quality_service.record_qc(uow, ctx, "PASS", production_job_id=job.id).record
        second = quality_service.record_qc(uow, ctx, "FAIL", production_job_id=job.id).record
        quality_service.record_qc(uow, ctx, "PASS", delivery_note_id=draft_dn.id)

        records = quality_service.list_records(uow, ctx, production_job_id=job.id)
        assert [r.id for r in records] == [second.id, first.id]
        assert second.seq > first.seq
        fails = quality_service.list_records(uow, ctx, qc_status="FAIL")
        assert [r.id for r in fails] == [second.id]

    def test_get_record_tenant_scoped(self, uow, ctx, other_ctx, quality_service, job):
        record = quality_service.record_qc(uow, ctx, "PASS", production_job_id=job.id).record
        assert quality_service.get_record(uow, ctx, record.id).id == record.id
        with pytest.raises(QCRecordNotFoundError):
            quality_service.get_record(uow, other_ctx, record.id)
