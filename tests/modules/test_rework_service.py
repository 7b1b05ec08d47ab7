"""
ReworkService: rework jobs and their effect on the source production job.

Verifies:
- A rework job has exactly one source
- Opening one against a production job moves the job to REWORK
- Completing it resumes the job on a fresh visit of its current stage
- Finished rework jobs refuse further status changes
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from shopfloor_kernel.exceptions import (
    DeliveryNoteNotFoundError,
    InvalidTransitionError,
    ReworkJobNotFoundError,
    ValidationError,
)
from shopfloor_kernel.services.notifications import NotificationType
from shopfloor_modules.production.models import JobStatus
from shopfloor_modules.rework.models import ReworkStatus

from conftest import TEST_ACTOR_ID


@pytest.fixture
def rework(uow, ctx, rework_service, production_service, job):
    production_service.transition(uow, ctx, job.id, status=JobStatus.IN_PROGRESS)
    return rework_service.create_rework(
        uow, ctx, source_production_job_id=job.id, expected_hours="2.5",
        material_needed=["plate 6mm"], defect_description="misaligned holes",
    )


class TestCreate:
    def test_job_source_moves_job_to_rework(self, uow, ctx, production_service, rework, job):
        assert rework.status == ReworkStatus.OPEN
        assert rework.rework_number == "RW-TW-20240101-0001"
        assert rework.expected_hours == Decimal("2.5")
        assert rework.material_needed == ["plate 6mm"]
        assert production_service.get_job(uow, ctx, job.id).status == JobStatus.REWORK

    def test_notifies_after_commit(self, uow, ctx, notification_sink, rework):
        assert notification_sink.of_type(NotificationType.REWORK_CREATED) == []
        uow.commit()
        (notice,) = notification_sink.of_type(NotificationType.REWORK_CREATED)
        assert notice.metadata["rework_job_id"] == str(rework.id)

    def test_note_source(self, uow, ctx, rework_service, delivered_dn):
        rework = rework_service.create_rework(uow, ctx, source_delivery_note_id=delivered_dn.id)
        assert rework.source_delivery_note_id == delivered_dn.id

    def test_unknown_note(self, uow, ctx, rework_service):
        with pytest.raises(DeliveryNoteNotFoundError):
            rework_service.create_rework(uow, ctx, source_delivery_note_id=uuid4())

    def test_exactly_one_source(self, uow, ctx, rework_service, job, draft_dn):
        with pytest.raises(ValidationError):
            rework_service.create_rework(uow, ctx)
        with pytest.raises(ValidationError):
            rework_service.create_rework(
                uow, ctx, source_production_job_id=job.id, source_delivery_note_id=draft_dn.id,
            )

    def test_negative_hours_rejected(self, uow, ctx, rework_service, job):
        with pytest.raises(ValidationError):
            rework_service.create_rework(uow, ctx, source_production_job_id=job.id, expected_hours=-1)

    def test_cancelled_job_rejected(self, uow, ctx, rework_service, production_service, job):
        production_service.transition(uow, ctx, job.id, status=JobStatus.CANCELLED)
        with pytest.raises(InvalidTransitionError):
            rework_service.create_rework(uow, ctx, source_production_job_id=job.id)


class TestLifecycle:
    def test_complete_resumes_job_on_fresh_visit(
        self, uow, ctx, rework_service, production_service, deterministic_clock, rework, job,
    ):
        rework_service.start_rework(uow, ctx, rework.id)
        deterministic_clock.advance_hours(3)
        done = rework_service.complete_rework(uow, ctx, rework.id, actual_hours=3)

        assert done.status == ReworkStatus.COMPLETED
        assert done.actual_hours == Decimal("3")
        assert done.completed_at is not None
        assert production_service.get_job(uow, ctx, job.id).status == JobStatus.IN_PROGRESS
        logs = production_service.list_stage_logs(uow, ctx, job.id)
        assert [(log.stage, log.visit, log.is_open) for log in logs] == [
            ("CUTTING", 1, False),
            ("CUTTING", 2, True),
        ]

    def test_complete_straight_from_open(self, uow, ctx, rework_service, rework):
        assert rework_service.complete_rework(uow, ctx, rework.id).status == ReworkStatus.COMPLETED

    def test_cancel_leaves_job_in_rework(self, uow, ctx, rework_service, production_service, rework, job):
        assert rework_service.cancel_rework(uow, ctx, rework.id).status == ReworkStatus.CANCELLED
        assert production_service.get_job(uow, ctx, job.id).status == JobStatus.REWORK

    def test_finished_rework_is_final(self, uow, ctx, rework_service, rework):
        rework_service.complete_rework(uow, ctx, rework.id)
        with pytest.raises(InvalidTransitionError) as exc_info:
            rework_service.cancel_rework(uow, ctx, rework.id)
        assert exc_info.value.allowed == ()

    def test_update_fields(self, uow, ctx, rework_service, rework):
        updated = rework_service.update_rework(
            uow, ctx, rework.id, assignee_id=TEST_ACTOR_ID, notes="needs jig", material_needed='["bolts"]',
        )
        assert updated.assignee_id == TEST_ACTOR_ID
        assert updated.notes == "needs jig"
        assert updated.material_needed == ["bolts"]
        assert updated.status == ReworkStatus.OPEN

        cleared = rework_service.update_rework(uow, ctx, rework.id, assignee_id=None)
        assert cleared.assignee_id is None

    def test_empty_update_rejected(self, uow, ctx, rework_service, rework):
        with pytest.raises(ValidationError):
            rework_service.update_rework(uow, ctx, rework.id)

    def test_unknown_status_rejected(self, uow, ctx, rework_service, rework):
        with pytest.raises(ValidationError):
            rework_service.update_rework(uow, ctx, rework.id, status="PAUSED")


class TestQueries:
    def test_list_filters(self, uow, ctx, rework_service, rework, job, delivered_dn):
        other = rework_service.create_rework(uow, ctx, source_delivery_note_id=delivered_dn.id)
        rework_service.start_rework(uow, ctx, other.id)

        assert [r.id for r in rework_service.list_reworks(uow, ctx)] == [rework.id, other.id]
        assert [r.id for r in rework_service.list_reworks(uow, ctx, status="in_progress")] == [other.id]
        assert [r.id for r in rework_service.list_reworks(uow, ctx, source_production_job_id=job.id)] == [
            rework.id,
        ]

    def test_other_tenant_not_found(self, uow, other_ctx, rework_service, rework):
        with pytest.raises(ReworkJobNotFoundError):
            rework_service.get_rework(uow, other_ctx, rework.id)
