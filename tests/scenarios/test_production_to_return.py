"""
End-to-end flows across production, QC, dispatch, fleet, inventory and
returns.

Each test drives the public services the way an API layer would: one
``uow.transaction()`` per request.
"""

from decimal import Decimal

import pytest

from shopfloor_kernel.exceptions import InvalidTransitionError, ResourceConflictError, ValidationError
from shopfloor_kernel.services.stage_resolver import set_production_stages
from shopfloor_modules.dispatch.models import DNStatus
from shopfloor_modules.fleet.models import VehicleStatus
from shopfloor_modules.inventory.models import ReferenceType, TransactionType
from shopfloor_modules.production.models import JobStatus
from shopfloor_modules.rework.models import ReworkStatus

pytestmark = pytest.mark.scenario


@pytest.fixture
def three_stage_ctx(uow, ctx):
    set_production_stages(uow, ctx, ["CUTTING", "ASSEMBLY", "FINISHING"])
    uow.commit()
    return ctx


def _complete_cutting(uow, ctx, production_service, job_id):
    with uow.transaction():
        production_service.transition(uow, ctx, job_id, status=JobStatus.IN_PROGRESS)
    with uow.transaction():
        production_service.log_hours(uow, ctx, job_id, 4, output_qty=10)
    with uow.transaction():
        return production_service.transition(uow, ctx, job_id, status=JobStatus.COMPLETED)


def test_completed_stage_auto_advances(uow, three_stage_ctx, production_service, project):
    ctx = three_stage_ctx
    with uow.transaction():
        job = production_service.create_job(uow, ctx, project.id, planned_qty=10)
    assert job.stage == "CUTTING"

    result = _complete_cutting(uow, ctx, production_service, job.id)

    assert result.auto_advanced
    assert result.job.stage == "ASSEMBLY"
    assert result.job.status == JobStatus.NOT_STARTED
    assert result.job.actual_hours == Decimal("4")
    assert result.job.actual_qty == Decimal("10")
    logs = production_service.list_stage_logs(uow, ctx, job.id)
    assert [(log.stage, log.is_open) for log in logs] == [("CUTTING", False), ("ASSEMBLY", True)]
    assert logs[-1].started_at is None


def test_dispatch_posts_stock_out_once(
    uow, ctx, inventory_service, fleet_service, dispatch_service, make_dn, vehicle,
):
    with uow.transaction():
        girder = inventory_service.create_item(uow, ctx, "Girder", item_code="GD-1", opening_qty=140)
        dn = make_dn([{"inventory_item_id": girder.id, "qty": 100}])
    with uow.transaction():
        dispatch_service.load(uow, ctx, dn.id, {dn.items[0].id: 100})
    with uow.transaction():
        dispatch_service.assign_vehicle(uow, ctx, dn.id, vehicle.id)
    assert fleet_service.get_vehicle(uow, ctx, vehicle.id).status == VehicleStatus.IN_USE

    with uow.transaction():
        result = dispatch_service.dispatch(uow, ctx, dn.id)
    (entry,) = result.ledger_entries
    assert entry.type == TransactionType.OUT
    assert entry.qty == Decimal("100")
    assert entry.balance_after == Decimal("40")

    with pytest.raises(InvalidTransitionError):
        with uow.transaction():
            dispatch_service.dispatch(uow, ctx, dn.id)
    assert len(inventory_service.ledger_entries(uow, ctx, girder.id)) == 2
    assert inventory_service.get_item(uow, ctx, girder.id).available_qty == Decimal("40")


def test_qc_fail_opens_rework_atomically(
    uow, three_stage_ctx, production_service, quality_service, rework_service, project,
):
    ctx = three_stage_ctx
    with uow.transaction():
        job = production_service.create_job(uow, ctx, project.id, planned_qty=10)
    _complete_cutting(uow, ctx, production_service, job.id)

    # A rework that cannot be created takes the QC record and REWORK status with it.
    with pytest.raises(ValidationError):
        with uow.transaction():
            quality_service.record_qc(
                uow, ctx, "FAIL", production_job_id=job.id, stage="ASSEMBLY",
                create_rework=True, expected_hours=-1,
            )
    assert production_service.get_job(uow, ctx, job.id).status == JobStatus.NOT_STARTED
    assert quality_service.list_records(uow, ctx, production_job_id=job.id) == []

    with uow.transaction():
        result = quality_service.record_qc(
            uow, ctx, "FAIL", production_job_id=job.id, stage="ASSEMBLY", create_rework=True,
        )
    assert production_service.get_job(uow, ctx, job.id).status == JobStatus.REWORK
    rework = rework_service.get_rework(uow, ctx, result.rework_job_id)
    assert rework.status == ReworkStatus.OPEN
    assert rework.source_production_job_id == job.id
    assert result.record.stage == "ASSEMBLY"


def test_scrap_return_clamps_at_zero(
    uow, ctx, inventory_service, dispatch_service, returns_service, make_dn, vehicle,
):
    with uow.transaction():
        panel = inventory_service.create_item(uow, ctx, "Panel", item_code="PN-1", opening_qty=8)
        dn = make_dn([{"inventory_item_id": panel.id, "qty": 5}])
        dispatch_service.load(uow, ctx, dn.id, {dn.items[0].id: 5})
        dispatch_service.assign_vehicle(uow, ctx, dn.id, vehicle.id)
        dispatch_service.dispatch(uow, ctx, dn.id)
        dispatch_service.deliver(uow, ctx, dn.id)
    assert inventory_service.get_item(uow, ctx, panel.id).available_qty == Decimal("3")

    with uow.transaction():
        record = returns_service.create_return(
            uow, ctx, dn.id, [{"dn_item_id": dn.items[0].id, "qty": 5}], reason="crushed",
        )
    with uow.transaction():
        result = returns_service.inspect(uow, ctx, record.id, "SCRAP")

    (entry,) = result.ledger_entries
    assert entry.type == TransactionType.OUT
    assert entry.reference_type == ReferenceType.RETURN
    assert entry.balance_after == Decimal("0")
    assert inventory_service.get_item(uow, ctx, panel.id).available_qty == Decimal("0")
    (wastage,) = inventory_service.wastage_report(uow, ctx, panel.id)
    assert wastage.qty == Decimal("5")
    assert inventory_service.verify_item(uow, ctx, panel.id).is_consistent
    assert dispatch_service.get_delivery_note(uow, ctx, dn.id).status == DNStatus.RETURNED


def test_one_vehicle_two_notes(uow, ctx, dispatch_service, fleet_service, make_dn, item, vehicle):
    with uow.transaction():
        first = make_dn([{"inventory_item_id": item.id, "qty": 1}])
        second = make_dn([{"inventory_item_id": item.id, "qty": 1}])
        dispatch_service.load(uow, ctx, first.id, {first.items[0].id: 1})
        dispatch_service.load(uow, ctx, second.id, {second.items[0].id: 1})

    with uow.transaction():
        dispatch_service.assign_vehicle(uow, ctx, first.id, vehicle.id)
    with pytest.raises(ResourceConflictError):
        with uow.transaction():
            dispatch_service.assign_vehicle(uow, ctx, second.id, vehicle.id)

    assert dispatch_service.get_delivery_note(uow, ctx, second.id).vehicle_id is None
    assert fleet_service.get_vehicle(uow, ctx, vehicle.id).status == VehicleStatus.IN_USE
