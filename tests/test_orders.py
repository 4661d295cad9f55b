import pytest

from app.core.errors import Conflict, ValidationFailed
from app.models.ipd_orders import IpdMedicationAdministration
from app.services import ipd_admissions, ipd_medications, ipd_orders

from conftest import DOCTOR, DOCTOR_2


def _order(db, admission, **kw):
    kw.setdefault("order_type", "investigation")
    kw.setdefault("description", "CBC, RFT")
    return ipd_orders.create_order(db, admission_id=admission.id, doctor_id=DOCTOR,
                                   **kw)


def test_new_order_is_active(db, admission):
    order = _order(db, admission, priority="urgent")
    assert order.status == "active"
    assert order.approval_status == "not_required"
    assert order.priority == "urgent"
    assert order.order_date is not None


def test_order_needs_active_admission(db, admission):
    ipd_admissions.discharge(db, admission.id)
    with pytest.raises(Conflict):
        _order(db, admission)


def test_order_input_validation(db, admission):
    with pytest.raises(ValidationFailed):
        _order(db, admission, order_type="surgery-ish")
    with pytest.raises(ValidationFailed):
        _order(db, admission, priority="asap")
    with pytest.raises(ValidationFailed):
        _order(db, admission, description="   ")


def test_approval_gates_scheduling(db, admission):
    order = _order(db, admission, order_type="medication",
                   description="Ceftriaxone 1g IV", approvals_required=True)
    assert order.approval_status == "pending"
    assert not order.schedulable

    order = ipd_orders.approve_order(db, order.id, approver_id=DOCTOR_2)
    assert order.approval_status == "approved"
    assert order.approved_by_id == DOCTOR_2
    assert order.schedulable

    with pytest.raises(Conflict):
        ipd_orders.approve_order(db, order.id, approver_id=DOCTOR_2)


def test_rejection_cancels_order(db, admission):
    order = _order(db, admission, approvals_required=True)
    order = ipd_orders.reject_order(db, order.id, approver_id=DOCTOR_2,
                                    reason="duplicate")
    assert order.approval_status == "rejected"
    assert order.status == "cancelled"
    assert order.cancellation_reason == "duplicate"

    with pytest.raises(Conflict):
        ipd_orders.resume_order(db, order.id)


def test_hold_resume_complete(db, admission):
    order = _order(db, admission)
    order = ipd_orders.hold_order(db, order.id)
    assert order.status == "on_hold"
    with pytest.raises(Conflict):
        ipd_orders.hold_order(db, order.id)

    order = ipd_orders.resume_order(db, order.id)
    assert order.status == "active"

    order = ipd_orders.complete_order(db, order.id)
    assert order.status == "completed"
    assert order.completed_at is not None


@pytest.mark.parametrize("finish", ["complete", "cancel"])
def test_terminal_orders_stay_terminal(db, admission, finish):
    order = _order(db, admission)
    if finish == "complete":
        ipd_orders.complete_order(db, order.id)
    else:
        ipd_orders.cancel_order(db, order.id, actor_id=DOCTOR, reason="not needed")

    for action in (ipd_orders.hold_order, ipd_orders.resume_order,
                   ipd_orders.complete_order):
        with pytest.raises(Conflict) as exc:
            action(db, order.id)
        assert exc.value.entity == "doctor_order"
    with pytest.raises(Conflict):
        ipd_orders.cancel_order(db, order.id, actor_id=DOCTOR)


def test_cancel_stops_medication_schedule(db, medication_order):
    sched = ipd_medications.create_schedule(db,
                                            order_id=medication_order.id,
                                            medication_name="Paracetamol",
                                            dosage="500", unit="mg", route="oral",
                                            frequency="every 6 hours",
                                            duration_days=3)
    ipd_orders.cancel_order(db, medication_order.id, actor_id=DOCTOR)

    db.expire_all()
    sched = ipd_medications.get_schedule(db, sched.id)
    assert sched.status == "cancelled"
    assert sched.end_date is not None

    rows = (db.query(IpdMedicationAdministration)
            .filter(IpdMedicationAdministration.schedule_id == sched.id)
            .all())
    assert all(r.scheduled_time <= sched.end_date for r in rows)
    assert ipd_medications.materialize_due_tasks(db, schedule_id=sched.id) == 0


def test_list_orders_filters(db, admission):
    _order(db, admission)
    _order(db, admission, order_type="diet", description="soft diet")
    held = _order(db, admission, order_type="activity", description="bed rest")
    ipd_orders.hold_order(db, held.id)

    assert len(ipd_orders.list_orders(db, admission_id=admission.id)) == 3
    assert [o.description for o in ipd_orders.list_orders(db, status="on_hold")] == [
        "bed rest"]
    assert len(ipd_orders.list_orders(db, order_type="diet")) == 1
