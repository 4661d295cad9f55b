from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import Conflict, ValidationFailed
from app.models.ipd_orders import IpdMedicationAdministration
from app.services import ipd_admissions, ipd_medications, ipd_orders
from app.utils.timezone import utcnow

from conftest import DOCTOR, NURSE, NURSE_2

START = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)
H = timedelta(hours=1)


def _schedule(db, order, **kw):
    kw.setdefault("frequency", "twice daily")
    kw.setdefault("start_date", START)
    kw.setdefault("duration_days", 3)
    kw.setdefault("now", kw["start_date"])
    return ipd_medications.create_schedule(db,
                                           order_id=order.id,
                                           medication_name="Paracetamol",
                                           dosage="500",
                                           unit="mg",
                                           route="oral",
                                           **kw)


def _rows(db, sched):
    return (db.query(IpdMedicationAdministration)
            .filter(IpdMedicationAdministration.schedule_id == sched.id)
            .order_by(IpdMedicationAdministration.scheduled_time)
            .all())


def test_twice_daily_materializes_six_doses(db, medication_order):
    sched = _schedule(db, medication_order)
    assert sched.status == "active"
    assert sched.prescribing_doctor_id == DOCTOR

    # first pass only reaches now + 48h
    assert [r.scheduled_time for r in _rows(db, sched)] == [
        START + h * H for h in (0, 12, 24, 36, 48)]

    created = ipd_medications.materialize_due_tasks(db, schedule_id=sched.id,
                                                    now=START + 72 * H)
    assert created == 1
    rows = _rows(db, sched)
    assert len(rows) == 6
    assert {r.status for r in rows} == {"pending"}
    assert {r.medication_name for r in rows} == {"Paracetamol"}


def test_materializer_is_idempotent(db, medication_order):
    sched = _schedule(db, medication_order)
    for _ in range(3):
        ipd_medications.materialize_due_tasks(db, now=START + 100 * H)
    assert len(_rows(db, sched)) == 6
    assert ipd_medications.materialize_due_tasks(db, now=START + 100 * H) == 0


def test_execute_due_instant(db, medication_order):
    sched = _schedule(db, medication_order)
    rec = ipd_medications.execute_medication(db, nurse_id=NURSE,
                                             schedule_id=sched.id,
                                             due_at=START, now=START,
                                             batch_number="LOT-7")
    assert rec.status == "administered"
    assert rec.administered_by_id == NURSE
    assert rec.actual_dosage == "500 mg"
    assert rec.route_used == "oral"
    assert rec.was_overdue is False

    with pytest.raises(Conflict) as exc:
        ipd_medications.execute_medication(db, nurse_id=NURSE_2,
                                           schedule_id=sched.id,
                                           due_at=START, now=START + H)
    assert str(exc.value) == "Dose already administered"

    # the rest of the stream is untouched
    assert [r.status for r in _rows(db, sched)][1:] == ["pending"] * 4


def test_execute_by_administration_id(db, medication_order):
    sched = _schedule(db, medication_order)
    second = _rows(db, sched)[1]
    rec = ipd_medications.execute_medication(db, nurse_id=NURSE,
                                             administration_id=second.id,
                                             now=START + 14 * H)
    assert rec.id == second.id
    assert rec.was_overdue is True


def test_execute_requires_a_due_instant(db, medication_order):
    sched = _schedule(db, medication_order)
    with pytest.raises(ValidationFailed):
        ipd_medications.execute_medication(db, nurse_id=NURSE,
                                           schedule_id=sched.id,
                                           now=START)
    with pytest.raises(ValidationFailed):
        ipd_medications.execute_medication(db, nurse_id=NURSE,
                                           schedule_id=sched.id,
                                           due_at=START + 5 * H, now=START)
    with pytest.raises(ValidationFailed):
        ipd_medications.execute_medication(db, nurse_id=NURSE,
                                           schedule_id=sched.id,
                                           due_at=START + 72 * H, now=START)


def test_overdue_listing(db, medication_order):
    sched = _schedule(db, medication_order)
    now = START + 13 * H
    overdue = ipd_medications.list_administrations(db, schedule_id=sched.id,
                                                   overdue_only=True, now=now)
    assert [r.scheduled_time for r in overdue] == [START, START + 12 * H]

    ipd_medications.execute_medication(db, nurse_id=NURSE, schedule_id=sched.id,
                                       due_at=START + 12 * H, now=now)
    overdue = ipd_medications.list_administrations(db, schedule_id=sched.id,
                                                   overdue_only=True, now=now)
    assert [r.scheduled_time for r in overdue] == [START]


def test_skip_and_omissions_are_final(db, medication_order):
    sched = _schedule(db, medication_order)
    rec = ipd_medications.skip_medication(db, nurse_id=NURSE,
                                          schedule_id=sched.id,
                                          due_at=START, reason="NPO for scan",
                                          now=START)
    assert rec.status == "not_given"
    assert rec.reason_if_not_given == "NPO for scan"

    refused = ipd_medications.record_omission(db, nurse_id=NURSE,
                                              status="refused",
                                              reason="patient declined",
                                              schedule_id=sched.id,
                                              due_at=START + 12 * H,
                                              now=START + 12 * H)
    assert refused.status == "refused"

    with pytest.raises(Conflict):
        ipd_medications.execute_medication(db, nurse_id=NURSE,
                                           schedule_id=sched.id,
                                           due_at=START, now=START)


def test_omission_input_checks(db, medication_order):
    sched = _schedule(db, medication_order)
    with pytest.raises(ValidationFailed):
        ipd_medications.record_omission(db, nurse_id=NURSE, status="administered",
                                        reason="x", schedule_id=sched.id,
                                        due_at=START, now=START)
    with pytest.raises(ValidationFailed):
        ipd_medications.skip_medication(db, nurse_id=NURSE, reason="  ",
                                        schedule_id=sched.id, due_at=START,
                                        now=START)


def test_verification_rules(db, medication_order):
    sched = _schedule(db, medication_order)
    pending = _rows(db, sched)[1]
    with pytest.raises(Conflict):
        ipd_medications.verify_administration(db, pending.id, verifier_id=NURSE_2)

    rec = ipd_medications.execute_medication(db, nurse_id=NURSE,
                                             schedule_id=sched.id,
                                             due_at=START, now=START)
    with pytest.raises(ValidationFailed):
        ipd_medications.verify_administration(db, rec.id, verifier_id=NURSE)

    rec = ipd_medications.verify_administration(db, rec.id, verifier_id=NURSE_2,
                                                accepted=False,
                                                notes="wrong site recorded")
    assert rec.status == "administered"
    assert rec.verified_by_id == NURSE_2
    assert rec.verification_accepted is False

    with pytest.raises(Conflict):
        ipd_medications.verify_administration(db, rec.id, verifier_id=DOCTOR)


def test_prn_doses_are_recorded_on_demand(db, medication_order):
    sched = _schedule(db, medication_order, frequency="as needed")
    assert _rows(db, sched) == []

    first = ipd_medications.execute_medication(db, nurse_id=NURSE,
                                               schedule_id=sched.id,
                                               now=START + 3 * H)
    second = ipd_medications.execute_medication(db, nurse_id=NURSE,
                                                schedule_id=sched.id,
                                                now=START + 9 * H)
    assert first.scheduled_time == START + 3 * H
    assert second.scheduled_time == START + 9 * H
    assert [r.status for r in _rows(db, sched)] == ["administered"] * 2


def test_stat_dose(db, medication_order):
    sched = _schedule(db, medication_order, frequency="stat", duration_days=None)
    assert [r.scheduled_time for r in _rows(db, sched)] == [START]
    rec = ipd_medications.execute_medication(db, nurse_id=NURSE,
                                             schedule_id=sched.id,
                                             now=START + H)
    assert rec.scheduled_time == START
    assert ipd_medications.materialize_due_tasks(db, now=START + 99 * H) == 0


def test_pause_and_resume(db, medication_order):
    start = utcnow().replace(minute=0, second=0) - H
    sched = _schedule(db, medication_order, frequency="every 6 hours",
                      start_date=start, duration_days=None, end_date=start + 96 * H,
                      now=None)
    assert len(_rows(db, sched)) > 1

    sched = ipd_medications.set_schedule_status(db, sched.id, "paused")
    assert [r.scheduled_time for r in _rows(db, sched)] == [start]
    assert ipd_medications.materialize_due_tasks(db, schedule_id=sched.id) == 0
    with pytest.raises(Conflict):
        ipd_medications.execute_medication(db, nurse_id=NURSE,
                                           schedule_id=sched.id, due_at=start)
    with pytest.raises(Conflict):
        ipd_medications.set_schedule_status(db, sched.id, "paused")

    sched = ipd_medications.set_schedule_status(db, sched.id, "active")
    assert sched.resumed_at is not None
    ipd_medications.materialize_due_tasks(db, schedule_id=sched.id)
    later = [r.scheduled_time for r in _rows(db, sched)][1:]
    assert later
    assert all(t >= sched.resumed_at for t in later)


def test_resume_needs_schedulable_order(db, medication_order):
    sched = _schedule(db, medication_order)
    ipd_medications.set_schedule_status(db, sched.id, "paused")
    ipd_orders.hold_order(db, medication_order.id)
    with pytest.raises(Conflict):
        ipd_medications.set_schedule_status(db, sched.id, "active")


def test_held_order_pauses_its_doses(db, medication_order):
    sched = _schedule(db, medication_order)
    ipd_orders.hold_order(db, medication_order.id)
    assert ipd_medications.get_schedule(db, sched.id).status == "paused"

    with pytest.raises(Conflict):
        ipd_medications.execute_medication(db, nurse_id=NURSE, schedule_id=sched.id,
                                           due_at=START + 12 * H, now=START + 12 * H)
    assert ipd_medications.materialize_due_tasks(db, now=START + 72 * H) == 0
    assert {r.status for r in _rows(db, sched)} == {"pending"}

    ipd_orders.resume_order(db, medication_order.id)
    sched = ipd_medications.get_schedule(db, sched.id)
    assert sched.status == "active"
    assert sched.resumed_at is not None
    rec = ipd_medications.execute_medication(db, nurse_id=NURSE, schedule_id=sched.id,
                                             due_at=START + 12 * H, now=START + 12 * H)
    assert rec.status == "administered"


def test_schedule_with_held_order_refuses_doses(db, medication_order):
    # a schedule left active while its order is held still refuses doses
    sched = _schedule(db, medication_order)
    ipd_orders.hold_order(db, medication_order.id)
    sched = ipd_medications.get_schedule(db, sched.id)
    sched.status = "active"
    db.commit()

    with pytest.raises(Conflict) as exc:
        ipd_medications.execute_medication(db, nurse_id=NURSE, schedule_id=sched.id,
                                           due_at=START, now=START)
    assert exc.value.entity == "doctor_order"
    assert exc.value.current == "on_hold"
    assert ipd_medications.materialize_due_tasks(db, now=START + 72 * H) == 0


def test_completed_schedule_is_terminal(db, medication_order):
    sched = _schedule(db, medication_order)
    ipd_medications.set_schedule_status(db, sched.id, "completed")
    with pytest.raises(Conflict):
        ipd_medications.set_schedule_status(db, sched.id, "active")


def test_compliance_summary(db, medication_order, admission):
    sched = _schedule(db, medication_order)
    ipd_medications.execute_medication(db, nurse_id=NURSE, schedule_id=sched.id,
                                       due_at=START, now=START)
    ipd_medications.skip_medication(db, nurse_id=NURSE, schedule_id=sched.id,
                                    due_at=START + 12 * H, reason="vomiting",
                                    now=START + 12 * H)

    s = ipd_medications.compliance_summary(db, admission.id, now=START + 30 * H)
    assert s["total"] == 6
    assert s["due_so_far"] == 3
    assert s["overdue"] == 1
    assert s["by_status"]["administered"] == 1
    assert s["by_status"]["not_given"] == 1
    assert s["by_status"]["pending"] == 4
    assert s["late"] == 0
    assert s["compliance_rate"] == 33


def test_schedule_creation_errors(db, admission, medication_order):
    lab = ipd_orders.create_order(db, admission_id=admission.id, doctor_id=DOCTOR,
                                  order_type="investigation", description="LFT")
    with pytest.raises(ValidationFailed):
        _schedule(db, lab)
    with pytest.raises(ValidationFailed):
        _schedule(db, medication_order, frequency="whenever")
    with pytest.raises(ValidationFailed):
        _schedule(db, medication_order, end_date=START - H)

    _schedule(db, medication_order)
    with pytest.raises(Conflict):
        _schedule(db, medication_order)

    gated = ipd_orders.create_order(db, admission_id=admission.id, doctor_id=DOCTOR,
                                    order_type="medication",
                                    description="Morphine 2mg IV",
                                    approvals_required=True)
    with pytest.raises(Conflict):
        _schedule(db, gated)


def test_discharge_stops_the_stream(db, medication_order, admission):
    sched = _schedule(db, medication_order)
    ipd_admissions.discharge(db, admission.id)
    assert ipd_medications.materialize_due_tasks(db, now=START + 99 * H) == 0
    with pytest.raises(Conflict):
        ipd_medications.execute_medication(db, nurse_id=NURSE,
                                           schedule_id=sched.id,
                                           due_at=START + 12 * H, now=START)
