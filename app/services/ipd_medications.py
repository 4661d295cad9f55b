# FILE: app/services/ipd_medications.py
"""
Medication schedules and the administration task stream.

A schedule is expanded into one `IpdMedicationAdministration` row per due
instant (natural key: schedule_id + scheduled_time). Rows are created by the
materializer over a rolling window: on read, on execute/skip and from the
periodic tick in `app.scripts.materialize_due_tasks`. Past instants nobody
acted on stay `pending` and read back as overdue.

Per-row state machine:

    pending -> administered | refused | held | delayed | not_given

Every non-pending status is final for that due instant.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (Conflict, ValidationFailed, illegal_transition,
                             not_found)
from app.db.session import rollback_on_error
from app.models.ipd import IpdAdmission
from app.models.ipd_orders import (ADMIN_STATUSES, OMISSION_STATUSES,
                                   IpdDoctorOrder,
                                   IpdMedicationAdministration,
                                   IpdMedicationSchedule)
from app.services.ipd_admissions import require_active_admission
from app.services.ipd_orders import (close_schedule, get_order, pause_schedule,
                                     resume_schedule)
from app.services.medication_frequency import (due_instants, is_due_instant,
                                               parse_frequency)
from app.utils.timezone import as_utc_seconds, utcnow

logger = logging.getLogger(__name__)

_SCHEDULE_MOVES = {
    "active": ("paused", "completed", "cancelled"),
    "paused": ("active", "completed", "cancelled"),
}

MATERIALIZE_ATTEMPTS = 5


# --------------------------
# Schedules
# --------------------------
def get_schedule(db: Session, schedule_id: str) -> IpdMedicationSchedule:
    sched = db.get(IpdMedicationSchedule, schedule_id)
    if not sched:
        raise not_found("medication_schedule", schedule_id)
    return sched


def list_schedules(db: Session,
                   *,
                   admission_id: Optional[str] = None,
                   status: Optional[str] = None) -> List[IpdMedicationSchedule]:
    q = db.query(IpdMedicationSchedule)
    if admission_id:
        q = q.filter(IpdMedicationSchedule.admission_id == admission_id)
    if status:
        q = q.filter(IpdMedicationSchedule.status == status)
    return q.order_by(IpdMedicationSchedule.start_date.asc()).all()


@rollback_on_error
def create_schedule(db: Session,
                    *,
                    order_id: str,
                    medication_name: str,
                    dosage: str,
                    unit: str,
                    route: str,
                    frequency: str,
                    start_date: Optional[datetime] = None,
                    end_date: Optional[datetime] = None,
                    duration_days: Optional[int] = None,
                    special_instructions: str = "",
                    contraindications: str = "",
                    allergies_to_check: str = "",
                    requires_monitoring: bool = False,
                    monitoring_parameters: str = "",
                    prescribing_doctor_id: Optional[str] = None,
                    now: Optional[datetime] = None) -> IpdMedicationSchedule:
    order = get_order(db, order_id)
    if order.order_type != "medication":
        raise ValidationFailed(f"Order {order.id} is a {order.order_type} order",
                               entity="doctor_order",
                               entity_id=order.id,
                               attempted="schedule")
    if not order.schedulable:
        raise illegal_transition("doctor_order", order.id,
                                 f"{order.status}/{order.approval_status}",
                                 "schedule")
    adm = require_active_admission(db, order.admission_id)

    existing = (db.query(IpdMedicationSchedule.id)
                .filter(IpdMedicationSchedule.doctor_order_id == order.id)
                .first())
    if existing:
        raise Conflict(f"Order {order.id} already has a medication schedule",
                       entity="medication_schedule",
                       entity_id=existing[0],
                       current="exists",
                       attempted="create")

    parse_frequency(frequency)
    start = as_utc_seconds(start_date) or order.order_date
    end = as_utc_seconds(end_date)
    if end is not None and end <= start:
        raise ValidationFailed("End date must be after start date",
                               entity="medication_schedule",
                               attempted="create")
    if duration_days is not None and duration_days < 1:
        raise ValidationFailed("Duration must be at least one day",
                               entity="medication_schedule",
                               attempted="create")

    sched = IpdMedicationSchedule(
        doctor_order_id=order.id,
        admission_id=adm.id,
        medication_name=medication_name.strip(),
        dosage=dosage,
        unit=unit,
        route=route,
        frequency=frequency.strip(),
        start_date=start,
        end_date=end,
        duration_days=duration_days,
        special_instructions=special_instructions or "",
        contraindications=contraindications or "",
        allergies_to_check=allergies_to_check or "",
        requires_monitoring=bool(requires_monitoring),
        monitoring_parameters=monitoring_parameters or "",
        prescribing_doctor_id=prescribing_doctor_id or order.doctor_id,
        prescribed_at=utcnow(),
        status="active",
    )
    db.add(sched)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(f"Order {order_id} already has a medication schedule",
                       entity="medication_schedule",
                       current="exists",
                       attempted="create")
    db.refresh(sched)
    logger.info("schedule %s: %s %s %s %s", sched.id, sched.medication_name,
                sched.dosage, sched.unit, sched.frequency)

    materialize_due_tasks(db, schedule_id=sched.id, now=now)
    return sched


@rollback_on_error
def set_schedule_status(db: Session, schedule_id: str,
                        status: str) -> IpdMedicationSchedule:
    sched = get_schedule(db, schedule_id)
    if status not in _SCHEDULE_MOVES.get(sched.status, ()):
        raise illegal_transition("medication_schedule", sched.id, sched.status,
                                 f"set {status} on")

    if status == "active":
        order = get_order(db, sched.doctor_order_id)
        if not order.schedulable:
            raise illegal_transition("doctor_order", order.id, order.status,
                                     "resume schedule of")
        resume_schedule(sched)
    elif status == "paused":
        pause_schedule(db, sched)
    else:
        close_schedule(db, sched, status)

    db.commit()
    db.refresh(sched)
    logger.info("schedule %s -> %s", sched.id, sched.status)
    return sched


# --------------------------
# Materializer
# --------------------------
def _window_for(sched: IpdMedicationSchedule, until: datetime) -> List[datetime]:
    instants = due_instants(sched.frequency,
                            sched.start_date,
                            end=sched.end_date,
                            duration_days=sched.duration_days,
                            until=until)
    if sched.resumed_at is not None:
        instants = [t for t in instants if t >= sched.resumed_at]
    return instants


def _materialize(db: Session,
                 schedule_id: Optional[str],
                 admission_id: Optional[str],
                 until: datetime) -> int:
    q = (db.query(IpdMedicationSchedule)
         .join(IpdAdmission, IpdAdmission.id == IpdMedicationSchedule.admission_id)
         .join(IpdDoctorOrder, IpdDoctorOrder.id == IpdMedicationSchedule.doctor_order_id)
         .filter(IpdMedicationSchedule.status == "active",
                 IpdAdmission.status == "active",
                 IpdDoctorOrder.status == "active"))
    if schedule_id:
        q = q.filter(IpdMedicationSchedule.id == schedule_id)
    if admission_id:
        q = q.filter(IpdMedicationSchedule.admission_id == admission_id)

    created = 0
    for sched in q.all():
        wanted = _window_for(sched, until)
        if not wanted:
            continue
        have = {
            t for (t,) in db.query(IpdMedicationAdministration.scheduled_time)
            .filter(IpdMedicationAdministration.schedule_id == sched.id)
            .all()
        }
        for t in wanted:
            if t in have:
                continue
            db.add(IpdMedicationAdministration(
                schedule_id=sched.id,
                admission_id=sched.admission_id,
                medication_name=sched.medication_name,
                scheduled_time=t,
                status="pending",
            ))
            created += 1
    db.commit()
    return created


def materialize_due_tasks(db: Session,
                          *,
                          schedule_id: Optional[str] = None,
                          admission_id: Optional[str] = None,
                          now: Optional[datetime] = None,
                          horizon_hours: Optional[int] = None) -> int:
    """
    Create the pending rows for every due instant up to now + horizon.
    Safe to run any number of times, concurrently included: the unique
    (schedule_id, scheduled_time) key rejects a racing duplicate and the
    pass is simply re-run against the winner's rows.
    """
    now = as_utc_seconds(now) or utcnow()
    hours = (settings.MED_MATERIALIZE_HORIZON_HOURS
             if horizon_hours is None else horizon_hours)
    until = now + timedelta(hours=hours)

    attempt = 1
    while True:
        try:
            created = _materialize(db, schedule_id, admission_id, until)
            break
        except IntegrityError:
            db.rollback()
            # each lost race means another writer committed rows; re-read them
            if attempt >= MATERIALIZE_ATTEMPTS:
                raise
            attempt += 1
            logger.info("materializer lost a race, re-running (attempt %d)", attempt)

    if created:
        logger.info("materialized %d task(s) up to %s", created, until.isoformat())
    return created


# --------------------------
# Execution / omission
# --------------------------
def get_administration(db: Session, administration_id: str) -> IpdMedicationAdministration:
    rec = db.get(IpdMedicationAdministration, administration_id)
    if not rec:
        raise not_found("medication_administration", administration_id)
    return rec


def _lock_administration(db: Session,
                         administration_id: str) -> IpdMedicationAdministration:
    rec = (db.query(IpdMedicationAdministration)
           .filter(IpdMedicationAdministration.id == administration_id)
           .populate_existing()
           .with_for_update()
           .first())
    if not rec:
        raise not_found("medication_administration", administration_id)
    return rec


def _require_open(db: Session, sched: IpdMedicationSchedule, action: str) -> None:
    if sched.status != "active":
        raise illegal_transition("medication_schedule", sched.id, sched.status,
                                 action)
    order = get_order(db, sched.doctor_order_id)
    if not order.schedulable:
        raise illegal_transition("doctor_order", order.id, order.status, action)
    require_active_admission(db, sched.admission_id)


def _require_pending(rec: IpdMedicationAdministration, action: str) -> None:
    if rec.status != "pending":
        raise Conflict(f"Dose already {rec.status.replace('_', ' ')}",
                       entity="medication_administration",
                       entity_id=rec.id,
                       current=rec.status,
                       attempted=action)


def _locate_pending(db: Session,
                    *,
                    schedule_id: Optional[str],
                    administration_id: Optional[str],
                    due_at: Optional[datetime],
                    action: str,
                    now: datetime) -> Tuple[IpdMedicationSchedule,
                                            IpdMedicationAdministration]:
    """
    Resolve the task a nurse is acting on, either by its id or by
    (schedule, due instant). A due instant that was never materialized
    (PRN, beyond the window) gets its row created here.
    """
    if administration_id:
        rec = _lock_administration(db, administration_id)
        if schedule_id and schedule_id != rec.schedule_id:
            raise ValidationFailed("Administration does not belong to this schedule",
                                   entity="medication_administration",
                                   entity_id=rec.id,
                                   attempted=action)
        _require_pending(rec, action)
        sched = get_schedule(db, rec.schedule_id)
        _require_open(db, sched, action)
        return sched, rec

    if not schedule_id:
        raise ValidationFailed("schedule_id or administration_id is required",
                               entity="medication_administration",
                               attempted=action)

    sched = get_schedule(db, schedule_id)
    _require_open(db, sched, action)
    freq = parse_frequency(sched.frequency)

    due = as_utc_seconds(due_at)
    if due is None:
        if freq.is_prn:
            due = now
        elif freq.is_once:
            due = sched.start_date
        else:
            raise ValidationFailed("due_at is required for a scheduled dose",
                                   entity="medication_schedule",
                                   entity_id=sched.id,
                                   attempted=action)

    if not is_due_instant(freq, sched.start_date, due,
                          end=sched.end_date,
                          duration_days=sched.duration_days):
        raise ValidationFailed(f"{due.isoformat()} is not a due time of this schedule",
                               entity="medication_schedule",
                               entity_id=sched.id,
                               attempted=action)

    if not freq.is_prn:
        materialize_due_tasks(db, schedule_id=sched.id, now=now)

    rec = (db.query(IpdMedicationAdministration)
           .filter(IpdMedicationAdministration.schedule_id == sched.id,
                   IpdMedicationAdministration.scheduled_time == due)
           .populate_existing()
           .with_for_update()
           .first())
    if rec is None:
        rec = IpdMedicationAdministration(schedule_id=sched.id,
                                          admission_id=sched.admission_id,
                                          medication_name=sched.medication_name,
                                          scheduled_time=due,
                                          status="pending")
        db.add(rec)
    else:
        _require_pending(rec, action)
    return sched, rec


def _commit_task(db: Session, rec: IpdMedicationAdministration, action: str) -> None:
    try:
        db.commit()
    except IntegrityError:
        # another writer created the same due instant first
        db.rollback()
        raise Conflict("Dose was recorded concurrently",
                       entity="medication_administration",
                       attempted=action)
    db.refresh(rec)


@rollback_on_error
def execute_medication(db: Session,
                       *,
                       nurse_id: str,
                       schedule_id: Optional[str] = None,
                       administration_id: Optional[str] = None,
                       due_at: Optional[datetime] = None,
                       actual_dosage: Optional[str] = None,
                       route_used: Optional[str] = None,
                       site_of_administration: Optional[str] = None,
                       batch_number: Optional[str] = None,
                       expiry_date: Optional[datetime] = None,
                       nurse_notes: Optional[str] = None,
                       patient_response: Optional[str] = None,
                       side_effects_observed: bool = False,
                       side_effects_details: Optional[str] = None,
                       now: Optional[datetime] = None) -> IpdMedicationAdministration:
    now = as_utc_seconds(now) or utcnow()
    sched, rec = _locate_pending(db,
                                 schedule_id=schedule_id,
                                 administration_id=administration_id,
                                 due_at=due_at,
                                 action="execute",
                                 now=now)

    rec.status = "administered"
    rec.administered_time = now
    rec.administered_by_id = nurse_id
    rec.actual_dosage = actual_dosage or f"{sched.dosage} {sched.unit}"
    rec.route_used = route_used or sched.route
    rec.site_of_administration = site_of_administration
    rec.batch_number = batch_number
    rec.expiry_date = as_utc_seconds(expiry_date)
    rec.nurse_notes = nurse_notes
    rec.patient_response = patient_response
    rec.side_effects_observed = bool(side_effects_observed)
    rec.side_effects_details = side_effects_details

    _commit_task(db, rec, "execute")
    logger.info("dose %s of %s administered by %s (due %s)", rec.id,
                sched.medication_name, nurse_id, rec.scheduled_time.isoformat())
    return rec


@rollback_on_error
def record_omission(db: Session,
                    *,
                    nurse_id: str,
                    status: str,
                    reason: str,
                    schedule_id: Optional[str] = None,
                    administration_id: Optional[str] = None,
                    due_at: Optional[datetime] = None,
                    nurse_notes: Optional[str] = None,
                    now: Optional[datetime] = None) -> IpdMedicationAdministration:
    """Close one due instant without giving the dose; others are untouched."""
    if status not in OMISSION_STATUSES:
        raise ValidationFailed(f"'{status}' is not an omission status",
                               entity="medication_administration",
                               attempted=status)
    if not (reason or "").strip():
        raise ValidationFailed("A reason is required when a dose is not given",
                               entity="medication_administration",
                               attempted=status)

    now = as_utc_seconds(now) or utcnow()
    sched, rec = _locate_pending(db,
                                 schedule_id=schedule_id,
                                 administration_id=administration_id,
                                 due_at=due_at,
                                 action=status,
                                 now=now)
    rec.status = status
    rec.reason_if_not_given = reason.strip()
    rec.administered_by_id = nurse_id
    if nurse_notes:
        rec.nurse_notes = nurse_notes

    _commit_task(db, rec, status)
    logger.info("dose %s of %s marked %s by %s", rec.id, sched.medication_name,
                status, nurse_id)
    return rec


def skip_medication(db: Session,
                    *,
                    nurse_id: str,
                    reason: str,
                    schedule_id: Optional[str] = None,
                    administration_id: Optional[str] = None,
                    due_at: Optional[datetime] = None,
                    now: Optional[datetime] = None) -> IpdMedicationAdministration:
    return record_omission(db,
                           nurse_id=nurse_id,
                           status="not_given",
                           reason=reason,
                           schedule_id=schedule_id,
                           administration_id=administration_id,
                           due_at=due_at,
                           now=now)


@rollback_on_error
def verify_administration(db: Session,
                          administration_id: str,
                          *,
                          verifier_id: str,
                          accepted: bool = True,
                          notes: Optional[str] = None) -> IpdMedicationAdministration:
    """
    Second-actor check of a given dose. A rejection is stored for quality
    review; the dose stays administered.
    """
    rec = _lock_administration(db, administration_id)
    if rec.status != "administered":
        raise illegal_transition("medication_administration", rec.id, rec.status,
                                 "verify")
    if rec.verified_by_id:
        raise Conflict(f"Administration {rec.id} already verified",
                       entity="medication_administration",
                       entity_id=rec.id,
                       current="verified",
                       attempted="verify")
    if verifier_id == rec.administered_by_id:
        raise ValidationFailed("Verifier must differ from the administering nurse",
                               entity="medication_administration",
                               entity_id=rec.id,
                               attempted="verify")

    rec.verified_by_id = verifier_id
    rec.verified_at = utcnow()
    rec.verification_accepted = bool(accepted)
    rec.verification_notes = notes
    db.commit()
    db.refresh(rec)
    logger.info("dose %s verified by %s (accepted=%s)", rec.id, verifier_id,
                rec.verification_accepted)
    return rec


# --------------------------
# Read side
# --------------------------
def list_administrations(db: Session,
                         *,
                         admission_id: Optional[str] = None,
                         schedule_id: Optional[str] = None,
                         status: Optional[str] = None,
                         overdue_only: bool = False,
                         now: Optional[datetime] = None,
                         materialize: bool = True) -> List[IpdMedicationAdministration]:
    now = as_utc_seconds(now) or utcnow()
    if status and status not in ADMIN_STATUSES:
        raise ValidationFailed(f"Unknown administration status '{status}'",
                               entity="medication_administration",
                               attempted=status)
    if materialize:
        materialize_due_tasks(db, schedule_id=schedule_id,
                              admission_id=admission_id, now=now)

    q = db.query(IpdMedicationAdministration)
    if admission_id:
        q = q.filter(IpdMedicationAdministration.admission_id == admission_id)
    if schedule_id:
        q = q.filter(IpdMedicationAdministration.schedule_id == schedule_id)
    if overdue_only:
        q = q.filter(IpdMedicationAdministration.status == "pending",
                     IpdMedicationAdministration.scheduled_time < now)
    elif status:
        q = q.filter(IpdMedicationAdministration.status == status)
    return q.order_by(IpdMedicationAdministration.scheduled_time.asc(),
                      IpdMedicationAdministration.id.asc()).all()


def compliance_summary(db: Session,
                       admission_id: str,
                       now: Optional[datetime] = None) -> Dict[str, Any]:
    """Numbers the quality-metrics reader pulls per admission."""
    now = as_utc_seconds(now) or utcnow()
    rows = list_administrations(db, admission_id=admission_id, now=now)

    by_status = {s: 0 for s in ADMIN_STATUSES}
    due = overdue = late = verified = rejected = 0
    for r in rows:
        by_status[r.status] = by_status.get(r.status, 0) + 1
        if r.scheduled_time <= now:
            due += 1
        if r.status == "pending" and r.scheduled_time < now:
            overdue += 1
        if r.was_overdue:
            late += 1
        if r.verified_by_id:
            verified += 1
            if r.verification_accepted is False:
                rejected += 1

    given = by_status["administered"]
    return {
        "admission_id": admission_id,
        "total": len(rows),
        "due_so_far": due,
        "by_status": by_status,
        "overdue": overdue,
        "late": late,
        "verified": verified,
        "rejected_verifications": rejected,
        "compliance_rate": round(given * 100 / due) if due else 0,
    }
