# FILE: app/services/ipd_emergency.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.core.errors import ValidationFailed, illegal_transition, not_found
from app.db.session import rollback_on_error
from app.models.ipd_nursing import EVENT_SEVERITIES, IpdEmergencyEvent
from app.services import ipd_beds
from app.services.collaborators import (NotificationDispatch, PatientDirectory,
                                        safe_notify)
from app.services.ipd_admissions import require_active_admission
from app.utils.timezone import as_utc_seconds, utcnow

logger = logging.getLogger(__name__)

# (current status, action) -> next status; anything else is refused.
# acknowledge goes straight to in_progress, so "acknowledged" is only seen on
# rows stored in that state; they may still escalate or resolve.
TRANSITIONS = {
    ("reported", "acknowledge"): "in_progress",
    ("reported", "escalate"): "escalated",
    ("acknowledged", "escalate"): "escalated",
    ("acknowledged", "resolve"): "resolved",
    ("in_progress", "escalate"): "escalated",
    ("in_progress", "resolve"): "resolved",
    ("escalated", "resolve"): "resolved",
}

OPEN_STATUSES = ("reported", "acknowledged", "in_progress", "escalated")


def next_status(current: str, action: str) -> Optional[str]:
    return TRANSITIONS.get((current, action))


def _advance(event: IpdEmergencyEvent, action: str) -> str:
    target = next_status(event.status, action)
    if target is None:
        raise illegal_transition("emergency_event", event.id, event.status, action)
    previous = event.status
    event.status = target
    logger.info("emergency %s: %s -> %s", event.id, previous, target)
    return target


def _ids(values: Optional[Iterable[str]]) -> List[str]:
    out: List[str] = []
    for v in values or ():
        if v and v not in out:
            out.append(v)
    return out


def get_event(db: Session, event_id: str) -> IpdEmergencyEvent:
    ev = db.get(IpdEmergencyEvent, event_id)
    if not ev:
        raise not_found("emergency_event", event_id)
    return ev


def _lock_event(db: Session, event_id: str) -> IpdEmergencyEvent:
    ev = (db.query(IpdEmergencyEvent)
          .filter(IpdEmergencyEvent.id == event_id)
          .populate_existing()
          .with_for_update()
          .first())
    if not ev:
        raise not_found("emergency_event", event_id)
    return ev


def _payload(ev: IpdEmergencyEvent, kind: str) -> dict:
    return {
        "kind": kind,
        "event_id": ev.id,
        "event_type": ev.event_type,
        "severity": ev.severity,
        "patient_id": ev.patient_id,
        "admission_id": ev.admission_id,
        "location": ev.location,
        "status": ev.status,
    }


@rollback_on_error
def raise_event(db: Session,
                *,
                patient_id: str,
                reported_by_id: str,
                event_type: str,
                severity: str,
                description: str,
                patients: PatientDirectory,
                notifier: Optional[NotificationDispatch] = None,
                admission_id: Optional[str] = None,
                ward_id: Optional[str] = None,
                location: str = "",
                doctors_to_notify: Optional[Iterable[str]] = None,
                time_of_event: Optional[datetime] = None) -> IpdEmergencyEvent:
    if severity not in EVENT_SEVERITIES:
        raise ValidationFailed(f"Unknown severity '{severity}'",
                               entity="emergency_event",
                               attempted=severity)
    if not (event_type or "").strip() or not (description or "").strip():
        raise ValidationFailed("Event type and description are required",
                               entity="emergency_event",
                               attempted="raise")
    if not patients.exists(patient_id):
        raise not_found("patient", patient_id)

    if admission_id:
        adm = require_active_admission(db, admission_id)
        if adm.patient_id != patient_id:
            raise ValidationFailed("Admission belongs to a different patient",
                                   entity="admission",
                                   entity_id=admission_id,
                                   attempted="raise")
        ward_id = ward_id or adm.ward_id
    if ward_id:
        ipd_beds.get_ward(db, ward_id)

    now = utcnow()
    recipients = _ids(doctors_to_notify)
    ev = IpdEmergencyEvent(admission_id=admission_id,
                           ward_id=ward_id,
                           patient_id=patient_id,
                           reported_by_id=reported_by_id,
                           event_type=event_type.strip(),
                           severity=severity,
                           location=location or "",
                           description=description.strip(),
                           time_of_event=as_utc_seconds(time_of_event) or now,
                           doctors_notified_ids=recipients,
                           notified_at=now if recipients else None,
                           status="reported")
    db.add(ev)
    db.commit()
    db.refresh(ev)
    logger.warning("emergency %s raised: %s (%s) patient %s", ev.id,
                   ev.event_type, ev.severity, patient_id)

    if recipients:
        safe_notify(notifier, recipients, _payload(ev, "emergency.raised"))
    return ev


@rollback_on_error
def acknowledge_event(db: Session, event_id: str, *,
                      doctor_id: str) -> IpdEmergencyEvent:
    """Acknowledgement starts the response."""
    ev = _lock_event(db, event_id)
    _advance(ev, "acknowledge")
    ev.resolving_doctor_id = doctor_id
    ev.response_start_time = utcnow()
    db.commit()
    db.refresh(ev)
    return ev


@rollback_on_error
def escalate_event(db: Session,
                   event_id: str,
                   *,
                   reason: str,
                   escalated_to: Optional[Iterable[str]] = None,
                   notifier: Optional[NotificationDispatch] = None) -> IpdEmergencyEvent:
    if not (reason or "").strip():
        raise ValidationFailed("Escalation reason is required",
                               entity="emergency_event",
                               entity_id=event_id,
                               attempted="escalate")
    ev = _lock_event(db, event_id)
    _advance(ev, "escalate")
    targets = _ids(escalated_to)
    ev.escalation_reason = reason.strip()
    ev.escalated_to = targets
    ev.escalated_at = utcnow()
    db.commit()
    db.refresh(ev)

    if targets:
        payload = _payload(ev, "emergency.escalated")
        payload["reason"] = ev.escalation_reason
        safe_notify(notifier, targets, payload)
    return ev


@rollback_on_error
def resolve_event(db: Session,
                  event_id: str,
                  *,
                  outcome: str,
                  actions_taken: str = "",
                  doctor_id: Optional[str] = None,
                  follow_up_required: Optional[bool] = None,
                  follow_up_notes: Optional[str] = None) -> IpdEmergencyEvent:
    ev = _lock_event(db, event_id)
    _advance(ev, "resolve")

    now = utcnow()
    # escalated events can be resolved without a prior acknowledgement
    if ev.response_start_time is None:
        ev.response_start_time = ev.escalated_at or now
    ev.response_end_time = now
    ev.resolved_at = now
    ev.outcome = outcome
    ev.actions_taken = actions_taken or ""
    if doctor_id:
        ev.resolving_doctor_id = doctor_id
    if follow_up_required is not None:
        ev.follow_up_required = bool(follow_up_required)
    if follow_up_notes is not None:
        ev.follow_up_notes = follow_up_notes
    db.commit()
    db.refresh(ev)
    return ev


def list_events(db: Session,
                *,
                ward_id: Optional[str] = None,
                status: Optional[str] = None,
                severity: Optional[str] = None,
                admission_id: Optional[str] = None,
                patient_id: Optional[str] = None,
                open_only: bool = False) -> List[IpdEmergencyEvent]:
    q = db.query(IpdEmergencyEvent)
    if ward_id:
        q = q.filter(IpdEmergencyEvent.ward_id == ward_id)
    if status:
        q = q.filter(IpdEmergencyEvent.status == status)
    elif open_only:
        q = q.filter(IpdEmergencyEvent.status.in_(OPEN_STATUSES))
    if severity:
        q = q.filter(IpdEmergencyEvent.severity == severity)
    if admission_id:
        q = q.filter(IpdEmergencyEvent.admission_id == admission_id)
    if patient_id:
        q = q.filter(IpdEmergencyEvent.patient_id == patient_id)
    return q.order_by(IpdEmergencyEvent.time_of_event.desc()).all()
