# FILE: app/api/routes_ipd_nursing.py
from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import (Actor, get_audit, get_db, get_notifier,
                          get_patient_directory, require)
from app.core import policy
from app.schemas.ipd_nursing import (
    EmergencyIn,
    EmergencyOut,
    EscalateIn,
    NurseAssignmentIn,
    NurseAssignmentOut,
    NurseAssignmentUpdate,
    ResolveIn,
    VitalsIn,
    VitalsOut,
)
from app.services import audit_descriptors as audit
from app.services import ipd_emergency, ipd_nurse_assignments, ipd_vitals
from app.services.audit_logger import AuditInterceptor
from app.services.collaborators import NotificationDispatch, PatientDirectory

router = APIRouter(tags=["IPD Nursing"])


# ---------------------------------------------------------------------
# Vitals
# ---------------------------------------------------------------------
@router.post("/vitals", response_model=VitalsOut, status_code=201)
def record_vitals(
    payload: VitalsIn,
    db: Session = Depends(get_db),
    notifier: NotificationDispatch = Depends(get_notifier),
    actor: Actor = Depends(require(policy.VITALS_RECORD)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.VITALS_RECORD, actor.id, ipd_vitals.record_vitals, db,
                       nurse_id=actor.id,
                       notifier=notifier,
                       **payload.model_dump(exclude_none=True))


@router.get("/admissions/{admission_id}/vitals", response_model=List[VitalsOut])
def list_vitals(
    admission_id: str,
    abnormal_only: bool = Query(False),
    limit: Optional[int] = Query(None, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_vitals.list_vitals(db, admission_id,
                                  abnormal_only=abnormal_only,
                                  limit=limit)


@router.get("/admissions/{admission_id}/vitals/latest",
            response_model=Optional[VitalsOut])
def latest_vitals(
    admission_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_vitals.latest_vitals(db, admission_id)


# ---------------------------------------------------------------------
# Emergency events
# ---------------------------------------------------------------------
@router.post("/emergencies", response_model=EmergencyOut, status_code=201)
def raise_event(
    payload: EmergencyIn,
    db: Session = Depends(get_db),
    patients: PatientDirectory = Depends(get_patient_directory),
    notifier: NotificationDispatch = Depends(get_notifier),
    actor: Actor = Depends(require(policy.EVENT_RAISE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.EVENT_RAISE, actor.id, ipd_emergency.raise_event, db,
                       reported_by_id=actor.id,
                       patients=patients,
                       notifier=notifier,
                       **payload.model_dump())


@router.get("/emergencies", response_model=List[EmergencyOut])
def list_events(
    ward_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    severity: Optional[str] = Query(None),
    admission_id: Optional[str] = Query(None),
    patient_id: Optional[str] = Query(None),
    open_only: bool = Query(False),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_emergency.list_events(db,
                                     ward_id=ward_id,
                                     status=status,
                                     severity=severity,
                                     admission_id=admission_id,
                                     patient_id=patient_id,
                                     open_only=open_only)


@router.get("/emergencies/{event_id}", response_model=EmergencyOut)
def get_event(
    event_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_emergency.get_event(db, event_id)


@router.post("/emergencies/{event_id}/acknowledge", response_model=EmergencyOut)
def acknowledge_event(
    event_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.EVENT_ACK)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.EVENT_ACK, actor.id, ipd_emergency.acknowledge_event,
                       db, event_id, doctor_id=actor.id)


@router.post("/emergencies/{event_id}/escalate", response_model=EmergencyOut)
def escalate_event(
    event_id: str,
    payload: EscalateIn,
    db: Session = Depends(get_db),
    notifier: NotificationDispatch = Depends(get_notifier),
    actor: Actor = Depends(require(policy.EVENT_ESCALATE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.EVENT_ESCALATE, actor.id,
                       ipd_emergency.escalate_event, db, event_id,
                       reason=payload.reason,
                       escalated_to=payload.escalated_to,
                       notifier=notifier)


@router.post("/emergencies/{event_id}/resolve", response_model=EmergencyOut)
def resolve_event(
    event_id: str,
    payload: ResolveIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.EVENT_RESOLVE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.EVENT_RESOLVE, actor.id, ipd_emergency.resolve_event,
                       db, event_id,
                       doctor_id=actor.id,
                       **payload.model_dump())


# ---------------------------------------------------------------------
# Nurse assignments
# ---------------------------------------------------------------------
@router.post("/nurse-assignments", response_model=NurseAssignmentOut,
             status_code=201)
def create_nurse_assignment(
    payload: NurseAssignmentIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.NURSE_ASSIGN)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.NURSE_ASSIGN, actor.id,
                       ipd_nurse_assignments.create_assignment, db,
                       assigned_by_id=actor.id,
                       **payload.model_dump())


@router.get("/nurse-assignments", response_model=List[NurseAssignmentOut])
def list_nurse_assignments(
    ward_id: Optional[str] = Query(None),
    nurse_id: Optional[str] = Query(None),
    shift_date: Optional[date] = Query(None),
    active_only: bool = Query(True),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_nurse_assignments.list_assignments(db,
                                                  ward_id=ward_id,
                                                  nurse_id=nurse_id,
                                                  shift_date=shift_date,
                                                  active_only=active_only)


@router.get("/nurse-assignments/{assignment_id}", response_model=NurseAssignmentOut)
def get_nurse_assignment(
    assignment_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_nurse_assignments.get_assignment(db, assignment_id)


@router.patch("/nurse-assignments/{assignment_id}",
              response_model=NurseAssignmentOut)
def update_nurse_assignment(
    assignment_id: str,
    payload: NurseAssignmentUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.NURSE_ASSIGN)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.NURSE_ASSIGN_UPDATE, actor.id,
                       ipd_nurse_assignments.update_assignment, db, assignment_id,
                       **payload.model_dump(exclude_unset=True))
