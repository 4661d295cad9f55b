# FILE: app/api/routes_ipd_medications.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import Actor, get_audit, get_db, require
from app.core import policy
from app.schemas.ipd_orders import (
    AdministrationOut,
    ComplianceOut,
    ExecuteIn,
    MaterializeIn,
    MaterializeOut,
    OmissionIn,
    ScheduleIn,
    ScheduleOut,
    ScheduleStatusIn,
    SkipIn,
    VerifyIn,
)
from app.services import audit_descriptors as audit
from app.services import ipd_admissions, ipd_medications
from app.services.audit_logger import AuditInterceptor

router = APIRouter(prefix="/medications", tags=["IPD Medications"])


# ---------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------
@router.post("/schedules", response_model=ScheduleOut, status_code=201)
def create_schedule(
    payload: ScheduleIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.SCHEDULE_CREATE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.SCHEDULE_CREATE, actor.id,
                       ipd_medications.create_schedule, db,
                       prescribing_doctor_id=actor.id,
                       **payload.model_dump())


@router.get("/schedules", response_model=List[ScheduleOut])
def list_schedules(
    admission_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_medications.list_schedules(db, admission_id=admission_id,
                                          status=status)


@router.get("/schedules/{schedule_id}", response_model=ScheduleOut)
def get_schedule(
    schedule_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_medications.get_schedule(db, schedule_id)


@router.patch("/schedules/{schedule_id}/status", response_model=ScheduleOut)
def set_schedule_status(
    schedule_id: str,
    payload: ScheduleStatusIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.SCHEDULE_UPDATE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.SCHEDULE_STATUS, actor.id,
                       ipd_medications.set_schedule_status, db, schedule_id,
                       payload.status)


@router.post("/materialize", response_model=MaterializeOut)
def materialize(
    payload: MaterializeIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.MATERIALIZE)),
):
    created = ipd_medications.materialize_due_tasks(
        db,
        schedule_id=payload.schedule_id,
        admission_id=payload.admission_id,
        horizon_hours=payload.horizon_hours)
    return MaterializeOut(created=created)


# ---------------------------------------------------------------------
# Administrations (MAR)
# ---------------------------------------------------------------------
@router.get("/administrations", response_model=List[AdministrationOut])
def list_administrations(
    admission_id: Optional[str] = Query(None),
    schedule_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    overdue_only: bool = Query(False),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_medications.list_administrations(db,
                                                admission_id=admission_id,
                                                schedule_id=schedule_id,
                                                status=status,
                                                overdue_only=overdue_only)


@router.get("/administrations/{administration_id}", response_model=AdministrationOut)
def get_administration(
    administration_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_medications.get_administration(db, administration_id)


@router.post("/administrations/execute", response_model=AdministrationOut)
def execute_medication(
    payload: ExecuteIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.ADMINISTER)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.MED_EXECUTE, actor.id,
                       ipd_medications.execute_medication, db,
                       nurse_id=actor.id,
                       **payload.model_dump())


@router.post("/administrations/skip", response_model=AdministrationOut)
def skip_medication(
    payload: SkipIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.ADMINISTER)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.MED_SKIP, actor.id, ipd_medications.skip_medication,
                       db, nurse_id=actor.id, **payload.model_dump())


@router.post("/administrations/omission", response_model=AdministrationOut)
def record_omission(
    payload: OmissionIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.ADMINISTER)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.MED_OMISSION, actor.id,
                       ipd_medications.record_omission, db,
                       nurse_id=actor.id, **payload.model_dump())


@router.post("/administrations/{administration_id}/verify",
             response_model=AdministrationOut)
def verify_administration(
    administration_id: str,
    payload: VerifyIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.VERIFY)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.MED_VERIFY, actor.id,
                       ipd_medications.verify_administration, db,
                       administration_id,
                       verifier_id=actor.id,
                       accepted=payload.accepted,
                       notes=payload.notes)


@router.get("/admissions/{admission_id}/compliance", response_model=ComplianceOut)
def compliance_summary(
    admission_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    ipd_admissions.get_admission(db, admission_id)
    return ipd_medications.compliance_summary(db, admission_id)
