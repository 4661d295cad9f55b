# FILE: app/services/ipd_admissions.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.errors import (Conflict, ValidationFailed, illegal_transition,
                             not_found)
from app.db.session import rollback_on_error
from app.models.ipd import (ADMISSION_TYPES, IpdAdmission, IpdBed,
                            IpdBedAssignment, IpdWard, new_id)
from app.models.patient import Patient
from app.services import ipd_beds
from app.services.collaborators import PatientDirectory
from app.utils.timezone import as_utc_seconds, utcnow

logger = logging.getLogger(__name__)


def _bed_taken(bed_id: str) -> Conflict:
    return Conflict("Bed not available",
                    entity="bed",
                    entity_id=bed_id,
                    current="occupied",
                    attempted="occupy")


# --------------------------
# Lookups
# --------------------------
def get_admission(db: Session, admission_id: str) -> IpdAdmission:
    adm = db.get(IpdAdmission, admission_id)
    if not adm:
        raise not_found("admission", admission_id)
    return adm


def require_active_admission(db: Session, admission_id: str) -> IpdAdmission:
    """Orders, schedules, vitals all hang off an active stay."""
    adm = get_admission(db, admission_id)
    if adm.status != "active":
        raise Conflict(f"Admission {admission_id} not active",
                       entity="admission",
                       entity_id=admission_id,
                       current=adm.status,
                       attempted="use")
    return adm


def _lock_admission(db: Session, admission_id: str) -> IpdAdmission:
    adm = (db.query(IpdAdmission)
           .filter(IpdAdmission.id == admission_id)
           .populate_existing()
           .with_for_update()
           .first())
    if not adm:
        raise not_found("admission", admission_id)
    return adm


def _close_assignment(db: Session, admission_id: str, at: datetime) -> None:
    (db.query(IpdBedAssignment)
     .filter(IpdBedAssignment.admission_id == admission_id,
             IpdBedAssignment.to_ts.is_(None))
     .update({IpdBedAssignment.to_ts: at}, synchronize_session="fetch"))


def _commit_occupancy(db: Session, bed_id: str) -> None:
    """Commit a bed transition; a concurrent writer on the bed row loses."""
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise _bed_taken(bed_id)
    except IntegrityError:
        db.rollback()
        raise _bed_taken(bed_id)


# --------------------------
# Admit
# --------------------------
@rollback_on_error
def admit(db: Session,
          *,
          patient_id: str,
          bed_id: str,
          ward_id: str,
          attending_doctor_id: str,
          patients: PatientDirectory,
          admission_type: str = "scheduled",
          chief_complaint: str = "",
          admission_notes: str = "",
          is_icu: bool = False,
          is_nicu: bool = False,
          admitted_at: Optional[datetime] = None,
          actor_id: Optional[str] = None) -> IpdAdmission:
    if admission_type not in ADMISSION_TYPES:
        raise ValidationFailed(f"Unknown admission type '{admission_type}'",
                               entity="admission",
                               attempted=admission_type)
    if not attending_doctor_id:
        raise ValidationFailed("Attending doctor is required",
                               entity="admission",
                               attempted="admit")

    if not patients.exists(patient_id):
        raise not_found("patient", patient_id)
    ward = ipd_beds.get_ward(db, ward_id)
    if not ward.is_active:
        raise Conflict(f"Ward {ward.code} is not active",
                       entity="ward",
                       entity_id=ward.id,
                       current="inactive",
                       attempted="admit")

    bed = ipd_beds.lock_bed(db, bed_id)
    if bed.ward_id != ward.id:
        raise ValidationFailed(f"Bed {bed.code} does not belong to ward {ward.code}",
                               entity="bed",
                               entity_id=bed.id,
                               attempted="admit")

    open_stay = (db.query(IpdAdmission.id)
                 .filter(IpdAdmission.patient_id == patient_id,
                         IpdAdmission.status == "active")
                 .first())
    if open_stay:
        raise Conflict(f"Patient {patient_id} already has an active admission",
                       entity="admission",
                       entity_id=open_stay[0],
                       current="active",
                       attempted="admit")

    at = as_utc_seconds(admitted_at) or utcnow()
    adm_id = new_id()
    ipd_beds.claim_bed(db, bed,
                       patient_id=patient_id,
                       admission_id=adm_id,
                       at=at,
                       actor_id=actor_id)
    adm = IpdAdmission(id=adm_id,
                       patient_id=patient_id,
                       bed_id=bed.id,
                       ward_id=ward.id,
                       admitted_at=at,
                       admission_type=admission_type,
                       attending_doctor_id=attending_doctor_id,
                       chief_complaint=chief_complaint or "",
                       admission_notes=admission_notes or "",
                       status="active",
                       is_icu=bool(is_icu),
                       is_nicu=bool(is_nicu),
                       created_by=actor_id,
                       updated_by=actor_id)
    db.add(adm)
    db.add(IpdBedAssignment(admission_id=adm.id,
                            bed_id=bed.id,
                            from_ts=at,
                            reason="admission"))

    _commit_occupancy(db, bed.id)
    db.refresh(adm)
    logger.info("admission %s: patient %s -> bed %s", adm.id, patient_id, bed.code)
    return adm


# --------------------------
# End of stay
# --------------------------
@rollback_on_error
def _terminate(db: Session,
               admission_id: str,
               *,
               new_status: str,
               action: str,
               bed_to: str,
               notes: str = "",
               discharge_summary: Optional[str] = None,
               actor_id: Optional[str] = None) -> IpdAdmission:
    adm = _lock_admission(db, admission_id)
    if adm.status != "active":
        raise illegal_transition("admission", adm.id, adm.status, action)

    at = utcnow()
    adm.status = new_status
    adm.discharged_at = at
    if notes:
        adm.discharge_notes = notes
    if discharge_summary is not None:
        adm.discharge_summary = discharge_summary
    adm.updated_by = actor_id

    bed = ipd_beds.lock_bed(db, adm.bed_id)
    ipd_beds.release_bed(db, bed,
                         admission_id=adm.id,
                         to_status=bed_to,
                         actor_id=actor_id,
                         reason=action)
    _close_assignment(db, adm.id, at)

    _commit_occupancy(db, bed.id)
    db.refresh(adm)
    logger.info("admission %s: active -> %s (bed %s -> %s)", adm.id, new_status,
                bed.code, bed_to)
    return adm


def discharge(db: Session,
              admission_id: str,
              *,
              discharge_summary: Optional[str] = None,
              discharge_notes: str = "",
              actor_id: Optional[str] = None) -> IpdAdmission:
    return _terminate(db, admission_id,
                      new_status="discharged",
                      action="discharge",
                      bed_to="vacant",
                      notes=discharge_notes,
                      discharge_summary=discharge_summary,
                      actor_id=actor_id)


def transfer_out(db: Session,
                 admission_id: str,
                 *,
                 notes: str = "",
                 release_bed: Optional[bool] = None,
                 actor_id: Optional[str] = None) -> IpdAdmission:
    """
    Stay ends with the patient moving to another facility / unit.
    Whether the bed goes back to the pool or is held (reserved) is a
    deployment policy; the caller may override it per request.
    """
    if release_bed is None:
        release_bed = settings.TRANSFER_RELEASES_BED
    return _terminate(db, admission_id,
                      new_status="transferred",
                      action="transfer",
                      bed_to="vacant" if release_bed else "reserved",
                      notes=notes,
                      actor_id=actor_id)


def mark_deceased(db: Session,
                  admission_id: str,
                  *,
                  notes: str = "",
                  actor_id: Optional[str] = None) -> IpdAdmission:
    return _terminate(db, admission_id,
                      new_status="deceased",
                      action="mark_deceased",
                      bed_to="vacant",
                      notes=notes,
                      actor_id=actor_id)


# --------------------------
# In-stay bed move
# --------------------------
@rollback_on_error
def move_bed(db: Session,
             admission_id: str,
             *,
             to_bed_id: str,
             reason: str = "",
             actor_id: Optional[str] = None) -> IpdAdmission:
    adm = _lock_admission(db, admission_id)
    if adm.status != "active":
        raise illegal_transition("admission", adm.id, adm.status, "move_bed")
    if to_bed_id == adm.bed_id:
        raise ValidationFailed("Patient is already in this bed",
                               entity="bed",
                               entity_id=to_bed_id,
                               attempted="move_bed")

    # lock both rows in a stable order
    first, second = sorted([adm.bed_id, to_bed_id])
    locked = {b.id: b for b in (ipd_beds.lock_bed(db, first),
                                ipd_beds.lock_bed(db, second))}
    old_bed, new_bed = locked[adm.bed_id], locked[to_bed_id]

    at = utcnow()
    note = reason or "bed transfer"
    ipd_beds.claim_bed(db, new_bed,
                       patient_id=adm.patient_id,
                       admission_id=adm.id,
                       at=at,
                       actor_id=actor_id,
                       reason=note)
    ipd_beds.release_bed(db, old_bed,
                         admission_id=adm.id,
                         to_status="vacant",
                         actor_id=actor_id,
                         reason=note)

    _close_assignment(db, adm.id, at)
    db.add(IpdBedAssignment(admission_id=adm.id,
                            bed_id=new_bed.id,
                            from_ts=at,
                            reason=note[:120]))
    adm.bed_id = new_bed.id
    adm.ward_id = new_bed.ward_id
    adm.updated_by = actor_id

    _commit_occupancy(db, new_bed.id)
    db.refresh(adm)
    logger.info("admission %s moved %s -> %s", adm.id, old_bed.code, new_bed.code)
    return adm


@rollback_on_error
def annotate_discharge_summary(db: Session,
                               admission_id: str,
                               text: str,
                               actor_id: Optional[str] = None) -> IpdAdmission:
    """The one edit a terminated stay still accepts."""
    adm = get_admission(db, admission_id)
    if adm.status == "active":
        raise illegal_transition("admission", adm.id, adm.status,
                                 "annotate discharge summary of")
    adm.discharge_summary = text
    adm.updated_by = actor_id
    db.commit()
    db.refresh(adm)
    return adm


def bed_assignments(db: Session, admission_id: str):
    get_admission(db, admission_id)
    return (db.query(IpdBedAssignment)
            .filter(IpdBedAssignment.admission_id == admission_id)
            .order_by(IpdBedAssignment.from_ts.asc())
            .all())


# --------------------------
# Listing
# --------------------------
def _patient_name_expr():
    return func.trim(
        func.coalesce(Patient.first_name, "") + " " +
        func.coalesce(Patient.last_name, ""))


def admissions_query(db: Session,
                     *,
                     q: str = "",
                     ward_id: Optional[str] = None,
                     status: Optional[str] = None,
                     is_icu: Optional[bool] = None,
                     is_nicu: Optional[bool] = None,
                     patient_id: Optional[str] = None,
                     doctor_id: Optional[str] = None,
                     admitted_from: Optional[datetime] = None,
                     admitted_to: Optional[datetime] = None):
    """
    Row query (admission + patient/ward/bed display columns), newest first.
    """
    pname = _patient_name_expr()
    qry = (
        db.query(
            IpdAdmission,
            Patient.mrn.label("mrn"),
            pname.label("patient_name"),
            IpdWard.name.label("ward_name"),
            IpdBed.code.label("bed_code"),
        )
        .outerjoin(Patient, Patient.id == IpdAdmission.patient_id)
        .outerjoin(IpdWard, IpdWard.id == IpdAdmission.ward_id)
        .outerjoin(IpdBed, IpdBed.id == IpdAdmission.bed_id)
    )

    if ward_id:
        qry = qry.filter(IpdAdmission.ward_id == ward_id)
    if status:
        qry = qry.filter(IpdAdmission.status == status)
    if is_icu is not None:
        qry = qry.filter(IpdAdmission.is_icu == is_icu)
    if is_nicu is not None:
        qry = qry.filter(IpdAdmission.is_nicu == is_nicu)
    if patient_id:
        qry = qry.filter(IpdAdmission.patient_id == patient_id)
    if doctor_id:
        qry = qry.filter(IpdAdmission.attending_doctor_id == doctor_id)
    if admitted_from:
        qry = qry.filter(IpdAdmission.admitted_at >= admitted_from)
    if admitted_to:
        qry = qry.filter(IpdAdmission.admitted_at <= admitted_to)

    if q:
        s = q.strip()
        qry = qry.filter(
            or_(
                Patient.mrn.ilike(f"%{s}%"),
                Patient.first_name.ilike(f"%{s}%"),
                Patient.last_name.ilike(f"%{s}%"),
                IpdBed.code.ilike(f"%{s}%"),
            ))

    return qry.order_by(IpdAdmission.admitted_at.desc(), IpdAdmission.id.desc())


def list_admissions(db: Session, *, limit: int = 50, offset: int = 0, **filters):
    base = admissions_query(db, **filters)
    total = (base.order_by(None)
             .with_entities(func.count(IpdAdmission.id))
             .scalar() or 0)
    rows = base.limit(limit).offset(offset).all()
    return rows, int(total)
