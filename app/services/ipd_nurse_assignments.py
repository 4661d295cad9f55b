# FILE: app/services/ipd_nurse_assignments.py
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.core.errors import ValidationFailed, illegal_transition, not_found
from app.db.session import rollback_on_error
from app.models.ipd_nursing import ASSIGNMENT_STATUSES, IpdNurseAssignment
from app.services import ipd_beds

logger = logging.getLogger(__name__)

# active -> completed | cancelled; both are final
_CLOSING = ("completed", "cancelled")


def _hhmm(value: Optional[str], field: str) -> Optional[str]:
    if value is None or value == "":
        return None
    try:
        return datetime.strptime(value.strip(), "%H:%M").strftime("%H:%M")
    except ValueError:
        raise ValidationFailed(f"{field} must be HH:MM, got '{value}'",
                               entity="nurse_assignment",
                               attempted=field)


def _bed_ids(db: Session, ward_id: Optional[str],
             bed_ids: Optional[Iterable[str]]) -> List[str]:
    out: List[str] = []
    for bed_id in bed_ids or ():
        if not bed_id or bed_id in out:
            continue
        bed = ipd_beds.get_bed(db, bed_id)
        if ward_id and bed.ward_id != ward_id:
            raise ValidationFailed(f"Bed {bed.code} is not in the assigned ward",
                                   entity="bed",
                                   entity_id=bed.id,
                                   attempted="assign")
        out.append(bed.id)
    return out


def get_assignment(db: Session, assignment_id: str) -> IpdNurseAssignment:
    a = db.get(IpdNurseAssignment, assignment_id)
    if not a:
        raise not_found("nurse_assignment", assignment_id)
    return a


@rollback_on_error
def create_assignment(db: Session,
                      *,
                      nurse_id: str,
                      assigned_by_id: str,
                      ward_id: Optional[str] = None,
                      floor_number: Optional[int] = None,
                      assigned_bed_ids: Optional[Iterable[str]] = None,
                      shift_date: Optional[date] = None,
                      shift_start_time: Optional[str] = None,
                      shift_end_time: Optional[str] = None,
                      notes: str = "") -> IpdNurseAssignment:
    """
    Head nurse puts a nurse on a ward (or a floor) for a shift, optionally
    naming the beds. A shift may run past midnight (end earlier than start).
    """
    if not (nurse_id or "").strip():
        raise ValidationFailed("Nurse is required",
                               entity="nurse_assignment",
                               attempted="create")
    if not ward_id and floor_number is None:
        raise ValidationFailed("Assign a ward or a floor",
                               entity="nurse_assignment",
                               attempted="create")
    if ward_id:
        ward = ipd_beds.get_ward(db, ward_id)
        if not ward.is_active:
            raise illegal_transition("ward", ward.id, "inactive", "assign nurses to")

    start = _hhmm(shift_start_time, "shift_start_time")
    end = _hhmm(shift_end_time, "shift_end_time")
    if start and end and start == end:
        raise ValidationFailed("Shift start and end cannot be the same",
                               entity="nurse_assignment",
                               attempted="create")

    a = IpdNurseAssignment(nurse_id=nurse_id.strip(),
                           ward_id=ward_id,
                           floor_number=floor_number,
                           assigned_bed_ids=_bed_ids(db, ward_id, assigned_bed_ids),
                           shift_date=shift_date,
                           shift_start_time=start,
                           shift_end_time=end,
                           assigned_by_id=assigned_by_id,
                           status="active",
                           notes=notes or "")
    db.add(a)
    db.commit()
    db.refresh(a)
    logger.info("nurse %s assigned to ward %s floor %s (%d bed(s))", a.nurse_id,
                a.ward_id, a.floor_number, len(a.assigned_bed_ids or []))
    return a


@rollback_on_error
def update_assignment(db: Session,
                      assignment_id: str,
                      *,
                      assigned_bed_ids: Optional[Iterable[str]] = None,
                      status: Optional[str] = None,
                      notes: Optional[str] = None) -> IpdNurseAssignment:
    a = get_assignment(db, assignment_id)
    if a.status != "active":
        raise illegal_transition("nurse_assignment", a.id, a.status, "update")
    if status is not None:
        if status not in ASSIGNMENT_STATUSES:
            raise ValidationFailed(f"Unknown assignment status '{status}'",
                                   entity="nurse_assignment",
                                   entity_id=a.id,
                                   attempted=status)
        if status in _CLOSING:
            a.status = status

    if assigned_bed_ids is not None:
        a.assigned_bed_ids = _bed_ids(db, a.ward_id, assigned_bed_ids)
    if notes is not None:
        a.notes = notes
    db.commit()
    db.refresh(a)
    return a


def list_assignments(db: Session,
                     *,
                     ward_id: Optional[str] = None,
                     nurse_id: Optional[str] = None,
                     shift_date: Optional[date] = None,
                     active_only: bool = True) -> List[IpdNurseAssignment]:
    q = db.query(IpdNurseAssignment)
    if active_only:
        q = q.filter(IpdNurseAssignment.status == "active")
    if ward_id:
        q = q.filter(IpdNurseAssignment.ward_id == ward_id)
    if nurse_id:
        q = q.filter(IpdNurseAssignment.nurse_id == nurse_id)
    if shift_date:
        q = q.filter(IpdNurseAssignment.shift_date == shift_date)
    return q.order_by(IpdNurseAssignment.created_at.desc(),
                      IpdNurseAssignment.id.desc()).all()
