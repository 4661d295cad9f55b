# FILE: app/services/ipd_beds.py
from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import (Conflict, DuplicateKey, ValidationFailed,
                             illegal_transition, not_found)
from app.db.session import rollback_on_error
from app.models.ipd import (BED_STATUSES, IpdBed, IpdBedStatusHistory,
                            IpdRoomCategory, IpdWard)
from app.utils.timezone import as_utc, utcnow

logger = logging.getLogger(__name__)

# statuses a ward manager may set; "occupied" belongs to the admission flow
OPERATIONAL_STATUSES = ("vacant", "maintenance", "reserved")
CLAIMABLE_STATUSES = ("vacant", "reserved")


# --------------------------
# Lookups
# --------------------------
def get_ward(db: Session, ward_id: str) -> IpdWard:
    ward = db.get(IpdWard, ward_id)
    if not ward:
        raise not_found("ward", ward_id)
    return ward


def get_room_category(db: Session, category_id: str) -> IpdRoomCategory:
    cat = db.get(IpdRoomCategory, category_id)
    if not cat:
        raise not_found("room_category", category_id)
    return cat


def get_bed(db: Session, bed_id: str) -> IpdBed:
    bed = db.get(IpdBed, bed_id)
    if not bed:
        raise not_found("bed", bed_id)
    return bed


def lock_bed(db: Session, bed_id: str) -> IpdBed:
    """
    Row-lock the bed for the rest of the transaction (no-op on sqlite;
    the version column still catches a lost update there).
    """
    bed = (db.query(IpdBed)
           .filter(IpdBed.id == bed_id)
           .populate_existing()
           .with_for_update()
           .first())
    if not bed:
        raise not_found("bed", bed_id)
    return bed


# --------------------------
# Wards
# --------------------------
@rollback_on_error
def register_ward(db: Session,
                  *,
                  name: str,
                  code: str,
                  floor: Optional[int] = None,
                  building: str = "",
                  description: str = "",
                  actor_id: Optional[str] = None) -> IpdWard:
    code = (code or "").strip()
    if db.query(IpdWard.id).filter(IpdWard.code == code).first():
        raise DuplicateKey(f"Ward with code {code} already exists",
                           entity="ward",
                           entity_id=code,
                           attempted="register")

    ward = IpdWard(name=name.strip(),
                   code=code,
                   floor=floor,
                   building=building or "",
                   description=description or "",
                   is_active=True,
                   total_beds=0,
                   created_by=actor_id)
    db.add(ward)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateKey(f"Ward with code {code} already exists",
                           entity="ward",
                           entity_id=code,
                           attempted="register")
    db.refresh(ward)
    logger.info("ward %s registered (%s)", ward.code, ward.id)
    return ward


@rollback_on_error
def update_ward(db: Session, ward_id: str, **changes: Any) -> IpdWard:
    ward = get_ward(db, ward_id)
    # code is the ward's natural key; it is not editable
    changes.pop("code", None)
    changes.pop("total_beds", None)
    for k, v in changes.items():
        if v is not None and hasattr(ward, k):
            setattr(ward, k, v)
    db.commit()
    db.refresh(ward)
    return ward


def list_wards(db: Session, is_active: Optional[bool] = None) -> List[IpdWard]:
    q = db.query(IpdWard)
    if is_active is not None:
        q = q.filter(IpdWard.is_active == is_active)
    return q.order_by(IpdWard.name.asc()).all()


# --------------------------
# Room categories
# --------------------------
@rollback_on_error
def register_room_category(db: Session,
                           *,
                           name: str,
                           code: str,
                           description: str = "",
                           capacity: int = 1) -> IpdRoomCategory:
    code = (code or "").strip()
    if db.query(IpdRoomCategory.id).filter(IpdRoomCategory.code == code).first():
        raise DuplicateKey(f"Room category with code {code} already exists",
                           entity="room_category",
                           entity_id=code,
                           attempted="register")
    cat = IpdRoomCategory(name=name.strip(),
                          code=code,
                          description=description or "",
                          capacity=capacity)
    db.add(cat)
    db.commit()
    db.refresh(cat)
    return cat


def list_room_categories(db: Session,
                         include_inactive: bool = False) -> List[IpdRoomCategory]:
    q = db.query(IpdRoomCategory)
    if not include_inactive:
        q = q.filter(IpdRoomCategory.is_active.is_(True))
    return q.order_by(IpdRoomCategory.name.asc()).all()


# --------------------------
# Beds
# --------------------------
@rollback_on_error
def register_bed(db: Session,
                 *,
                 code: str,
                 ward_id: str,
                 room_category_id: str,
                 room_number: Optional[str] = None,
                 bed_position: Optional[str] = None,
                 special_requirements: str = "",
                 actor_id: Optional[str] = None) -> IpdBed:
    ward = get_ward(db, ward_id)
    get_room_category(db, room_category_id)

    code = (code or "").strip()
    if db.query(IpdBed.id).filter(IpdBed.code == code).first():
        raise DuplicateKey(f"Bed with code {code} already exists",
                           entity="bed",
                           entity_id=code,
                           attempted="register")

    bed = IpdBed(code=code,
                 ward_id=ward.id,
                 room_category_id=room_category_id,
                 room_number=room_number,
                 bed_position=bed_position,
                 special_requirements=special_requirements or "",
                 status="vacant",
                 created_by=actor_id,
                 updated_by=actor_id)
    db.add(bed)
    ward.total_beds = (ward.total_beds or 0) + 1
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateKey(f"Bed with code {code} already exists",
                           entity="bed",
                           entity_id=code,
                           attempted="register")
    db.refresh(bed)
    logger.info("bed %s registered in ward %s", bed.code, ward.code)
    return bed


def _history(db: Session,
             bed: IpdBed,
             *,
             previous_status: str,
             previous_patient_id: Optional[str],
             actor_id: Optional[str],
             reason: str = "",
             admission_id: Optional[str] = None) -> None:
    db.add(IpdBedStatusHistory(
        bed_id=bed.id,
        previous_status=previous_status,
        new_status=bed.status,
        previous_patient_id=previous_patient_id,
        new_patient_id=bed.current_patient_id,
        admission_id=admission_id,
        changed_by=actor_id,
        change_reason=reason or "",
        changed_at=utcnow(),
    ))


@rollback_on_error
def set_bed_operational_status(db: Session,
                               bed_id: str,
                               status: str,
                               *,
                               reason: str = "",
                               estimated_discharge_date: Optional[datetime] = None,
                               actor_id: Optional[str] = None) -> IpdBed:
    """
    Ward-management transitions (maintenance / reserved / vacant).
    Occupancy is owned by the admission flow and cannot be set or cleared here.
    """
    if status not in BED_STATUSES:
        raise ValidationFailed(f"Unknown bed status '{status}'",
                               entity="bed",
                               entity_id=bed_id,
                               attempted=status)
    if status not in OPERATIONAL_STATUSES:
        raise ValidationFailed(
            "Bed occupancy is set by admission, not by ward management",
            entity="bed",
            entity_id=bed_id,
            attempted=status)

    bed = lock_bed(db, bed_id)
    if bed.status == "occupied":
        raise illegal_transition("bed", bed.id, bed.status, status)

    previous = bed.status
    bed.status = status
    bed.updated_by = actor_id
    if estimated_discharge_date is not None:
        bed.estimated_discharge_date = as_utc(estimated_discharge_date)
    _history(db, bed,
             previous_status=previous,
             previous_patient_id=bed.current_patient_id,
             actor_id=actor_id,
             reason=reason)
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise Conflict(f"Bed {bed_id} was changed concurrently",
                       entity="bed",
                       entity_id=bed_id,
                       attempted=status)
    db.refresh(bed)
    logger.info("bed %s: %s -> %s", bed.code, previous, status)
    return bed


@rollback_on_error
def deactivate_bed(db: Session, bed_id: str,
                   actor_id: Optional[str] = None) -> IpdBed:
    bed = lock_bed(db, bed_id)
    if bed.status == "occupied":
        raise illegal_transition("bed", bed.id, bed.status, "deactivate")
    if bed.is_active:
        bed.is_active = False
        bed.updated_by = actor_id
        ward = db.get(IpdWard, bed.ward_id)
        if ward and (ward.total_beds or 0) > 0:
            ward.total_beds -= 1
        db.commit()
        db.refresh(bed)
    return bed


def query_beds(db: Session,
               *,
               ward_id: Optional[str] = None,
               room_category_id: Optional[str] = None,
               status: Optional[str] = None,
               include_inactive: bool = False) -> List[IpdBed]:
    q = db.query(IpdBed)
    if not include_inactive:
        q = q.filter(IpdBed.is_active.is_(True))
    if ward_id:
        q = q.filter(IpdBed.ward_id == ward_id)
    if room_category_id:
        q = q.filter(IpdBed.room_category_id == room_category_id)
    if status:
        q = q.filter(IpdBed.status == status)
    return q.order_by(IpdBed.code.asc()).all()


def bed_history(db: Session, bed_id: str) -> List[IpdBedStatusHistory]:
    get_bed(db, bed_id)
    return (db.query(IpdBedStatusHistory)
            .filter(IpdBedStatusHistory.bed_id == bed_id)
            .order_by(IpdBedStatusHistory.changed_at.asc(),
                      IpdBedStatusHistory.id.asc())
            .all())


# --------------------------
# Occupancy check-and-set (admission flow only)
# --------------------------
def claim_bed(db: Session,
              bed: IpdBed,
              *,
              patient_id: str,
              admission_id: str,
              at: datetime,
              actor_id: Optional[str] = None,
              reason: str = "admission") -> None:
    """
    vacant|reserved -> occupied. Caller holds the row (see lock_bed) and
    commits; a concurrent writer surfaces as StaleDataError on flush.
    """
    if bed.status not in CLAIMABLE_STATUSES or not bed.is_active:
        raise Conflict(f"Bed {bed.code} is not available",
                       entity="bed",
                       entity_id=bed.id,
                       current=bed.status,
                       attempted="occupy")
    previous, previous_patient = bed.status, bed.current_patient_id
    bed.status = "occupied"
    bed.current_patient_id = patient_id
    bed.admission_date = at
    bed.updated_by = actor_id
    _history(db, bed,
             previous_status=previous,
             previous_patient_id=previous_patient,
             actor_id=actor_id,
             reason=reason,
             admission_id=admission_id)


def release_bed(db: Session,
                bed: IpdBed,
                *,
                admission_id: str,
                to_status: str = "vacant",
                actor_id: Optional[str] = None,
                reason: str = "discharge") -> None:
    """occupied -> vacant (or reserved when a transfer holds the bed)."""
    if to_status not in CLAIMABLE_STATUSES:
        raise ValidationFailed(f"Cannot release bed to '{to_status}'",
                               entity="bed",
                               entity_id=bed.id,
                               attempted=to_status)
    previous, previous_patient = bed.status, bed.current_patient_id
    bed.status = to_status
    bed.current_patient_id = None
    bed.admission_date = None
    bed.estimated_discharge_date = None
    bed.updated_by = actor_id
    _history(db, bed,
             previous_status=previous,
             previous_patient_id=previous_patient,
             actor_id=actor_id,
             reason=reason,
             admission_id=admission_id)


# --------------------------
# Read-side aggregations
# --------------------------
def _counts(beds: Sequence[IpdBed]) -> Dict[str, int]:
    out = {s: 0 for s in BED_STATUSES}
    for b in beds:
        out[b.status] = out.get(b.status, 0) + 1
    return out


def _rate(occupied: int, total: int) -> int:
    return round(occupied * 100 / total) if total else 0


def bed_summary(db: Session) -> Dict[str, Any]:
    beds = query_beds(db)
    wards = {w.id: w for w in db.query(IpdWard).all()}
    counts = _counts(beds)

    by_ward: "OrderedDict[str, List[IpdBed]]" = OrderedDict()
    for b in beds:
        by_ward.setdefault(b.ward_id, []).append(b)

    ward_rows = []
    for ward_id, ward_beds in by_ward.items():
        w = wards.get(ward_id)
        wc = _counts(ward_beds)
        ward_rows.append({
            "ward_id": ward_id,
            "ward_name": w.name if w else "Unknown",
            "ward_code": w.code if w else "",
            "total_beds": len(ward_beds),
            "occupied_beds": wc["occupied"],
            "vacant_beds": wc["vacant"],
            "maintenance_beds": wc["maintenance"],
            "reserved_beds": wc["reserved"],
            "occupancy_rate": _rate(wc["occupied"], len(ward_beds)),
        })

    return {
        "total_beds": len(beds),
        "occupied_beds": counts["occupied"],
        "vacant_beds": counts["vacant"],
        "maintenance_beds": counts["maintenance"],
        "reserved_beds": counts["reserved"],
        "occupancy_rate": _rate(counts["occupied"], len(beds)),
        "by_ward": ward_rows,
    }


def beds_by_ward_and_category(db: Session) -> List[Dict[str, Any]]:
    beds = query_beds(db)
    wards = {w.id: w for w in db.query(IpdWard).all()}
    cats = {c.id: c for c in db.query(IpdRoomCategory).all()}

    grouped: "OrderedDict[tuple, Dict[str, Any]]" = OrderedDict()
    for b in beds:
        key = (b.ward_id, b.room_category_id)
        if key not in grouped:
            w, c = wards.get(b.ward_id), cats.get(b.room_category_id)
            grouped[key] = {
                "ward_id": b.ward_id,
                "ward_name": w.name if w else None,
                "ward_code": w.code if w else None,
                "category_id": b.room_category_id,
                "category_name": c.name if c else None,
                "category_code": c.code if c else None,
                "beds": [],
            }
        grouped[key]["beds"].append(b)
    return list(grouped.values())
