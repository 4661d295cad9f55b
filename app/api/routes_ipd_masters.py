# FILE: app/api/routes_ipd_masters.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import Actor, get_audit, get_db, require
from app.core import policy
from app.services import audit_descriptors as audit
from app.services import ipd_beds
from app.services.audit_logger import AuditInterceptor
from app.schemas.ipd import (
    BedHistoryOut,
    BedIn,
    BedOut,
    BedStatusIn,
    BedSummaryOut,
    RoomCategoryIn,
    RoomCategoryOut,
    WardCategoryBeds,
    WardIn,
    WardOut,
    WardUpdate,
)

router = APIRouter()


# ---------------------------------------------------------------------
# WARDS
# ---------------------------------------------------------------------
@router.post("/wards", response_model=WardOut, status_code=201)
def create_ward(
    payload: WardIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.WARD_MANAGE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.WARD_REGISTER, actor.id, ipd_beds.register_ward, db,
                       actor_id=actor.id, **payload.model_dump())


@router.get("/wards", response_model=List[WardOut])
def list_wards(
    is_active: Optional[bool] = Query(True),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_beds.list_wards(db, is_active=is_active)


@router.get("/wards/{ward_id}", response_model=WardOut)
def get_ward(
    ward_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_beds.get_ward(db, ward_id)


@router.patch("/wards/{ward_id}", response_model=WardOut)
def update_ward(
    ward_id: str,
    payload: WardUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.WARD_MANAGE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.WARD_UPDATE, actor.id, ipd_beds.update_ward, db,
                       ward_id, **payload.model_dump(exclude_unset=True))


# ---------------------------------------------------------------------
# ROOM CATEGORIES
# ---------------------------------------------------------------------
@router.post("/room-categories", response_model=RoomCategoryOut, status_code=201)
def create_room_category(
    payload: RoomCategoryIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.WARD_MANAGE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.ROOM_CATEGORY_REGISTER, actor.id,
                       ipd_beds.register_room_category, db, **payload.model_dump())


@router.get("/room-categories", response_model=List[RoomCategoryOut])
def list_room_categories(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_beds.list_room_categories(db, include_inactive=include_inactive)


# ---------------------------------------------------------------------
# BEDS
# ---------------------------------------------------------------------
@router.post("/beds", response_model=BedOut, status_code=201)
def create_bed(
    payload: BedIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.BED_MANAGE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.BED_REGISTER, actor.id, ipd_beds.register_bed, db,
                       actor_id=actor.id, **payload.model_dump())


@router.get("/beds", response_model=List[BedOut])
def list_beds(
    ward_id: Optional[str] = Query(None),
    room_category_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_beds.query_beds(db,
                               ward_id=ward_id,
                               room_category_id=room_category_id,
                               status=status,
                               include_inactive=include_inactive)


@router.get("/beds/summary", response_model=BedSummaryOut)
def bed_summary(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_beds.bed_summary(db)


@router.get("/beds/by-ward-category", response_model=List[WardCategoryBeds])
def beds_by_ward_and_category(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_beds.beds_by_ward_and_category(db)


@router.get("/beds/{bed_id}", response_model=BedOut)
def get_bed(
    bed_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_beds.get_bed(db, bed_id)


@router.get("/beds/{bed_id}/history", response_model=List[BedHistoryOut])
def bed_history(
    bed_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_beds.bed_history(db, bed_id)


@router.patch("/beds/{bed_id}/status", response_model=BedOut)
def set_bed_status(
    bed_id: str,
    payload: BedStatusIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.BED_STATUS)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.BED_STATUS, actor.id,
                       ipd_beds.set_bed_operational_status, db, bed_id,
                       payload.status,
                       reason=payload.reason,
                       estimated_discharge_date=payload.estimated_discharge_date,
                       actor_id=actor.id)


@router.delete("/beds/{bed_id}", response_model=BedOut)
def deactivate_bed(
    bed_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.BED_MANAGE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.BED_DEACTIVATE, actor.id, ipd_beds.deactivate_bed,
                       db, bed_id, actor_id=actor.id)
