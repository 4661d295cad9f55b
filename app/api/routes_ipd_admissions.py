# FILE: app/api/routes_ipd_admissions.py
from __future__ import annotations

import io
from datetime import date, datetime, time
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from openpyxl import Workbook
from openpyxl.utils import get_column_letter
from sqlalchemy.orm import Session
from starlette.responses import StreamingResponse

from app.api.deps import (Actor, get_audit, get_db, get_patient_directory,
                          require)
from app.core import policy
from app.core.errors import ValidationFailed
from app.schemas.ipd import (
    AdmissionIn,
    AdmissionListItem,
    AdmissionListOut,
    AdmissionOut,
    BedAssignmentOut,
    DeceasedIn,
    DischargeIn,
    DischargeSummaryIn,
    MoveBedIn,
    TransferOutIn,
)
from app.services import audit_descriptors as audit
from app.services import ipd_admissions
from app.services.audit_logger import AuditInterceptor
from app.services.collaborators import PatientDirectory
from app.utils.timezone import as_utc, utcnow

router = APIRouter(prefix="/admissions", tags=["IPD Admissions"])


def _parse_date_or_datetime(v: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Accepts:
      - "YYYY-MM-DD"
      - "YYYY-MM-DDTHH:MM"
      - "YYYY-MM-DD HH:MM:SS"
      - ISO datetime strings
    Naive values are read as UTC.
    """
    if not v:
        return None
    s = v.strip()
    if not s:
        return None

    # date-only
    if len(s) == 10 and s[4] == "-" and s[7] == "-":
        try:
            d = date.fromisoformat(s)
        except ValueError:
            d = None
        if d is not None:
            return as_utc(datetime.combine(d, time.max if end_of_day else time.min))

    try:
        # allow " " instead of "T"
        return as_utc(datetime.fromisoformat(s.replace(" ", "T")))
    except ValueError:
        raise ValidationFailed(
            f"Invalid date/datetime format: {v}. Use YYYY-MM-DD or ISO datetime.",
            entity="admission",
            attempted="filter")


def _filters(q, ward_id, status, is_icu, is_nicu, patient_id, doctor_id,
             from_admit, to_admit) -> dict:
    return dict(
        q=q,
        ward_id=ward_id,
        status=status,
        is_icu=is_icu,
        is_nicu=is_nicu,
        patient_id=patient_id,
        doctor_id=doctor_id,
        admitted_from=_parse_date_or_datetime(from_admit),
        admitted_to=_parse_date_or_datetime(to_admit, end_of_day=True),
    )


def _to_item(row) -> AdmissionListItem:
    adm, mrn, patient_name, ward_name, bed_code = row
    base = AdmissionOut.model_validate(adm).model_dump()
    return AdmissionListItem(
        **base,
        mrn=mrn,
        patient_name=(patient_name or "").strip() or None,
        ward_name=ward_name,
        bed_code=bed_code,
    )


# --------------------------
# Lifecycle
# --------------------------
@router.post("", response_model=AdmissionOut, status_code=201)
def admit(
    payload: AdmissionIn,
    db: Session = Depends(get_db),
    patients: PatientDirectory = Depends(get_patient_directory),
    actor: Actor = Depends(require(policy.ADMIT)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.ADMIT, actor.id, ipd_admissions.admit, db,
                       patients=patients,
                       actor_id=actor.id,
                       **payload.model_dump())


@router.post("/{admission_id}/discharge", response_model=AdmissionOut)
def discharge(
    admission_id: str,
    payload: DischargeIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.DISCHARGE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.DISCHARGE, actor.id, ipd_admissions.discharge, db,
                       admission_id,
                       discharge_summary=payload.discharge_summary,
                       discharge_notes=payload.discharge_notes,
                       actor_id=actor.id)


@router.post("/{admission_id}/transfer-out", response_model=AdmissionOut)
def transfer_out(
    admission_id: str,
    payload: TransferOutIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.TRANSFER)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.TRANSFER_OUT, actor.id, ipd_admissions.transfer_out,
                       db, admission_id,
                       notes=payload.notes,
                       release_bed=payload.release_bed,
                       actor_id=actor.id)


@router.post("/{admission_id}/deceased", response_model=AdmissionOut)
def mark_deceased(
    admission_id: str,
    payload: DeceasedIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.DISCHARGE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.MARK_DECEASED, actor.id, ipd_admissions.mark_deceased,
                       db, admission_id, notes=payload.notes, actor_id=actor.id)


@router.post("/{admission_id}/move-bed", response_model=AdmissionOut)
def move_bed(
    admission_id: str,
    payload: MoveBedIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.TRANSFER)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.MOVE_BED, actor.id, ipd_admissions.move_bed, db,
                       admission_id,
                       to_bed_id=payload.to_bed_id,
                       reason=payload.reason,
                       actor_id=actor.id)


@router.put("/{admission_id}/discharge-summary", response_model=AdmissionOut)
def annotate_discharge_summary(
    admission_id: str,
    payload: DischargeSummaryIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.ANNOTATE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.ANNOTATE, actor.id,
                       ipd_admissions.annotate_discharge_summary, db,
                       admission_id, payload.discharge_summary, actor_id=actor.id)


# --------------------------
# Reads
# --------------------------
@router.get("", response_model=AdmissionListOut)
def list_admissions(
    q: str = Query("", description="Search across MRN / patient name / bed code"),
    ward_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    is_icu: Optional[bool] = Query(None),
    is_nicu: Optional[bool] = Query(None),
    patient_id: Optional[str] = Query(None),
    doctor_id: Optional[str] = Query(None),
    from_admit: Optional[str] = Query(None, description="From admit date (YYYY-MM-DD)"),
    to_admit: Optional[str] = Query(None, description="To admit date (YYYY-MM-DD)"),
    limit: int = Query(30, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    rows, total = ipd_admissions.list_admissions(
        db,
        limit=limit,
        offset=offset,
        **_filters(q, ward_id, status, is_icu, is_nicu, patient_id, doctor_id,
                   from_admit, to_admit))
    return AdmissionListOut(items=[_to_item(r) for r in rows],
                            total=total,
                            limit=limit,
                            offset=offset)


@router.get("/export")
def export_admissions_excel(
    q: str = Query(""),
    ward_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    is_icu: Optional[bool] = Query(None),
    is_nicu: Optional[bool] = Query(None),
    patient_id: Optional[str] = Query(None),
    doctor_id: Optional[str] = Query(None),
    from_admit: Optional[str] = Query(None),
    to_admit: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    rows = ipd_admissions.admissions_query(
        db,
        **_filters(q, ward_id, status, is_icu, is_nicu, patient_id, doctor_id,
                   from_admit, to_admit)).all()

    wb = Workbook()
    ws = wb.active
    ws.title = "IPD Admissions"

    headers = [
        "Admission ID",
        "Patient Name",
        "MRN",
        "Attending Doctor",
        "Ward",
        "Bed",
        "Type",
        "Status",
        "Admitted At",
        "Discharged At",
    ]
    ws.append(headers)

    for r in rows:
        item = _to_item(r)
        ws.append([
            item.id,
            item.patient_name or "",
            item.mrn or "",
            item.attending_doctor_id,
            item.ward_name or "",
            item.bed_code or "",
            item.admission_type,
            item.status,
            item.admitted_at.isoformat(sep=" ") if item.admitted_at else "",
            item.discharged_at.isoformat(sep=" ") if item.discharged_at else "",
        ])

    for col in range(1, len(headers) + 1):
        ws.column_dimensions[get_column_letter(col)].width = 18
    ws.column_dimensions["A"].width = 38
    ws.column_dimensions["B"].width = 26
    ws.column_dimensions["D"].width = 38

    bio = io.BytesIO()
    wb.save(bio)
    bio.seek(0)

    filename = f"ipd_admissions_{utcnow().strftime('%Y%m%d_%H%M')}.xlsx"
    return StreamingResponse(
        bio,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{admission_id}", response_model=AdmissionOut)
def get_admission(
    admission_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_admissions.get_admission(db, admission_id)


@router.get("/{admission_id}/bed-assignments", response_model=List[BedAssignmentOut])
def bed_assignments(
    admission_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_admissions.bed_assignments(db, admission_id)
