# FILE: app/services/ipd_vitals.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from app.core.errors import ValidationFailed
from app.db.session import rollback_on_error
from app.models.ipd_nursing import IpdVital
from app.services.collaborators import NotificationDispatch, safe_notify
from app.services.ipd_admissions import get_admission, require_active_admission
from app.utils.timezone import as_utc_seconds, utcnow

logger = logging.getLogger(__name__)

VITAL_FIELDS = (
    "temperature_c", "heart_rate_bpm", "systolic_bp", "diastolic_bp",
    "respiratory_rate", "spo2_percent", "blood_glucose_mmol", "weight_kg",
    "height_cm", "pain_score", "gcs_score", "consciousness_level",
    "urine_output_ml", "bowel_status",
)

_RANGES = {
    "pain_score": (0, 10),
    "gcs_score": (3, 15),
    "spo2_percent": (0, 100),
}


def _check_ranges(values: dict) -> None:
    for field, (lo, hi) in _RANGES.items():
        v = values.get(field)
        if v is not None and not (lo <= v <= hi):
            raise ValidationFailed(f"{field} must be between {lo} and {hi}",
                                   entity="vitals",
                                   attempted=field)


@rollback_on_error
def record_vitals(db: Session,
                  *,
                  admission_id: str,
                  nurse_id: str,
                  notifier: Optional[NotificationDispatch] = None,
                  recorded_at: Optional[datetime] = None,
                  notes: str = "",
                  abnormal_findings: bool = False,
                  reported_to_doctor_id: Optional[str] = None,
                  **measurements: Any) -> IpdVital:
    """
    Persist one observation. Abnormal flags are asserted by the caller;
    an abnormal record with no doctor named goes to the attending doctor.
    """
    unknown = set(measurements) - set(VITAL_FIELDS)
    if unknown:
        raise ValidationFailed(f"Unknown vital field(s): {', '.join(sorted(unknown))}",
                               entity="vitals",
                               attempted="record")
    _check_ranges(measurements)

    adm = require_active_admission(db, admission_id)
    now = utcnow()

    doctor_id = reported_to_doctor_id
    if abnormal_findings and not doctor_id:
        doctor_id = adm.attending_doctor_id

    vital = IpdVital(admission_id=adm.id,
                     recorded_by_id=nurse_id,
                     recorded_at=as_utc_seconds(recorded_at) or now,
                     notes=notes or "",
                     abnormal_findings=bool(abnormal_findings),
                     reported_to_doctor_id=doctor_id,
                     reported_at=now if doctor_id else None,
                     **measurements)
    db.add(vital)
    db.commit()
    db.refresh(vital)

    if doctor_id:
        safe_notify(notifier, [doctor_id], {
            "kind": "vitals.abnormal" if abnormal_findings else "vitals.report",
            "admission_id": adm.id,
            "patient_id": adm.patient_id,
            "vitals_id": vital.id,
            "recorded_at": vital.recorded_at.isoformat(),
        })
    if abnormal_findings:
        logger.warning("abnormal vitals %s on admission %s reported to %s",
                       vital.id, adm.id, doctor_id)
    return vital


def list_vitals(db: Session,
                admission_id: str,
                *,
                abnormal_only: bool = False,
                limit: Optional[int] = None) -> List[IpdVital]:
    get_admission(db, admission_id)
    q = db.query(IpdVital).filter(IpdVital.admission_id == admission_id)
    if abnormal_only:
        q = q.filter(IpdVital.abnormal_findings.is_(True))
    q = q.order_by(IpdVital.recorded_at.desc(), IpdVital.created_at.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def latest_vitals(db: Session, admission_id: str) -> Optional[IpdVital]:
    rows = list_vitals(db, admission_id, limit=1)
    return rows[0] if rows else None
