# FILE: app/services/audit_descriptors.py
from __future__ import annotations

from typing import Any, Dict, Optional

from app.models.ipd import IpdAdmission, IpdBed
from app.models.ipd_nursing import IpdEmergencyEvent, IpdNurseAssignment
from app.models.ipd_orders import IpdDoctorOrder, IpdMedicationSchedule
from app.services.audit_logger import AuditDescriptor


def _iso(v) -> Optional[str]:
    return v.isoformat() if v is not None else None


def _status_of(model):
    """old_values_of for operations called as fn(db, entity_id, ...)."""

    def snap(db, entity_id, *args: Any, **kwargs: Any) -> Optional[Dict[str, Any]]:
        obj = db.get(model, entity_id)
        return {"status": obj.status} if obj is not None else None

    return snap


# --------------------------
# Wards / beds
# --------------------------
WARD_REGISTER = AuditDescriptor(
    "ward", "create",
    values_of=lambda w: {"code": w.code, "name": w.name, "is_active": w.is_active})

WARD_UPDATE = AuditDescriptor(
    "ward", "update",
    values_of=lambda w: {"code": w.code, "name": w.name, "is_active": w.is_active})

ROOM_CATEGORY_REGISTER = AuditDescriptor(
    "room_category", "create",
    values_of=lambda c: {"code": c.code, "name": c.name})

BED_REGISTER = AuditDescriptor(
    "bed", "create",
    values_of=lambda b: {"code": b.code, "ward_id": b.ward_id,
                         "room_category_id": b.room_category_id,
                         "status": b.status})

BED_STATUS = AuditDescriptor(
    "bed", "update_status",
    values_of=lambda b: {"status": b.status},
    old_values_of=_status_of(IpdBed))

BED_DEACTIVATE = AuditDescriptor(
    "bed", "deactivate",
    values_of=lambda b: {"is_active": b.is_active, "status": b.status})

# --------------------------
# Admissions
# --------------------------
_admission_values = lambda a: {  # noqa: E731
    "patient_id": a.patient_id,
    "bed_id": a.bed_id,
    "ward_id": a.ward_id,
    "status": a.status,
    "attending_doctor_id": a.attending_doctor_id,
}

ADMIT = AuditDescriptor("admission", "create", values_of=_admission_values)

DISCHARGE = AuditDescriptor(
    "admission", "discharge",
    values_of=lambda a: {"status": a.status, "bed_id": a.bed_id,
                         "discharged_at": _iso(a.discharged_at)},
    old_values_of=_status_of(IpdAdmission))

TRANSFER_OUT = AuditDescriptor(
    "admission", "transfer",
    values_of=lambda a: {"status": a.status, "bed_id": a.bed_id},
    old_values_of=_status_of(IpdAdmission))

MARK_DECEASED = AuditDescriptor(
    "admission", "mark_deceased",
    values_of=lambda a: {"status": a.status, "bed_id": a.bed_id},
    old_values_of=_status_of(IpdAdmission))


def _old_bed(db, admission_id, *args, **kwargs):
    adm = db.get(IpdAdmission, admission_id)
    return {"bed_id": adm.bed_id, "ward_id": adm.ward_id} if adm else None


MOVE_BED = AuditDescriptor(
    "admission", "move_bed",
    values_of=lambda a: {"bed_id": a.bed_id, "ward_id": a.ward_id},
    old_values_of=_old_bed)

ANNOTATE = AuditDescriptor(
    "admission", "annotate",
    values_of=lambda a: {"discharge_summary": a.discharge_summary})

# --------------------------
# Orders
# --------------------------
_order_values = lambda o: {  # noqa: E731
    "admission_id": o.admission_id,
    "order_type": o.order_type,
    "status": o.status,
    "approval_status": o.approval_status,
}

ORDER_CREATE = AuditDescriptor("doctor_order", "create", values_of=_order_values)
ORDER_APPROVE = AuditDescriptor("doctor_order", "approve", values_of=_order_values)
ORDER_REJECT = AuditDescriptor(
    "doctor_order", "reject",
    values_of=lambda o: dict(_order_values(o), reason=o.cancellation_reason))
ORDER_CANCEL = AuditDescriptor(
    "doctor_order", "cancel",
    values_of=lambda o: dict(_order_values(o), reason=o.cancellation_reason),
    old_values_of=_status_of(IpdDoctorOrder))
ORDER_HOLD = AuditDescriptor("doctor_order", "hold", values_of=_order_values,
                             old_values_of=_status_of(IpdDoctorOrder))
ORDER_RESUME = AuditDescriptor("doctor_order", "resume", values_of=_order_values,
                               old_values_of=_status_of(IpdDoctorOrder))
ORDER_COMPLETE = AuditDescriptor("doctor_order", "complete", values_of=_order_values,
                                 old_values_of=_status_of(IpdDoctorOrder))

# --------------------------
# Medications
# --------------------------
SCHEDULE_CREATE = AuditDescriptor(
    "medication_schedule", "create",
    values_of=lambda s: {"doctor_order_id": s.doctor_order_id,
                         "medication_name": s.medication_name,
                         "dosage": s.dosage, "unit": s.unit,
                         "route": s.route, "frequency": s.frequency,
                         "start_date": _iso(s.start_date)})

SCHEDULE_STATUS = AuditDescriptor(
    "medication_schedule", "update_status",
    values_of=lambda s: {"status": s.status},
    old_values_of=_status_of(IpdMedicationSchedule))

_dose_values = lambda r: {  # noqa: E731
    "schedule_id": r.schedule_id,
    "medication_name": r.medication_name,
    "scheduled_time": _iso(r.scheduled_time),
    "status": r.status,
}

MED_EXECUTE = AuditDescriptor(
    "medication_administration", "execute",
    values_of=lambda r: dict(_dose_values(r),
                             administered_time=_iso(r.administered_time),
                             actual_dosage=r.actual_dosage,
                             route_used=r.route_used))

MED_SKIP = AuditDescriptor(
    "medication_administration", "skip",
    values_of=lambda r: dict(_dose_values(r), reason=r.reason_if_not_given))

MED_OMISSION = AuditDescriptor(
    "medication_administration", "record_omission",
    values_of=lambda r: dict(_dose_values(r), reason=r.reason_if_not_given))

MED_VERIFY = AuditDescriptor(
    "medication_administration", "verify",
    values_of=lambda r: {"medication_name": r.medication_name,
                         "verified_by_id": r.verified_by_id,
                         "accepted": r.verification_accepted})

# --------------------------
# Nursing
# --------------------------
VITALS_RECORD = AuditDescriptor(
    "vitals", "record",
    values_of=lambda v: {"admission_id": v.admission_id,
                         "abnormal_findings": v.abnormal_findings,
                         "reported_to_doctor_id": v.reported_to_doctor_id})

_event_values = lambda e: {  # noqa: E731
    "status": e.status,
    "severity": e.severity,
    "event_type": e.event_type,
}

EVENT_RAISE = AuditDescriptor(
    "emergency_event", "raise",
    values_of=lambda e: dict(_event_values(e), patient_id=e.patient_id,
                             admission_id=e.admission_id))
EVENT_ACK = AuditDescriptor("emergency_event", "acknowledge",
                            values_of=_event_values,
                            old_values_of=_status_of(IpdEmergencyEvent))
EVENT_ESCALATE = AuditDescriptor(
    "emergency_event", "escalate",
    values_of=lambda e: dict(_event_values(e), reason=e.escalation_reason,
                             escalated_to=e.escalated_to),
    old_values_of=_status_of(IpdEmergencyEvent))
EVENT_RESOLVE = AuditDescriptor(
    "emergency_event", "resolve",
    values_of=lambda e: dict(_event_values(e), outcome=e.outcome),
    old_values_of=_status_of(IpdEmergencyEvent))

_assignment_values = lambda a: {  # noqa: E731
    "nurse_id": a.nurse_id,
    "ward_id": a.ward_id,
    "floor_number": a.floor_number,
    "assigned_bed_ids": list(a.assigned_bed_ids or []),
    "status": a.status,
}

NURSE_ASSIGN = AuditDescriptor("nurse_assignment", "create",
                               values_of=_assignment_values)
NURSE_ASSIGN_UPDATE = AuditDescriptor("nurse_assignment", "update",
                                      values_of=_assignment_values,
                                      old_values_of=_status_of(IpdNurseAssignment))
