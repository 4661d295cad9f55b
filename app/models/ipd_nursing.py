# FILE: app/models/ipd_nursing.py
from __future__ import annotations

from sqlalchemy import (
    Column, Integer, String, Text, ForeignKey, Boolean, Numeric, Index, Date
)
from sqlalchemy.types import JSON

from app.db.base import Base
from app.db.types import UTCDateTime
from app.models.ipd import new_id
from app.utils.timezone import utcnow

EVENT_SEVERITIES = ("critical", "high", "medium", "low")
EVENT_STATUSES = ("reported", "acknowledged", "in_progress", "resolved",
                  "escalated")
ASSIGNMENT_STATUSES = ("active", "completed", "cancelled")


# --------------------------
# Vitals (immutable observations)
# --------------------------
class IpdVital(Base):
    __tablename__ = "ipd_vitals"
    __table_args__ = (
        Index("ix_ipd_vitals_adm_at", "admission_id", "recorded_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    admission_id = Column(String(36), ForeignKey("ipd_admissions.id"),
                          nullable=False)
    recorded_by_id = Column(String(36), nullable=False)
    recorded_at = Column(UTCDateTime, default=utcnow, nullable=False)

    temperature_c = Column(Numeric(4, 1), nullable=True)
    heart_rate_bpm = Column(Integer, nullable=True)
    systolic_bp = Column(Integer, nullable=True)
    diastolic_bp = Column(Integer, nullable=True)
    respiratory_rate = Column(Integer, nullable=True)
    spo2_percent = Column(Numeric(4, 1), nullable=True)
    blood_glucose_mmol = Column(Numeric(5, 2), nullable=True)
    weight_kg = Column(Numeric(5, 2), nullable=True)
    height_cm = Column(Numeric(5, 1), nullable=True)
    pain_score = Column(Integer, nullable=True)
    gcs_score = Column(Integer, nullable=True)
    consciousness_level = Column(String(30), nullable=True)  # AVPU
    urine_output_ml = Column(Integer, nullable=True)
    bowel_status = Column(String(60), nullable=True)

    notes = Column(Text, default="")
    abnormal_findings = Column(Boolean, default=False, nullable=False)
    reported_to_doctor_id = Column(String(36), nullable=True)
    reported_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow)


# --------------------------
# Emergency events
# --------------------------
class IpdEmergencyEvent(Base):
    __tablename__ = "ipd_emergency_events"
    __table_args__ = (
        Index("ix_ipd_emergency_status_sev", "status", "severity"),
        Index("ix_ipd_emergency_adm", "admission_id"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    admission_id = Column(String(36), ForeignKey("ipd_admissions.id"),
                          nullable=True)
    ward_id = Column(String(36), ForeignKey("ipd_wards.id"), nullable=True)
    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False)
    reported_by_id = Column(String(36), nullable=False)

    event_type = Column(String(60), nullable=False)  # code blue / seizure / anaphylaxis
    severity = Column(String(10), nullable=False)
    location = Column(String(120), default="")
    description = Column(Text, nullable=False)
    time_of_event = Column(UTCDateTime, default=utcnow, nullable=False)

    response_start_time = Column(UTCDateTime, nullable=True)
    response_end_time = Column(UTCDateTime, nullable=True)

    doctors_notified_ids = Column(JSON, nullable=False, default=list)
    notified_at = Column(UTCDateTime, nullable=True)

    escalation_reason = Column(Text, nullable=True)
    escalated_to = Column(JSON, nullable=True)
    escalated_at = Column(UTCDateTime, nullable=True)

    actions_taken = Column(Text, nullable=True)
    outcome = Column(String(120), nullable=True)  # stabilized / moved_to_icu / ...
    status = Column(String(20), default="reported", nullable=False)
    resolving_doctor_id = Column(String(36), nullable=True)
    resolved_at = Column(UTCDateTime, nullable=True)
    follow_up_required = Column(Boolean, default=True, nullable=False)
    follow_up_notes = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)


# --------------------------
# Nurse assignments (head nurse roster: ward / floor / beds per shift)
# --------------------------
class IpdNurseAssignment(Base):
    __tablename__ = "ipd_nurse_assignments"
    __table_args__ = (
        Index("ix_ipd_nurse_assign_ward_status", "ward_id", "status"),
        Index("ix_ipd_nurse_assign_nurse_status", "nurse_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    nurse_id = Column(String(36), nullable=False)
    ward_id = Column(String(36), ForeignKey("ipd_wards.id"), nullable=True)
    floor_number = Column(Integer, nullable=True)
    assigned_bed_ids = Column(JSON, nullable=False, default=list)

    shift_date = Column(Date, nullable=True)
    shift_start_time = Column(String(5), nullable=True)  # HH:MM
    shift_end_time = Column(String(5), nullable=True)  # HH:MM, may wrap midnight

    assigned_by_id = Column(String(36), nullable=False)
    status = Column(String(20), default="active", nullable=False)
    notes = Column(Text, default="")

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)
