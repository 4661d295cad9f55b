# FILE: app/schemas/ipd_nursing.py
from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["critical", "high", "medium", "low"]
EventStatus = Literal["reported", "acknowledged", "in_progress", "resolved",
                      "escalated"]
AssignmentStatus = Literal["active", "completed", "cancelled"]


# --------------------------
# Vitals
# --------------------------
class VitalsIn(BaseModel):
    admission_id: str
    recorded_at: Optional[datetime] = None

    temperature_c: Optional[float] = Field(None, ge=25, le=45)
    heart_rate_bpm: Optional[int] = Field(None, ge=0, le=300)
    systolic_bp: Optional[int] = Field(None, ge=0, le=300)
    diastolic_bp: Optional[int] = Field(None, ge=0, le=200)
    respiratory_rate: Optional[int] = Field(None, ge=0, le=80)
    spo2_percent: Optional[float] = Field(None, ge=0, le=100)
    blood_glucose_mmol: Optional[float] = Field(None, ge=0)
    weight_kg: Optional[float] = Field(None, gt=0)
    height_cm: Optional[float] = Field(None, gt=0)
    pain_score: Optional[int] = Field(None, ge=0, le=10)
    gcs_score: Optional[int] = Field(None, ge=3, le=15)
    consciousness_level: Optional[str] = Field(None, max_length=30)
    urine_output_ml: Optional[int] = Field(None, ge=0)
    bowel_status: Optional[str] = Field(None, max_length=60)

    notes: str = ""
    abnormal_findings: bool = False
    reported_to_doctor_id: Optional[str] = None


class VitalsOut(BaseModel):
    id: str
    admission_id: str
    recorded_by_id: str
    recorded_at: datetime

    temperature_c: Optional[float] = None
    heart_rate_bpm: Optional[int] = None
    systolic_bp: Optional[int] = None
    diastolic_bp: Optional[int] = None
    respiratory_rate: Optional[int] = None
    spo2_percent: Optional[float] = None
    blood_glucose_mmol: Optional[float] = None
    weight_kg: Optional[float] = None
    height_cm: Optional[float] = None
    pain_score: Optional[int] = None
    gcs_score: Optional[int] = None
    consciousness_level: Optional[str] = None
    urine_output_ml: Optional[int] = None
    bowel_status: Optional[str] = None

    notes: Optional[str] = ""
    abnormal_findings: bool = False
    reported_to_doctor_id: Optional[str] = None
    reported_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# --------------------------
# Emergency events
# --------------------------
class EmergencyIn(BaseModel):
    patient_id: str
    admission_id: Optional[str] = None
    ward_id: Optional[str] = None
    event_type: str = Field(..., min_length=1, max_length=60)
    severity: Severity
    location: str = Field("", max_length=120)
    description: str = Field(..., min_length=1)
    time_of_event: Optional[datetime] = None
    doctors_to_notify: List[str] = []


class EscalateIn(BaseModel):
    reason: str = Field(..., min_length=1)
    escalated_to: List[str] = []


class ResolveIn(BaseModel):
    outcome: str = Field(..., min_length=1, max_length=120)
    actions_taken: str = ""
    follow_up_required: Optional[bool] = None
    follow_up_notes: Optional[str] = None


class EmergencyOut(BaseModel):
    id: str
    admission_id: Optional[str] = None
    ward_id: Optional[str] = None
    patient_id: str
    reported_by_id: str
    event_type: str
    severity: str
    location: Optional[str] = ""
    description: str
    time_of_event: datetime
    response_start_time: Optional[datetime] = None
    response_end_time: Optional[datetime] = None
    doctors_notified_ids: List[str] = []
    notified_at: Optional[datetime] = None
    escalation_reason: Optional[str] = None
    escalated_to: Optional[List[str]] = None
    escalated_at: Optional[datetime] = None
    actions_taken: Optional[str] = None
    outcome: Optional[str] = None
    status: str
    resolving_doctor_id: Optional[str] = None
    resolved_at: Optional[datetime] = None
    follow_up_required: bool = True
    follow_up_notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# --------------------------
# Nurse assignments
# --------------------------
class NurseAssignmentIn(BaseModel):
    nurse_id: str = Field(..., min_length=1)
    ward_id: Optional[str] = None
    floor_number: Optional[int] = None
    assigned_bed_ids: List[str] = []
    shift_date: Optional[date] = None
    shift_start_time: Optional[str] = Field(None, description="HH:MM")
    shift_end_time: Optional[str] = Field(None, description="HH:MM")
    notes: str = ""


class NurseAssignmentUpdate(BaseModel):
    assigned_bed_ids: Optional[List[str]] = None
    status: Optional[AssignmentStatus] = None
    notes: Optional[str] = None


class NurseAssignmentOut(BaseModel):
    id: str
    nurse_id: str
    ward_id: Optional[str] = None
    floor_number: Optional[int] = None
    assigned_bed_ids: List[str] = []
    shift_date: Optional[date] = None
    shift_start_time: Optional[str] = None
    shift_end_time: Optional[str] = None
    assigned_by_id: str
    status: str
    notes: Optional[str] = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
