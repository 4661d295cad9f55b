# FILE: app/schemas/ipd_orders.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

OrderType = Literal["medication", "procedure", "investigation", "diet",
                    "activity", "observation"]
OrderPriority = Literal["routine", "urgent", "stat"]
ScheduleTarget = Literal["active", "paused", "completed", "cancelled"]
OmissionStatus = Literal["refused", "held", "delayed", "not_given"]


# =====================================================================
# ----------------------------- Orders ---------------------------------
# =====================================================================


class OrderIn(BaseModel):
    admission_id: str
    order_type: OrderType
    description: str = Field(..., min_length=1)
    instructions: str = ""
    priority: OrderPriority = "routine"
    scheduled_date: Optional[datetime] = None
    expected_completion_date: Optional[datetime] = None
    approvals_required: bool = False
    # defaults to the acting doctor
    doctor_id: Optional[str] = None


class OrderReasonIn(BaseModel):
    reason: str = ""


class OrderOut(BaseModel):
    id: str
    admission_id: str
    doctor_id: str
    order_date: datetime
    order_type: str
    description: str
    instructions: Optional[str] = ""
    priority: str
    status: str
    scheduled_date: Optional[datetime] = None
    expected_completion_date: Optional[datetime] = None
    approvals_required: bool
    approval_status: str
    approved_by_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    cancelled_by_id: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# =====================================================================
# --------------------------- Medications ------------------------------
# =====================================================================


class ScheduleIn(BaseModel):
    order_id: str
    medication_name: str = Field(..., min_length=1, max_length=200)
    dosage: str = Field(..., min_length=1, max_length=50)
    unit: str = Field(..., min_length=1, max_length=20)
    route: str = Field(..., min_length=1, max_length=30)
    frequency: str = Field(..., min_length=1, max_length=60)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    duration_days: Optional[int] = Field(None, ge=1)
    special_instructions: str = ""
    contraindications: str = ""
    allergies_to_check: str = ""
    requires_monitoring: bool = False
    monitoring_parameters: str = ""

    @model_validator(mode="after")
    def validate_dates(self) -> "ScheduleIn":
        if (self.start_date is not None and self.end_date is not None
                and self.end_date <= self.start_date):
            raise ValueError("end_date must be after start_date")
        return self


class ScheduleStatusIn(BaseModel):
    status: ScheduleTarget


class ScheduleOut(BaseModel):
    id: str
    doctor_order_id: str
    admission_id: str
    medication_name: str
    dosage: str
    unit: str
    route: str
    frequency: str
    start_date: datetime
    end_date: Optional[datetime] = None
    duration_days: Optional[int] = None
    special_instructions: Optional[str] = ""
    contraindications: Optional[str] = ""
    allergies_to_check: Optional[str] = ""
    requires_monitoring: bool = False
    monitoring_parameters: Optional[str] = ""
    prescribing_doctor_id: str
    prescribed_at: Optional[datetime] = None
    status: str

    model_config = ConfigDict(from_attributes=True)


class _TaskRef(BaseModel):
    """A dose is addressed by its id, or by schedule + due instant."""
    administration_id: Optional[str] = None
    schedule_id: Optional[str] = None
    due_at: Optional[datetime] = None

    @model_validator(mode="after")
    def need_target(self):
        if not self.administration_id and not self.schedule_id:
            raise ValueError("administration_id or schedule_id is required")
        return self


class ExecuteIn(_TaskRef):
    actual_dosage: Optional[str] = Field(None, max_length=50)
    route_used: Optional[str] = Field(None, max_length=30)
    site_of_administration: Optional[str] = Field(None, max_length=60)
    batch_number: Optional[str] = Field(None, max_length=60)
    expiry_date: Optional[datetime] = None
    nurse_notes: Optional[str] = None
    patient_response: Optional[str] = None
    side_effects_observed: bool = False
    side_effects_details: Optional[str] = None


class SkipIn(_TaskRef):
    reason: str = Field(..., min_length=1)


class OmissionIn(_TaskRef):
    status: OmissionStatus
    reason: str = Field(..., min_length=1)
    nurse_notes: Optional[str] = None


class VerifyIn(BaseModel):
    accepted: bool = True
    notes: Optional[str] = None


class MaterializeIn(BaseModel):
    schedule_id: Optional[str] = None
    admission_id: Optional[str] = None
    horizon_hours: Optional[int] = Field(None, ge=0, le=24 * 14)


class MaterializeOut(BaseModel):
    created: int


class AdministrationOut(BaseModel):
    id: str
    schedule_id: str
    admission_id: str
    medication_name: str
    scheduled_time: datetime
    administered_time: Optional[datetime] = None
    administered_by_id: Optional[str] = None
    status: str
    reason_if_not_given: Optional[str] = None
    actual_dosage: Optional[str] = None
    route_used: Optional[str] = None
    site_of_administration: Optional[str] = None
    batch_number: Optional[str] = None
    expiry_date: Optional[datetime] = None
    nurse_notes: Optional[str] = None
    patient_response: Optional[str] = None
    side_effects_observed: bool = False
    side_effects_details: Optional[str] = None
    verified_by_id: Optional[str] = None
    verified_at: Optional[datetime] = None
    verification_accepted: Optional[bool] = None
    verification_notes: Optional[str] = None
    # derived, never stored
    is_overdue: bool = False
    was_overdue: bool = False

    model_config = ConfigDict(from_attributes=True)


class ComplianceOut(BaseModel):
    admission_id: str
    total: int
    due_so_far: int
    by_status: Dict[str, int]
    overdue: int
    late: int
    verified: int
    rejected_verifications: int
    compliance_rate: int
