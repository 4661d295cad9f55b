# FILE: app/schemas/ipd.py
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# =====================================================================
# ------------------------------- Masters ------------------------------
# =====================================================================

OperationalBedStatus = Literal["vacant", "maintenance", "reserved"]
AdmissionType = Literal["emergency", "scheduled", "transfer"]


class WardIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=20)
    floor: Optional[int] = None
    building: str = Field("", max_length=100)
    description: str = ""


class WardUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    floor: Optional[int] = None
    building: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class WardOut(BaseModel):
    id: str
    name: str
    code: str
    floor: Optional[int] = None
    building: Optional[str] = ""
    description: Optional[str] = ""
    is_active: bool = True
    total_beds: int = 0
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RoomCategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=20)
    description: str = ""
    capacity: int = Field(1, ge=1)


class RoomCategoryOut(RoomCategoryIn):
    id: str
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)


class BedIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    ward_id: str
    room_category_id: str
    room_number: Optional[str] = Field(None, max_length=50)
    bed_position: Optional[str] = Field(None, max_length=10)
    special_requirements: str = ""


class BedOut(BaseModel):
    id: str
    code: str
    ward_id: str
    room_category_id: str
    room_number: Optional[str] = None
    bed_position: Optional[str] = None
    status: str
    current_patient_id: Optional[str] = None
    admission_date: Optional[datetime] = None
    estimated_discharge_date: Optional[datetime] = None
    special_requirements: Optional[str] = ""
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)


class BedStatusIn(BaseModel):
    status: OperationalBedStatus
    reason: str = Field("", max_length=255)
    estimated_discharge_date: Optional[datetime] = None


class BedHistoryOut(BaseModel):
    id: int
    bed_id: str
    previous_status: str
    new_status: str
    previous_patient_id: Optional[str] = None
    new_patient_id: Optional[str] = None
    admission_id: Optional[str] = None
    changed_by: Optional[str] = None
    change_reason: Optional[str] = ""
    changed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WardOccupancy(BaseModel):
    ward_id: str
    ward_name: str
    ward_code: str
    total_beds: int
    occupied_beds: int
    vacant_beds: int
    maintenance_beds: int
    reserved_beds: int
    occupancy_rate: int


class BedSummaryOut(BaseModel):
    total_beds: int
    occupied_beds: int
    vacant_beds: int
    maintenance_beds: int
    reserved_beds: int
    occupancy_rate: int
    by_ward: List[WardOccupancy] = []


class WardCategoryBeds(BaseModel):
    ward_id: str
    ward_name: Optional[str] = None
    ward_code: Optional[str] = None
    category_id: str
    category_name: Optional[str] = None
    category_code: Optional[str] = None
    beds: List[BedOut] = []


# =====================================================================
# ---------------------------- Admissions ------------------------------
# =====================================================================


class AdmissionIn(BaseModel):
    patient_id: str
    bed_id: str
    ward_id: str
    attending_doctor_id: str
    admission_type: AdmissionType = "scheduled"
    chief_complaint: str = ""
    admission_notes: str = ""
    is_icu: bool = False
    is_nicu: bool = False
    admitted_at: Optional[datetime] = None


class DischargeIn(BaseModel):
    discharge_summary: Optional[str] = None
    discharge_notes: str = ""


class TransferOutIn(BaseModel):
    notes: str = ""
    # None -> deployment default (TRANSFER_RELEASES_BED)
    release_bed: Optional[bool] = None


class DeceasedIn(BaseModel):
    notes: str = ""


class MoveBedIn(BaseModel):
    to_bed_id: str
    reason: str = Field("", max_length=120)


class DischargeSummaryIn(BaseModel):
    discharge_summary: str = Field(..., min_length=1)


class AdmissionOut(BaseModel):
    id: str
    patient_id: str
    bed_id: str
    ward_id: str
    admitted_at: datetime
    discharged_at: Optional[datetime] = None
    admission_type: str
    attending_doctor_id: str
    chief_complaint: Optional[str] = ""
    admission_notes: Optional[str] = ""
    discharge_notes: Optional[str] = ""
    discharge_summary: Optional[str] = None
    status: str
    is_icu: bool = False
    is_nicu: bool = False

    model_config = ConfigDict(from_attributes=True)


class AdmissionListItem(AdmissionOut):
    mrn: Optional[str] = None
    patient_name: Optional[str] = None
    ward_name: Optional[str] = None
    bed_code: Optional[str] = None


class AdmissionListOut(BaseModel):
    items: List[AdmissionListItem]
    total: int
    limit: int
    offset: int


class BedAssignmentOut(BaseModel):
    id: str
    admission_id: str
    bed_id: str
    from_ts: datetime
    to_ts: Optional[datetime] = None
    reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
