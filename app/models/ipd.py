from __future__ import annotations
import uuid
from sqlalchemy import (Column, Integer, String, Text, ForeignKey, Boolean,
                        Index)
from app.db.base import Base
from app.db.types import UTCDateTime
from app.utils.timezone import utcnow


def new_id() -> str:
    return str(uuid.uuid4())


# Relations are kept as plain id columns; lookups go through the services.

BED_STATUSES = ("vacant", "occupied", "maintenance", "reserved")
ADMISSION_TYPES = ("emergency", "scheduled", "transfer")
ADMISSION_STATUSES = ("active", "discharged", "transferred", "deceased")

# ---------------------------------------------------------------------
# IPD Masters
# ---------------------------------------------------------------------


class IpdWard(Base):
    __tablename__ = "ipd_wards"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
    }

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    code = Column(String(20), unique=True, nullable=False)
    floor = Column(Integer, nullable=True)
    building = Column(String(100), default="")
    description = Column(Text, default="")
    is_active = Column(Boolean, default=True, nullable=False)
    # denormalized, bumped by bed registration
    total_beds = Column(Integer, default=0, nullable=False)

    created_by = Column(String(36), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)


class IpdRoomCategory(Base):
    __tablename__ = "ipd_room_categories"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
    }

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)  # ICU / NICU / General / Private
    code = Column(String(20), unique=True, nullable=False)
    description = Column(Text, default="")
    capacity = Column(Integer, default=1, nullable=False)  # beds per room
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)


class IpdBed(Base):
    __tablename__ = "ipd_beds"
    __table_args__ = (
        Index("ix_ipd_beds_status", "status"),
        Index("ix_ipd_beds_ward_status", "ward_id", "status"),
        {
            "mysql_engine": "InnoDB",
            "mysql_charset": "utf8mb4",
        },
    )

    id = Column(String(36), primary_key=True, default=new_id)
    code = Column(String(50), unique=True, nullable=False)
    ward_id = Column(String(36),
                     ForeignKey("ipd_wards.id"),
                     nullable=False,
                     index=True)
    room_category_id = Column(String(36),
                              ForeignKey("ipd_room_categories.id"),
                              nullable=False,
                              index=True)
    room_number = Column(String(50), nullable=True)
    bed_position = Column(String(10), nullable=True)  # A/B/C in multi-bed rooms

    status = Column(String(20), default="vacant", nullable=False)
    current_patient_id = Column(String(36),
                                ForeignKey("patients.id"),
                                nullable=True)
    admission_date = Column(UTCDateTime, nullable=True)
    estimated_discharge_date = Column(UTCDateTime, nullable=True)
    special_requirements = Column(Text, default="")  # oxygen / dialysis / ventilator
    is_active = Column(Boolean, default=True, nullable=False)

    # optimistic check-and-set counter for occupancy transitions
    version = Column(Integer, nullable=False, default=1)

    created_by = Column(String(36), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_by = Column(String(36), nullable=True)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}


class IpdBedStatusHistory(Base):
    __tablename__ = "ipd_bed_status_history"
    __table_args__ = (
        Index("ix_ipd_bed_history_bed_at", "bed_id", "changed_at"),
    )

    # sequential so same-second changes keep their order
    id = Column(Integer, primary_key=True, autoincrement=True)
    bed_id = Column(String(36), ForeignKey("ipd_beds.id"), nullable=False)
    previous_status = Column(String(20), nullable=False)
    new_status = Column(String(20), nullable=False)
    previous_patient_id = Column(String(36), nullable=True)
    new_patient_id = Column(String(36), nullable=True)
    admission_id = Column(String(36), nullable=True)
    changed_by = Column(String(36), nullable=True)
    change_reason = Column(String(255), default="")
    changed_at = Column(UTCDateTime, default=utcnow, nullable=False)


# ---------------------------------------------------------------------
# IPD Core Workflow
# ---------------------------------------------------------------------


class IpdAdmission(Base):
    __tablename__ = "ipd_admissions"
    __table_args__ = (
        Index("ix_ipd_admissions_bed_status", "bed_id", "status"),
        Index("ix_ipd_admissions_patient_status", "patient_id", "status"),
        Index("ix_ipd_admissions_ward_status", "ward_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    patient_id = Column(String(36),
                        ForeignKey("patients.id"),
                        nullable=False)
    bed_id = Column(String(36), ForeignKey("ipd_beds.id"), nullable=False)
    ward_id = Column(String(36), ForeignKey("ipd_wards.id"), nullable=False)

    admitted_at = Column(UTCDateTime, default=utcnow, nullable=False)
    discharged_at = Column(UTCDateTime, nullable=True)

    admission_type = Column(String(20),
                            default="scheduled")  # emergency/scheduled/transfer
    attending_doctor_id = Column(String(36), nullable=False)
    chief_complaint = Column(Text, default="")
    admission_notes = Column(Text, default="")
    discharge_notes = Column(Text, default="")
    discharge_summary = Column(Text, nullable=True)

    status = Column(String(20), default="active",
                    nullable=False)  # active/discharged/transferred/deceased
    is_icu = Column(Boolean, default=False, nullable=False)
    is_nicu = Column(Boolean, default=False, nullable=False)

    created_by = Column(String(36), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_by = Column(String(36), nullable=True)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class IpdBedAssignment(Base):
    __tablename__ = "ipd_bed_assignments"
    __table_args__ = (
        Index("ix_ipd_bed_assignments_adm_from", "admission_id", "from_ts"),
        Index("ix_ipd_bed_assignments_adm_to", "admission_id", "to_ts"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    admission_id = Column(String(36), ForeignKey("ipd_admissions.id"), nullable=False)
    bed_id = Column(String(36), ForeignKey("ipd_beds.id"), nullable=False)
    from_ts = Column(UTCDateTime, default=utcnow, nullable=False)
    to_ts = Column(UTCDateTime, nullable=True)
    reason = Column(String(120), default="admission")
