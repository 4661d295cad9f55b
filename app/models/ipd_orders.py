from __future__ import annotations
from sqlalchemy import (Column, String, Text, ForeignKey, Boolean, Integer,
                        UniqueConstraint, Index)
from app.db.base import Base
from app.db.types import UTCDateTime
from app.models.ipd import new_id
from app.utils.timezone import utcnow

ORDER_TYPES = ("medication", "procedure", "investigation", "diet", "activity",
               "observation")
ORDER_PRIORITIES = ("routine", "urgent", "stat")
ORDER_STATUSES = ("active", "completed", "cancelled", "on_hold")
APPROVAL_STATUSES = ("not_required", "pending", "approved", "rejected")

SCHEDULE_STATUSES = ("active", "completed", "cancelled", "paused")

ADMIN_STATUSES = ("pending", "administered", "refused", "held", "delayed",
                  "not_given")
# every status except pending is terminal for that due instant
OMISSION_STATUSES = ("refused", "held", "delayed", "not_given")

# ---------------------------------------------------------------------
# Doctor orders
# ---------------------------------------------------------------------


class IpdDoctorOrder(Base):
    __tablename__ = "ipd_doctor_orders"
    __table_args__ = (
        Index("ix_ipd_orders_adm_status", "admission_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    admission_id = Column(String(36),
                          ForeignKey("ipd_admissions.id"),
                          nullable=False)
    doctor_id = Column(String(36), nullable=False)
    order_date = Column(UTCDateTime, default=utcnow, nullable=False)

    order_type = Column(String(20), nullable=False)
    description = Column(Text, nullable=False)
    instructions = Column(Text, default="")
    priority = Column(String(10), default="routine", nullable=False)
    status = Column(String(20), default="active", nullable=False)

    scheduled_date = Column(UTCDateTime, nullable=True)
    expected_completion_date = Column(UTCDateTime, nullable=True)

    approvals_required = Column(Boolean, default=False, nullable=False)
    approval_status = Column(String(20), default="not_required", nullable=False)
    approved_by_id = Column(String(36), nullable=True)
    approved_at = Column(UTCDateTime, nullable=True)

    cancelled_by_id = Column(String(36), nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    completed_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    @property
    def schedulable(self) -> bool:
        return (self.status == "active"
                and self.approval_status in ("not_required", "approved"))


# ---------------------------------------------------------------------
# Medication schedule (1:1 with a medication order)
# ---------------------------------------------------------------------


class IpdMedicationSchedule(Base):
    __tablename__ = "ipd_medication_schedules"
    __table_args__ = (
        UniqueConstraint("doctor_order_id", name="uq_ipd_med_schedule_order"),
        Index("ix_ipd_med_schedule_adm_status", "admission_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    doctor_order_id = Column(String(36),
                             ForeignKey("ipd_doctor_orders.id"),
                             nullable=False)
    admission_id = Column(String(36),
                          ForeignKey("ipd_admissions.id"),
                          nullable=False)

    medication_name = Column(String(200), nullable=False)
    dosage = Column(String(50), nullable=False)
    unit = Column(String(20), nullable=False)  # mg / ml / units / tablets
    route = Column(String(30), nullable=False)  # oral / IV / IM / SC / ...
    frequency = Column(String(60), nullable=False)  # "twice daily", "every 6 hours"

    start_date = Column(UTCDateTime, nullable=False)
    end_date = Column(UTCDateTime, nullable=True)
    duration_days = Column(Integer, nullable=True)

    special_instructions = Column(Text, default="")
    contraindications = Column(Text, default="")
    allergies_to_check = Column(Text, default="")
    requires_monitoring = Column(Boolean, default=False, nullable=False)
    monitoring_parameters = Column(String(255), default="")

    prescribing_doctor_id = Column(String(36), nullable=False)
    prescribed_at = Column(UTCDateTime, default=utcnow)
    status = Column(String(20), default="active", nullable=False)
    # due instants before this are not materialized (set when a pause ends)
    resumed_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)


# ---------------------------------------------------------------------
# Medication administration (one row per due instant per schedule)
# ---------------------------------------------------------------------


class IpdMedicationAdministration(Base):
    __tablename__ = "ipd_medication_administrations"
    __table_args__ = (
        UniqueConstraint("schedule_id",
                         "scheduled_time",
                         name="uq_ipd_med_admin_due_instant"),
        Index("ix_ipd_med_admin_adm_status", "admission_id", "status"),
        Index("ix_ipd_med_admin_status_due", "status", "scheduled_time"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    schedule_id = Column(String(36),
                         ForeignKey("ipd_medication_schedules.id"),
                         nullable=False)
    admission_id = Column(String(36),
                          ForeignKey("ipd_admissions.id"),
                          nullable=False)

    medication_name = Column(String(200), nullable=False)  # snapshot of the schedule
    scheduled_time = Column(UTCDateTime, nullable=False)
    administered_time = Column(UTCDateTime, nullable=True)
    administered_by_id = Column(String(36), nullable=True)
    status = Column(String(20), default="pending", nullable=False)
    reason_if_not_given = Column(Text, nullable=True)

    actual_dosage = Column(String(50), nullable=True)
    route_used = Column(String(30), nullable=True)
    site_of_administration = Column(String(60), nullable=True)
    batch_number = Column(String(60), nullable=True)
    expiry_date = Column(UTCDateTime, nullable=True)

    nurse_notes = Column(Text, nullable=True)
    patient_response = Column(Text, nullable=True)
    side_effects_observed = Column(Boolean, default=False, nullable=False)
    side_effects_details = Column(Text, nullable=True)

    verified_by_id = Column(String(36), nullable=True)
    verified_at = Column(UTCDateTime, nullable=True)
    verification_accepted = Column(Boolean, nullable=True)
    verification_notes = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_overdue(self) -> bool:
        return self.status == "pending" and self.scheduled_time < utcnow()

    @property
    def was_overdue(self) -> bool:
        # late administration: given after its due instant had passed
        return (self.administered_time is not None
                and self.administered_time > self.scheduled_time)
