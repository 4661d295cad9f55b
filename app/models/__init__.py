# app/models/__init__.py
from .patient import Patient
from .ipd import (IpdWard, IpdRoomCategory, IpdBed, IpdBedStatusHistory,
                  IpdAdmission, IpdBedAssignment)
from .ipd_orders import (IpdDoctorOrder, IpdMedicationSchedule,
                         IpdMedicationAdministration)
from .ipd_nursing import IpdVital, IpdEmergencyEvent, IpdNurseAssignment
from .audit import AuditLog

__all__ = [
    "Patient",
    "IpdWard",
    "IpdRoomCategory",
    "IpdBed",
    "IpdBedStatusHistory",
    "IpdAdmission",
    "IpdBedAssignment",
    "IpdDoctorOrder",
    "IpdMedicationSchedule",
    "IpdMedicationAdministration",
    "IpdVital",
    "IpdEmergencyEvent",
    "IpdNurseAssignment",
    "AuditLog",
]
