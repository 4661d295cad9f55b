# FILE: app/models/patient.py
from sqlalchemy import (
    Column,
    String,
    Boolean,
)

from app.db.base import Base
from app.db.types import UTCDateTime
from app.models.ipd import new_id
from app.utils.timezone import utcnow


class Patient(Base):
    """
    Read-only projection of the patient directory.
    Owned by the registration module; IPD only checks that subjects exist.
    """
    __tablename__ = "patients"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id = Column(String(36), primary_key=True, default=new_id)
    mrn = Column(String(32), unique=True, index=True, nullable=False)

    first_name = Column(String(120), nullable=False)
    last_name = Column(String(120), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(UTCDateTime, default=utcnow)

    @property
    def full_name(self) -> str:
        return f"{(self.first_name or '').strip()} {(self.last_name or '').strip()}".strip()
