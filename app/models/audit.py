from sqlalchemy import (
    Column,
    Integer,
    String,
    JSON,
)

from app.db.base import Base
from app.db.types import UTCDateTime
from app.utils.timezone import utcnow


class AuditLog(Base):
    """
    Audit trail for every IPD state change.
    Written by the audit sink after the primary transaction committed.
    """
    __tablename__ = "audit_logs"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id = Column(Integer, primary_key=True, index=True)

    actor_id = Column(String(36), nullable=True)  # system jobs may be null
    action = Column(String(40), nullable=False)  # admit / discharge / execute ...

    entity_type = Column(String(80), nullable=False)
    entity_id = Column(String(100),
                       nullable=False)  # generic pk, stored as string

    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
