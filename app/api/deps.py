# app/api/deps.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.core import policy
from app.core.config import settings
from app.core.errors import Forbidden
from app.db.session import SessionLocal
from app.services.audit_logger import AuditInterceptor
from app.services.collaborators import (DbAuditSink, LoggingNotifier,
                                        NotificationDispatch, PatientDirectory,
                                        SqlPatientDirectory)


# =========================================================
# DB
# =========================================================
def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# =========================================================
# AUTH HELPERS
# =========================================================
@dataclass(frozen=True)
class Actor:
    id: str
    role: str


def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def _decode_token(raw_token: str) -> dict:
    try:
        return jwt.decode(raw_token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")


def current_actor(authorization: Optional[str] = Header(None)) -> Actor:
    """
    Identity comes from the upstream auth service's JWT:
      sub  -> acting user id
      role -> role code checked by app.core.policy
    """
    token = _extract_bearer(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    payload = _decode_token(token)
    sub = payload.get("sub")
    role = payload.get("role")
    if not sub or not role:
        raise HTTPException(status_code=401, detail="Token missing subject or role")
    return Actor(id=str(sub), role=str(role))


# =========================================================
# POLICY
# =========================================================
def require(operation: str):
    """
    Dependency factory:
    use as Depends(require(policy.ADMIT)); yields the acting user.
    """

    def _dep(actor: Actor = Depends(current_actor)) -> Actor:
        if not policy.can(actor.role, operation):
            raise Forbidden(f"Role '{actor.role}' may not perform {operation}",
                            entity="operation",
                            entity_id=operation,
                            current=actor.role,
                            attempted=operation)
        return actor

    return _dep


# =========================================================
# COLLABORATORS
# =========================================================
def get_patient_directory(db: Session = Depends(get_db)) -> PatientDirectory:
    return SqlPatientDirectory(db)


def get_notifier() -> NotificationDispatch:
    return LoggingNotifier()


def get_audit() -> AuditInterceptor:
    return AuditInterceptor(DbAuditSink(SessionLocal), enabled=settings.AUDIT_ENABLED)
