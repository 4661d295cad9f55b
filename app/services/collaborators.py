# FILE: app/services/collaborators.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional, Protocol

from sqlalchemy.orm import Session, sessionmaker

from app.models.audit import AuditLog
from app.models.patient import Patient

logger = logging.getLogger(__name__)


class PatientDirectory(Protocol):
    def exists(self, patient_id: str) -> bool: ...


class AuditSink(Protocol):
    def record(
        self,
        actor_id: Optional[str],
        entity_type: str,
        entity_id: Any,
        action: str,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
    ) -> None: ...


class NotificationDispatch(Protocol):
    def notify(self, recipient_ids: Iterable[str], payload: Dict[str, Any]) -> None: ...


# --------------------------
# Default implementations
# --------------------------
class SqlPatientDirectory:
    """Patient lookup against the shared `patients` table, same session as the caller."""

    def __init__(self, db: Session):
        self.db = db

    def exists(self, patient_id: str) -> bool:
        if not patient_id:
            return False
        p = self.db.get(Patient, patient_id)
        return bool(p and p.is_active)


class DbAuditSink:
    """
    Persist one audit event into `audit_logs` using its own session,
    so a failing audit write can never touch the caller's transaction.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def record(
        self,
        actor_id: Optional[str],
        entity_type: str,
        entity_id: Any,
        action: str,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
    ) -> None:
        db = self.session_factory()
        try:
            db.add(AuditLog(
                actor_id=actor_id,
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id),
                old_values=old_values,
                new_values=new_values,
            ))
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed to write audit %s %s/%s", action,
                             entity_type, entity_id)
        finally:
            db.close()


class LoggingNotifier:
    """Hands notifications to the log; a paging/SMS gateway plugs in here."""

    def notify(self, recipient_ids: Iterable[str], payload: Dict[str, Any]) -> None:
        ids = [r for r in recipient_ids if r]
        if not ids:
            return
        logger.info("notify %s: %s", ids, payload)


def safe_notify(notifier: Optional[NotificationDispatch],
                recipient_ids: Iterable[str],
                payload: Dict[str, Any]) -> None:
    """Best-effort dispatch; a failing notifier never fails the caller."""
    if notifier is None:
        return
    try:
        notifier.notify(list(recipient_ids), payload)
    except Exception:
        logger.exception("Notification dispatch failed: %s", payload.get("kind"))
