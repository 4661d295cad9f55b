# FILE: app/services/ipd_orders.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import ValidationFailed, illegal_transition, not_found
from app.db.session import rollback_on_error
from app.models.ipd_orders import (ORDER_PRIORITIES, ORDER_TYPES,
                                   IpdDoctorOrder, IpdMedicationAdministration,
                                   IpdMedicationSchedule)
from app.services.ipd_admissions import require_active_admission
from app.utils.timezone import as_utc_seconds, utcnow

logger = logging.getLogger(__name__)

# forward-only; cancelled / completed are terminal
_ALLOWED = {
    "hold": ("active",),
    "resume": ("on_hold",),
    "complete": ("active", "on_hold"),
    "cancel": ("active", "on_hold"),
}

# order status -> (schedule statuses it applies to, schedule status it sets)
_SCHEDULE_CASCADE = {
    "cancelled": (("active", "paused"), "cancelled"),
    "completed": (("active", "paused"), "completed"),
    "on_hold": (("active",), "paused"),
    "active": (("paused",), "active"),
}


def get_order(db: Session, order_id: str) -> IpdDoctorOrder:
    order = db.get(IpdDoctorOrder, order_id)
    if not order:
        raise not_found("doctor_order", order_id)
    return order


def _check(order: IpdDoctorOrder, action: str) -> None:
    if order.status not in _ALLOWED[action]:
        raise illegal_transition("doctor_order", order.id, order.status, action)


def drop_future_tasks(db: Session, schedule_id: str, after: datetime) -> int:
    """Pending tasks not yet due are removed when a schedule stops or pauses."""
    return (db.query(IpdMedicationAdministration)
            .filter(IpdMedicationAdministration.schedule_id == schedule_id,
                    IpdMedicationAdministration.status == "pending",
                    IpdMedicationAdministration.scheduled_time > after)
            .delete(synchronize_session="fetch"))


def close_schedule(db: Session, sched: IpdMedicationSchedule, status: str) -> None:
    now = utcnow()
    sched.status = status
    if sched.end_date is None or sched.end_date > now:
        sched.end_date = now
    drop_future_tasks(db, sched.id, now)


def pause_schedule(db: Session, sched: IpdMedicationSchedule) -> None:
    sched.status = "paused"
    drop_future_tasks(db, sched.id, utcnow())


def resume_schedule(sched: IpdMedicationSchedule) -> None:
    """Instants before the resume are never materialized."""
    sched.status = "active"
    sched.resumed_at = utcnow()


def _cascade_schedule(db: Session, order: IpdDoctorOrder) -> None:
    rule = _SCHEDULE_CASCADE.get(order.status)
    if not rule:
        return
    sched = (db.query(IpdMedicationSchedule)
             .filter(IpdMedicationSchedule.doctor_order_id == order.id)
             .first())
    applies_to, target = rule
    if not sched or sched.status not in applies_to:
        return
    if target == "paused":
        pause_schedule(db, sched)
    elif target == "active":
        resume_schedule(sched)
    else:
        close_schedule(db, sched, target)
    logger.info("schedule %s follows order %s -> %s", sched.id, order.id, target)


@rollback_on_error
def create_order(db: Session,
                 *,
                 admission_id: str,
                 doctor_id: str,
                 order_type: str,
                 description: str,
                 instructions: str = "",
                 priority: str = "routine",
                 scheduled_date: Optional[datetime] = None,
                 expected_completion_date: Optional[datetime] = None,
                 approvals_required: bool = False) -> IpdDoctorOrder:
    if order_type not in ORDER_TYPES:
        raise ValidationFailed(f"Unknown order type '{order_type}'",
                               entity="doctor_order",
                               attempted=order_type)
    if priority not in ORDER_PRIORITIES:
        raise ValidationFailed(f"Unknown priority '{priority}'",
                               entity="doctor_order",
                               attempted=priority)
    if not (description or "").strip():
        raise ValidationFailed("Order description is required",
                               entity="doctor_order",
                               attempted="create")

    adm = require_active_admission(db, admission_id)

    order = IpdDoctorOrder(
        admission_id=adm.id,
        doctor_id=doctor_id,
        order_date=utcnow(),
        order_type=order_type,
        description=description.strip(),
        instructions=instructions or "",
        priority=priority,
        status="active",
        scheduled_date=as_utc_seconds(scheduled_date),
        expected_completion_date=as_utc_seconds(expected_completion_date),
        approvals_required=bool(approvals_required),
        approval_status="pending" if approvals_required else "not_required",
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info("order %s (%s) created for admission %s", order.id,
                order.order_type, adm.id)
    return order


@rollback_on_error
def approve_order(db: Session, order_id: str, *, approver_id: str) -> IpdDoctorOrder:
    order = get_order(db, order_id)
    if order.approval_status != "pending" or order.status != "active":
        raise illegal_transition("doctor_order", order.id,
                                 f"{order.status}/{order.approval_status}",
                                 "approve")
    order.approval_status = "approved"
    order.approved_by_id = approver_id
    order.approved_at = utcnow()
    db.commit()
    db.refresh(order)
    logger.info("order %s approved by %s", order.id, approver_id)
    return order


@rollback_on_error
def reject_order(db: Session,
                 order_id: str,
                 *,
                 approver_id: str,
                 reason: str = "") -> IpdDoctorOrder:
    """Rejection is terminal: the order is cancelled and never schedulable."""
    order = get_order(db, order_id)
    if order.approval_status != "pending" or order.status != "active":
        raise illegal_transition("doctor_order", order.id,
                                 f"{order.status}/{order.approval_status}",
                                 "reject")
    now = utcnow()
    order.approval_status = "rejected"
    order.approved_by_id = approver_id
    order.approved_at = now
    order.status = "cancelled"
    order.cancelled_by_id = approver_id
    order.cancelled_at = now
    order.cancellation_reason = reason or "rejected"
    db.commit()
    db.refresh(order)
    logger.info("order %s rejected by %s", order.id, approver_id)
    return order


@rollback_on_error
def cancel_order(db: Session,
                 order_id: str,
                 *,
                 actor_id: str,
                 reason: str = "") -> IpdDoctorOrder:
    order = get_order(db, order_id)
    _check(order, "cancel")
    order.status = "cancelled"
    order.cancelled_by_id = actor_id
    order.cancelled_at = utcnow()
    order.cancellation_reason = reason or ""
    _cascade_schedule(db, order)
    db.commit()
    db.refresh(order)
    logger.info("order %s cancelled by %s", order.id, actor_id)
    return order


@rollback_on_error
def hold_order(db: Session, order_id: str) -> IpdDoctorOrder:
    order = get_order(db, order_id)
    _check(order, "hold")
    order.status = "on_hold"
    _cascade_schedule(db, order)
    db.commit()
    db.refresh(order)
    return order


@rollback_on_error
def resume_order(db: Session, order_id: str) -> IpdDoctorOrder:
    order = get_order(db, order_id)
    _check(order, "resume")
    order.status = "active"
    if order.schedulable:
        _cascade_schedule(db, order)
    db.commit()
    db.refresh(order)
    return order


@rollback_on_error
def complete_order(db: Session, order_id: str) -> IpdDoctorOrder:
    order = get_order(db, order_id)
    _check(order, "complete")
    order.status = "completed"
    order.completed_at = utcnow()
    _cascade_schedule(db, order)
    db.commit()
    db.refresh(order)
    logger.info("order %s completed", order.id)
    return order


def list_orders(db: Session,
                *,
                admission_id: Optional[str] = None,
                status: Optional[str] = None,
                order_type: Optional[str] = None,
                approval_status: Optional[str] = None) -> List[IpdDoctorOrder]:
    q = db.query(IpdDoctorOrder)
    if admission_id:
        q = q.filter(IpdDoctorOrder.admission_id == admission_id)
    if status:
        q = q.filter(IpdDoctorOrder.status == status)
    if order_type:
        q = q.filter(IpdDoctorOrder.order_type == order_type)
    if approval_status:
        q = q.filter(IpdDoctorOrder.approval_status == approval_status)
    return q.order_by(IpdDoctorOrder.order_date.desc(),
                      IpdDoctorOrder.id.desc()).all()
