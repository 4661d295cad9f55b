# FILE: app/api/routes_ipd_orders.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import Actor, get_audit, get_db, require
from app.core import policy
from app.schemas.ipd_orders import OrderIn, OrderOut, OrderReasonIn
from app.services import audit_descriptors as audit
from app.services import ipd_orders
from app.services.audit_logger import AuditInterceptor

router = APIRouter(prefix="/orders", tags=["IPD Orders"])


@router.post("", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.ORDER_CREATE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    data = payload.model_dump()
    data["doctor_id"] = data.get("doctor_id") or actor.id
    return auditor.run(audit.ORDER_CREATE, actor.id, ipd_orders.create_order, db,
                       **data)


@router.get("", response_model=List[OrderOut])
def list_orders(
    admission_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    order_type: Optional[str] = Query(None),
    approval_status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_orders.list_orders(db,
                                  admission_id=admission_id,
                                  status=status,
                                  order_type=order_type,
                                  approval_status=approval_status)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.READ)),
):
    return ipd_orders.get_order(db, order_id)


# --------------------------
# Approval
# --------------------------
@router.post("/{order_id}/approve", response_model=OrderOut)
def approve_order(
    order_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.ORDER_APPROVE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.ORDER_APPROVE, actor.id, ipd_orders.approve_order,
                       db, order_id, approver_id=actor.id)


@router.post("/{order_id}/reject", response_model=OrderOut)
def reject_order(
    order_id: str,
    payload: OrderReasonIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.ORDER_APPROVE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.ORDER_REJECT, actor.id, ipd_orders.reject_order, db,
                       order_id, approver_id=actor.id, reason=payload.reason)


# --------------------------
# Lifecycle
# --------------------------
@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: str,
    payload: OrderReasonIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.ORDER_UPDATE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.ORDER_CANCEL, actor.id, ipd_orders.cancel_order, db,
                       order_id, actor_id=actor.id, reason=payload.reason)


@router.post("/{order_id}/hold", response_model=OrderOut)
def hold_order(
    order_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.ORDER_UPDATE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.ORDER_HOLD, actor.id, ipd_orders.hold_order, db,
                       order_id)


@router.post("/{order_id}/resume", response_model=OrderOut)
def resume_order(
    order_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.ORDER_UPDATE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.ORDER_RESUME, actor.id, ipd_orders.resume_order, db,
                       order_id)


@router.post("/{order_id}/complete", response_model=OrderOut)
def complete_order(
    order_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require(policy.ORDER_UPDATE)),
    auditor: AuditInterceptor = Depends(get_audit),
):
    return auditor.run(audit.ORDER_COMPLETE, actor.id, ipd_orders.complete_order,
                       db, order_id)
