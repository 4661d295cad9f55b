from __future__ import annotations

from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional

from app.core.config import settings


def _code(x: Any) -> str:
    """
    Normalize a role / operation code.
    Supports Enum -> enum.value, str, and objects with .code
    """
    if x is None:
        return ""
    if isinstance(x, Enum):
        return str(x.value)
    if isinstance(x, str):
        return x
    if hasattr(x, "code"):
        return _code(getattr(x, "code"))
    return str(x)


ADMIN_ROLES = {"ADMIN", "SUPER_ADMIN", "ROOT", "SUPERUSER"}

# --------------------------
# Operation codes
# --------------------------
READ = "ipd.read"

WARD_MANAGE = "ipd.wards.manage"
BED_MANAGE = "ipd.beds.manage"
BED_STATUS = "ipd.beds.status"

ADMIT = "ipd.admissions.admit"
DISCHARGE = "ipd.admissions.discharge"
TRANSFER = "ipd.admissions.transfer"
ANNOTATE = "ipd.admissions.annotate"

ORDER_CREATE = "ipd.orders.create"
ORDER_APPROVE = "ipd.orders.approve"
ORDER_UPDATE = "ipd.orders.update"

SCHEDULE_CREATE = "ipd.medications.schedule"
SCHEDULE_UPDATE = "ipd.medications.schedule.update"
MATERIALIZE = "ipd.medications.materialize"
ADMINISTER = "ipd.medications.administer"
VERIFY = "ipd.medications.verify"

VITALS_RECORD = "ipd.vitals.record"
NURSE_ASSIGN = "ipd.nursing.assign"

EVENT_RAISE = "ipd.emergency.raise"
EVENT_ACK = "ipd.emergency.acknowledge"
EVENT_ESCALATE = "ipd.emergency.escalate"
EVENT_RESOLVE = "ipd.emergency.resolve"


ROLE_MATRIX: Mapping[str, FrozenSet[str]] = {
    "doctor": frozenset({
        READ, ADMIT, DISCHARGE, TRANSFER, ANNOTATE,
        ORDER_CREATE, ORDER_APPROVE, ORDER_UPDATE,
        SCHEDULE_CREATE, SCHEDULE_UPDATE, MATERIALIZE,
        VITALS_RECORD,
        EVENT_RAISE, EVENT_ACK, EVENT_ESCALATE, EVENT_RESOLVE,
    }),
    "head_nurse": frozenset({
        READ, BED_STATUS, TRANSFER, MATERIALIZE, ADMINISTER, VERIFY,
        VITALS_RECORD, EVENT_RAISE, EVENT_ESCALATE, SCHEDULE_UPDATE,
        NURSE_ASSIGN,
    }),
    "nurse": frozenset({
        READ, MATERIALIZE, ADMINISTER, VERIFY, VITALS_RECORD,
        EVENT_RAISE, EVENT_ESCALATE,
    }),
    "ward_manager": frozenset({
        READ, WARD_MANAGE, BED_MANAGE, BED_STATUS, ADMIT, DISCHARGE, TRANSFER,
    }),
}


def is_admin_role(role: Any) -> bool:
    return _code(role).strip().upper() in ADMIN_ROLES


def can(role: Any,
        operation: Any,
        resource_context: Optional[Dict[str, Any]] = None) -> bool:
    """
    Single policy decision point for the engine boundary.

    The engine itself never looks at roles; routes ask this function
    before calling into services. `resource_context` is accepted so a
    deployment can swap in ownership-aware rules (ward assignment etc.).
    """
    if is_admin_role(role):
        return bool(settings.ADMIN_ALL_ACCESS)

    want = _code(operation).strip()
    if not want:
        return False

    allowed = ROLE_MATRIX.get(_code(role).strip().lower(), frozenset())
    return want in allowed
