# FILE: app/core/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class EngineError(Exception):
    """
    Base error for every engine operation.

    Carries enough context for the caller to render a precise message
    without re-querying state:
      - entity     : "bed", "admission", "emergency_event", ...
      - entity_id  : id of the entity the error is about
      - current    : status the entity was in
      - attempted  : action / target status that was refused
    """

    status_code: int = 400
    code: str = "engine_error"

    def __init__(
        self,
        message: str,
        *,
        entity: Optional[str] = None,
        entity_id: Any = None,
        current: Optional[str] = None,
        attempted: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.attempted = attempted

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity": self.entity,
            "entity_id": None if self.entity_id is None else str(self.entity_id),
            "current": self.current,
            "attempted": self.attempted,
        }


class NotFound(EngineError):
    status_code = 404
    code = "not_found"


class Conflict(EngineError):
    status_code = 409
    code = "conflict"


class DuplicateKey(Conflict):
    code = "duplicate_key"


class ValidationFailed(EngineError):
    status_code = 422
    code = "validation"


class Forbidden(EngineError):
    status_code = 403
    code = "forbidden"


def not_found(entity: str, entity_id: Any) -> NotFound:
    return NotFound(f"{entity.replace('_', ' ').capitalize()} {entity_id} not found",
                    entity=entity,
                    entity_id=entity_id)


def illegal_transition(entity: str, entity_id: Any, current: str,
                       attempted: str) -> Conflict:
    return Conflict(
        f"Cannot {attempted} {entity.replace('_', ' ')} {entity_id}: status is {current}",
        entity=entity,
        entity_id=entity_id,
        current=current,
        attempted=attempted,
    )
