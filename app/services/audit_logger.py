from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from app.services.collaborators import AuditSink

logger = logging.getLogger(__name__)


def _default_id(result: Any) -> Any:
    return getattr(result, "id", None)


@dataclass(frozen=True)
class AuditDescriptor:
    """
    Declarative audit metadata for one engine operation:
      entity_type / action : what gets written to the audit trail
      id_of                : pulls the entity id out of the operation result
      values_of            : new values, read from the result
      old_values_of        : old values, read from the operation's arguments
                             *before* it runs (same signature as the operation)
    """
    entity_type: str
    action: str
    id_of: Callable[[Any], Any] = _default_id
    values_of: Optional[Callable[[Any], Dict[str, Any]]] = None
    old_values_of: Optional[Callable[..., Optional[Dict[str, Any]]]] = None


class AuditInterceptor:
    """
    Runs an engine operation and, after it returned, hands a structured
    record to the audit sink. Sink failures are logged and dropped; the
    operation's result (or exception) is passed through untouched.
    """

    def __init__(self, sink: Optional[AuditSink], enabled: bool = True):
        self.sink = sink
        self.enabled = enabled

    def run(self, descriptor: AuditDescriptor, actor_id: Optional[str],
            fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Any:
        old_values = self._old_values(descriptor, args, kwargs)
        result = fn(*args, **kwargs)
        self.record(descriptor, actor_id, result, old_values=old_values)
        return result

    def _old_values(self, descriptor: AuditDescriptor, args, kwargs):
        if not self.enabled or descriptor.old_values_of is None:
            return None
        try:
            return descriptor.old_values_of(*args, **kwargs)
        except Exception:
            logger.exception("Audit snapshot failed for %s.%s",
                             descriptor.entity_type, descriptor.action)
            return None

    def record(self,
               descriptor: AuditDescriptor,
               actor_id: Optional[str],
               result: Any,
               old_values: Optional[Dict[str, Any]] = None) -> None:
        if not self.enabled or self.sink is None:
            return
        try:
            entity_id = descriptor.id_of(result)
            new_values = descriptor.values_of(result) if descriptor.values_of else None
            self.sink.record(
                actor_id,
                descriptor.entity_type,
                entity_id,
                descriptor.action,
                old_values,
                new_values,
            )
        except Exception:
            logger.exception("Audit interceptor failed for %s.%s",
                             descriptor.entity_type, descriptor.action)
