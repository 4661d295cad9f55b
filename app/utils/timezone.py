# FILE: app/utils/timezone.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """
    Timezone-aware "now" in UTC, truncated to whole seconds so values
    survive a round-trip through MySQL DATETIME unchanged.
    """
    return datetime.now(timezone.utc).replace(microsecond=0)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize any datetime to aware UTC. Naive input is read as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def as_utc_seconds(value: Optional[datetime]) -> Optional[datetime]:
    v = as_utc(value)
    return v.replace(microsecond=0) if v is not None else None
