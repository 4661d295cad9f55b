# FILE: app/services/medication_frequency.py
"""
Frequency text -> due instants.

Everything here is pure: no session, no clock. Callers pass `start`,
the optional end bounds and the materialization horizon (`until`).

    "twice daily"      -> every 12h from start
    "every 6 hours"    -> every 6h from start
    "as needed"        -> no automatic instants
    "stat"             -> exactly one instant, at start
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from app.core.errors import ValidationFailed
from app.utils.timezone import as_utc

KIND_INTERVAL = "interval"
KIND_PRN = "prn"
KIND_ONCE = "once"

_HOURS = {
    # once a day
    "once daily": 24,
    "once a day": 24,
    "daily": 24,
    "od": 24,
    "qd": 24,
    "hs": 24,
    "qhs": 24,
    "at bedtime": 24,
    # twice
    "twice daily": 12,
    "twice a day": 12,
    "bd": 12,
    "bid": 12,
    # thrice
    "three times daily": 8,
    "three times a day": 8,
    "thrice daily": 8,
    "tds": 8,
    "tid": 8,
    # four
    "four times daily": 6,
    "four times a day": 6,
    "qid": 6,
    "qds": 6,
    # hourly
    "hourly": 1,
    "every hour": 1,
}

_PRN = {"as needed", "as required", "prn", "sos", "when required"}
_ONCE = {"stat", "once", "single dose", "one time", "immediately"}

_EVERY_N = re.compile(r"^(?:every|q)\s*(\d+)\s*(?:h|hr|hrs|hour|hours)(?:ly)?$")


@dataclass(frozen=True)
class Frequency:
    text: str
    kind: str
    interval: Optional[timedelta] = None

    @property
    def is_prn(self) -> bool:
        return self.kind == KIND_PRN

    @property
    def is_once(self) -> bool:
        return self.kind == KIND_ONCE


def _normalize(text: str) -> str:
    s = (text or "").strip().lower()
    s = s.replace(".", "").replace("-", " ")
    return re.sub(r"\s+", " ", s)


def parse_frequency(text: str) -> Frequency:
    s = _normalize(text)
    if not s:
        raise ValidationFailed("Frequency is required",
                               entity="medication_schedule",
                               attempted="frequency")

    if s in _PRN:
        return Frequency(text=s, kind=KIND_PRN)
    if s in _ONCE:
        return Frequency(text=s, kind=KIND_ONCE)
    if s in _HOURS:
        return Frequency(text=s,
                         kind=KIND_INTERVAL,
                         interval=timedelta(hours=_HOURS[s]))

    m = _EVERY_N.match(s)
    if m:
        n = int(m.group(1))
        if n <= 0:
            raise ValidationFailed(f"Invalid frequency interval '{text}'",
                                   entity="medication_schedule",
                                   attempted="frequency")
        return Frequency(text=s, kind=KIND_INTERVAL, interval=timedelta(hours=n))

    raise ValidationFailed(f"Unrecognised frequency '{text}'",
                           entity="medication_schedule",
                           attempted="frequency")


def _as_frequency(frequency) -> Frequency:
    if isinstance(frequency, Frequency):
        return frequency
    return parse_frequency(frequency)


def effective_end(start: datetime,
                  end: Optional[datetime] = None,
                  duration_days: Optional[int] = None) -> Optional[datetime]:
    """Earliest of the explicit end and start + duration; exclusive bound."""
    bounds = []
    if end is not None:
        bounds.append(as_utc(end))
    if duration_days:
        bounds.append(as_utc(start) + timedelta(days=int(duration_days)))
    return min(bounds) if bounds else None


def due_instants(frequency,
                 start: datetime,
                 end: Optional[datetime] = None,
                 duration_days: Optional[int] = None,
                 until: Optional[datetime] = None) -> List[datetime]:
    """
    Due instants start, start+i, start+2i, ... that are strictly before the
    effective end and not after `until` (the rolling horizon).

    A fixed-interval rule with neither an end nor a horizon is unbounded and
    is refused.
    """
    freq = _as_frequency(frequency)
    start = as_utc(start)
    stop = effective_end(start, end, duration_days)
    until = as_utc(until)

    if freq.is_prn:
        return []

    def inside(t: datetime) -> bool:
        if stop is not None and t >= stop:
            return False
        if until is not None and t > until:
            return False
        return True

    if freq.is_once:
        return [start] if inside(start) else []

    if stop is None and until is None:
        raise ValidationFailed(
            f"Frequency '{freq.text}' needs an end date, duration or horizon",
            entity="medication_schedule",
            attempted="expand")

    out: List[datetime] = []
    t = start
    while inside(t):
        out.append(t)
        t = t + freq.interval
    return out


def is_due_instant(frequency,
                   start: datetime,
                   instant: datetime,
                   end: Optional[datetime] = None,
                   duration_days: Optional[int] = None) -> bool:
    """
    True when `instant` is one the rule produces. PRN accepts any instant
    inside the schedule window.
    """
    freq = _as_frequency(frequency)
    start, instant = as_utc(start), as_utc(instant)
    stop = effective_end(start, end, duration_days)

    if instant < start:
        return False
    if stop is not None and instant >= stop:
        return False
    if freq.is_prn:
        return True
    if freq.is_once:
        return instant == start
    return (instant - start) % freq.interval == timedelta(0)
