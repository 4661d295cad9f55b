from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import ValidationFailed
from app.services.medication_frequency import (due_instants, is_due_instant,
                                               parse_frequency)

START = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("text,hours", [
    ("once daily", 24),
    ("OD", 24),
    ("q.d.", 24),
    ("HS", 24),
    ("twice daily", 12),
    ("BD", 12),
    ("b.i.d.", 12),
    ("q12h", 12),
    ("three times daily", 8),
    ("TDS", 8),
    ("four times daily", 6),
    ("QID", 6),
    ("every 6 hours", 6),
    ("Every 4 hrs", 4),
    ("q8h", 8),
    ("every hour", 1),
])
def test_interval_vocabulary(text, hours):
    f = parse_frequency(text)
    assert f.kind == "interval"
    assert f.interval == timedelta(hours=hours)


@pytest.mark.parametrize("text", ["as needed", "PRN", "sos", "S.O.S"])
def test_prn_vocabulary(text):
    assert parse_frequency(text).is_prn


@pytest.mark.parametrize("text", ["stat", "STAT", "once", "single dose"])
def test_once_vocabulary(text):
    assert parse_frequency(text).is_once


@pytest.mark.parametrize("text", ["", "whenever", "every 0 hours", "thrice weekly"])
def test_unknown_frequency_is_rejected(text):
    with pytest.raises(ValidationFailed):
        parse_frequency(text)


def test_twice_daily_for_three_days_yields_six_instants():
    got = due_instants("twice daily", START, duration_days=3)
    assert len(got) == 6
    assert got[0] == START
    assert all(b - a == timedelta(hours=12) for a, b in zip(got, got[1:]))
    assert got[-1] == START + timedelta(hours=60)


def test_end_date_is_exclusive_and_earliest_bound_wins():
    end = START + timedelta(days=1)
    got = due_instants("every 6 hours", START, end=end, duration_days=3)
    assert got == [START + timedelta(hours=h) for h in (0, 6, 12, 18)]


def test_horizon_truncates_window():
    got = due_instants("every 6 hours", START, duration_days=5,
                       until=START + timedelta(hours=13))
    assert got == [START, START + timedelta(hours=6), START + timedelta(hours=12)]


def test_open_ended_schedule_needs_a_horizon():
    with pytest.raises(ValidationFailed):
        due_instants("every 8 hours", START)
    assert len(due_instants("every 8 hours", START,
                            until=START + timedelta(hours=48))) == 7


def test_prn_has_no_automatic_instants():
    assert due_instants("as needed", START, duration_days=3) == []


def test_stat_is_a_single_instant():
    assert due_instants("stat", START, until=START + timedelta(days=2)) == [START]
    assert due_instants("stat", START, until=START - timedelta(hours=1)) == []


def test_naive_start_is_read_as_utc():
    naive = START.replace(tzinfo=None)
    assert due_instants("once daily", naive, duration_days=2) == [
        START, START + timedelta(days=1)]


def test_is_due_instant_alignment():
    assert is_due_instant("every 6 hours", START, START + timedelta(hours=18))
    assert not is_due_instant("every 6 hours", START, START + timedelta(hours=17))
    assert not is_due_instant("every 6 hours", START, START - timedelta(hours=6))
    assert not is_due_instant("every 6 hours", START, START + timedelta(days=1),
                              duration_days=1)


def test_is_due_instant_prn_and_stat():
    assert is_due_instant("prn", START, START + timedelta(minutes=37))
    assert is_due_instant("stat", START, START)
    assert not is_due_instant("stat", START, START + timedelta(hours=1))
