from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.errors import Conflict, NotFound, ValidationFailed
from app.services import ipd_admissions, ipd_vitals
from app.utils.timezone import utcnow

from conftest import DOCTOR, DOCTOR_2, NURSE


class ExplodingNotifier:
    def notify(self, recipient_ids, payload):
        raise RuntimeError("pager gateway down")


def test_record_normal_vitals(db, admission, notifier):
    v = ipd_vitals.record_vitals(db, admission_id=admission.id, nurse_id=NURSE,
                                 notifier=notifier,
                                 temperature_c=36.8, heart_rate_bpm=78,
                                 systolic_bp=118, diastolic_bp=76, spo2_percent=98)
    assert v.recorded_by_id == NURSE
    assert v.heart_rate_bpm == 78
    assert v.temperature_c == Decimal("36.8")
    assert v.abnormal_findings is False
    assert v.reported_to_doctor_id is None
    assert notifier.sent == []


def test_abnormal_vitals_go_to_attending_doctor(db, admission, notifier):
    v = ipd_vitals.record_vitals(db, admission_id=admission.id, nurse_id=NURSE,
                                 notifier=notifier, abnormal_findings=True,
                                 spo2_percent=86, respiratory_rate=28)
    assert v.reported_to_doctor_id == DOCTOR
    assert v.reported_at is not None

    (recipients, payload), = notifier.sent
    assert recipients == [DOCTOR]
    assert payload["kind"] == "vitals.abnormal"
    assert payload["vitals_id"] == v.id


def test_named_doctor_wins(db, admission, notifier):
    v = ipd_vitals.record_vitals(db, admission_id=admission.id, nurse_id=NURSE,
                                 notifier=notifier, abnormal_findings=True,
                                 reported_to_doctor_id=DOCTOR_2, pain_score=9)
    assert v.reported_to_doctor_id == DOCTOR_2
    assert notifier.sent[0][0] == [DOCTOR_2]


def test_notifier_failure_does_not_lose_the_record(db, admission):
    v = ipd_vitals.record_vitals(db, admission_id=admission.id, nurse_id=NURSE,
                                 notifier=ExplodingNotifier(),
                                 abnormal_findings=True, heart_rate_bpm=142)
    assert ipd_vitals.latest_vitals(db, admission.id).id == v.id


def test_out_of_range_and_unknown_fields(db, admission):
    with pytest.raises(ValidationFailed):
        ipd_vitals.record_vitals(db, admission_id=admission.id, nurse_id=NURSE,
                                 pain_score=11)
    with pytest.raises(ValidationFailed):
        ipd_vitals.record_vitals(db, admission_id=admission.id, nurse_id=NURSE,
                                 gcs_score=2)
    with pytest.raises(ValidationFailed):
        ipd_vitals.record_vitals(db, admission_id=admission.id, nurse_id=NURSE,
                                 mood="cheerful")


def test_vitals_need_active_admission(db, admission):
    ipd_admissions.discharge(db, admission.id)
    with pytest.raises(Conflict):
        ipd_vitals.record_vitals(db, admission_id=admission.id, nurse_id=NURSE,
                                 heart_rate_bpm=80)
    with pytest.raises(NotFound):
        ipd_vitals.record_vitals(db, admission_id="nope", nurse_id=NURSE)


def test_latest_and_abnormal_listing(db, admission):
    now = utcnow()
    old = ipd_vitals.record_vitals(db, admission_id=admission.id, nurse_id=NURSE,
                                   recorded_at=now - timedelta(hours=4),
                                   heart_rate_bpm=72)
    flagged = ipd_vitals.record_vitals(db, admission_id=admission.id, nurse_id=NURSE,
                                       recorded_at=now - timedelta(hours=2),
                                       abnormal_findings=True, heart_rate_bpm=130)
    new = ipd_vitals.record_vitals(db, admission_id=admission.id, nurse_id=NURSE,
                                   recorded_at=now, heart_rate_bpm=90)

    assert ipd_vitals.latest_vitals(db, admission.id).id == new.id
    assert [v.id for v in ipd_vitals.list_vitals(db, admission.id)] == [
        new.id, flagged.id, old.id]
    assert [v.id for v in ipd_vitals.list_vitals(db, admission.id,
                                                 abnormal_only=True)] == [flagged.id]
    assert len(ipd_vitals.list_vitals(db, admission.id, limit=2)) == 2


def test_latest_is_none_without_readings(db, admission):
    assert ipd_vitals.latest_vitals(db, admission.id) is None
