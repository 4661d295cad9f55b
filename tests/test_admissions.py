import pytest

from app.core.errors import Conflict, NotFound, ValidationFailed
from app.models.ipd import IpdAdmission, IpdBed
from app.services import ipd_admissions, ipd_beds

from conftest import DOCTOR, DOCTOR_2, admit_patient


def _bed(db, seed, code):
    db.expire_all()
    return db.get(IpdBed, seed.beds[code])


def test_admit_occupies_bed(db, seed, patients):
    adm = admit_patient(db, seed, patients, bed="B202", chief_complaint="fever")
    assert adm.status == "active"
    assert adm.discharged_at is None

    bed = _bed(db, seed, "B202")
    assert bed.status == "occupied"
    assert bed.current_patient_id == seed.patients[0]
    assert bed.admission_date == adm.admitted_at

    hist = ipd_beds.bed_history(db, bed.id)
    assert hist[-1].new_status == "occupied"
    assert hist[-1].admission_id == adm.id


def test_discharge_frees_bed(db, seed, patients):
    adm = admit_patient(db, seed, patients)
    adm = ipd_admissions.discharge(db, adm.id, discharge_summary="stable",
                                   discharge_notes="review in 1 week")
    assert adm.status == "discharged"
    assert adm.discharged_at is not None
    assert adm.discharge_summary == "stable"

    bed = _bed(db, seed, "B201")
    assert bed.status == "vacant"
    assert bed.current_patient_id is None
    assert bed.admission_date is None

    with pytest.raises(Conflict):
        ipd_admissions.discharge(db, adm.id)


def test_freed_bed_can_be_reused(db, seed, patients):
    first = admit_patient(db, seed, patients, patient=0)
    ipd_admissions.discharge(db, first.id)
    second = admit_patient(db, seed, patients, patient=1)
    assert second.bed_id == first.bed_id


def test_occupied_bed_is_refused(db, seed, patients):
    admit_patient(db, seed, patients, patient=0, bed="B201")
    with pytest.raises(Conflict) as exc:
        admit_patient(db, seed, patients, patient=1, bed="B201")
    assert exc.value.entity == "bed"
    assert exc.value.current == "occupied"
    assert db.query(IpdAdmission).filter_by(patient_id=seed.patients[1]).count() == 0


def test_refused_admit_leaves_nothing_for_the_next_commit(db, seed, patients):
    admit_patient(db, seed, patients, patient=0, bed="B201")
    with pytest.raises(Conflict):
        admit_patient(db, seed, patients, patient=1, bed="B201")
    assert not db.in_transaction()

    # any later write on the same session commits only its own rows
    ipd_beds.register_ward(db, name="Step-down", code="SDU")

    active = (db.query(IpdAdmission)
              .filter(IpdAdmission.bed_id == seed.beds["B201"],
                      IpdAdmission.status == "active")
              .all())
    assert [a.patient_id for a in active] == [seed.patients[0]]
    assert db.query(IpdAdmission).filter_by(patient_id=seed.patients[1]).count() == 0


def test_refused_discharge_and_move_keep_session_clean(db, seed, patients):
    a = admit_patient(db, seed, patients, patient=0, bed="B201")
    admit_patient(db, seed, patients, patient=1, bed="B202")
    ipd_admissions.discharge(db, a.id)

    with pytest.raises(Conflict):
        ipd_admissions.discharge(db, a.id)
    assert not db.in_transaction()

    b = admit_patient(db, seed, patients, patient=2, bed="B201")
    with pytest.raises(Conflict):
        ipd_admissions.move_bed(db, b.id, to_bed_id=seed.beds["B202"])
    assert not db.in_transaction()

    ipd_beds.register_ward(db, name="Step-down", code="SDU")
    assert _bed(db, seed, "B201").current_patient_id == seed.patients[2]
    assert _bed(db, seed, "B202").current_patient_id == seed.patients[1]
    assert db.get(IpdAdmission, b.id).bed_id == seed.beds["B201"]


def test_bed_under_maintenance_is_refused(db, seed, patients):
    ipd_beds.set_bed_operational_status(db, seed.beds["B202"], "maintenance")
    with pytest.raises(Conflict):
        admit_patient(db, seed, patients, bed="B202")


def test_reserved_bed_can_be_claimed(db, seed, patients):
    ipd_beds.set_bed_operational_status(db, seed.beds["B202"], "reserved")
    adm = admit_patient(db, seed, patients, bed="B202")
    assert _bed(db, seed, "B202").status == "occupied"
    assert adm.bed_id == seed.beds["B202"]


def test_one_active_stay_per_patient(db, seed, patients):
    admit_patient(db, seed, patients, patient=0, bed="B201")
    with pytest.raises(Conflict):
        admit_patient(db, seed, patients, patient=0, bed="B202")
    assert _bed(db, seed, "B202").status == "vacant"


def test_bed_must_belong_to_ward(db, seed, patients):
    with pytest.raises(ValidationFailed):
        admit_patient(db, seed, patients, bed="ICU-1", ward=seed.ward)


def test_unknown_patient_and_bad_type(db, seed, patients):
    with pytest.raises(NotFound):
        ipd_admissions.admit(db, patient_id="ghost", bed_id=seed.beds["B201"],
                             ward_id=seed.ward, attending_doctor_id=DOCTOR,
                             patients=patients)
    with pytest.raises(ValidationFailed):
        admit_patient(db, seed, patients, admission_type="walk-in")


def test_inactive_ward_is_refused(db, seed, patients):
    ipd_beds.update_ward(db, seed.icu_ward, is_active=False)
    with pytest.raises(Conflict):
        admit_patient(db, seed, patients, bed="ICU-1", ward=seed.icu_ward)


def test_transfer_out_follows_release_policy(db, seed, patients):
    a = admit_patient(db, seed, patients, patient=0, bed="B201")
    b = admit_patient(db, seed, patients, patient=1, bed="B202")

    a = ipd_admissions.transfer_out(db, a.id, notes="to tertiary care")
    assert a.status == "transferred"
    assert _bed(db, seed, "B201").status == "vacant"

    ipd_admissions.transfer_out(db, b.id, release_bed=False)
    bed = _bed(db, seed, "B202")
    assert bed.status == "reserved"
    assert bed.current_patient_id is None


def test_mark_deceased(db, seed, patients):
    adm = admit_patient(db, seed, patients)
    adm = ipd_admissions.mark_deceased(db, adm.id, notes="time of death 03:10")
    assert adm.status == "deceased"
    assert adm.discharge_notes == "time of death 03:10"
    assert _bed(db, seed, "B201").status == "vacant"
    with pytest.raises(Conflict):
        ipd_admissions.transfer_out(db, adm.id)


def test_move_bed_swaps_occupancy(db, seed, patients):
    adm = admit_patient(db, seed, patients, bed="B201")
    adm = ipd_admissions.move_bed(db, adm.id, to_bed_id=seed.beds["B305"],
                                  reason="closer to station")
    assert adm.bed_id == seed.beds["B305"]
    assert _bed(db, seed, "B201").status == "vacant"
    new = _bed(db, seed, "B305")
    assert new.status == "occupied"
    assert new.current_patient_id == adm.patient_id

    legs = ipd_admissions.bed_assignments(db, adm.id)
    assert [leg.bed_id for leg in legs] == [seed.beds["B201"], seed.beds["B305"]]
    assert legs[0].to_ts is not None
    assert legs[1].to_ts is None


def test_move_bed_into_occupied_bed_fails(db, seed, patients):
    a = admit_patient(db, seed, patients, patient=0, bed="B201")
    admit_patient(db, seed, patients, patient=1, bed="B202")
    with pytest.raises(Conflict):
        ipd_admissions.move_bed(db, a.id, to_bed_id=seed.beds["B202"])
    with pytest.raises(ValidationFailed):
        ipd_admissions.move_bed(db, a.id, to_bed_id=seed.beds["B201"])
    assert _bed(db, seed, "B201").current_patient_id == seed.patients[0]


def test_move_across_wards_updates_ward(db, seed, patients):
    adm = admit_patient(db, seed, patients)
    adm = ipd_admissions.move_bed(db, adm.id, to_bed_id=seed.beds["ICU-1"])
    assert adm.ward_id == seed.icu_ward


def test_discharge_summary_only_after_stay_ends(db, seed, patients):
    adm = admit_patient(db, seed, patients)
    with pytest.raises(Conflict):
        ipd_admissions.annotate_discharge_summary(db, adm.id, "draft")

    ipd_admissions.discharge(db, adm.id)
    adm = ipd_admissions.annotate_discharge_summary(db, adm.id, "final summary")
    assert adm.discharge_summary == "final summary"
    assert adm.status == "discharged"


def test_list_admissions_filters_and_search(db, seed, patients):
    a = admit_patient(db, seed, patients, patient=0, bed="B201")
    admit_patient(db, seed, patients, patient=1, bed="B202", doctor=DOCTOR_2)
    admit_patient(db, seed, patients, patient=2, bed="ICU-1",
                  ward=seed.icu_ward, is_icu=True)
    ipd_admissions.discharge(db, a.id)

    rows, total = ipd_admissions.list_admissions(db, status="active")
    assert total == 2

    rows, total = ipd_admissions.list_admissions(db, is_icu=True)
    assert total == 1
    assert rows[0].ward_name == "ICU"
    assert rows[0].bed_code == "ICU-1"

    rows, total = ipd_admissions.list_admissions(db, q="Bala")
    assert total == 1
    assert rows[0].patient_name == "Bala Kumar"
    assert rows[0].mrn == "MRN0002"

    _, total = ipd_admissions.list_admissions(db, doctor_id=DOCTOR_2)
    assert total == 1

    rows, total = ipd_admissions.list_admissions(db, limit=1)
    assert total == 3
    assert len(rows) == 1


def test_occupied_beds_match_active_admissions(db, seed, patients):
    a = admit_patient(db, seed, patients, patient=0, bed="B201")
    b = admit_patient(db, seed, patients, patient=1, bed="B202")
    ipd_admissions.move_bed(db, a.id, to_bed_id=seed.beds["B305"])
    ipd_admissions.discharge(db, b.id)
    admit_patient(db, seed, patients, patient=2, bed="B202")

    db.expire_all()
    occupied = {bed.id: bed.current_patient_id
                for bed in db.query(IpdBed).filter(IpdBed.status == "occupied")}
    active = {adm.bed_id: adm.patient_id
              for adm in db.query(IpdAdmission).filter(IpdAdmission.status == "active")}
    assert occupied == active
