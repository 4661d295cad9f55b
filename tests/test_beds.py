import pytest

from app.core.errors import Conflict, DuplicateKey, NotFound, ValidationFailed
from app.models.ipd import IpdBed
from app.services import ipd_beds

from conftest import admit_patient


def test_register_bed_bumps_ward_total(db, seed):
    ward = ipd_beds.get_ward(db, seed.ward)
    assert ward.total_beds == 3

    bed = ipd_beds.register_bed(db, code="B999", ward_id=seed.ward,
                                room_category_id=seed.category)
    assert bed.status == "vacant"
    assert bed.current_patient_id is None
    db.refresh(ward)
    assert ward.total_beds == 4


def test_duplicate_codes_are_rejected(db, seed):
    with pytest.raises(DuplicateKey):
        ipd_beds.register_bed(db, code="B201", ward_id=seed.ward,
                              room_category_id=seed.category)
    with pytest.raises(DuplicateKey):
        ipd_beds.register_ward(db, name="Again", code="GW2")
    with pytest.raises(DuplicateKey):
        ipd_beds.register_room_category(db, name="General", code="GEN")


def test_register_bed_requires_ward_and_category(db, seed):
    with pytest.raises(NotFound):
        ipd_beds.register_bed(db, code="X1", ward_id="nope",
                              room_category_id=seed.category)
    with pytest.raises(NotFound):
        ipd_beds.register_bed(db, code="X1", ward_id=seed.ward,
                              room_category_id="nope")


def test_operational_status_transitions_write_history(db, seed):
    bed_id = seed.beds["B202"]
    bed = ipd_beds.set_bed_operational_status(db, bed_id, "maintenance",
                                              reason="oxygen line", actor_id="mgr")
    assert bed.status == "maintenance"
    bed = ipd_beds.set_bed_operational_status(db, bed_id, "vacant")
    assert bed.status == "vacant"

    hist = ipd_beds.bed_history(db, bed_id)
    assert [(h.previous_status, h.new_status) for h in hist] == [
        ("vacant", "maintenance"), ("maintenance", "vacant")]
    assert hist[0].change_reason == "oxygen line"


def test_registry_never_sets_occupied(db, seed):
    with pytest.raises(ValidationFailed):
        ipd_beds.set_bed_operational_status(db, seed.beds["B202"], "occupied")
    with pytest.raises(ValidationFailed):
        ipd_beds.set_bed_operational_status(db, seed.beds["B202"], "broken")


def test_occupied_bed_cannot_be_moved_by_ward_management(db, seed, patients):
    admit_patient(db, seed, patients, bed="B201")
    with pytest.raises(Conflict) as exc:
        ipd_beds.set_bed_operational_status(db, seed.beds["B201"], "maintenance")
    assert exc.value.current == "occupied"
    assert db.get(IpdBed, seed.beds["B201"]).status == "occupied"


def test_query_beds_filters(db, seed):
    ipd_beds.set_bed_operational_status(db, seed.beds["B305"], "reserved")
    codes = [b.code for b in ipd_beds.query_beds(db, ward_id=seed.ward)]
    assert codes == ["B201", "B202", "B305"]
    reserved = ipd_beds.query_beds(db, status="reserved")
    assert [b.code for b in reserved] == ["B305"]
    assert ipd_beds.query_beds(db, room_category_id="other") == []


def test_deactivated_bed_drops_out_of_listing(db, seed):
    ipd_beds.deactivate_bed(db, seed.beds["B305"])
    assert "B305" not in [b.code for b in ipd_beds.query_beds(db)]
    assert ipd_beds.get_ward(db, seed.ward).total_beds == 2


def test_bed_summary_counts_and_rate(db, seed, patients):
    admit_patient(db, seed, patients, bed="B201")
    ipd_beds.set_bed_operational_status(db, seed.beds["B202"], "maintenance")

    s = ipd_beds.bed_summary(db)
    assert s["total_beds"] == 4
    assert s["occupied_beds"] == 1
    assert s["maintenance_beds"] == 1
    assert s["vacant_beds"] == 2
    assert s["occupancy_rate"] == 25

    by_ward = {w["ward_code"]: w for w in s["by_ward"]}
    assert by_ward["GW2"]["occupancy_rate"] == 33
    assert by_ward["ICU3"]["occupied_beds"] == 0


def test_beds_by_ward_and_category_groups(db, seed):
    groups = ipd_beds.beds_by_ward_and_category(db)
    sizes = {g["ward_code"]: len(g["beds"]) for g in groups}
    assert sizes == {"GW2": 3, "ICU3": 1}
    assert all(g["category_code"] == "GEN" for g in groups)


def test_update_ward_soft_deactivates(db, seed):
    ward = ipd_beds.update_ward(db, seed.icu_ward, is_active=False, code="HACK")
    assert ward.is_active is False
    assert ward.code == "ICU3"
    assert [w.code for w in ipd_beds.list_wards(db, is_active=True)] == ["GW2"]
