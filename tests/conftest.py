import os
import tempfile

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(tempfile.mkdtemp(), "ipd-app.db")
os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ALG"] = "HS256"
os.environ["AUDIT_ENABLED"] = "true"
os.environ["TRANSFER_RELEASES_BED"] = "true"

from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402

import app.models  # noqa: E402,F401
from app.api import deps  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.session import make_engine, make_session_factory  # noqa: E402
from app.main import app  # noqa: E402
from app.models.patient import Patient  # noqa: E402
from app.services import ipd_beds  # noqa: E402
from app.services.audit_logger import AuditInterceptor  # noqa: E402
from app.services.collaborators import DbAuditSink, SqlPatientDirectory  # noqa: E402

DOCTOR = "doc-0001"
DOCTOR_2 = "doc-0002"
NURSE = "nurse-0001"
NURSE_2 = "nurse-0002"
MANAGER = "mgr-0001"


class RecordingSink:
    def __init__(self):
        self.events = []

    def record(self, actor_id, entity_type, entity_id, action,
               old_values=None, new_values=None):
        self.events.append(SimpleNamespace(actor_id=actor_id,
                                           entity_type=entity_type,
                                           entity_id=entity_id,
                                           action=action,
                                           old_values=old_values,
                                           new_values=new_values))


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, recipient_ids, payload):
        self.sent.append((list(recipient_ids), payload))


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'ipd.db'}"


@pytest.fixture
def engine(db_url):
    eng = make_engine(db_url)
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def patients(db):
    return SqlPatientDirectory(db)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def seed(db):
    """Two wards, one room category, four beds, four patients."""
    pts = []
    for i, (first, last) in enumerate([("Asha", "Rao"), ("Bala", "Kumar"),
                                       ("Chitra", "Devi"), ("Dinesh", "Raj")],
                                      start=1):
        p = Patient(mrn=f"MRN{i:04d}", first_name=first, last_name=last)
        db.add(p)
        pts.append(p)
    db.commit()

    gen = ipd_beds.register_ward(db, name="General Ward", code="GW2", floor=2)
    icu = ipd_beds.register_ward(db, name="ICU", code="ICU3", floor=3)
    cat = ipd_beds.register_room_category(db, name="General", code="GEN")

    beds = {}
    for code, ward in (("B201", gen), ("B202", gen), ("B305", gen), ("ICU-1", icu)):
        beds[code] = ipd_beds.register_bed(db, code=code, ward_id=ward.id,
                                           room_category_id=cat.id)

    return SimpleNamespace(
        patients=[p.id for p in pts],
        ward=gen.id,
        icu_ward=icu.id,
        category=cat.id,
        beds={k: v.id for k, v in beds.items()},
    )


def make_token(sub: str, role: str) -> str:
    return jwt.encode({"sub": sub, "role": role}, settings.JWT_SECRET,
                      algorithm=settings.JWT_ALG)


@pytest.fixture
def auth():
    def _headers(role: str, sub: str = None) -> dict:
        sub = sub or {"doctor": DOCTOR, "nurse": NURSE, "head_nurse": NURSE_2,
                      "ward_manager": MANAGER}.get(role, "admin-0001")
        return {"Authorization": f"Bearer {make_token(sub, role)}"}

    return _headers


@pytest.fixture
def client(session_factory, notifier):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[deps.get_db] = _get_db
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    app.dependency_overrides[deps.get_audit] = lambda: AuditInterceptor(
        DbAuditSink(session_factory), enabled=True)
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


def admit_patient(db, seed, patients, *, patient=0, bed="B201", ward=None,
                  doctor=DOCTOR, **kw):
    from app.services import ipd_admissions

    return ipd_admissions.admit(db,
                                patient_id=seed.patients[patient],
                                bed_id=seed.beds[bed],
                                ward_id=ward or seed.ward,
                                attending_doctor_id=doctor,
                                patients=patients,
                                **kw)


@pytest.fixture
def admission(db, seed, patients):
    return admit_patient(db, seed, patients)


@pytest.fixture
def medication_order(db, admission):
    from app.services import ipd_orders

    return ipd_orders.create_order(db,
                                   admission_id=admission.id,
                                   doctor_id=DOCTOR,
                                   order_type="medication",
                                   description="Paracetamol 500mg oral twice daily x3d")
