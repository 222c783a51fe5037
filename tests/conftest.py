import os
import pathlib
import shutil
import sys

import pytest
from werkzeug.security import generate_password_hash

root = pathlib.Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

from clinic_scheduler import create_app
from clinic_scheduler.extensions import limiter
from clinic_scheduler.services.database import db as raw_db

# 2030-01-07 is a Monday; 2030-01-12 a Saturday.
MONDAY = "2030-01-07"
NEXT_MONDAY = "2030-01-14"
SATURDAY = "2030-01-12"


@pytest.fixture(scope="session")
def _template_db(tmp_path_factory):
    """Build a fully-migrated DB once per test session.

    Every function-scoped ``app`` fixture copies this file instead of
    running Alembic from scratch.
    """
    db_path = tmp_path_factory.mktemp("template") / "app.db"
    old_db = os.environ.get("CLINIC_DB_PATH")
    old_key = os.environ.get("CLINIC_SECRET_KEY")
    old_migrate = os.environ.get("CLINIC_AUTO_MIGRATE")
    os.environ["CLINIC_DB_PATH"] = str(db_path)
    os.environ["CLINIC_SECRET_KEY"] = "test-secret"
    os.environ["CLINIC_AUTO_MIGRATE"] = "1"
    try:
        _app = create_app()
        with _app.app_context():
            pass
    finally:
        for key, old in (
            ("CLINIC_DB_PATH", old_db),
            ("CLINIC_SECRET_KEY", old_key),
            ("CLINIC_AUTO_MIGRATE", old_migrate),
        ):
            if old is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = old
    return db_path


@pytest.fixture
def app(tmp_path, monkeypatch, _template_db):
    # Copy pre-migrated template DB; avoids running Alembic per test.
    db_path = tmp_path / "app.db"
    shutil.copy2(_template_db, db_path)
    monkeypatch.setenv("CLINIC_DB_PATH", str(db_path))
    monkeypatch.setenv("CLINIC_SECRET_KEY", "test-secret")
    monkeypatch.setenv("CLINIC_AUTO_MIGRATE", "0")  # Already migrated
    app = create_app()
    app.config.update(TESTING=True, WTF_CSRF_ENABLED=True)
    limiter.reset()
    yield app


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


def _insert_user(user_id: str, username: str, password: str, role: str) -> dict:
    conn = raw_db()
    try:
        conn.execute(
            "INSERT INTO users(id, username, password_hash, role, is_active, created_at) "
            "VALUES (?, ?, ?, ?, 1, datetime('now'))",
            (user_id, username, generate_password_hash(password), role),
        )
        conn.commit()
    finally:
        conn.close()
    return {"id": user_id, "username": username, "password": password}


@pytest.fixture
def admin_user(app):
    return _insert_user("admin-test", "admin", "password123", "admin")


@pytest.fixture
def make_user(app):
    def _make(username: str, role: str, password: str = "password123") -> dict:
        return _insert_user(f"{role}-{username}", username, password, role)

    return _make


def _csrf_headers(client) -> dict:
    resp = client.get("/auth/csrf")
    assert resp.status_code == 200
    return {"X-CSRFToken": resp.get_json()["data"]["csrf_token"]}


@pytest.fixture
def get_csrf_token():
    return _csrf_headers


def _login(client, username: str, password: str):
    return client.post(
        "/auth/login",
        json={"username": username, "password": password},
        headers=_csrf_headers(client),
    )


@pytest.fixture
def login():
    return _login


@pytest.fixture
def logged_in_client(client, admin_user):
    resp = _login(client, admin_user["username"], admin_user["password"])
    assert resp.status_code == 200, resp.get_json()
    return client


class ApiClient:
    """Test client wrapper that sends the CSRF header on writes."""

    def __init__(self, client):
        self.client = client
        self._headers = None

    def _csrf(self) -> dict:
        if self._headers is None:
            self._headers = _csrf_headers(self.client)
        return self._headers

    def get(self, url, **kwargs):
        return self.client.get(url, **kwargs)

    def post(self, url, json=None):
        return self.client.post(url, json=json if json is not None else {}, headers=self._csrf())

    def put(self, url, json=None):
        return self.client.put(url, json=json if json is not None else {}, headers=self._csrf())

    def delete(self, url):
        return self.client.delete(url, headers=self._csrf())


@pytest.fixture
def api(logged_in_client):
    return ApiClient(logged_in_client)


@pytest.fixture
def clinic(app):
    """A small clinic: one doctor (default hours, off on NEXT_MONDAY), two rooms, two patients.

    Built in its own app context so HTTP tests never share ``g`` with it.
    """

    from clinic_scheduler.services.doctors import create_doctor
    from clinic_scheduler.services.patients import create_patient
    from clinic_scheduler.services.rooms import create_room
    from clinic_scheduler.services.specializations import create_specialization
    from clinic_scheduler.services.treatments import create_treatment

    with app.app_context():
        spec = create_specialization({"name": "Dermatology"})
        doctor = create_doctor(
            {
                "first_name": "John",
                "last_name": "Doe",
                "email": "john@clinic.test",
                "phone": "+100",
                "specializations": [spec["id"]],
                "working_days_exceptions": [{"date": NEXT_MONDAY, "is_working": False}],
            }
        )
        other_doctor = create_doctor(
            {"first_name": "Jane", "last_name": "Roe", "email": "jane@clinic.test", "phone": "+101"}
        )
        room = create_room({"name": "Room 101", "specializations": [spec["id"]]})
        other_room = create_room({"name": "Room 102"})
        patient = create_patient(
            {"first_name": "Alice", "last_name": "Smith", "birth_date": "1990-05-15", "phone": "+200"}
        )
        other_patient = create_patient(
            {"first_name": "Bob", "last_name": "Jones", "birth_date": "1985-08-22", "phone": "+201"}
        )
        treatment = create_treatment(
            {"name": "Peel", "duration": 30, "price": "80.00", "specialization_id": spec["id"]}
        )
    return {
        "specialization_id": spec["id"],
        "doctor_id": doctor["id"],
        "other_doctor_id": other_doctor["id"],
        "room_id": room["id"],
        "other_room_id": other_room["id"],
        "patient_id": patient["id"],
        "other_patient_id": other_patient["id"],
        "treatment_id": treatment["id"],
    }


@pytest.fixture
def booking(clinic, app_ctx):
    """Build a create payload from the clinic fixture, overridable per call."""

    def _booking(**overrides) -> dict:
        payload = {
            "doctor_id": clinic["doctor_id"],
            "patient_id": clinic["patient_id"],
            "treatment_id": clinic["treatment_id"],
            "room_id": clinic["room_id"],
            "starts_at": f"{MONDAY}T10:00",
            "ends_at": f"{MONDAY}T11:00",
        }
        payload.update(overrides)
        return payload

    return _booking
