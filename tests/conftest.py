import pytest
from werkzeug.security import generate_password_hash

from app.portal import create_app
from app.portal.auth import _login_attempts
from app.portal.db import session_scope
from app.portal.models import Base, User
from app.portal.modules.agencies.models import Agency
from app.portal.modules.colleges.models import College, Course


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("ADMIN_EMAIL", "admin@example.com")
    monkeypatch.delenv("DEFAULT_COMMISSION_RATE", raising=False)

    app = create_app()
    app.config["TESTING"] = True

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        admin = User(
            username="admin",
            email="admin@example.com",
            password_hash=generate_password_hash("pw"),
            name="Administrator",
            role="admin",
            status="active",
        )
        s.add(admin)
        for key, rate in (("alpha", 20.0), ("beta", 12.5)):
            u = User(
                username=key,
                email=f"{key}@example.com",
                password_hash=generate_password_hash("pw"),
                name=f"{key.title()} Owner",
                role="agency",
                status="active",
            )
            s.add(u)
            s.flush()
            a = Agency(
                name=f"{key.title()} Agency",
                email=f"{key}@example.com",
                commission_rate=rate,
                status="active",
                user_id=u.id,
                username=u.username,
            )
            s.add(a)
            s.flush()
            u.agency_id = a.id
            u.agency_name = a.name

        college = College(name="Northfield University", location="Pune", ranking=3, status="active", facilities=[])
        s.add(college)
        s.flush()
        s.add(Course(college_id=college.id, name="MBA", fee=10000.0, currency="INR", status="active", course_type="PG"))

    _login_attempts.clear()
    yield app
    _login_attempts.clear()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def ids(app):
    """Primary keys of the seeded rows."""
    with session_scope(app) as s:
        alpha = s.query(Agency).filter(Agency.name == "Alpha Agency").one()
        beta = s.query(Agency).filter(Agency.name == "Beta Agency").one()
        college = s.query(College).one()
        course = s.query(Course).one()
        return {
            "alpha_agency": alpha.id,
            "alpha_user": alpha.user_id,
            "beta_agency": beta.id,
            "beta_user": beta.user_id,
            "college": college.id,
            "course": course.id,
        }


@pytest.fixture()
def login(client):
    def _login(email: str, password: str = "pw"):
        r = client.post("/api/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.get_json()
        return r

    return _login


@pytest.fixture()
def submit_application(client, ids):
    """Submit an application as whoever is logged in; returns the application dict."""

    def _submit(**overrides):
        payload = {
            "studentName": "Asha Rao",
            "email": "asha@example.com",
            "phone": "9999999999",
            "collegeId": ids["college"],
            "courseId": ids["course"],
            "dateOfBirth": "2001-04-02",
            "academicRecords": [{"level": "12th", "board": "CBSE", "year": "2019", "percentage": "88"}],
        }
        payload.update(overrides)
        r = client.post("/api/agency/applications", json=payload)
        assert r.status_code == 201, r.get_json()
        return r.get_json()["application"]

    return _submit
