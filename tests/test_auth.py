from datetime import datetime, timedelta

from app.portal.auth import _check_rate_limit, _login_attempts
from app.portal.db import session_scope
from app.portal.models import User
from app.portal.modules.agencies.models import Agency


def test_api_requires_session(client):
    for path in ("/api/admin/users", "/api/agency/applications", "/api/generate-pdf?applicationId=1"):
        r = client.get(path)
        assert r.status_code == 401
        assert r.get_json() == {"error": "Unauthorized"}


def test_api_login_returns_session_payload(client):
    r = client.post("/api/auth/login", json={"email": "Alpha@Example.com", "password": "pw"})
    assert r.status_code == 200
    body = r.get_json()
    assert body["success"] is True
    assert body["user"]["role"] == "agency"
    assert body["user"]["agencyName"] == "Alpha Agency"

    r = client.get("/api/auth/session")
    assert r.status_code == 200
    assert r.get_json()["email"] == "alpha@example.com"


def test_api_login_rejects_bad_input(client):
    r = client.post("/api/auth/login", json={"email": "admin@example.com"})
    assert r.status_code == 400

    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "wrong"})
    assert r.status_code == 401
    assert r.get_json()["error"] == "Invalid credentials"


def test_login_rate_limited_after_repeated_failures(client):
    for _ in range(5):
        r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "wrong"})
        assert r.status_code == 401
    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 401
    assert "Too many login attempts" in r.get_json()["error"]


def test_login_attempts_are_evicted_once_stale(client, login):
    _login_attempts["10.0.0.9"] = [datetime.utcnow() - timedelta(minutes=10)]
    assert _check_rate_limit("10.0.0.9") is False
    assert "10.0.0.9" not in _login_attempts

    client.post("/api/auth/login", json={"email": "admin@example.com", "password": "wrong"})
    assert len(_login_attempts["127.0.0.1"]) == 1
    login("admin@example.com")
    assert "127.0.0.1" not in _login_attempts


def test_wrong_role_is_unauthorized(client, login):
    login("alpha@example.com")
    r = client.get("/api/admin/users")
    assert r.status_code == 401

    login("admin@example.com")
    r = client.get("/api/agency/applications")
    assert r.status_code == 401


def test_inactive_user_cannot_login(app, client):
    with session_scope(app) as s:
        s.query(User).filter(User.email == "beta@example.com").one().status = "inactive"
    r = client.post("/api/auth/login", json={"email": "beta@example.com", "password": "pw"})
    assert r.status_code == 403
    assert "deactivated" in r.get_json()["error"]


def test_inactive_agency_cannot_login(app, client, ids):
    with session_scope(app) as s:
        s.get(Agency, ids["beta_agency"]).status = "inactive"
    r = client.post("/api/auth/login", json={"email": "beta@example.com", "password": "pw"})
    assert r.status_code == 403
    assert "agency account is inactive" in r.get_json()["error"]


def test_deactivation_ends_live_session(app, client, login, ids):
    login("alpha@example.com")
    r = client.post("/api/auth/check-status", json={})
    assert r.get_json() == {"active": True, "reason": None, "message": None}

    with session_scope(app) as s:
        s.get(Agency, ids["alpha_agency"]).status = "inactive"

    r = client.post("/api/auth/check-status", json={})
    body = r.get_json()
    assert body["active"] is False
    assert body["reason"] == "agency_deactivated"

    r = client.get("/api/agency/applications")
    assert r.status_code == 401


def test_logout(client, login):
    login("admin@example.com")
    r = client.post("/api/auth/logout", json={})
    assert r.get_json() == {"success": True}
    assert client.get("/api/auth/session").status_code == 401


def test_form_post_without_csrf_token_is_rejected(client, login):
    login("admin@example.com")
    r = client.post("/api/admin/users", data={"username": "x"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "CSRF token missing or invalid."
