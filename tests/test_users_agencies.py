"""Tests for user administration and the user/agency pairing."""
from app.portal.db import session_scope
from app.portal.models import User
from app.portal.modules.agencies.models import Agency


def _create_agency_user(client, **extra):
    payload = {
        "username": "gamma",
        "email": "gamma@example.com",
        "password": "secret1",
        "name": "Gamma Owner",
        "agencyName": "Gamma Overseas",
    }
    payload.update(extra)
    return client.post("/api/admin/users", json=payload)


def test_create_agency_user_creates_linked_agency(app, client, login):
    login("admin@example.com")
    r = _create_agency_user(client)
    assert r.status_code == 201
    user = r.get_json()["user"]
    assert user["role"] == "agency"
    assert user["agencyName"] == "Gamma Overseas"

    with session_scope(app) as s:
        agency = s.get(Agency, user["agencyId"])
        assert agency.user_id == user["id"]
        assert agency.email == "gamma@example.com"
        assert agency.commission_rate == 15.0

    # The new account can log in straight away.
    login("gamma@example.com", "secret1")


def test_create_user_validation(client, login):
    login("admin@example.com")
    r = _create_agency_user(client, password="123")
    assert r.status_code == 400

    r = _create_agency_user(client, email="alpha@example.com")
    assert r.status_code == 400
    assert r.get_json()["error"] == "Email already exists"

    r = _create_agency_user(client, role="superuser")
    assert r.status_code == 400


def test_role_change_to_admin_drops_agency(app, client, login, ids):
    login("admin@example.com")
    r = client.put(
        f"/api/admin/users/{ids['beta_user']}",
        json={"username": "beta", "email": "beta@example.com", "name": "Beta Owner", "role": "admin"},
    )
    assert r.status_code == 200
    assert r.get_json()["user"]["agencyId"] is None

    with session_scope(app) as s:
        assert s.get(Agency, ids["beta_agency"]) is None
        assert s.get(User, ids["beta_user"]).role == "admin"


def test_user_edit_keeps_agency_name_unless_sent(app, client, login, ids):
    login("admin@example.com")
    url = f"/api/admin/users/{ids['alpha_user']}"
    base = {"username": "alpha", "email": "alpha@example.com", "name": "Alpha Owner", "role": "agency"}

    r = client.put(url, json={**base, "status": "inactive"})
    assert r.status_code == 200
    with session_scope(app) as s:
        agency = s.get(Agency, ids["alpha_agency"])
        assert agency.name == "Alpha Agency"
        assert agency.contact_person is None
        assert agency.status == "inactive"

    r = client.put(url, json={**base, "status": "active", "agencyName": "Alpha Global"})
    assert r.status_code == 200
    assert r.get_json()["user"]["agencyName"] == "Alpha Global"
    with session_scope(app) as s:
        assert s.get(Agency, ids["alpha_agency"]).name == "Alpha Global"


def test_delete_user_cascades_to_agency(app, client, login, ids):
    login("admin@example.com")
    r = client.delete(f"/api/admin/users/{ids['beta_user']}")
    assert r.status_code == 200

    with session_scope(app) as s:
        assert s.get(User, ids["beta_user"]) is None
        assert s.get(Agency, ids["beta_agency"]) is None


def test_delete_agency_cascades_to_user(app, client, login, ids):
    login("admin@example.com")
    r = client.delete(f"/api/admin/agencies/{ids['beta_agency']}")
    assert r.status_code == 200

    with session_scope(app) as s:
        assert s.get(Agency, ids["beta_agency"]) is None
        assert s.get(User, ids["beta_user"]) is None


def test_agency_list_and_commission_bounds(client, login, ids):
    login("admin@example.com")
    r = client.get("/api/admin/agencies")
    names = {a["name"] for a in r.get_json()["agencies"]}
    assert names == {"Alpha Agency", "Beta Agency"}

    r = client.put(f"/api/admin/agencies/{ids['beta_agency']}", json={"commissionRate": 150})
    assert r.status_code == 400


def test_reset_password(client, login, ids):
    login("admin@example.com")
    r = client.post(f"/api/admin/users/{ids['alpha_user']}/reset-password", json={"newPassword": "abc"})
    assert r.status_code == 400
    r = client.post(f"/api/admin/users/{ids['alpha_user']}/reset-password", json={"newPassword": "fresh-pass"})
    assert r.status_code == 200

    r = client.post("/api/auth/login", json={"email": "alpha@example.com", "password": "pw"})
    assert r.status_code == 401
    login("alpha@example.com", "fresh-pass")


def test_agency_settings_password_change_forces_logout(client, login):
    login("alpha@example.com")
    r = client.put(
        "/api/agency/settings",
        json={"name": "Alpha Owner", "email": "alpha@example.com", "currentPassword": "pw", "newPassword": "newpass"},
    )
    assert r.status_code == 200
    assert r.get_json()["forceLogout"] is True
    assert client.get("/api/auth/session").status_code == 401
