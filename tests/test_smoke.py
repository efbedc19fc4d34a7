def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_root_redirects_to_login_when_anonymous(client):
    r = client.get("/", follow_redirects=False)
    assert r.status_code == 302
    assert "/login" in r.headers["Location"]


def test_login_page_renders(client):
    r = client.get("/login")
    assert r.status_code == 200
    assert b"csrf_token" in r.data


def test_form_login_and_admin_access(client):
    # Anonymous should be redirected
    r = client.get("/admin/")
    assert r.status_code == 302

    r = client.post("/login", data={"email": "admin@example.com", "password": "pw"}, follow_redirects=False)
    assert r.status_code == 302

    r = client.get("/admin/")
    assert r.status_code == 200
    assert b"Applications" in r.data

    r = client.get("/admin/payments")
    assert r.status_code == 200
    assert b"/api/admin/payments" in r.data

    r = client.get("/admin/nope")
    assert r.status_code == 404


def test_roles_are_sent_to_their_own_dashboard(client, login):
    login("alpha@example.com")
    r = client.get("/", follow_redirects=False)
    assert r.headers["Location"].endswith("/agency/")

    r = client.get("/admin/", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/agency/")

    r = client.get("/agency/")
    assert r.status_code == 200

    r = client.get("/agency/documents")
    assert r.status_code == 200


def test_form_logout_ends_session(client, login):
    login("admin@example.com")
    r = client.post("/logout", follow_redirects=False)
    assert r.status_code == 302
    assert client.get("/admin/", follow_redirects=False).status_code == 302
