def test_admin_activity_feed(client, login, submit_application):
    login("alpha@example.com")
    submit_application()

    login("admin@example.com")
    r = client.get("/api/admin/activities?limit=5")
    assert r.status_code == 200
    activities = r.get_json()["activities"]
    assert len(activities) <= 5
    assert activities[0]["action"] == "auth.login"
    assert any(a["action"] == "application.create" and a["user"] == "alpha@example.com" for a in activities)


def test_agency_activity_feed_is_scoped(client, login, submit_application):
    login("alpha@example.com")
    submit_application()

    login("beta@example.com")
    actions = [a["action"] for a in client.get("/api/agency/activities").get_json()["activities"]]
    assert "application.create" not in actions

    login("alpha@example.com")
    actions = [a["action"] for a in client.get("/api/agency/activities").get_json()["activities"]]
    assert "application.create" in actions
