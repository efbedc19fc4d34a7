def _entry(**overrides):
    entry = {"name": "Priya Shah", "position": "Ops Lead", "email": "priya@example.com", "mobile": "9000000001", "level": 1}
    entry.update(overrides)
    return entry


def test_settings_created_on_first_read(client, login):
    login("admin@example.com")
    r = client.get("/api/admin/settings")
    assert r.status_code == 200
    assert r.get_json()["settings"]["adminEmail"] == "admin@example.com"

    r = client.put("/api/admin/settings", json={"systemName": "Global Admissions", "maintenanceMode": 1})
    settings = r.get_json()["settings"]
    assert settings["systemName"] == "Global Admissions"
    assert settings["maintenanceMode"] is True

    r = client.put("/api/admin/settings", json={"systemName": "  "})
    assert r.status_code == 400


def test_banking_details_visible_to_agencies(client, login):
    login("admin@example.com")
    r = client.put("/api/admin/banking-details", json={"bankName": "State Bank", "ifscCode": "SBIN0000001", "extra": "x"})
    assert r.status_code == 200
    details = r.get_json()["bankingDetails"]
    assert details["bankName"] == "State Bank"
    assert details["swiftCode"] == ""
    assert "extra" not in details

    login("alpha@example.com")
    r = client.get("/api/agency/banking-details")
    assert r.get_json()["bankingDetails"]["ifscCode"] == "SBIN0000001"


def test_escalation_matrix_add_and_remove(client, login):
    login("admin@example.com")
    r = client.post("/api/admin/escalation-matrix", json=_entry(level=2))
    assert r.status_code == 201
    assert r.get_json()["entry"]["id"]

    r = client.post("/api/admin/escalation-matrix", json={"name": "No Contact"})
    assert r.status_code == 400
    assert set(r.get_json()["details"]) == {"position", "email", "mobile"}

    r = client.put(
        "/api/admin/escalation-matrix",
        json={"escalationMatrix": [_entry(name="Second", level=2), _entry(name="First", level=1)]},
    )
    assert r.status_code == 200

    login("alpha@example.com")
    r = client.get("/api/agency/escalation-matrix")
    assert [e["name"] for e in r.get_json()["escalationMatrix"]] == ["First", "Second"]

    login("admin@example.com")
    assert client.delete("/api/admin/escalation-matrix").status_code == 400
    assert client.delete("/api/admin/escalation-matrix?index=5").status_code == 404
    assert client.delete("/api/admin/escalation-matrix?index=0").status_code == 200

    r = client.get("/api/admin/escalation-matrix")
    assert [e["name"] for e in r.get_json()["escalationMatrix"]] == ["Second"]


def test_escalation_delete_index_matches_listed_order(client, login):
    login("admin@example.com")
    assert client.post("/api/admin/escalation-matrix", json=_entry(name="Tier2", level=2)).status_code == 201
    assert client.post("/api/admin/escalation-matrix", json=_entry(name="Tier1", level=1)).status_code == 201

    r = client.get("/api/admin/escalation-matrix")
    assert [e["name"] for e in r.get_json()["escalationMatrix"]] == ["Tier1", "Tier2"]

    assert client.delete("/api/admin/escalation-matrix?index=0").status_code == 200
    r = client.get("/api/admin/escalation-matrix")
    assert [e["name"] for e in r.get_json()["escalationMatrix"]] == ["Tier2"]


def test_escalation_matrix_replace_rejects_non_list(client, login):
    login("admin@example.com")
    r = client.put("/api/admin/escalation-matrix", json={"escalationMatrix": {"name": "x"}})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid escalation matrix data"


def test_payment_settings_hide_secrets_from_agencies(client, login):
    login("admin@example.com")
    r = client.put(
        "/api/admin/payment-settings",
        json={"secretKey": "sk_live_123", "currency": "INR", "isActive": False, "maximumAmount": 50000},
    )
    assert r.status_code == 200
    settings = r.get_json()["paymentSettings"]
    assert settings["secretKey"] == "sk_live_123"
    assert settings["isActive"] is False
    assert settings["enabled"] is False

    r = client.put("/api/admin/payment-settings", json={"minimumAmount": 60000})
    assert r.status_code == 400

    login("alpha@example.com")
    settings = client.get("/api/agency/payment-settings").get_json()["paymentSettings"]
    assert settings["currency"] == "INR"
    assert "secretKey" not in settings
    assert "webhookSecret" not in settings
