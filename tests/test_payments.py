"""Tests for payment tracking, backfill jobs and offline payments."""
import base64
import io

from app.portal.db import session_scope
from app.portal.modules.applications.models import Application
from app.portal.modules.payments.models import Payment


def _payment_id(app, application_id):
    with session_scope(app) as s:
        return s.query(Payment).filter(Payment.application_id == application_id).one().id


def _drop_payments(app):
    with session_scope(app) as s:
        s.query(Payment).delete()


def test_sync_payments_is_idempotent(app, client, login, submit_application):
    login("alpha@example.com")
    submit_application(email="one@example.com")
    submit_application(email="two@example.com")
    _drop_payments(app)

    login("admin@example.com")
    r = client.post("/api/sync-payments", json={})
    assert r.status_code == 200
    body = r.get_json()
    assert (body["created"], body["skipped"], body["failed"]) == (2, 0, 0)

    r = client.post("/api/sync-payments", json={})
    body = r.get_json()
    assert (body["created"], body["skipped"], body["failed"]) == (0, 2, 0)

    with session_scope(app) as s:
        assert s.query(Payment).count() == 2
        assert {p.commission_amount for p in s.query(Payment).all()} == {2000.0}


def test_migrate_payments_seeds_status(app, client, login, submit_application):
    login("alpha@example.com")
    approved = submit_application(email="approved@example.com")
    rejected = submit_application(email="rejected@example.com")
    with session_scope(app) as s:
        s.get(Application, approved["id"]).status = "approved"
        s.get(Application, rejected["id"]).status = "rejected"
    _drop_payments(app)

    login("admin@example.com")
    r = client.post("/api/migrate-payments", json={})
    assert r.get_json()["created"] == 2

    with session_scope(app) as s:
        by_app = {p.application_id: p for p in s.query(Payment).all()}
        assert (by_app[approved["id"]].payment_status, by_app[approved["id"]].lead_status) == ("approved", "enrolled")
        assert (by_app[rejected["id"]].payment_status, by_app[rejected["id"]].lead_status) == ("rejected", "interested")


def test_commission_uses_default_rate_without_agency(app, client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()
    with session_scope(app) as s:
        s.get(Application, application["id"]).agency_id = 9999
    _drop_payments(app)

    login("admin@example.com")
    r = client.post("/api/admin/payments", json={"applicationId": application["id"]})
    assert r.status_code == 201
    payment = r.get_json()["payment"]
    assert payment["commissionRate"] == 10.0
    assert payment["commissionAmount"] == 1000.0

    r = client.post("/api/admin/payments", json={"applicationId": application["id"]})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Payment record already exists"


def test_agency_marks_paid_then_admin_verifies(app, client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()
    payment_id = _payment_id(app, application["id"])

    r = client.post("/api/agency/payments", json={"paymentId": payment_id, "paymentStatus": "paid"})
    assert r.status_code == 200
    assert r.get_json()["payment"]["paymentStatus"] == "pending_approval"
    assert r.get_json()["payment"]["paymentDate"] is not None

    r = client.post("/api/agency/payments", json={"paymentId": payment_id, "paymentStatus": "refunded"})
    assert r.status_code == 400

    login("admin@example.com")
    r = client.put(
        "/api/admin/payments",
        json={"paymentId": payment_id, "paymentStatus": "verified", "paymentAmount": 10000, "adminNotes": "ok"},
    )
    assert r.status_code == 200
    payment = r.get_json()["payment"]
    assert payment["paymentStatus"] == "verified"
    assert payment["paymentAmount"] == 10000.0
    assert payment["verifiedAt"] is not None

    r = client.put("/api/admin/payments", json={"paymentId": payment_id, "paymentStatus": "bogus"})
    assert r.status_code == 400

    r = client.get("/api/admin/payments?paymentStatus=verified")
    body = r.get_json()
    assert [p["id"] for p in body["payments"]] == [payment_id]
    assert body["stats"]["verified"] == 1

    r = client.get("/api/admin/payments/stats")
    assert r.get_json()["completedPayments"] == 1


def test_agency_cannot_touch_other_agency_payment(app, client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()
    payment_id = _payment_id(app, application["id"])

    login("beta@example.com")
    r = client.post("/api/agency/payments", json={"paymentId": payment_id, "paymentStatus": "paid"})
    assert r.status_code == 404
    assert client.get("/api/agency/payments").get_json()["payments"] == []


def test_receipt_upload_requires_csrf_token(app, client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()
    payment_id = _payment_id(app, application["id"])

    def _post(headers=None):
        return client.post(
            "/api/agency/payments/receipt",
            data={"paymentId": str(payment_id), "receipt": (io.BytesIO(b"\x89PNG receipt"), "receipt.png", "image/png")},
            content_type="multipart/form-data",
            headers=headers or {},
        )

    r = _post()
    assert r.status_code == 400
    assert r.get_json()["error"] == "CSRF token missing or invalid."

    with client.session_transaction() as sess:
        sess["csrf_token"] = "test-token"
    r = _post({"X-CSRF-Token": "test-token"})
    assert r.status_code == 200
    assert r.get_json()["paymentId"] == payment_id

    login("admin@example.com")
    r = client.get(f"/api/admin/payments/receipt/{payment_id}")
    receipt = r.get_json()["receipt"]
    assert receipt["filename"] == "receipt.png"
    assert receipt["mime_type"] == "image/png"

    r = client.get(f"/api/admin/payments/{payment_id}")
    assert r.get_json()["payment"]["paymentStatus"] == "pending_approval"
    assert "data" not in r.get_json()["payment"]["paymentReceipt"]

    r = client.get(f"/api/admin/payments/receipt/{payment_id}/download")
    assert r.status_code == 200
    assert r.data.startswith(b"%PDF")


def test_offline_payment_flow(client, login):
    login("alpha@example.com")
    r = client.post("/api/agency/payments/offline", json={"beneficiary": "Portal", "amount": 10})
    assert r.status_code == 400
    assert "txnDate" in r.get_json()["details"]

    payload = {
        "beneficiary": "Portal Trust",
        "paymentType": "upi",
        "accountHolderName": "Alpha Agency",
        "transactionId": "UPI-123",
        "amount": 2500,
        "txnDate": "2026-09-30",
    }
    r = client.post("/api/agency/payments/offline", json={**payload, "paymentType": "cash"})
    assert r.status_code == 400
    r = client.post("/api/agency/payments/offline", json={**payload, "amount": 0})
    assert r.status_code == 400

    r = client.post("/api/agency/payments/offline", json=payload)
    assert r.status_code == 201
    offline_id = r.get_json()["id"]

    rows = client.get("/api/agency/payments/offline/list").get_json()["payments"]
    assert [p["status"] for p in rows] == ["pending"]

    r = client.get(f"/api/agency/payments/offline/receipt/{offline_id}")
    assert r.status_code == 200
    assert b"UPI-123" in r.data

    login("beta@example.com")
    assert client.get(f"/api/agency/payments/offline/receipt/{offline_id}").status_code == 404

    login("admin@example.com")
    r = client.patch("/api/admin/payments/offline", json={"paymentId": offline_id, "status": "approved"})
    assert r.status_code == 200
    assert r.get_json()["payment"]["status"] == "approved"

    r = client.patch("/api/admin/payments/offline", json={"paymentId": offline_id, "status": "maybe"})
    assert r.status_code == 400

    rows = client.get("/api/admin/payments/offline?status=approved").get_json()["payments"]
    assert rows[0]["agencyName"] == "Alpha Agency"


def test_tracked_document_lookup(app, client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()
    payment_id = _payment_id(app, application["id"])
    client.post(
        "/api/agency/documents",
        json={
            "applicationId": application["applicationId"],
            "fileData": base64.b64encode(b"transcript").decode(),
            "name": "transcript.pdf",
            "type": "transcript",
        },
    )

    login("admin@example.com")
    r = client.get(f"/api/admin/payments/{payment_id}/documents/transcript")
    assert r.status_code == 200
    assert r.get_json()["name"] == "transcript.pdf"

    assert client.get(f"/api/admin/payments/{payment_id}/documents/passport").status_code == 404
