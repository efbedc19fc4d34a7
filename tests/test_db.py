"""Tests for engine setup and foreign-key behaviour on SQLite."""
import pytest
from sqlalchemy.exc import IntegrityError

from app.portal.db import session_scope
from app.portal.models import AuditEvent
from app.portal.modules.payments.models import Payment


def test_sqlite_connections_enforce_foreign_keys(app):
    engine = app.extensions["sqlalchemy_engine"]
    with engine.connect() as conn:
        assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1


def test_payment_for_unknown_application_is_rejected(app, ids):
    with pytest.raises(IntegrityError):
        with session_scope(app) as s:
            s.add(Payment(application_id=424242, agency_id=ids["alpha_agency"]))


def test_deleting_user_keeps_their_audit_trail(app, client, login, ids):
    login("beta@example.com")
    login("admin@example.com")
    assert client.delete(f"/api/admin/users/{ids['beta_user']}").status_code == 200

    with session_scope(app) as s:
        logins = s.query(AuditEvent).filter(AuditEvent.action == "auth.login").all()
        beta_logins = [e for e in logins if e.actor_user_email == "beta@example.com"]
        assert beta_logins
        assert all(e.actor_user_id is None for e in beta_logins)


def test_deleting_application_removes_its_payment(app, client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()

    login("admin@example.com")
    assert client.delete(f"/api/admin/applications/{application['id']}").status_code == 200

    with session_scope(app) as s:
        assert s.query(Payment).filter(Payment.application_id == application["id"]).count() == 0
