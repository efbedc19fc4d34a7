from __future__ import annotations

from flask import Blueprint, jsonify

from app.portal.db import db_session
from app.portal.modules.settings.service import escalation_matrix, get_settings, payment_settings_view
from app.portal.rbac import require_agency

bp = Blueprint("settings_agency", __name__)


@bp.get("/api/agency/banking-details")
@require_agency
def banking_get():
    s = db_session()
    settings = get_settings(s)
    s.commit()
    return jsonify({"bankingDetails": settings.banking_details or {}})


@bp.get("/api/agency/escalation-matrix")
@require_agency
def escalation_get():
    s = db_session()
    settings = get_settings(s)
    s.commit()
    return jsonify({"escalationMatrix": escalation_matrix(settings)})


@bp.get("/api/agency/payment-settings")
@require_agency
def payment_settings_get():
    s = db_session()
    settings = get_settings(s)
    s.commit()
    return jsonify({"paymentSettings": payment_settings_view(settings, include_secrets=False)})
