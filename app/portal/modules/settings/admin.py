from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.portal.db import db_session
from app.portal.modules.settings.service import (
    add_escalation_entry,
    escalation_matrix,
    get_settings,
    payment_settings_view,
    remove_escalation_entry,
    replace_escalation_matrix,
    update_banking_details,
    update_general,
    update_payment_settings,
)
from app.portal.rbac import require_admin

bp = Blueprint("settings_admin", __name__)


def _settings():
    s = db_session()
    return s, get_settings(s, admin_email=current_app.config.get("ADMIN_EMAIL"))


@bp.get("/api/admin/settings")
@require_admin
def settings_get():
    s, settings = _settings()
    s.commit()
    return jsonify({"settings": settings.to_dict()})


@bp.put("/api/admin/settings")
@require_admin
def settings_put():
    s, settings = _settings()
    update_general(s, settings, request.get_json(silent=True) or {}, g.current_user)
    s.commit()
    return jsonify({"success": True, "settings": settings.to_dict()})


@bp.get("/api/admin/banking-details")
@require_admin
def banking_get():
    s, settings = _settings()
    s.commit()
    return jsonify({"bankingDetails": settings.banking_details or {}})


@bp.put("/api/admin/banking-details")
@require_admin
def banking_put():
    s, settings = _settings()
    details = update_banking_details(s, settings, request.get_json(silent=True) or {}, g.current_user)
    s.commit()
    return jsonify({"success": True, "bankingDetails": details, "message": "Banking details updated successfully"})


@bp.get("/api/admin/escalation-matrix")
@require_admin
def escalation_get():
    s, settings = _settings()
    s.commit()
    return jsonify({"escalationMatrix": escalation_matrix(settings)})


@bp.post("/api/admin/escalation-matrix")
@require_admin
def escalation_post():
    s, settings = _settings()
    entry = add_escalation_entry(s, settings, request.get_json(silent=True) or {}, g.current_user)
    s.commit()
    return jsonify({"success": True, "entry": entry}), 201


@bp.put("/api/admin/escalation-matrix")
@require_admin
def escalation_put():
    s, settings = _settings()
    payload = request.get_json(silent=True) or {}
    matrix = replace_escalation_matrix(s, settings, payload.get("escalationMatrix"), g.current_user)
    s.commit()
    return jsonify({"success": True, "escalationMatrix": matrix})


@bp.delete("/api/admin/escalation-matrix")
@require_admin
def escalation_delete():
    s, settings = _settings()
    remove_escalation_entry(s, settings, request.args.get("index"), g.current_user)
    s.commit()
    return jsonify({"success": True})


@bp.get("/api/admin/payment-settings")
@require_admin
def payment_settings_get():
    s, settings = _settings()
    s.commit()
    return jsonify({"paymentSettings": payment_settings_view(settings, include_secrets=True)})


@bp.put("/api/admin/payment-settings")
@require_admin
def payment_settings_put():
    s, settings = _settings()
    update_payment_settings(s, settings, request.get_json(silent=True) or {}, g.current_user)
    s.commit()
    return jsonify(
        {
            "success": True,
            "paymentSettings": payment_settings_view(settings, include_secrets=True),
            "message": "Payment settings updated successfully",
        }
    )
