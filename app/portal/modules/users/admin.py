from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.portal.db import db_session
from app.portal.events import publish
from app.portal.modules.users.service import (
    create_user,
    delete_user,
    get_user,
    list_users,
    reset_password,
    update_user,
)
from app.portal.rbac import require_admin

bp = Blueprint("users_admin", __name__)


@bp.get("/api/admin/users")
@require_admin
def users_list():
    s = db_session()
    return jsonify({"users": [u.to_dict() for u in list_users(s)]})


@bp.post("/api/admin/users")
@require_admin
def users_create():
    s = db_session()
    user = create_user(s, request.get_json(silent=True) or {}, g.current_user)
    s.commit()
    publish("user", "created", user.to_dict())
    return jsonify({"user": user.to_dict()}), 201


@bp.get("/api/admin/users/<int:user_id>")
@require_admin
def user_detail(user_id: int):
    s = db_session()
    return jsonify({"user": get_user(s, user_id).to_dict()})


@bp.put("/api/admin/users/<int:user_id>")
@require_admin
def user_update(user_id: int):
    s = db_session()
    user = update_user(s, get_user(s, user_id), request.get_json(silent=True) or {}, g.current_user)
    s.commit()
    publish("user", "updated", user.to_dict())
    return jsonify({"user": user.to_dict()})


@bp.delete("/api/admin/users/<int:user_id>")
@require_admin
def user_delete(user_id: int):
    s = db_session()
    delete_user(s, get_user(s, user_id), g.current_user)
    s.commit()
    publish("user", "deleted", {"id": user_id})
    return jsonify({"message": "User and associated agency deleted successfully"})


@bp.post("/api/admin/users/<int:user_id>/reset-password")
@require_admin
def user_reset_password(user_id: int):
    s = db_session()
    payload = request.get_json(silent=True) or {}
    reset_password(s, get_user(s, user_id), payload.get("newPassword") or payload.get("password") or "", g.current_user)
    s.commit()
    return jsonify({"message": "Password reset successfully"})
