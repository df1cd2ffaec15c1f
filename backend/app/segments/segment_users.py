from __future__ import annotations

from flask import Blueprint, jsonify

from app.extensions import db
from app.utils.auth import require_user

users_bp = Blueprint("users_bp", __name__, url_prefix="/api/users")


@users_bp.get("/me")
def me():
    user = require_user()
    return jsonify({"ok": True, "user": user.to_dict()}), 200


@users_bp.get("/me/personal-code")
def personal_code():
    user = require_user()
    if not user.personal_code:
        user.ensure_personal_code()
        db.session.commit()
    return jsonify({"ok": True, "personalCode": user.personal_code}), 200
