from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.models import Deduction
from app.services import dispute_service
from app.utils.auth import require_admin, require_user

disputes_bp = Blueprint("disputes_bp", __name__, url_prefix="/api")


@disputes_bp.post("/disputes")
def open_dispute():
    user = require_user("helper", "requester")
    dispute = dispute_service.open_dispute(user, request.get_json(silent=True) or {})
    return jsonify({"ok": True, "dispute": dispute.to_dict()}), 201


@disputes_bp.get("/admin/disputes/<int:dispute_id>")
def dispute_detail(dispute_id: int):
    require_admin()
    dispute = dispute_service.get_dispute(dispute_id)
    deduction = Deduction.query.filter_by(dispute_id=int(dispute.id)).first()
    return jsonify({
        "ok": True,
        "dispute": dispute.to_dict(),
        "deduction": deduction.to_dict() if deduction else None,
    }), 200


@disputes_bp.patch("/admin/disputes/<int:dispute_id>/status")
def update_dispute(dispute_id: int):
    admin = require_admin()
    dispute, deduction = dispute_service.update_dispute(admin, dispute_id, request.get_json(silent=True) or {})
    return jsonify({
        "ok": True,
        "dispute": dispute.to_dict(),
        "deduction": deduction.to_dict() if deduction else None,
    }), 200


@disputes_bp.post("/admin/deductions")
def create_deduction():
    admin = require_admin()
    deduction = dispute_service.admin_deduction(admin, request.get_json(silent=True) or {})
    return jsonify({"ok": True, "deduction": deduction.to_dict()}), 201
