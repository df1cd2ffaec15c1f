from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.errors import ValidationError
from app.models import Deduction, Order
from app.services import settlement_service
from app.utils.auth import require_admin

settlements_bp = Blueprint("settlements_bp", __name__, url_prefix="/api/admin")


def _required_int(data: dict, key: str) -> int:
    try:
        return int(data.get(key))
    except (TypeError, ValueError):
        raise ValidationError(f"{key} is required", details={"field": key})


@settlements_bp.post("/settlements/generate")
def generate():
    admin = require_admin()
    data = request.get_json(silent=True) or {}
    stmt = settlement_service.generate_statement(
        _required_int(data, "helperId"), data.get("period"), actor_id=int(admin.id)
    )
    return jsonify({"ok": True, "statement": stmt.to_dict()}), 201


@settlements_bp.get("/settlements/<int:statement_id>")
def detail(statement_id: int):
    require_admin()
    stmt = settlement_service.get_statement(statement_id)
    order_ids = settlement_service.statement_order_ids(stmt)
    orders = Order.query.filter(Order.id.in_(order_ids)).order_by(Order.id.asc()).all() if order_ids else []
    deductions = Deduction.query.filter_by(settlement_id=int(stmt.id)).order_by(Deduction.id.asc()).all()
    return jsonify({
        "ok": True,
        "statement": stmt.to_dict(),
        "orders": [o.to_dict() for o in orders],
        "deductions": [d.to_dict() for d in deductions],
    }), 200


@settlements_bp.post("/settlements/<int:statement_id>/confirm")
def confirm(statement_id: int):
    admin = require_admin()
    stmt = settlement_service.confirm_statement(admin, statement_id)
    return jsonify({"ok": True, "statement": stmt.to_dict()}), 200


@settlements_bp.post("/settlements/<int:statement_id>/pay")
def pay(statement_id: int):
    admin = require_admin()
    stmt = settlement_service.pay_statement(admin, statement_id)
    return jsonify({"ok": True, "statement": stmt.to_dict()}), 200


@settlements_bp.post("/teams")
def create_team():
    require_admin()
    data = request.get_json(silent=True) or {}
    team = settlement_service.create_team(
        data.get("name"), _required_int(data, "leaderId"), data.get("commissionRate", 0)
    )
    return jsonify({"ok": True, "team": team.to_dict()}), 201


@settlements_bp.post("/teams/<int:team_id>/members")
def add_member(team_id: int):
    require_admin()
    data = request.get_json(silent=True) or {}
    member = settlement_service.add_team_member(team_id, _required_int(data, "helperId"))
    return jsonify({"ok": True, "member": member.to_dict()}), 201
