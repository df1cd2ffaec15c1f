from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.errors import ApiError, ValidationError
from app.services import order_service
from app.utils.auth import require_admin, require_user
from app.utils.idempotency import lookup_response, release, store_response

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api")


@orders_bp.post("/orders")
def create_order():
    requester = require_user("requester")
    order = order_service.create_order(requester, request.get_json(silent=True) or {})
    return jsonify({"ok": True, "order": order.to_dict()}), 201


@orders_bp.get("/orders/<int:order_id>")
def order_detail(order_id: int):
    user = require_user()
    order = order_service.get_order(order_id)
    detail = order_service.order_detail(order)
    role = (user.role or "").lower()
    if role == "requester" and int(order.requester_id) != int(user.id):
        detail.pop("transitions", None)
        detail.pop("applications", None)
    return jsonify({"ok": True, **detail}), 200


@orders_bp.post("/orders/<int:order_id>/apply")
def apply(order_id: int):
    helper = require_user("helper")
    application = order_service.apply_to_order(helper, order_id)
    return jsonify({"ok": True, "application": application.to_dict()}), 201


@orders_bp.post("/orders/<int:order_id>/applications/<int:application_id>/select")
def select_application(order_id: int, application_id: int):
    user = require_user("requester", "admin")
    application = order_service.select_application(user, order_id, application_id)
    order = order_service.get_order(order_id)
    return jsonify({"ok": True, "application": application.to_dict(), "order": order.to_dict()}), 200


@orders_bp.post("/admin/orders/<int:order_id>/assign")
def assign(order_id: int):
    admin = require_admin()
    data = request.get_json(silent=True) or {}
    try:
        helper_id = int(data.get("helperId"))
    except (TypeError, ValueError):
        raise ValidationError("helperId is required", details={"field": "helperId"})
    order = order_service.assign_helper(admin, order_id, helper_id)
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.post("/orders/<int:order_id>/closing")
def submit_closing(order_id: int):
    helper = require_user("helper")
    data = request.get_json(silent=True) or {}

    idem = lookup_response(int(helper.id), f"order_closing:{order_id}", data)
    if idem and idem[0] in ("hit", "conflict", "required"):
        return jsonify(idem[1]), idem[2]
    idem_row = idem[1] if idem and idem[0] == "miss" else None

    try:
        report = order_service.submit_closing(helper, order_id, data)
    except ApiError:
        if idem_row is not None:
            release(idem_row)
        raise
    order = order_service.get_order(order_id)
    body = {"ok": True, "closingReport": report.to_dict(), "orderStatus": order.status}
    if idem_row is not None:
        store_response(idem_row, body, 201)
    return jsonify(body), 201


@orders_bp.post("/orders/<int:order_id>/balance-payment")
def balance_payment(order_id: int):
    requester = require_user("requester")
    data = request.get_json(silent=True) or {}
    payment = order_service.register_balance_payment(requester, order_id, data.get("paymentId"))
    return jsonify({"ok": True, "payment": payment.to_dict()}), 201


@orders_bp.post("/admin/orders/<int:order_id>/status")
def admin_status(order_id: int):
    admin = require_admin()
    data = request.get_json(silent=True) or {}
    if not data.get("status"):
        raise ValidationError("status is required", details={"field": "status"})
    order = order_service.admin_set_status(admin, order_id, data.get("status"), (data.get("reason") or "").strip())
    return jsonify({"ok": True, "order": order.to_dict()}), 200
