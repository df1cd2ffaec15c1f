from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.errors import ValidationError
from app.services.assignment_resolver import (
    build_qr_payload,
    requester_from_personal_code,
    requester_from_qr,
)
from app.services.check_in_service import CheckInMethod, check_in, todays_check_ins
from app.utils.auth import require_user

checkin_bp = Blueprint("checkin_bp", __name__, url_prefix="/api/checkin")


def _float_or_none(value):
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError("latitude/longitude must be numbers")


def _location(data: dict) -> dict:
    return {
        "latitude": _float_or_none(data.get("latitude")),
        "longitude": _float_or_none(data.get("longitude")),
        "address": (data.get("address") or "").strip() or None,
    }


def _checked_in(record, order):
    return jsonify({
        "success": True,
        "checkIn": record.to_dict(),
        "orderStatus": order.status,
        "orderId": int(order.id),
    }), 201


@checkin_bp.post("/qr")
def check_in_by_qr():
    helper = require_user("helper")
    data = request.get_json(silent=True) or {}
    qr_data = data.get("qrData")
    if not qr_data:
        raise ValidationError("qrData is required", details={"field": "qrData"})
    requester = requester_from_qr(qr_data)
    record, order = check_in(helper, method=CheckInMethod.QR, requester_id=int(requester.id), **_location(data))
    return _checked_in(record, order)


@checkin_bp.post("/by-code")
def check_in_by_code():
    helper = require_user("helper")
    data = request.get_json(silent=True) or {}
    requester = requester_from_personal_code(data.get("code"))
    record, order = check_in(helper, method=CheckInMethod.CODE, requester_id=int(requester.id), **_location(data))
    return _checked_in(record, order)


@checkin_bp.post("")
def check_in_by_order():
    helper = require_user("helper")
    data = request.get_json(silent=True) or {}
    try:
        order_id = int(data.get("orderId"))
    except (TypeError, ValueError):
        raise ValidationError("orderId is required", details={"field": "orderId"})
    record, order = check_in(helper, method=CheckInMethod.ORDER, order_id=order_id, **_location(data))
    return _checked_in(record, order)


@checkin_bp.get("/today")
def today():
    helper = require_user("helper")
    records = todays_check_ins(int(helper.id))
    return jsonify({
        "ok": True,
        "checkedIn": bool(records),
        "items": [r.to_dict() for r in records],
    }), 200


@checkin_bp.get("/qr-data")
def qr_data():
    requester = require_user("requester")
    return jsonify({"ok": True, "qrData": build_qr_payload(requester)}), 200
