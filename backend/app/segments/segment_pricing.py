from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.errors import NotFoundError, ValidationError
from app.extensions import db
from app.models import CourierSetting
from app.services.pricing.courier_settings import SqlCourierSettingRepository
from app.services.pricing.pricing_engine import quote_for_order, round_to_hundred
from app.utils.auth import require_admin, require_user
from app.utils.commission import commission_rate_for

pricing_bp = Blueprint("pricing_bp", __name__, url_prefix="/api")

MONEY_FIELDS = {"basePricePerBox": "base_price_per_box", "minTotal": "min_total"}
RATE_FIELDS = {
    "commissionRate": "commission_rate",
    "urgentCommissionRate": "urgent_commission_rate",
    "urgentSurchargeRate": "urgent_surcharge_rate",
}


def _number(payload: dict, key: str):
    raw = payload.get(key)
    if isinstance(raw, bool):
        raise ValidationError(f"{key} must be a number", details={"field": key})
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number", details={"field": key})


def _apply_fields(row: CourierSetting, payload: dict) -> None:
    if "courierName" in payload:
        row.courier_name = (payload.get("courierName") or "").strip()[:120] or None
    if "category" in payload:
        row.category = (payload.get("category") or "").strip()[:64]
    for key, column in MONEY_FIELDS.items():
        if key in payload:
            value = _number(payload, key)
            if value < 0:
                raise ValidationError(f"{key} must be >= 0", details={"field": key})
            setattr(row, column, round_to_hundred(value))
    for key, column in RATE_FIELDS.items():
        if key in payload:
            value = _number(payload, key)
            if value < 0 or value > 100:
                raise ValidationError(f"{key} must be between 0 and 100", details={"field": key})
            setattr(row, column, int(value))
    if "isActive" in payload:
        row.is_active = bool(payload.get("isActive"))


def _get_setting(setting_id: int) -> CourierSetting:
    row = db.session.get(CourierSetting, int(setting_id))
    if row is None:
        raise NotFoundError("Courier setting not found")
    return row


@pricing_bp.get("/admin/courier-settings")
def list_courier_settings():
    require_admin()
    rows = CourierSetting.query.order_by(CourierSetting.category.asc(), CourierSetting.id.asc()).all()
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@pricing_bp.post("/admin/courier-settings")
def create_courier_setting():
    require_admin()
    payload = request.get_json(silent=True) or {}
    if not (payload.get("category") or "").strip():
        raise ValidationError("category is required", details={"field": "category"})
    row = CourierSetting()
    _apply_fields(row, payload)
    db.session.add(row)
    db.session.commit()
    return jsonify({"ok": True, "setting": row.to_dict()}), 201


@pricing_bp.patch("/admin/courier-settings/<int:setting_id>")
def update_courier_setting(setting_id: int):
    require_admin()
    row = _get_setting(setting_id)
    _apply_fields(row, request.get_json(silent=True) or {})
    db.session.commit()
    return jsonify({"ok": True, "setting": row.to_dict()}), 200


@pricing_bp.delete("/admin/courier-settings/<int:setting_id>")
def deactivate_courier_setting(setting_id: int):
    require_admin()
    row = _get_setting(setting_id)
    row.is_active = False
    db.session.commit()
    return jsonify({"ok": True, "setting": row.to_dict()}), 200


@pricing_bp.post("/pricing/quote")
def pricing_quote():
    require_user()
    payload = request.get_json(silent=True) or {}
    quantity = payload.get("quantity")
    if quantity is None:
        raise ValidationError("quantity is required", details={"field": "quantity"})
    is_urgent = bool(payload.get("isUrgent"))
    quote, setting = quote_for_order(
        SqlCourierSettingRepository(),
        payload.get("companyName"),
        payload.get("category"),
        quantity,
        is_urgent,
    )
    return jsonify({
        "ok": True,
        "quote": quote.to_dict(),
        "commissionRate": commission_rate_for(setting, is_urgent),
        "settingId": setting.setting_id,
    }), 200
