from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.models import ReconciliationReport
from app.services.reconciliation_service import persist_report, reconcile_statements
from app.services.settlement_service import parse_period
from app.utils.auth import require_admin

recon_bp = Blueprint("recon_bp", __name__, url_prefix="/api/admin/reconcile")


@recon_bp.post("")
def run_recon():
    u = require_admin()
    data = request.get_json(silent=True) or {}
    period = parse_period(data["period"]) if data.get("period") else None
    summary = reconcile_statements(period=period)
    report_id = None
    if bool(data.get("persist", True)):
        report_id = int(persist_report(summary, created_by=int(u.id)).id)
    return jsonify({"ok": True, "report_id": report_id, "summary": summary}), 200


@recon_bp.get("/latest")
def latest_report():
    require_admin()
    row = ReconciliationReport.query.order_by(ReconciliationReport.id.desc()).first()
    return jsonify({"ok": True, "report": row.to_dict() if row else None}), 200
