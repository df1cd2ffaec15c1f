from __future__ import annotations

import json
from datetime import datetime

from app.extensions import db
from app.models import ClosingReport, Deduction, ReconciliationReport, SettlementStatement
from app.services.settlement_service import statement_order_ids


def _expected_net(stmt: SettlementStatement, deduction_total: int) -> int:
    return max(0, int(stmt.total_amount or 0) - int(stmt.commission_amount or 0) - int(deduction_total))


def check_statement(stmt: SettlementStatement) -> list[dict]:
    """Return one drift item per broken invariant on ``stmt``."""
    drift = []

    def _add(check: str, stored, computed):
        drift.append({
            "statement_id": int(stmt.id),
            "helper_id": int(stmt.helper_id),
            "period": stmt.period,
            "check": check,
            "stored": stored,
            "computed": computed,
        })

    supply = int(stmt.supply_amount or 0)
    vat = int(stmt.vat_amount or 0)
    total = int(stmt.total_amount or 0)
    if supply + vat != total:
        _add("total_equals_supply_plus_vat", total, supply + vat)

    if int(stmt.platform_commission_amount or 0) + int(stmt.team_commission_amount or 0) != int(stmt.commission_amount or 0):
        _add(
            "commission_split",
            int(stmt.commission_amount or 0),
            int(stmt.platform_commission_amount or 0) + int(stmt.team_commission_amount or 0),
        )

    deduction_total = int(
        db.session.query(db.func.coalesce(db.func.sum(Deduction.amount), 0))
        .filter(Deduction.settlement_id == int(stmt.id), Deduction.settlement_applied.is_(True))
        .scalar()
        or 0
    )
    if deduction_total != int(stmt.deduction_amount or 0):
        _add("deduction_total", int(stmt.deduction_amount or 0), deduction_total)

    expected_net = _expected_net(stmt, deduction_total)
    if expected_net != int(stmt.net_payout or 0):
        _add("net_payout", int(stmt.net_payout or 0), expected_net)

    order_ids = statement_order_ids(stmt)
    if order_ids:
        report_total = int(
            db.session.query(db.func.coalesce(db.func.sum(ClosingReport.total_amount), 0))
            .filter(ClosingReport.order_id.in_(order_ids))
            .scalar()
            or 0
        )
        if report_total != total:
            _add("closing_reports_total", total, report_total)
    return drift


def reconcile_statements(*, period: str | None = None) -> dict:
    q = SettlementStatement.query
    if period:
        q = q.filter_by(period=period)
    statements = q.order_by(SettlementStatement.id.asc()).all()

    drift_items = []
    for stmt in statements:
        drift_items.extend(check_statement(stmt))

    return {
        "ok": True,
        "scope": "settlements",
        "period": period or "",
        "statement_count": len(statements),
        "drift_count": len(drift_items),
        "drift_items": drift_items,
        "generated_at": datetime.utcnow().isoformat(),
    }


def persist_report(summary: dict, *, created_by: int | None = None) -> ReconciliationReport:
    report = ReconciliationReport(
        scope=(summary.get("scope") or "settlements")[:64],
        period=(summary.get("period") or "")[:7] or None,
        summary_json=json.dumps(summary)[:200000],
        drift_count=int(summary.get("drift_count") or 0),
        created_by=int(created_by) if created_by is not None else None,
    )
    db.session.add(report)
    db.session.commit()
    return report
