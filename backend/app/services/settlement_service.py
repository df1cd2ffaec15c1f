from __future__ import annotations

import json
import logging
import re
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from app.errors import ConflictError, IllegalTransitionError, NotFoundError, ValidationError
from app.extensions import db
from app.models import (
    ClosingReport,
    Deduction,
    Order,
    OrderStatus,
    SettlementStatement,
    SettlementStatus,
    Team,
    TeamMember,
    User,
)
from app.services.order_state_machine import ActorType, transition
from app.services.pricing.courier_settings import CourierSettingRepository, SqlCourierSettingRepository
from app.utils.commission import commission_rate_for, split_commission
from app.utils.events import log_event
from app.utils.timezone import kst_month_bounds_utc, previous_kst_period

logger = logging.getLogger(__name__)

_PERIOD_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
OPEN_STATEMENT_STATUSES = (SettlementStatus.DRAFT, SettlementStatus.CONFIRMED)


def parse_period(period) -> str:
    value = str(period or "").strip()
    if not _PERIOD_RE.match(value):
        raise ValidationError("period must be YYYY-MM", details={"field": "period"})
    return value


def get_statement(statement_id: int) -> SettlementStatement:
    stmt = db.session.get(SettlementStatement, int(statement_id))
    if stmt is None:
        raise NotFoundError("Settlement statement not found")
    return stmt


def statement_order_ids(stmt: SettlementStatement) -> list[int]:
    if not stmt.order_ids_json:
        return []
    return [int(x) for x in json.loads(stmt.order_ids_json)]


def statement_for_order(helper_id: int, order_id: int) -> SettlementStatement | None:
    for stmt in SettlementStatement.query.filter_by(helper_id=int(helper_id)).order_by(SettlementStatement.id.desc()):
        if int(order_id) in statement_order_ids(stmt):
            return stmt
    return None


def active_team_for(helper_id: int) -> Team | None:
    return (
        Team.query
        .join(TeamMember, TeamMember.team_id == Team.id)
        .filter(TeamMember.helper_id == int(helper_id), TeamMember.is_active.is_(True), Team.is_active.is_(True))
        .order_by(TeamMember.id.desc())
        .first()
    )


def _settleable_orders(helper_id: int, period: str, stmt: SettlementStatement | None) -> list[tuple[Order, ClosingReport]]:
    """``balance_paid`` orders closed before the period ends and not on another statement.

    Orders closed in an already-paid month roll into the next statement
    generated for the helper.
    """
    _start, end = kst_month_bounds_utc(period)
    claimed = set()
    others = SettlementStatement.query.filter(SettlementStatement.helper_id == int(helper_id))
    if stmt is not None and stmt.id is not None:
        others = others.filter(SettlementStatement.id != int(stmt.id))
    for other in others:
        claimed.update(statement_order_ids(other))
    rows = (
        db.session.query(Order, ClosingReport)
        .join(ClosingReport, ClosingReport.order_id == Order.id)
        .filter(ClosingReport.helper_id == int(helper_id))
        .filter(Order.status == OrderStatus.BALANCE_PAID.value)
        .filter(ClosingReport.created_at < end)
        .order_by(Order.id.asc())
        .all()
    )
    return [(order, report) for order, report in rows if int(order.id) not in claimed]


def recompute_net(stmt: SettlementStatement) -> SettlementStatement:
    """Re-derive deduction and payout from the applied deduction rows.

    ``net_payout = max(0, total - commission - deduction)``; a clamped
    payout records a warning on the statement.
    """
    deduction_total = (
        db.session.query(db.func.coalesce(db.func.sum(Deduction.amount), 0))
        .filter(Deduction.settlement_id == int(stmt.id), Deduction.settlement_applied.is_(True))
        .scalar()
    )
    stmt.deduction_amount = int(deduction_total or 0)
    raw = int(stmt.total_amount or 0) - int(stmt.commission_amount or 0) - stmt.deduction_amount
    if raw < 0:
        stmt.warning = f"negative_payout_clamped: computed {raw}"
        logger.warning("settlement_negative_payout statement_id=%s computed=%s", stmt.id, raw)
        stmt.net_payout = 0
    else:
        stmt.warning = None
        stmt.net_payout = raw
    return stmt


def _is_latest_open_statement(stmt: SettlementStatement) -> bool:
    newer = (
        SettlementStatement.query
        .filter(SettlementStatement.helper_id == int(stmt.helper_id))
        .filter(SettlementStatement.status.in_(OPEN_STATEMENT_STATUSES))
        .filter(SettlementStatement.period > stmt.period)
        .first()
    )
    return newer is None


def _fold_pending_deductions(stmt: SettlementStatement) -> list[int]:
    """Attach unapplied deductions oldest first while the payout can absorb them.

    A deduction that would push the payout below zero stays pending for a
    later statement.
    """
    applied_total = (
        db.session.query(db.func.coalesce(db.func.sum(Deduction.amount), 0))
        .filter(Deduction.settlement_id == int(stmt.id), Deduction.settlement_applied.is_(True))
        .scalar()
    )
    room = int(stmt.total_amount or 0) - int(stmt.commission_amount or 0) - int(applied_total or 0)
    folded = []
    pending = (
        Deduction.query
        .filter(Deduction.helper_id == int(stmt.helper_id), Deduction.settlement_applied.is_(False))
        .order_by(Deduction.id.asc())
        .all()
    )
    for deduction in pending:
        amount = int(deduction.amount or 0)
        if amount > room:
            continue
        deduction.settlement_id = int(stmt.id)
        deduction.settlement_applied = True
        room -= amount
        folded.append(int(deduction.id))
    return folded


def generate_statement(
    helper_id: int,
    period: str,
    *,
    actor_id: int | None = None,
    repository: CourierSettingRepository | None = None,
) -> SettlementStatement:
    """Draft or refresh the helper's statement for ``period``.

    Commission uses the rates snapshotted on each order; orders priced
    before snapshots existed fall back to the current courier setting and
    team. Pending deductions are folded only into the helper's latest open
    statement, and only when it settles at least one order.
    """
    period = parse_period(period)
    helper = db.session.get(User, int(helper_id))
    if helper is None or (helper.role or "") != "helper":
        raise ValidationError("helperId must reference a helper", details={"field": "helperId"})

    stmt = SettlementStatement.query.filter_by(helper_id=int(helper.id), period=period).first()
    if stmt is not None and stmt.status not in OPEN_STATEMENT_STATUSES:
        raise ConflictError("Statement already paid", details={"statementId": int(stmt.id)})

    rows = _settleable_orders(int(helper.id), period, stmt)
    if stmt is None and not rows:
        raise ConflictError("No settleable orders for this period", code="NO_SETTLEABLE_ORDERS",
                            details={"helperId": int(helper.id), "period": period})
    if stmt is None:
        stmt = SettlementStatement(helper_id=int(helper.id), period=period, status=SettlementStatus.DRAFT)
        db.session.add(stmt)

    repo = repository or SqlCourierSettingRepository()
    team = active_team_for(int(helper.id))
    current_team_rate = int(team.commission_rate or 0) if team else 0

    supply = vat = total = commission = platform = team_amount = 0
    order_ids = []
    for order, report in rows:
        rate = order.commission_rate
        if rate is None:
            rate = commission_rate_for(repo.find(order.company_name, order.category), bool(order.is_urgent))
        team_rate = order.team_rate if order.team_rate is not None else current_team_rate
        split = split_commission(report.total_amount, rate, team_rate)
        supply += int(report.supply_amount or 0)
        vat += int(report.vat_amount or 0)
        total += int(report.total_amount or 0)
        commission += split.platform_gross
        platform += split.platform_net
        team_amount += split.team_amount
        order_ids.append(int(order.id))

    stmt.team_id = int(team.id) if team else None
    stmt.order_count = len(order_ids)
    stmt.supply_amount = supply
    stmt.vat_amount = vat
    stmt.total_amount = total
    stmt.commission_amount = commission
    stmt.platform_commission_amount = platform
    stmt.team_commission_amount = team_amount
    stmt.order_ids_json = json.dumps(order_ids)

    folded = []
    try:
        db.session.flush()
        if order_ids and _is_latest_open_statement(stmt):
            folded = _fold_pending_deductions(stmt)
            db.session.flush()
        recompute_net(stmt)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Statement is being generated concurrently")

    log_event(
        "settlement_generated",
        actor_user_id=actor_id,
        subject_type="settlement",
        subject_id=int(stmt.id),
        metadata={"period": period, "order_ids": order_ids, "deduction_ids": folded, "net_payout": stmt.net_payout},
    )
    db.session.commit()
    logger.info(
        "settlement_generated statement_id=%s helper_id=%s period=%s orders=%s net=%s",
        stmt.id, helper.id, period, len(order_ids), stmt.net_payout,
    )
    return stmt


def _set_statement_status(stmt: SettlementStatement, expected: tuple[str, ...], target: str, **values) -> None:
    updated = (
        SettlementStatement.query
        .filter(SettlementStatement.id == int(stmt.id), SettlementStatement.status.in_(expected))
        .update({"status": target, "updated_at": datetime.utcnow(), **values}, synchronize_session=False)
    )
    if updated == 0:
        raise IllegalTransitionError(stmt.status, target, reason="statement_status")


def confirm_statement(admin: User, statement_id: int) -> SettlementStatement:
    stmt = get_statement(statement_id)
    _set_statement_status(stmt, (SettlementStatus.DRAFT,), SettlementStatus.CONFIRMED)
    db.session.commit()
    db.session.refresh(stmt)
    return stmt


def pay_statement(admin: User, statement_id: int) -> SettlementStatement:
    """Mark a statement paid and advance each included order to ``settlement_paid``."""
    stmt = get_statement(statement_id)
    try:
        _set_statement_status(stmt, OPEN_STATEMENT_STATUSES, SettlementStatus.PAID, paid_at=datetime.utcnow())
        actor = {"type": ActorType.ADMIN, "id": int(admin.id)}
        for order_id in statement_order_ids(stmt):
            order = db.session.get(Order, order_id)
            if order is None or order.status_enum != OrderStatus.BALANCE_PAID:
                continue
            transition(order, OrderStatus.SETTLEMENT_PAID, actor,
                       reason="settlement_paid", metadata={"statement_id": int(stmt.id)}, commit=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.refresh(stmt)
    log_event("settlement_paid", actor_user_id=int(admin.id), subject_type="settlement",
              subject_id=int(stmt.id), metadata={"net_payout": stmt.net_payout})
    db.session.commit()
    return stmt


def generate_monthly_statements(period: str | None = None) -> list[int]:
    """Draft statements for every helper with settleable orders in ``period`` (default: last KST month)."""
    period = parse_period(period or previous_kst_period())
    _start, end = kst_month_bounds_utc(period)
    helper_ids = [
        int(row[0])
        for row in (
            db.session.query(ClosingReport.helper_id)
            .join(Order, Order.id == ClosingReport.order_id)
            .filter(Order.status == OrderStatus.BALANCE_PAID.value)
            .filter(ClosingReport.created_at < end)
            .distinct()
            .all()
        )
    ]
    generated = []
    for helper_id in sorted(helper_ids):
        try:
            generated.append(int(generate_statement(helper_id, period).id))
        except ConflictError as exc:
            logger.info("settlement_skip helper_id=%s period=%s reason=%s", helper_id, period, exc.message)
    return generated


def create_team(name: str, leader_id: int, commission_rate) -> Team:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"field": "name"})
    leader = db.session.get(User, int(leader_id))
    if leader is None or (leader.role or "") != "helper":
        raise ValidationError("leaderId must reference a helper", details={"field": "leaderId"})
    try:
        rate = int(commission_rate)
    except (TypeError, ValueError):
        raise ValidationError("commissionRate must be an integer percent", details={"field": "commissionRate"})
    if rate < 0 or rate > 100:
        raise ValidationError("commissionRate must be between 0 and 100", details={"field": "commissionRate"})

    team = Team(name=name[:120], leader_id=int(leader.id), commission_rate=rate)
    db.session.add(team)
    db.session.flush()
    add_team_member(team.id, leader.id, commit=False)
    db.session.commit()
    return team


def add_team_member(team_id: int, helper_id: int, *, commit: bool = True) -> TeamMember:
    team = db.session.get(Team, int(team_id))
    if team is None:
        raise NotFoundError("Team not found")
    helper = db.session.get(User, int(helper_id))
    if helper is None or (helper.role or "") != "helper":
        raise ValidationError("helperId must reference a helper", details={"field": "helperId"})

    # A helper belongs to at most one active team.
    (
        TeamMember.query
        .filter(TeamMember.helper_id == int(helper.id), TeamMember.team_id != int(team.id))
        .update({"is_active": False}, synchronize_session=False)
    )
    member = TeamMember.query.filter_by(team_id=int(team.id), helper_id=int(helper.id)).first()
    if member is None:
        member = TeamMember(team_id=int(team.id), helper_id=int(helper.id))
        db.session.add(member)
    member.is_active = True
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return member
