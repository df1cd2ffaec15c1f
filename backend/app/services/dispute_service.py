from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from app.errors import (
    AuthorizationError,
    ConflictError,
    DisputeClosedError,
    IllegalTransitionError,
    NotFoundError,
    ValidationError,
)
from app.extensions import db
from app.models import (
    ClosingReport,
    Deduction,
    Dispute,
    DisputeStatus,
    Order,
    OrderStatus,
    SettlementStatement,
    SettlementStatus,
    TERMINAL_DISPUTE_STATUSES,
    User,
)
from app.services.order_state_machine import parse_actor
from app.services.pricing.closing_calculator import count_correction_amount
from app.services.settlement_service import recompute_net, statement_for_order
from app.utils.events import log_event

logger = logging.getLogger(__name__)

ALLOWED = {
    DisputeStatus.PENDING: frozenset({DisputeStatus.REVIEWING}),
    DisputeStatus.REVIEWING: frozenset({DisputeStatus.RESOLVED, DisputeStatus.REJECTED}),
    DisputeStatus.RESOLVED: frozenset(),
    DisputeStatus.REJECTED: frozenset(),
}

DISPUTABLE_ORDER_STATUSES = frozenset({
    OrderStatus.CLOSING_SUBMITTED,
    OrderStatus.BALANCE_PAID,
    OrderStatus.SETTLEMENT_PAID,
    OrderStatus.CLOSED,
})
DISPUTE_TYPES = ("count", "amount", "quality", "other")


def _optional_count(data: dict, key: str) -> int | None:
    raw = data.get(key)
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer", details={"field": key})
    if value < 0:
        raise ValidationError(f"{key} must be >= 0", details={"field": key})
    return value


def get_dispute(dispute_id: int) -> Dispute:
    dispute = db.session.get(Dispute, int(dispute_id))
    if dispute is None:
        raise NotFoundError("Dispute not found")
    return dispute


def open_dispute(reporter: User, data: dict) -> Dispute:
    try:
        order_id = int(data.get("orderId"))
    except (TypeError, ValueError):
        raise ValidationError("orderId is required", details={"field": "orderId"})
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    if order.status_enum not in DISPUTABLE_ORDER_STATUSES:
        raise ConflictError("Order cannot be disputed in its current status", details={"orderStatus": order.status})

    report = ClosingReport.query.filter_by(order_id=int(order.id)).first()
    role = (reporter.role or "").lower()
    if role == "requester" and int(order.requester_id) != int(reporter.id):
        raise AuthorizationError("Not your order")
    if role == "helper" and (report is None or int(report.helper_id) != int(reporter.id)):
        raise AuthorizationError("Not your order")

    dispute_type = (data.get("disputeType") or "count").strip().lower()
    if dispute_type not in DISPUTE_TYPES:
        raise ValidationError("disputeType is invalid", details={"field": "disputeType"})

    settlement_id = None
    if report is not None:
        stmt = statement_for_order(int(report.helper_id), int(order.id))
        settlement_id = int(stmt.id) if stmt is not None else None

    dispute = Dispute(
        order_id=int(order.id),
        settlement_id=settlement_id,
        reporter_id=int(reporter.id),
        dispute_type=dispute_type,
        status=DisputeStatus.PENDING.value,
        description=(data.get("description") or "").strip() or None,
        requested_delivered_count=_optional_count(data, "requestedDeliveredCount"),
        requested_returned_count=_optional_count(data, "requestedReturnedCount"),
    )
    db.session.add(dispute)
    db.session.commit()
    log_event("dispute_opened", actor_user_id=int(reporter.id), subject_type="dispute",
              subject_id=int(dispute.id), metadata={"order_id": int(order.id), "type": dispute_type})
    db.session.commit()
    return dispute


def derived_deduction_amount(dispute: Dispute) -> int:
    """Over-reported boxes times the order's unit price, plus VAT."""
    report = ClosingReport.query.filter_by(order_id=int(dispute.order_id)).first()
    order = db.session.get(Order, int(dispute.order_id))
    if report is None or order is None:
        return 0
    if dispute.requested_delivered_count is None and dispute.requested_returned_count is None:
        return 0
    reported = int(report.delivered_count or 0) + int(report.returned_count or 0)
    requested_delivered = (
        dispute.requested_delivered_count
        if dispute.requested_delivered_count is not None
        else int(report.delivered_count or 0)
    )
    requested_returned = (
        dispute.requested_returned_count
        if dispute.requested_returned_count is not None
        else int(report.returned_count or 0)
    )
    return count_correction_amount(reported, requested_delivered + requested_returned, order.price_per_unit)


def create_deduction(
    helper_id: int,
    amount: int,
    reason: str,
    *,
    dispute_id: int | None = None,
    settlement_id: int | None = None,
    created_by: int | None = None,
) -> Deduction:
    """Record a deduction; applied at once to an unpaid statement, else left for the next one.

    A dispute produces at most one deduction: a repeat call returns the
    existing row. Flushes only; the caller commits.
    """
    if dispute_id is not None:
        existing = Deduction.query.filter_by(dispute_id=int(dispute_id)).first()
        if existing is not None:
            return existing
    try:
        amount = int(amount)
    except (TypeError, ValueError):
        raise ValidationError("amount must be an integer", details={"field": "amount"})
    if amount <= 0:
        raise ValidationError("amount must be positive", details={"field": "amount"})

    stmt = db.session.get(SettlementStatement, int(settlement_id)) if settlement_id is not None else None
    if settlement_id is not None and stmt is None:
        raise NotFoundError("Settlement statement not found")
    if stmt is not None and int(stmt.helper_id) != int(helper_id):
        raise ValidationError("Statement belongs to another helper", details={"field": "settlementId"})
    apply_now = stmt is not None and stmt.status != SettlementStatus.PAID

    deduction = Deduction(
        helper_id=int(helper_id),
        amount=amount,
        reason=(reason or "")[:240],
        dispute_id=int(dispute_id) if dispute_id is not None else None,
        settlement_id=int(stmt.id) if apply_now else None,
        settlement_applied=apply_now,
        created_by=created_by,
    )
    try:
        with db.session.begin_nested():
            db.session.add(deduction)
    except IntegrityError:
        return Deduction.query.filter_by(dispute_id=int(dispute_id)).first()

    if apply_now:
        recompute_net(stmt)
    db.session.flush()
    log_event("deduction_created", actor_user_id=created_by, subject_type="deduction",
              subject_id=int(deduction.id),
              metadata={"amount": amount, "dispute_id": dispute_id, "applied_to": deduction.settlement_id})
    return deduction


def transition_dispute(dispute: Dispute, target, actor=None, *, fields: dict | None = None) -> Dispute:
    """Move a dispute along ``pending -> reviewing -> resolved|rejected``.

    Terminal disputes refuse every write. The update is conditional on the
    loaded status so two reviewers cannot both resolve the same dispute.
    """
    current = DisputeStatus.parse(dispute.status)
    if current in TERMINAL_DISPUTE_STATUSES:
        raise DisputeClosedError("Dispute is already closed", details={"status": current.value})
    try:
        target_status = DisputeStatus.parse(target)
    except ValueError:
        raise ValidationError(f"unknown dispute status: {target!r}", details={"field": "status"})
    if target_status not in ALLOWED[current]:
        raise IllegalTransitionError(current.value, target_status.value)

    _actor_type, actor_id = parse_actor(actor)
    values = {"status": target_status.value, "updated_at": datetime.utcnow()}
    values.update(fields or {})
    if target_status in TERMINAL_DISPUTE_STATUSES:
        values["resolved_at"] = datetime.utcnow()
        values["resolved_by"] = actor_id
    updated = (
        Dispute.query
        .filter_by(id=int(dispute.id), status=current.value)
        .update(values, synchronize_session=False)
    )
    if updated == 0:
        raise IllegalTransitionError(current.value, target_status.value, reason="status_changed")
    db.session.flush()
    db.session.refresh(dispute)
    log_event("dispute_status_changed", actor_user_id=actor_id, subject_type="dispute",
              subject_id=int(dispute.id), metadata={"from": current.value, "to": target_status.value})
    return dispute


def update_dispute(admin: User, dispute_id: int, data: dict) -> tuple[Dispute, Deduction | None]:
    dispute = get_dispute(dispute_id)
    if dispute.is_terminal:
        raise DisputeClosedError("Dispute is already closed", details={"status": dispute.status})

    fields = {}
    if data.get("resolution") is not None:
        fields["resolution"] = str(data.get("resolution")).strip()
    if data.get("adminReply") is not None:
        fields["admin_reply"] = str(data.get("adminReply")).strip()
    explicit_amount = data.get("deductionAmount")
    if explicit_amount is not None and explicit_amount != "":
        try:
            explicit_amount = int(explicit_amount)
        except (TypeError, ValueError):
            raise ValidationError("deductionAmount must be an integer", details={"field": "deductionAmount"})
        if explicit_amount < 0:
            raise ValidationError("deductionAmount must be >= 0", details={"field": "deductionAmount"})
        fields["deduction_amount"] = explicit_amount
    else:
        explicit_amount = None

    target = data.get("status")
    actor = {"type": "admin", "id": int(admin.id)}
    deduction = None
    try:
        if target:
            transition_dispute(dispute, target, actor, fields=fields)
            if DisputeStatus.parse(dispute.status) == DisputeStatus.RESOLVED:
                amount = explicit_amount if explicit_amount is not None else derived_deduction_amount(dispute)
                report = ClosingReport.query.filter_by(order_id=int(dispute.order_id)).first()
                if amount > 0 and report is not None:
                    deduction = create_deduction(
                        int(report.helper_id),
                        amount,
                        f"dispute #{dispute.id} resolved",
                        dispute_id=int(dispute.id),
                        settlement_id=dispute.settlement_id,
                        created_by=int(admin.id),
                    )
        elif fields:
            updated = (
                Dispute.query
                .filter(Dispute.id == int(dispute.id), Dispute.status.notin_([s.value for s in TERMINAL_DISPUTE_STATUSES]))
                .update({**fields, "updated_at": datetime.utcnow()}, synchronize_session=False)
            )
            if updated == 0:
                raise DisputeClosedError("Dispute is already closed")
            db.session.flush()
            db.session.refresh(dispute)
        else:
            raise ValidationError("Nothing to update")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("dispute_updated dispute_id=%s status=%s deduction=%s",
                dispute.id, dispute.status, deduction.id if deduction else None)
    return dispute, deduction


def admin_deduction(admin: User, data: dict) -> Deduction:
    try:
        helper_id = int(data.get("helperId"))
    except (TypeError, ValueError):
        raise ValidationError("helperId is required", details={"field": "helperId"})
    helper = db.session.get(User, helper_id)
    if helper is None or (helper.role or "") != "helper":
        raise ValidationError("helperId must reference a helper", details={"field": "helperId"})
    settlement_id = data.get("settlementId")
    try:
        deduction = create_deduction(
            helper_id,
            data.get("amount"),
            (data.get("reason") or "manual deduction").strip(),
            settlement_id=int(settlement_id) if settlement_id not in (None, "") else None,
            created_by=int(admin.id),
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return deduction
