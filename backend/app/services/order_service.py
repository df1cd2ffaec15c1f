from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.exc import IntegrityError

from app.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.extensions import db
from app.models import (
    ACTIVE_APPLICATION_STATUSES,
    ApplicationStatus,
    ClosingReport,
    Order,
    OrderApplication,
    OrderStatus,
    Payment,
    PaymentStatus,
    User,
)
from app.services.order_state_machine import ActorType, history, transition
from app.services.pricing.closing_calculator import calculate_closing
from app.services.pricing.courier_settings import CourierSettingRepository, SqlCourierSettingRepository
from app.services.pricing.pricing_engine import quote_for_order
from app.services.settlement_service import active_team_for
from app.utils.commission import commission_rate_for
from app.utils.events import log_event

logger = logging.getLogger(__name__)

APPLICABLE_STATUSES = frozenset({OrderStatus.OPEN, OrderStatus.MATCHING})
ASSIGNABLE_STATUSES = frozenset({OrderStatus.OPEN, OrderStatus.MATCHING, OrderStatus.SCHEDULED})


def _int_field(data: dict, key: str, *, required: bool = False, minimum: int = 0) -> int | None:
    raw = data.get(key)
    if raw is None or raw == "":
        if required:
            raise ValidationError(f"{key} is required", details={"field": key})
        return None
    if isinstance(raw, bool):
        raise ValidationError(f"{key} must be an integer", details={"field": key})
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer", details={"field": key})
    if value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}", details={"field": key})
    return value


def _date_field(data: dict, key: str) -> date | None:
    raw = (data.get(key) or "").strip() if isinstance(data.get(key), str) else data.get(key)
    if not raw:
        return None
    try:
        return date.fromisoformat(str(raw))
    except ValueError:
        raise ValidationError(f"{key} must be YYYY-MM-DD", details={"field": key})


def _snapshot_team_rate(order: Order, helper_id: int) -> None:
    team = active_team_for(int(helper_id))
    order.team_rate = int(team.commission_rate or 0) if team else 0


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, int(order_id))
    if order is None:
        raise NotFoundError("Order not found", details={"orderId": int(order_id)})
    return order


def _ensure_owner_or_admin(order: Order, user: User) -> dict:
    role = (user.role or "").lower()
    if role == "admin":
        return {"type": ActorType.ADMIN, "id": int(user.id)}
    if role == "requester" and int(order.requester_id) == int(user.id):
        return {"type": ActorType.REQUESTER, "id": int(user.id)}
    raise AuthorizationError("Only the order's requester or an admin may do this")


def create_order(requester: User, data: dict, repository: CourierSettingRepository | None = None) -> Order:
    company_name = (data.get("companyName") or "").strip()
    category = (data.get("category") or "").strip()
    if not company_name:
        raise ValidationError("companyName is required", details={"field": "companyName"})
    quantity = _int_field(data, "quantity", required=True, minimum=1)
    is_urgent = bool(data.get("isUrgent"))

    quote, setting = quote_for_order(
        repository or SqlCourierSettingRepository(), company_name, category, quantity, is_urgent
    )
    order = Order(
        requester_id=int(requester.id),
        status=OrderStatus.OPEN.value,
        company_name=company_name[:120],
        category=category[:64],
        quantity=quantity,
        price_per_unit=quote.final_price_per_box,
        is_urgent=is_urgent,
        min_applied=quote.min_applied,
        urgent_applied=quote.urgent_applied,
        commission_rate=commission_rate_for(setting, is_urgent),
        scheduled_date=_date_field(data, "scheduledDate"),
        end_date=_date_field(data, "endDate"),
    )
    db.session.add(order)
    db.session.commit()
    log_event(
        "order_created",
        actor_user_id=int(requester.id),
        subject_type="order",
        subject_id=int(order.id),
        metadata={"quote": quote.to_dict()},
    )
    db.session.commit()
    return order


def apply_to_order(helper: User, order_id: int) -> OrderApplication:
    order = get_order(order_id)
    if order.status_enum not in APPLICABLE_STATUSES:
        raise ConflictError("Order is not accepting applications", details={"orderStatus": order.status})

    application = OrderApplication(order_id=int(order.id), helper_id=int(helper.id))
    try:
        db.session.add(application)
        db.session.flush()
        if order.status_enum == OrderStatus.OPEN:
            transition(
                order,
                OrderStatus.MATCHING,
                {"type": ActorType.SYSTEM},
                reason="first_application",
                commit=False,
            )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Already applied to this order", code="ALREADY_APPLIED")
    return application


def select_application(user: User, order_id: int, application_id: int) -> OrderApplication:
    order = get_order(order_id)
    actor = _ensure_owner_or_admin(order, user)
    application = db.session.get(OrderApplication, int(application_id))
    if application is None or int(application.order_id) != int(order.id):
        raise NotFoundError("Application not found")
    if application.status not in (ApplicationStatus.PENDING.value, ApplicationStatus.APPROVED.value):
        raise ConflictError("Application cannot be selected", details={"applicationStatus": application.status})

    try:
        transition(order, OrderStatus.SCHEDULED, actor, reason="application_selected",
                   metadata={"application_id": int(application.id)}, commit=False)
        application.status = ApplicationStatus.SELECTED.value
        _snapshot_team_rate(order, int(application.helper_id))
        (
            OrderApplication.query
            .filter(OrderApplication.order_id == int(order.id), OrderApplication.id != int(application.id))
            .filter(OrderApplication.status.in_([ApplicationStatus.PENDING.value, ApplicationStatus.APPROVED.value]))
            .update({"status": ApplicationStatus.REJECTED.value}, synchronize_session=False)
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return application


def assign_helper(admin: User, order_id: int, helper_id: int) -> Order:
    order = get_order(order_id)
    if order.status_enum not in ASSIGNABLE_STATUSES:
        raise ConflictError("Order can no longer be assigned", details={"orderStatus": order.status})
    helper = db.session.get(User, int(helper_id))
    if helper is None or (helper.role or "") != "helper":
        raise ValidationError("helperId must reference a helper", details={"field": "helperId"})

    try:
        order.matched_helper_id = int(helper.id)
        _snapshot_team_rate(order, int(helper.id))
        db.session.flush()
        if order.status_enum != OrderStatus.SCHEDULED:
            transition(order, OrderStatus.SCHEDULED, {"type": ActorType.ADMIN, "id": int(admin.id)},
                       reason="direct_assignment", metadata={"helper_id": int(helper.id)}, commit=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    log_event("order_direct_assigned", actor_user_id=int(admin.id), subject_type="order",
              subject_id=int(order.id), metadata={"helper_id": int(helper.id)})
    db.session.commit()
    return order


def _helper_is_assigned(order: Order, helper_id: int) -> bool:
    active = ACTIVE_APPLICATION_STATUSES | {ApplicationStatus.IN_PROGRESS}
    row = (
        OrderApplication.query
        .filter_by(order_id=int(order.id), helper_id=int(helper_id))
        .filter(OrderApplication.status.in_([s.value for s in active]))
        .first()
    )
    if row is not None:
        return True
    return order.matched_helper_id is not None and int(order.matched_helper_id) == int(helper_id)


def submit_closing(helper: User, order_id: int, data: dict) -> ClosingReport:
    order = get_order(order_id)
    if order.status_enum != OrderStatus.IN_PROGRESS:
        raise ConflictError("Order is not in progress", details={"orderStatus": order.status})
    if not _helper_is_assigned(order, int(helper.id)):
        raise AuthorizationError("Only the assigned helper may submit the closing report")

    delivered = _int_field(data, "deliveredCount", required=True) or 0
    returned = _int_field(data, "returnedCount") or 0
    other = _int_field(data, "otherCount") or 0
    extra_costs = _int_field(data, "extraCosts") or 0
    amounts = calculate_closing(delivered, returned, other, order.price_per_unit, extra_costs)

    report = ClosingReport.query.filter_by(order_id=int(order.id)).first()
    if report is None:
        # Resubmission after an admin rejection reuses the row.
        report = ClosingReport(order_id=int(order.id))
        db.session.add(report)
    report.helper_id = int(helper.id)
    report.delivered_count = delivered
    report.returned_count = returned
    report.other_count = other
    report.extra_costs = extra_costs
    report.supply_amount = amounts.supply_amount
    report.vat_amount = amounts.vat_amount
    report.total_amount = amounts.total_amount
    report.memo = (data.get("memo") or "").strip() or None

    try:
        db.session.flush()
        transition(order, OrderStatus.CLOSING_SUBMITTED, {"type": ActorType.HELPER, "id": int(helper.id)},
                   reason="closing_report", metadata=amounts.to_dict(), commit=False)
        (
            OrderApplication.query
            .filter_by(order_id=int(order.id), helper_id=int(helper.id),
                       status=ApplicationStatus.IN_PROGRESS.value)
            .update({"status": ApplicationStatus.COMPLETED.value}, synchronize_session=False)
        )
        helper.daily_status = "off"
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("closing_submitted order_id=%s helper_id=%s total=%s", order.id, helper.id, amounts.total_amount)
    return report


def register_balance_payment(requester: User, order_id: int, payment_id: str) -> Payment:
    order = get_order(order_id)
    if (requester.role or "") != "requester" or int(order.requester_id) != int(requester.id):
        raise AuthorizationError("Only the order's requester may pay the balance")
    if order.status_enum != OrderStatus.CLOSING_SUBMITTED:
        raise ConflictError("Balance can only be paid after the closing report", details={"orderStatus": order.status})
    payment_id = (payment_id or "").strip()
    if not payment_id:
        raise ValidationError("paymentId is required", details={"field": "paymentId"})

    report = ClosingReport.query.filter_by(order_id=int(order.id)).first()
    if report is None:
        raise ConflictError("Closing report missing")
    amounts = calculate_closing(report.delivered_count, report.returned_count, report.other_count,
                                order.price_per_unit, report.extra_costs)

    payment = Payment(
        order_id=int(order.id),
        purpose="balance",
        amount=amounts.balance_amount,
        provider_payment_id=payment_id[:128],
        status=PaymentStatus.INITIATED,
    )
    try:
        db.session.add(payment)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("paymentId already registered", code="DUPLICATE_PAYMENT")
    return payment


def admin_set_status(admin: User, order_id: int, target, reason: str = "") -> Order:
    order = get_order(order_id)
    return transition(order, target, {"type": ActorType.ADMIN, "id": int(admin.id)},
                      reason=reason or "admin_override")


def order_detail(order: Order) -> dict:
    report = ClosingReport.query.filter_by(order_id=int(order.id)).first()
    applications = OrderApplication.query.filter_by(order_id=int(order.id)).order_by(OrderApplication.id.asc()).all()
    return {
        "order": order.to_dict(),
        "applications": [a.to_dict() for a in applications],
        "closingReport": report.to_dict() if report else None,
        "transitions": [t.to_dict() for t in history(int(order.id))],
    }
