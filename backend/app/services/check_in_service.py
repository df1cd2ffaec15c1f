from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from app.errors import AlreadyCheckedInError, ApiError, NotFoundError
from app.extensions import db
from app.models import ApplicationStatus, CheckInRecord, Order, OrderApplication, OrderStatus, User
from app.services.assignment_resolver import resolve_assignment
from app.services.order_state_machine import ActorType, transition
from app.utils.events import log_event
from app.utils.timezone import kst_today

logger = logging.getLogger(__name__)


class CheckInMethod:
    QR = "qr"
    CODE = "code"
    ORDER = "order"


def _already_checked_in(helper_id: int, day, *, order_id=None, requester_id=None) -> CheckInRecord | None:
    clauses = []
    if requester_id is not None:
        clauses.append(CheckInRecord.requester_id == int(requester_id))
    if order_id is not None:
        clauses.append(CheckInRecord.order_id == int(order_id))
    if not clauses:
        return None
    return (
        CheckInRecord.query
        .filter(CheckInRecord.helper_id == int(helper_id), CheckInRecord.check_in_date == day)
        .filter(or_(*clauses))
        .first()
    )


def check_in(
    helper: User,
    *,
    method: str,
    order_id: int | None = None,
    requester_id: int | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    address: str | None = None,
    now: datetime | None = None,
) -> tuple[CheckInRecord, Order]:
    """Check a helper in to their active order for today (KST).

    Inserting the record, starting the order, starting the application and
    flipping the helper to ``working`` commit together or not at all.
    """
    moment = now or datetime.now(timezone.utc)
    day = kst_today(moment)
    # A checked-in order is no longer assignable, so look for today's record first.
    existing = _already_checked_in(int(helper.id), day, order_id=order_id, requester_id=requester_id)
    if existing is None:
        assignment = resolve_assignment(int(helper.id), order_id=order_id, requester_id=requester_id)
        existing = _already_checked_in(
            int(helper.id), day, order_id=assignment.order_id, requester_id=assignment.requester_id
        )
    if existing is not None:
        raise AlreadyCheckedInError(details={"checkIn": existing.to_dict()})

    order = db.session.get(Order, assignment.order_id)
    if order is None:
        raise NotFoundError("Order not found")

    utc_naive = moment.astimezone(timezone.utc).replace(tzinfo=None) if moment.tzinfo else moment
    record = CheckInRecord(
        helper_id=int(helper.id),
        requester_id=assignment.requester_id,
        order_id=assignment.order_id,
        check_in_time=utc_naive,
        check_in_date=day,
        status="checked_in",
        method=method,
        latitude=latitude,
        longitude=longitude,
        address=(address or "")[:255] or None,
    )
    try:
        db.session.add(record)
        db.session.flush()
        transition(
            order,
            OrderStatus.IN_PROGRESS,
            {"type": ActorType.CHECKIN, "id": int(helper.id)},
            reason=f"check_in:{method}",
            metadata={"path": assignment.path, "check_in_date": day.isoformat()},
            commit=False,
        )
        if assignment.application_id is not None:
            application = db.session.get(OrderApplication, assignment.application_id)
            application.status = ApplicationStatus.IN_PROGRESS.value
            application.checked_in_at = utc_naive
        helper.daily_status = "working"
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info("check_in_duplicate_race helper_id=%s order_id=%s", helper.id, assignment.order_id)
        raise AlreadyCheckedInError()
    except ApiError:
        db.session.rollback()
        raise

    log_event(
        "check_in",
        actor_user_id=int(helper.id),
        subject_type="order",
        subject_id=assignment.order_id,
        metadata={"method": method, "path": assignment.path, "check_in_date": day},
    )
    db.session.commit()
    logger.info(
        "check_in helper_id=%s order_id=%s path=%s method=%s",
        helper.id, assignment.order_id, assignment.path, method,
    )
    return record, order


def todays_check_ins(helper_id: int, now: datetime | None = None) -> list[CheckInRecord]:
    day = kst_today(now)
    return (
        CheckInRecord.query
        .filter_by(helper_id=int(helper_id), check_in_date=day)
        .order_by(CheckInRecord.check_in_time.asc())
        .all()
    )
