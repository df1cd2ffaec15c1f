from __future__ import annotations

import hmac
import json
import re
import secrets
from dataclasses import dataclass
from typing import Iterable

from app.errors import NoActiveAssignmentError, NotFoundError, ValidationError
from app.extensions import db
from app.models import (
    ACTIVE_APPLICATION_STATUSES,
    CHECKIN_SOURCE_STATUSES,
    Order,
    OrderApplication,
    User,
)
from app.models.user import PERSONAL_CODE_LENGTH

QR_PAYLOAD_TYPE = "hellpme_checkin"
_PERSONAL_CODE_RE = re.compile(r"^[A-Za-z0-9]{%d}$" % PERSONAL_CODE_LENGTH)


class AssignmentPath:
    APPLICATION = "application"
    DIRECT = "direct"


@dataclass(frozen=True)
class Assignment:
    order_id: int
    requester_id: int
    application_id: int | None
    path: str

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "requester_id": self.requester_id,
            "application_id": self.application_id,
            "path": self.path,
        }


def _status_value(value) -> str:
    return str(getattr(value, "value", value) or "").strip().lower()


_ACTIVE_ORDER_VALUES = frozenset(s.value for s in CHECKIN_SOURCE_STATUSES)
_ACTIVE_APPLICATION_VALUES = frozenset(s.value for s in ACTIVE_APPLICATION_STATUSES)


def pick_assignment(
    helper_id: int,
    applications: Iterable,
    orders: Iterable,
    *,
    requester_id: int | None = None,
    order_id: int | None = None,
) -> Assignment:
    """Choose the order a helper is checking in to.

    ``applications`` are the helper's application rows and ``orders`` the
    candidate orders (anything exposing the model attributes works). An
    approved or selected application on an open/scheduled order wins; the
    direct ``matched_helper_id`` path is only consulted when no application
    matches, and only for orders the helper never applied to.
    """
    helper_id = int(helper_id)
    candidates = {}
    for order in orders:
        if _status_value(order.status) not in _ACTIVE_ORDER_VALUES:
            continue
        if requester_id is not None and int(order.requester_id) != int(requester_id):
            continue
        if order_id is not None and int(order.id) != int(order_id):
            continue
        candidates[int(order.id)] = order

    own_applications = sorted(
        (a for a in applications if int(a.helper_id) == helper_id),
        key=lambda a: int(a.id),
    )
    for app_row in own_applications:
        order = candidates.get(int(app_row.order_id))
        if order is None or _status_value(app_row.status) not in _ACTIVE_APPLICATION_VALUES:
            continue
        return Assignment(
            order_id=int(order.id),
            requester_id=int(order.requester_id),
            application_id=int(app_row.id),
            path=AssignmentPath.APPLICATION,
        )

    applied_order_ids = {int(a.order_id) for a in own_applications}
    for oid in sorted(candidates):
        order = candidates[oid]
        if order.matched_helper_id is None or int(order.matched_helper_id) != helper_id:
            continue
        if oid in applied_order_ids:
            continue
        return Assignment(
            order_id=oid,
            requester_id=int(order.requester_id),
            application_id=None,
            path=AssignmentPath.DIRECT,
        )

    raise NoActiveAssignmentError(
        details={"helperId": helper_id, "requesterId": requester_id, "orderId": order_id}
    )


def resolve_assignment(
    helper_id: int,
    *,
    order_id: int | None = None,
    requester_id: int | None = None,
) -> Assignment:
    if order_id is None and requester_id is None:
        raise ValidationError("orderId or requester is required")

    q = Order.query.filter(Order.status.in_(sorted(_ACTIVE_ORDER_VALUES)))
    if order_id is not None:
        if db.session.get(Order, int(order_id)) is None:
            raise NotFoundError("Order not found", details={"orderId": int(order_id)})
        q = q.filter(Order.id == int(order_id))
    if requester_id is not None:
        q = q.filter(Order.requester_id == int(requester_id))
    orders = q.all()

    order_ids = [int(o.id) for o in orders]
    applications = []
    if order_ids:
        applications = (
            OrderApplication.query
            .filter(OrderApplication.helper_id == int(helper_id))
            .filter(OrderApplication.order_id.in_(order_ids))
            .all()
        )
    return pick_assignment(
        helper_id, applications, orders, requester_id=requester_id, order_id=order_id
    )


def parse_qr_payload(raw) -> tuple[int, str]:
    """Return ``(requester_id, token)`` from a scanned QR payload."""
    data = raw
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except ValueError:
            raise ValidationError("Invalid QR code", code="INVALID_QR")
    if not isinstance(data, dict) or data.get("type") != QR_PAYLOAD_TYPE:
        raise ValidationError("Invalid QR code", code="INVALID_QR")
    token = data.get("token")
    try:
        requester_id = int(data.get("requesterId"))
    except (TypeError, ValueError):
        raise ValidationError("Invalid QR code", code="INVALID_QR")
    if not isinstance(token, str) or not token:
        raise ValidationError("Invalid QR code", code="INVALID_QR")
    return requester_id, token


def requester_from_qr(raw) -> User:
    requester_id, token = parse_qr_payload(raw)
    requester = db.session.get(User, requester_id)
    if requester is None or (requester.role or "") != "requester":
        raise ValidationError("Invalid QR code", code="INVALID_QR")
    expected = requester.check_in_token or ""
    if not expected or not hmac.compare_digest(expected.encode("utf-8"), token.encode("utf-8")):
        raise ValidationError("QR code is expired or invalid", code="INVALID_QR")
    return requester


def normalize_personal_code(code) -> str:
    value = str(code or "").strip().upper()
    if not _PERSONAL_CODE_RE.match(value):
        raise ValidationError(
            f"Personal code must be {PERSONAL_CODE_LENGTH} letters or digits",
            details={"field": "code"},
        )
    return value


def requester_from_personal_code(code) -> User:
    value = normalize_personal_code(code)
    user = User.query.filter_by(personal_code=value).first()
    if user is None:
        raise NotFoundError("No requester with this personal code")
    if (user.role or "") != "requester":
        raise ValidationError("Personal code does not belong to a requester")
    return user


def issue_check_in_token(requester: User, *, rotate: bool = False) -> str:
    if rotate or not requester.check_in_token:
        requester.check_in_token = secrets.token_urlsafe(24)
        db.session.add(requester)
        db.session.commit()
    return requester.check_in_token


def build_qr_payload(requester: User) -> dict:
    return {
        "type": QR_PAYLOAD_TYPE,
        "requesterId": int(requester.id),
        "token": issue_check_in_token(requester),
    }
