from __future__ import annotations

import json
import logging
from datetime import datetime

from app.errors import AuthorizationError, IllegalTransitionError, ValidationError
from app.extensions import db
from app.models import Order, OrderStatus, OrderTransition, TERMINAL_ORDER_STATUSES

logger = logging.getLogger(__name__)


class ActorType:
    REQUESTER = "requester"
    HELPER = "helper"
    ADMIN = "admin"
    SYSTEM = "system"
    CHECKIN = "checkin"
    WEBHOOK = "webhook"


S = OrderStatus
A = ActorType

# (from, to) -> actor types allowed to fire the edge. Anything absent is illegal.
ALLOWED: dict[tuple[OrderStatus, OrderStatus], frozenset[str]] = {
    (S.OPEN, S.MATCHING): frozenset({A.REQUESTER, A.ADMIN, A.SYSTEM}),
    (S.OPEN, S.SCHEDULED): frozenset({A.REQUESTER, A.ADMIN}),
    (S.OPEN, S.IN_PROGRESS): frozenset({A.CHECKIN}),
    (S.MATCHING, S.OPEN): frozenset({A.ADMIN, A.SYSTEM}),
    (S.MATCHING, S.SCHEDULED): frozenset({A.REQUESTER, A.ADMIN}),
    (S.SCHEDULED, S.OPEN): frozenset({A.REQUESTER, A.ADMIN}),
    (S.SCHEDULED, S.IN_PROGRESS): frozenset({A.CHECKIN}),
    (S.IN_PROGRESS, S.CLOSING_SUBMITTED): frozenset({A.HELPER, A.ADMIN}),
    (S.CLOSING_SUBMITTED, S.IN_PROGRESS): frozenset({A.ADMIN}),
    (S.CLOSING_SUBMITTED, S.BALANCE_PAID): frozenset({A.WEBHOOK, A.ADMIN}),
    (S.BALANCE_PAID, S.SETTLEMENT_PAID): frozenset({A.ADMIN, A.SYSTEM}),
    (S.SETTLEMENT_PAID, S.CLOSED): frozenset({A.ADMIN, A.SYSTEM}),
}
for _status in OrderStatus:
    if _status not in TERMINAL_ORDER_STATUSES:
        ALLOWED[(_status, S.CANCELLED)] = frozenset({A.ADMIN})

del S, A


def allowed_targets(status) -> frozenset[OrderStatus]:
    source = OrderStatus.parse(status)
    return frozenset(to for (frm, to) in ALLOWED if frm == source)


def parse_actor(actor) -> tuple[str, int | None]:
    if isinstance(actor, dict):
        actor_type = str(actor.get("type") or ActorType.SYSTEM).strip().lower()
        actor_id_raw = actor.get("id")
        try:
            actor_id = int(actor_id_raw) if actor_id_raw is not None else None
        except (TypeError, ValueError):
            actor_id = None
        return actor_type, actor_id
    return ActorType.SYSTEM, None


def _parse_status(value) -> OrderStatus:
    try:
        return OrderStatus.parse(value)
    except ValueError:
        raise ValidationError(f"unknown order status: {value!r}", details={"field": "status"})


def check_transition(from_status, to_status, actor_type: str) -> None:
    """Raise unless ``actor_type`` may move an order ``from_status -> to_status``."""
    source = _parse_status(from_status)
    target = _parse_status(to_status)
    if source in TERMINAL_ORDER_STATUSES:
        raise IllegalTransitionError(source.value, target.value, reason="terminal_state")
    actors = ALLOWED.get((source, target))
    if actors is None:
        raise IllegalTransitionError(source.value, target.value)
    if actor_type not in actors:
        raise AuthorizationError(
            f"{actor_type} may not move an order {source.value}->{target.value}",
            details={"from_status": source.value, "to_status": target.value, "actor_type": actor_type},
        )


def transition(
    order: Order,
    target,
    actor=None,
    *,
    expected_status=None,
    reason: str = "",
    metadata: dict | None = None,
    commit: bool = True,
) -> Order:
    """Move ``order`` to ``target`` with a compare-and-set on its status.

    The update only lands when the stored status still equals
    ``expected_status`` (defaults to the status the caller loaded); a lost
    race surfaces as ``IllegalTransitionError``. With ``commit=False`` the
    change and its audit row are flushed into the caller's transaction.
    """
    if order is None:
        raise ValidationError("order required")

    target_status = _parse_status(target)
    expected = _parse_status(expected_status if expected_status is not None else order.status)
    actor_type, actor_id = parse_actor(actor)
    check_transition(expected, target_status, actor_type)

    now = datetime.utcnow()
    updated = (
        Order.query
        .filter_by(id=int(order.id), status=expected.value)
        .update({"status": target_status.value, "updated_at": now}, synchronize_session=False)
    )
    if updated == 0:
        if commit:
            db.session.rollback()
        logger.info(
            "order_transition_lost_race order_id=%s expected=%s target=%s",
            order.id, expected.value, target_status.value,
        )
        raise IllegalTransitionError(expected.value, target_status.value, reason="status_changed")

    db.session.add(
        OrderTransition(
            order_id=int(order.id),
            from_status=expected.value,
            to_status=target_status.value,
            actor_type=actor_type[:32],
            actor_id=actor_id,
            reason=(reason or "")[:240],
            metadata_json=json.dumps(metadata or {}, default=str)[:4000],
            created_at=now,
        )
    )
    db.session.flush()
    db.session.refresh(order)
    if commit:
        db.session.commit()

    logger.info(
        "order_transition order_id=%s %s->%s actor=%s:%s",
        order.id, expected.value, target_status.value, actor_type, actor_id,
    )
    return order


def history(order_id: int) -> list[OrderTransition]:
    return (
        OrderTransition.query
        .filter_by(order_id=int(order_id))
        .order_by(OrderTransition.id.asc())
        .all()
    )
