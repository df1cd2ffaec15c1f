from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from app.errors import ExternalServiceError
from app.extensions import db
from app.models import Order, OrderStatus, Payment, PaymentStatus, WebhookEvent
from app.services.order_state_machine import ActorType, transition
from app.utils.events import log_event

logger = logging.getLogger(__name__)

PROVIDER = "portone"
SIGNATURE_TOLERANCE_SECONDS = 300

EVENT_PAID = "Transaction.Paid"
EVENT_CANCELLED = "Transaction.Cancelled"
EVENT_FAILED = "Transaction.Failed"
HANDLED_EVENTS = (EVENT_PAID, EVENT_CANCELLED, EVENT_FAILED)


def _decode_secret(secret: str) -> bytes:
    raw = secret.strip()
    if raw.startswith("whsec_"):
        raw = raw[len("whsec_"):]
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        return raw.encode("utf-8")


def verify_signature(
    secret: str,
    webhook_id: str | None,
    timestamp: str | None,
    body: bytes,
    signature_header: str | None,
    *,
    now: float | None = None,
    tolerance: int = SIGNATURE_TOLERANCE_SECONDS,
) -> bool:
    """Standard Webhooks check: HMAC-SHA256 over ``id.timestamp.body``.

    ``signature_header`` holds space separated ``v1,<base64>`` entries; any
    match within the timestamp tolerance passes.
    """
    if not (secret and webhook_id and timestamp and signature_header):
        return False
    try:
        ts = int(timestamp)
    except (TypeError, ValueError):
        return False
    current = time.time() if now is None else now
    if abs(current - ts) > tolerance:
        return False

    signed = f"{webhook_id}.{ts}.".encode("utf-8") + (body or b"")
    expected = base64.b64encode(hmac.new(_decode_secret(secret), signed, hashlib.sha256).digest())
    for entry in signature_header.split():
        version, _, value = entry.partition(",")
        if version == "v1" and hmac.compare_digest(value.encode("utf-8"), expected):
            return True
    return False


def parse_payload(payload) -> tuple[str, str, str]:
    if not isinstance(payload, dict):
        raise ExternalServiceError("payload must be an object", code="INVALID_PAYLOAD")
    event_type = payload.get("type")
    data = payload.get("data")
    if not isinstance(event_type, str) or not event_type.strip():
        raise ExternalServiceError("type is required", code="INVALID_PAYLOAD")
    if not isinstance(data, dict) or not str(data.get("paymentId") or "").strip():
        raise ExternalServiceError("data.paymentId is required", code="INVALID_PAYLOAD")
    return event_type.strip(), str(data["paymentId"]).strip(), str(data.get("transactionId") or "").strip()


def event_key(event_type: str, payment_id: str, transaction_id: str = "") -> str:
    return f"{event_type}:{transaction_id or payment_id}"[:128]


def _apply_event(event_type: str, payment: Payment, transaction_id: str) -> dict:
    now = datetime.utcnow()
    if transaction_id:
        payment.transaction_id = transaction_id[:128]

    if event_type == EVENT_PAID:
        if payment.status == PaymentStatus.COMPLETED:
            return {"ok": True, "alreadyPaid": True}
        payment.status = PaymentStatus.COMPLETED
        payment.paid_at = now
        order = db.session.get(Order, int(payment.order_id))
        if order is not None and order.status_enum == OrderStatus.CLOSING_SUBMITTED:
            transition(order, OrderStatus.BALANCE_PAID, {"type": ActorType.WEBHOOK},
                       reason="balance_paid", metadata={"payment_id": payment.provider_payment_id},
                       commit=False)
        elif order is not None:
            logger.warning("portone_paid_unexpected_order_status order_id=%s status=%s", order.id, order.status)
        return {"ok": True, "orderStatus": order.status if order else None}

    if event_type == EVENT_CANCELLED:
        payment.status = PaymentStatus.CANCELLED
        payment.cancelled_at = now
    elif event_type == EVENT_FAILED:
        payment.status = PaymentStatus.FAILED
    return {"ok": True}


def _mark_failed(event_id: str, error: str) -> None:
    row = WebhookEvent.query.filter_by(event_id=event_id).first()
    if row is None:
        return
    row.status = "failed"
    row.error = error[:2000]
    db.session.commit()


def process_portone_webhook(payload, *, request_id: str = "") -> tuple[dict, int]:
    """Apply a PortOne transaction event. Always answers 200.

    Events are recorded once per ``event_key``; a redelivery of a processed
    event is acknowledged as a replay. Internal failures are logged, stored
    on the event row and reported in the body.
    """
    try:
        event_type, payment_id, transaction_id = parse_payload(payload)
    except ExternalServiceError as exc:
        logger.warning("portone_webhook_invalid_payload err=%s", exc.message)
        return {"ok": False, "error": exc.code, "message": exc.message}, 200

    event_id = event_key(event_type, payment_id, transaction_id)
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)

    row = WebhookEvent.query.filter_by(event_id=event_id).first()
    if row is not None and row.status != "failed":
        return {"ok": True, "replayed": True}, 200
    if row is None:
        row = WebhookEvent(
            provider=PROVIDER,
            event_id=event_id,
            event_type=event_type[:64],
            reference=payment_id[:128],
            request_id=(request_id or "")[:64] or None,
            payload_hash=hashlib.sha256(raw.encode("utf-8")).hexdigest(),
            payload_json=raw[:20000],
        )
        try:
            db.session.add(row)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return {"ok": True, "replayed": True}, 200

    try:
        row.attempts = int(row.attempts or 0) + 1
        if event_type not in HANDLED_EVENTS:
            row.status = "ignored"
            body = {"ok": True, "ignored": True}
        else:
            payment = Payment.query.filter_by(provider_payment_id=payment_id).first()
            if payment is None:
                row.status = "ignored"
                body = {"ok": True, "ignored": True}
            else:
                body = _apply_event(event_type, payment, transaction_id)
                row.status = "processed"
        row.processed_at = datetime.utcnow()
        row.error = None
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        logger.exception("portone_webhook_failed event_id=%s", event_id)
        _mark_failed(event_id, str(exc))
        return {"ok": False, "error": "WEBHOOK_HANDLER_FAILED"}, 200

    log_event(
        "portone_webhook",
        subject_type="payment",
        subject_id=payment_id,
        request_id=request_id or None,
        metadata={"event_type": event_type, "status": row.status},
    )
    db.session.commit()
    return body, 200
