from __future__ import annotations

import os

from flask import Blueprint, current_app, jsonify, request

from app.extensions import db
from app.services.payment_webhook_service import process_portone_webhook, verify_signature
from app.utils.observability import get_request_id

webhooks_bp = Blueprint("webhooks_bp", __name__, url_prefix="/api/webhooks")


def _queue_enabled() -> bool:
    return (os.getenv("PORTONE_WEBHOOK_QUEUE") or "false").strip().lower() in ("1", "true", "yes", "on")


@webhooks_bp.post("/portone")
def portone_webhook():
    raw = request.get_data() or b""
    secret = (current_app.config.get("PORTONE_WEBHOOK_SECRET") or "").strip()
    if secret:
        ok = verify_signature(
            secret,
            request.headers.get("webhook-id"),
            request.headers.get("webhook-timestamp"),
            raw,
            request.headers.get("webhook-signature"),
        )
        if not ok:
            current_app.logger.warning("portone_webhook_bad_signature request_id=%s", get_request_id())
            return jsonify({"ok": False, "error": "INVALID_SIGNATURE", "trace_id": get_request_id()}), 401

    try:
        payload = request.get_json(silent=True)
        if _queue_enabled() and isinstance(payload, dict):
            from app.tasks.webhook_tasks import process_portone_webhook_task

            process_portone_webhook_task.delay(payload=payload, trace_id=get_request_id())
            return jsonify({"ok": True, "queued": True, "trace_id": get_request_id()}), 200

        body, status = process_portone_webhook(payload, request_id=get_request_id())
        return jsonify(body), int(status)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("portone_webhook_route_failed")
        return jsonify({"ok": False, "error": "WEBHOOK_HANDLER_FAILED", "trace_id": get_request_id()}), 200
