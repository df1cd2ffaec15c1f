from __future__ import annotations

import time

from celery import shared_task

from app.errors import ExternalServiceError
from app.services.payment_webhook_service import event_key, parse_payload, process_portone_webhook
from app.tasks.task_logging import retry_countdown, task_log
from app.utils.idempotency import lookup_response, release, store_response


@shared_task(
    bind=True,
    name="app.tasks.webhook_tasks.process_portone_webhook",
    max_retries=5,
)
def process_portone_webhook_task(self, *, payload: dict, trace_id: str = ""):
    started = time.perf_counter()
    try:
        event_type, payment_id, transaction_id = parse_payload(payload)
    except ExternalServiceError as exc:
        task_log("process_portone_webhook", status="invalid_payload", started_at=started,
                 trace_id=trace_id, detail=exc.message)
        return {"ok": False, "error": exc.code}
    event_id = event_key(event_type, payment_id, transaction_id)

    idem = lookup_response(
        None,
        "webhook:portone",
        payload,
        idempotency_key=event_id,
        require_header=False,
    )
    if idem and idem[0] == "hit":
        task_log("process_portone_webhook", status="idempotent_hit", started_at=started,
                 trace_id=trace_id, event_id=event_id)
        return {"ok": True, "replayed": True, "event_id": event_id}
    if idem and idem[0] == "conflict":
        task_log("process_portone_webhook", status="idempotency_conflict", started_at=started,
                 trace_id=trace_id, event_id=event_id)
        return idem[1]
    idem_row = idem[1] if idem and idem[0] == "miss" else None

    body, code = process_portone_webhook(payload, request_id=trace_id)
    if body.get("error") == "WEBHOOK_HANDLER_FAILED" and int(self.request.retries or 0) < int(self.max_retries or 0):
        countdown = retry_countdown(int(self.request.retries or 0))
        task_log("process_portone_webhook", status="retrying", started_at=started,
                 trace_id=trace_id, event_id=event_id, countdown=countdown)
        if idem_row is not None:
            release(idem_row)
        raise self.retry(exc=RuntimeError("portone_webhook_failed"), countdown=countdown)

    if idem_row is not None:
        store_response(idem_row, body, int(code))
    task_log("process_portone_webhook", status="ok", started_at=started, trace_id=trace_id,
             event_id=event_id, body=body)
    return body
