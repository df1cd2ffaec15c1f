from __future__ import annotations

import time

from celery import shared_task

from app.services.settlement_service import generate_monthly_statements
from app.tasks.task_logging import task_log


@shared_task(name="app.tasks.settlement_tasks.generate_monthly_statements")
def generate_monthly_statements_task(period: str | None = None, trace_id: str = ""):
    started = time.perf_counter()
    statement_ids = generate_monthly_statements(period)
    task_log("generate_monthly_statements", status="ok", started_at=started, trace_id=trace_id,
             period=period or "previous", statement_count=len(statement_ids))
    return {"ok": True, "statement_ids": statement_ids}
