from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.extensions import db
from app.models import PlatformEvent
from app.utils.observability import get_request_id

logger = logging.getLogger(__name__)


def _safe_value(value: Any):
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _safe_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_safe_value(v) for v in value]
    return str(value)


def safe_json(data: Any) -> str:
    normalized = _safe_value(data if isinstance(data, dict) else {"value": data})
    return json.dumps(normalized, separators=(",", ":"), ensure_ascii=False)


def log_event(
    event_type: str,
    *,
    actor_user_id: int | None = None,
    subject_type: str | None = None,
    subject_id: int | str | None = None,
    severity: str = "INFO",
    request_id: str | None = None,
    dedupe_key: str | None = None,
    metadata: dict | None = None,
) -> PlatformEvent | None:
    """Record an audit event inside a savepoint.

    Never raises to the caller: a failed insert is logged and rolled back to
    the savepoint, leaving the caller's transaction intact. Events sharing a
    ``dedupe_key`` are recorded once.
    """
    key = (dedupe_key or "").strip()[:180] or None
    try:
        if key:
            existing = PlatformEvent.query.filter_by(dedupe_key=key).first()
            if existing:
                return existing

        event = PlatformEvent(
            event_type=(event_type or "unknown").strip()[:80],
            actor_user_id=int(actor_user_id) if actor_user_id is not None else None,
            subject_type=(subject_type or "").strip()[:40] or None,
            subject_id=str(subject_id)[:64] if subject_id is not None else None,
            request_id=(request_id or get_request_id() or "").strip()[:80] or None,
            dedupe_key=key,
            severity=(severity or "INFO").strip().upper()[:16] or "INFO",
            metadata_json=safe_json(metadata or {}),
        )
        with db.session.begin_nested():
            db.session.add(event)
        return event
    except IntegrityError:
        logger.info("platform_event_duplicate event_type=%s dedupe_key=%s", event_type, key)
        if key:
            return PlatformEvent.query.filter_by(dedupe_key=key).first()
        return None
    except SQLAlchemyError as exc:
        logger.warning("platform_event_write_failed event_type=%s err=%s", event_type, exc)
        return None
