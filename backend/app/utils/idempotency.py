from __future__ import annotations

import hashlib
import json
import os
from typing import Any

from flask import has_request_context, request
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.models import IdempotencyKey


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in ("1", "true", "yes", "on")


def idempotency_enforced() -> bool:
    return _env_bool("ENABLE_IDEMPOTENCY_ENFORCEMENT", False)


def _canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def _hash_request(scope: str, payload: Any) -> str:
    raw = f"{scope.strip()}|{_canonical_json(payload)}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def get_idempotency_key() -> str | None:
    if not has_request_context():
        return None
    k = request.headers.get("Idempotency-Key") or request.headers.get("X-Idempotency-Key")
    if not k:
        return None
    return k.strip()[:128] or None


def lookup_response(
    user_id: int | None,
    scope: str,
    payload: Any,
    *,
    idempotency_key: str | None = None,
    require_header: bool | None = None,
):
    """Check the replay cache for a write request.

    Returns ``None`` when no key was sent, ``("required", body, 400)`` when a
    key is mandatory but missing, ``("conflict", body, 409)`` when the key was
    used with a different payload, ``("hit", body, status)`` for a replay, or
    ``("miss", row, 0)`` with a reserved row to pass to ``store_response``.
    """
    k = (idempotency_key or get_idempotency_key() or "").strip()[:128]
    must_have = idempotency_enforced() if require_header is None else bool(require_header)
    if not k:
        if must_have:
            return (
                "required",
                {
                    "ok": False,
                    "error": "IDEMPOTENCY_KEY_REQUIRED",
                    "message": f"Idempotency-Key header is required for {scope}.",
                    "status": 400,
                },
                400,
            )
        return None

    req_hash = _hash_request(scope, payload)
    row = IdempotencyKey.query.filter_by(user_id=user_id, scope=scope, key=k).first()
    if row is not None:
        if (row.request_hash or "") != req_hash:
            return (
                "conflict",
                {
                    "ok": False,
                    "error": "IDEMPOTENCY_KEY_REUSE",
                    "message": "This Idempotency-Key was already used with a different request payload.",
                    "status": 409,
                },
                409,
            )
        body = json.loads(row.response_json) if row.response_json else {"ok": True}
        return ("hit", body, int(row.status_code or 200))

    row = IdempotencyKey(
        key=k,
        scope=scope,
        user_id=int(user_id) if user_id is not None else None,
        request_hash=req_hash,
    )
    try:
        db.session.add(row)
        db.session.commit()
    except IntegrityError:
        # Concurrent request reserved the same key first.
        db.session.rollback()
        return lookup_response(user_id, scope, payload, idempotency_key=k, require_header=require_header)
    return ("miss", row, 0)


def store_response(row: IdempotencyKey, response_json: Any, status_code: int) -> None:
    row.response_json = json.dumps(response_json, separators=(",", ":"), default=str)
    row.status_code = int(status_code or 200)
    db.session.add(row)
    db.session.commit()


def release(row: IdempotencyKey) -> None:
    """Drop a reserved key whose request failed so the client may retry."""
    db.session.rollback()
    persisted = db.session.get(IdempotencyKey, row.id)
    if persisted is not None and not persisted.response_json:
        db.session.delete(persisted)
        db.session.commit()
