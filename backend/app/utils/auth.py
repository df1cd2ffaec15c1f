from __future__ import annotations

from flask import g, request

from app.errors import ApiError, AuthorizationError
from app.extensions import db
from app.models import User
from app.utils.jwt_utils import decode_token, get_bearer_token


class AuthenticationError(ApiError):
    status_code = 401
    code = "UNAUTHORIZED"


def _current_user() -> User | None:
    token = get_bearer_token(request.headers.get("Authorization", ""))
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None
    try:
        uid = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
    return db.session.get(User, uid)


def _role(u: User | None) -> str:
    if not u:
        return "guest"
    return (getattr(u, "role", None) or "helper").strip().lower()


def require_user(*roles: str) -> User:
    """Resolve the bearer token to a user, optionally restricted to ``roles``."""
    user = _current_user()
    if user is None:
        raise AuthenticationError("Authentication required")
    g.auth_user_id = int(user.id)
    g.auth_role = _role(user)
    if roles and _role(user) not in roles:
        raise AuthorizationError(f"{'/'.join(roles)} role required")
    return user


def require_admin() -> User:
    return require_user("admin")


def actor_for(user: User) -> dict:
    return {"type": _role(user), "id": int(user.id)}
