from __future__ import annotations


class ApiError(Exception):
    """Base for errors that map onto a JSON API response.

    Raised from services and segments; rendered by the handler registered in
    ``create_app``. ``details`` is merged into the response body.
    """

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "", *, code: str | None = None, details: dict | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        if code:
            self.code = code
        self.details = dict(details or {})

    def to_dict(self) -> dict:
        payload = {
            "ok": False,
            "error": self.code,
            "message": self.message,
            "status": int(self.status_code),
        }
        payload.update(self.details)
        return payload


class ValidationError(ApiError):
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthorizationError(ApiError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(ApiError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(ApiError):
    status_code = 409
    code = "CONFLICT"


class ExternalServiceError(ApiError):
    status_code = 502
    code = "EXTERNAL_SERVICE_ERROR"


class IllegalTransitionError(ConflictError):
    code = "ILLEGAL_TRANSITION"

    def __init__(self, from_status: str, to_status: str, *, reason: str = "edge_not_allowed"):
        super().__init__(
            f"illegal_transition {from_status}->{to_status} ({reason})",
            details={"from_status": from_status, "to_status": to_status, "reason": reason},
        )
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason


class AlreadyCheckedInError(ConflictError):
    code = "ALREADY_CHECKED_IN"

    def __init__(self, message: str = "Already checked in today", *, details: dict | None = None):
        merged = {"alreadyCheckedIn": True}
        merged.update(details or {})
        super().__init__(message, details=merged)


class NoActiveAssignmentError(AuthorizationError):
    code = "NO_ACTIVE_ASSIGNMENT"

    def __init__(self, message: str = "No active assignment for this helper", *, details: dict | None = None):
        super().__init__(message, details=details)


class DisputeClosedError(ConflictError):
    code = "DISPUTE_TERMINAL"
