# error taxonomy: every engine error carries an http status and a machine code
# rendered as {"error", "code", "details"} by the handlers in main.py

from typing import Any, Optional


class EngineError(Exception):
    """base class for errors surfaced to api clients"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(EngineError):
    """malformed or out-of-range input"""
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthError(EngineError):
    status_code = 401
    code = "AUTH_REQUIRED"


class NotFoundError(EngineError):
    status_code = 404
    code = "NOT_FOUND"


class RateLimitError(EngineError):
    """quota exceeded for a (category, user) window"""
    status_code = 429
    code = "RATE_LIMITED"

    def __init__(self, message: str, retry_after_seconds: int, reset_at: int):
        super().__init__(message, details={"retryAfter": retry_after_seconds})
        self.retry_after_seconds = retry_after_seconds
        self.reset_at = reset_at


def field_errors(errors: list[dict]) -> dict[str, str]:
    """flatten pydantic error dicts into {"field.path": message}"""
    details = {}
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        details[".".join(loc) or "body"] = err.get("msg", "Invalid value")
    return details


class InternalError(EngineError):
    status_code = 500
    code = "INTERNAL_ERROR"


class CollaboratorError(InternalError):
    """the inference collaborator failed outright"""


class CollaboratorTimeoutError(CollaboratorError):
    """the inference collaborator did not answer within its time budget"""
