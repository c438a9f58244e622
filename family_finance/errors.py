# family_finance/errors.py
# ------------------------------------------------------------
# API exceptions. Raised from services and route handlers, turned into
# JSON bodies by the handlers registered in create_app():
#     {"error": "<message>", "code": "<CODE>", "field": ..., "details": ...}
# ------------------------------------------------------------
from __future__ import annotations

from typing import Any


class ApiError(Exception):
    """Base class for errors that map to a JSON response."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        *,
        field: str | None = None,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.field = field
        self.details = details or {}

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.field:
            body["field"] = self.field
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ApiError):
    status_code = 400
    code = "VALIDATION_ERROR"


class BusinessRuleError(ApiError):
    """Request was well-formed but violates a bookkeeping rule."""

    status_code = 400
    code = "BUSINESS_LOGIC_ERROR"


class AuthenticationError(ApiError):
    status_code = 401
    code = "UNAUTHORIZED"


class AuthorizationError(ApiError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(ApiError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(ApiError):
    status_code = 409
    code = "CONFLICT"
