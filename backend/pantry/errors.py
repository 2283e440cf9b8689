# Overview: Error taxonomy shared by services and the API boundary.

from __future__ import annotations


class PantryError(Exception):
    """
    Base class for expected, classified failures.

    Each subclass carries a stable machine-readable code and the HTTP status
    the API boundary maps it to. Anything that is not a PantryError is an
    unclassified failure and is reported as INTERNAL_ERROR.
    """
    code = "ERROR"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details or {}

    def to_dict(self) -> dict:
        error = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}


class NotFoundError(PantryError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class InvalidStateError(PantryError):
    """Expired session, sold-out item, exhausted coupon, illegal transition..."""
    code = "INVALID_STATE"
    status_code = 409
    default_message = "Operation not allowed in the current state"


class ForbiddenError(PantryError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Forbidden"


class ConflictError(PantryError):
    code = "CONFLICT"
    status_code = 422
    default_message = "Conflict"


class ValidationError(PantryError):
    """Malformed request; details map field names to lists of messages."""
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Validation failed"


class UnauthorizedError(PantryError):
    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "Authentication required"


class PaymentProviderError(PantryError):
    """The hosted payment provider failed, timed out or is not configured."""
    code = "PAYMENT_PROVIDER_ERROR"
    status_code = 502
    default_message = "Payment provider unavailable"
