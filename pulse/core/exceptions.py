"""
Typed error taxonomy for the auth subsystem.

Every failure carries an ErrorKind so callers (the HTTP layer, Celery tasks,
tests) branch on the kind rather than on message text.
"""

import enum
import math
from typing import Any, Dict, Optional


class ErrorKind(str, enum.Enum):
    VALIDATION = "VALIDATION"
    AUTHENTICATION = "AUTHENTICATION"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    ACCOUNT_NOT_ACTIVE = "ACCOUNT_NOT_ACTIVE"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL = "INTERNAL"


class PulseError(Exception):
    """Base class for all domain errors raised by the auth services."""

    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind.value, "detail": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(PulseError):
    kind = ErrorKind.VALIDATION
    status_code = 422
    default_message = "Invalid input"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, details={"fields": {field: message}})


class AuthenticationError(PulseError):
    kind = ErrorKind.AUTHENTICATION
    status_code = 401
    default_message = "Invalid email or password"


class InvalidTokenError(AuthenticationError):
    default_message = "Invalid token"


class ExpiredTokenError(AuthenticationError):
    default_message = "Token has expired"


class AccountLockedError(PulseError):
    kind = ErrorKind.ACCOUNT_LOCKED
    status_code = 423
    default_message = "Account is temporarily locked"

    def __init__(self, remaining_seconds: float):
        self.remaining_seconds = max(1, math.ceil(remaining_seconds))
        minutes = math.ceil(self.remaining_seconds / 60)
        super().__init__(
            f"Account is locked. Try again in {minutes} minutes",
            details={"retry_after_seconds": self.remaining_seconds},
        )


class AccountNotActiveError(PulseError):
    kind = ErrorKind.ACCOUNT_NOT_ACTIVE
    status_code = 403
    default_message = "Account is not active"


class NotFoundError(PulseError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404
    default_message = "Not found"


class ConflictError(PulseError):
    kind = ErrorKind.CONFLICT
    status_code = 409
    default_message = "Resource already exists"


class InternalError(PulseError):
    kind = ErrorKind.INTERNAL
    status_code = 500
    default_message = "Internal server error"
