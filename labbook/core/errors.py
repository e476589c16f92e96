"""Domain error types for LabBook.

Every failure a service can report carries an ``ErrorKind`` discriminant.
Route handlers and the bulk-action runner branch on ``kind``, never on the
message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Error discriminant, also used as the ``error`` field in API responses."""

    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    NOT_EDITABLE = "not_editable"
    VALIDATION = "validation"
    BAD_REQUEST = "bad_request"
    PAYMENT_REQUIRED = "payment_required"
    RATE_LIMITED = "rate_limited"


HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_STATE: 400,
    ErrorKind.NOT_EDITABLE: 400,
    ErrorKind.VALIDATION: 400,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.PAYMENT_REQUIRED: 403,
    ErrorKind.RATE_LIMITED: 429,
}


class LabBookError(Exception):
    """Base class for expected, user-facing failures."""

    kind: ErrorKind = ErrorKind.BAD_REQUEST

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.kind.value, "detail": self.message}
        if self.details:
            payload["fields"] = self.details
        return payload


class UnauthorizedError(LabBookError):
    kind = ErrorKind.UNAUTHORIZED


class ForbiddenError(LabBookError):
    kind = ErrorKind.FORBIDDEN


class NotFoundError(LabBookError):
    kind = ErrorKind.NOT_FOUND


class InvalidStateError(LabBookError):
    """Raised when an action is attempted from a status that does not allow it."""

    kind = ErrorKind.INVALID_STATE

    def __init__(
        self,
        message: str,
        current: str | None = None,
        expected: tuple[str, ...] | list[str] | None = None,
    ):
        super().__init__(message)
        self.current = current
        self.expected = tuple(expected or ())


class NotEditableError(LabBookError):
    kind = ErrorKind.NOT_EDITABLE


class ValidationError(LabBookError):
    """Input failed validation; ``details`` holds ``{field, message}`` entries."""

    kind = ErrorKind.VALIDATION


class BadRequestError(LabBookError):
    kind = ErrorKind.BAD_REQUEST


class PaymentRequiredError(LabBookError):
    kind = ErrorKind.PAYMENT_REQUIRED


class RateLimitedError(LabBookError):
    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, retry_after: int, limit: int):
        super().__init__(message)
        self.retry_after = retry_after
        self.limit = limit
