# ridepay/core/exceptions.py
"""
Errors raised by the booking, payment and payout services.

Each class carries the HTTP status the API answers with; ``code`` is the
machine-readable value clients branch on (INSUFFICIENT_SEATS,
PAYMENT_NOT_FOUND, ...). Not-found and illegal transitions are separate
types so callers never match on message text.
"""

from typing import Any, Dict, Optional

from fastapi import status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base for every error rendered as `{success: false, error, code}`."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_response_body(self) -> Dict[str, Any]:
        """Structured `{success, error}` body returned by the API."""
        body: Dict[str, Any] = {"success": False, "error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationException(DomainException):
    """Bad input: amounts, phone numbers, seat counts, verification codes."""

    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenException(DomainException):
    """The acting user is neither the passenger nor the ride's driver."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundException(DomainException):
    """Booking, ride, payment or payout does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Concurrent work on the same booking, or a duplicate request."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Well-formed request the booking rules forbid (no seats, already verified)."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Storage or provider failure the caller cannot fix."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class IllegalTransitionException(BusinessRuleException):
    """Raised when a payment status change is not allowed by the state machine."""

    def __init__(self, from_status: str, to_status: str, *, entity: str = "payment"):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            message=f"Invalid {entity} status transition: {from_status} -> {to_status}",
            code="ILLEGAL_STATUS_TRANSITION",
            details={"from": from_status, "to": to_status, "entity": entity},
        )


class ProviderException(ServiceException):
    """Raised when a payment provider cannot be reached or answers garbage."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.provider = provider
        self.http_status = status_code
        super().__init__(
            message=message,
            code="PROVIDER_ERROR",
            details={"provider": provider, "status_code": status_code, **(details or {})},
        )


class RepositoryException(Exception):
    """Database failure in the repository layer, including unique-key clashes."""
