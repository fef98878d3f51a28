"""
Application exception hierarchy.

Every domain error carries a machine-readable ``error_code`` and an optional
``details`` dict so services can turn it into a ServiceResult and views can
turn it into a JSON body without knowing the concrete type.

Exception Hierarchy:
    BaseApplicationError
    ├── ValidationError - Input or business-rule validation failures
    ├── NotFoundError - Resource not found
    ├── PermissionDeniedError - Caller may not perform the action
    ├── ConflictError - Action conflicts with current state
    └── ExternalServiceError - Third-party call failed

Usage:
    from core.exceptions import ConflictError

    raise ConflictError(
        "Payment is already refunded",
        error_code="INVALID_TRANSITION",
        details={"payment_id": str(payment.id), "status": payment.status},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional context (ids, states, field errors)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to an API error body.

        Example:
            {
                "error": "Payout already exists for payment",
                "error_code": "ALREADY_EXISTS",
                "details": {"payment_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """Input or business-rule validation failed (HTTP 400)."""

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """A single resource expected to exist was not found (HTTP 404)."""

    default_error_code: str = "NOT_FOUND"


class PermissionDeniedError(BaseApplicationError):
    """The authenticated caller may not perform the action (HTTP 403)."""

    default_error_code: str = "PERMISSION_DENIED"


class ConflictError(BaseApplicationError):
    """
    The action conflicts with the current state of a resource (HTTP 409).

    Covers duplicates caught by unique constraints and state-machine
    transitions that are not legal from the current state.
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    A third-party call failed (HTTP 502).

    Log the original error for debugging; do not echo provider internals to
    API clients.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
