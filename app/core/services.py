"""
Service layer primitives shared by the domain apps.

Services own business rules; views translate HTTP, models hold data and
state transitions. Two outcome channels are used:

- ServiceResult: expected outcomes, including rule violations the caller
  must react to (a payout that is not eligible, a duplicate webhook).
- Exceptions: unexpected failures and transient errors that a task runner
  should retry (database down, gateway timeout).

Usage:
    from core.services import BaseService, ServiceResult

    class EscrowService(BaseService):
        @classmethod
        def refund(cls, payment_id, reason) -> ServiceResult[Payment]:
            with cls.atomic():
                payment = Payment.objects.select_for_update().get(id=payment_id)
                ...
            return ServiceResult.success(payment)

    result = EscrowService.refund(payment_id, "dispute upheld")
    if not result:
        return Response(result.to_response(), status=409)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from typing import Any

    from core.exceptions import BaseApplicationError

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call.

    Attributes:
        success: Whether the operation succeeded
        data: Payload on success
        error: Human-readable message on failure
        error_code: Machine-readable code (e.g. "NOT_ELIGIBLE")
        errors: Field-level validation errors
        details: Extra context copied from the originating error

    Example:
        result = PayoutService.request_payout(payment.id)
        if result.error_code == "ALREADY_EXISTS":
            ...
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)
    details: dict[str, Any] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Build a successful result carrying ``data``."""
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
        details: dict[str, Any] | None = None,
    ) -> ServiceResult[T]:
        """
        Build a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code
            errors: Field-level errors (validation failures)
            details: Additional context for logs and API responses
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
            details=details,
        )

    @classmethod
    def from_error(cls, exc: BaseApplicationError) -> ServiceResult[T]:
        """
        Convert an application error into a failed result.

        The error code and details of the exception are preserved so callers
        can branch on ``result.error_code`` exactly as they would on the
        exception type.
        """
        return cls.failure(
            exc.message,
            error_code=exc.error_code,
            details=dict(exc.details) or None,
        )

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """Convert an arbitrary exception, defaulting the code to its class name."""
        return cls.failure(
            str(exc),
            error_code=error_code or exc.__class__.__name__.upper(),
        )

    def to_response(self) -> dict[str, Any]:
        """Render the result as a JSON-serializable API body."""
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        if self.details:
            response["details"] = self.details
        return response

    def map(self, func: Callable[[T], Any]) -> ServiceResult:
        """Apply ``func`` to the data of a successful result."""
        if self.success and self.data is not None:
            return ServiceResult.success(func(self.data))
        return self

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for stateless services.

    Services expose classmethods only. Each one gets a logger named after the
    concrete class and an explicit transaction boundary via ``atomic()``.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named ``<module>.<ServiceClass>`` for easy filtering."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls, savepoint: bool = True) -> Generator[None, None, None]:
        """
        Run the enclosed block in a database transaction.

        Nested use creates a savepoint, so a failing inner block rolls back
        only its own writes.
        """
        with transaction.atomic(savepoint=savepoint):
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: Exception,
        context: str = "",
        log_level: int = logging.ERROR,
    ) -> ServiceResult:
        """
        Log ``exc`` and convert it to a failed ServiceResult.

        Application errors keep their error code. Anything else is logged with
        its traceback and reported under the exception class name.
        """
        from core.exceptions import BaseApplicationError

        message = f"{context}: {exc}" if context else str(exc)
        if isinstance(exc, BaseApplicationError):
            cls.get_logger().log(
                log_level,
                message,
                extra={"error_code": exc.error_code, "details": exc.details},
            )
            return ServiceResult.from_error(exc)

        cls.get_logger().log(log_level, message, exc_info=True)
        return ServiceResult.from_exception(exc)
