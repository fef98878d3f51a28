"""
Exceptions for the escrow payment domain.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentNotFoundError - Payment/Payout/WebhookEvent lookup failures
    ├── PaymentValidationError - Invalid amounts, rates, immutable fields
    ├── NotEligible - Preconditions for an action are not met
    └── InvalidSignature - Webhook payload could not be authenticated

    InvalidTransition - State change not legal from current status (ConflictError)
    AlreadyExists - Idempotency guard tripped (ConflictError)
    LockAcquisitionError - Distributed lock timeout (ConflictError)

    GatewayError - Payment gateway call failed (ExternalServiceError)
    ├── GatewayRequestError - Rejected request (permanent)
    ├── GatewayRateLimitError - Rate limited (transient, retry)
    ├── GatewayUnavailableError - Connection failure or 5xx (transient, retry)
    └── GatewayTimeoutError - No answer within the timeout (transient, retry)

Usage:
    from payments.exceptions import InvalidTransition, NotEligible

    raise NotEligible(
        "Payment is not awaiting release",
        details={"payment_id": str(payment.id), "status": payment.status},
    )
"""

from __future__ import annotations

from core.exceptions import BaseApplicationError, ConflictError, ExternalServiceError


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for payment operations.

    Example:
        try:
            EscrowService.confirm_charge(reference)
        except PaymentError as e:
            logger.error(f"Payment operation failed: {e}")
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """
    Raised when a payment entity cannot be found.

    Example:
        payment = Payment.objects.filter(external_reference=reference).first()
        if not payment:
            raise PaymentNotFoundError(
                f"No payment for reference {reference}",
                details={"reference": reference},
            )
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"


class PaymentValidationError(PaymentError):
    """
    Raised when payment data violates a business rule.

    Use for:
    - Amounts outside the configured bounds
    - Fee rates outside [0, 1)
    - Attempts to change an immutable payout amount
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class NotEligible(PaymentError):
    """
    Raised when the preconditions for an action are not met.

    Example:
        Requesting a payout while the payment is still in ESCROW, or
        requesting release before the provider has proof of completion.
    """

    default_error_code: str = "NOT_ELIGIBLE"


class InvalidSignature(PaymentError):
    """
    Raised when a webhook signature does not match its payload.

    Nothing from the request is persisted when this is raised.
    """

    default_error_code: str = "INVALID_SIGNATURE"


class WebhookProcessingError(PaymentError):
    """
    Raised when a webhook handler reports failure.

    Rolls back the handler's savepoint; the event is kept with the error
    and its retry count incremented.
    """

    default_error_code: str = "WEBHOOK_HANDLER_FAILED"


# =============================================================================
# State & Concurrency Exceptions
# =============================================================================


class InvalidTransition(ConflictError):
    """
    Raised when a state change is not legal from the current status.

    The record is left unchanged. Callers should inspect the current status
    (in ``details["current_status"]``) and choose the correct action.

    Example:
        raise InvalidTransition(
            "Cannot refund payment in 'released'",
            details={
                "payment_id": str(payment.id),
                "current_status": "released",
                "transition": "refund",
            },
        )
    """

    default_error_code: str = "INVALID_TRANSITION"


class AlreadyExists(ConflictError):
    """
    Raised when an idempotency guard trips.

    Use for a second payout for the same payment or a second payment for the
    same booking.
    """

    default_error_code: str = "ALREADY_EXISTS"


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired within the timeout.

    Example:
        raise LockAcquisitionError(
            "Could not acquire lock for webhooks:replay within 5s",
            details={"key": "webhooks:replay", "timeout": 5},
        )
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(ExternalServiceError):
    """
    Base class for payment gateway failures.

    Attributes:
        is_retryable: Whether repeating the same call may succeed

    Example:
        try:
            gateway.transfer(...)
        except GatewayError as e:
            if e.is_retryable:
                raise  # let the task runner back off
            PayoutService.on_transfer_result(payout.id, TransferOutcome.failed(str(e)))
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False


class GatewayRequestError(GatewayError):
    """The gateway rejected the request (bad recipient, invalid amount)."""

    default_error_code: str = "GATEWAY_REQUEST_REJECTED"
    is_retryable: bool = False


class GatewayRateLimitError(GatewayError):
    """The gateway answered HTTP 429."""

    default_error_code: str = "GATEWAY_RATE_LIMITED"
    is_retryable: bool = True


class GatewayUnavailableError(GatewayError):
    """The gateway could not be reached or answered with a 5xx."""

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable: bool = True


class GatewayTimeoutError(GatewayError):
    """The gateway did not answer within the configured timeout."""

    default_error_code: str = "GATEWAY_TIMEOUT"
    is_retryable: bool = True


__all__ = [
    # Domain
    "PaymentError",
    "PaymentNotFoundError",
    "PaymentValidationError",
    "NotEligible",
    "InvalidSignature",
    "WebhookProcessingError",
    # State & concurrency
    "InvalidTransition",
    "AlreadyExists",
    "LockAcquisitionError",
    # Gateway
    "GatewayError",
    "GatewayRequestError",
    "GatewayRateLimitError",
    "GatewayUnavailableError",
    "GatewayTimeoutError",
]
