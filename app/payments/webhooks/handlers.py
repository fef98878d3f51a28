"""
Webhook event handlers for Paystack events.

This module provides a handler registry and the handlers that turn
Paystack events into escrow and payout operations.

Every handler receives the stored WebhookEvent and returns a ServiceResult;
a failed result (or an exception) marks the event failed so it is retried.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("refund.processed")
    def handle_refund_processed(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from django.utils.dateparse import parse_datetime

from core.services import ServiceResult

from payments.adapters.paystack_adapter import from_subunit
from payments.models import WebhookEvent
from payments.services import EscrowService, PayoutService


logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Args:
        event_type: The Paystack event type (e.g., "charge.success")
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to its handler.

    Unknown event types are acknowledged with a successful empty result so
    the gateway stops redelivering them.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"webhook_event_id": str(webhook_event.id)},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={
            "webhook_event_id": str(webhook_event.id),
            "reference": webhook_event.external_reference,
        },
    )
    return handler(webhook_event)


def _missing_reference(webhook_event: WebhookEvent) -> ServiceResult:
    logger.error(
        f"{webhook_event.event_type}: payload has no data.reference",
        extra={"webhook_event_id": str(webhook_event.id)},
    )
    return ServiceResult.failure(
        "Could not extract reference from webhook",
        error_code="INVALID_WEBHOOK_PAYLOAD",
        details={"webhook_event_id": str(webhook_event.id)},
    )


# =============================================================================
# Charge Handlers
# =============================================================================


@register_handler("charge.success")
def handle_charge_success(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Charge completed: move the payment into escrow.

    The charged amount from the payload is checked against the payment, so
    a tampered or partial charge never reaches escrow.
    """
    data = webhook_event.data
    reference = data.get("reference")
    if not reference:
        return _missing_reference(webhook_event)

    paid_at = data.get("paid_at") or data.get("paidAt")
    return EscrowService.confirm_charge(
        reference,
        amount=from_subunit(data.get("amount")),
        paid_at=parse_datetime(paid_at) if paid_at else None,
        gateway_data={
            "transaction_id": data.get("id"),
            "channel": data.get("channel"),
            "gateway_response": data.get("gateway_response"),
        },
    )


@register_handler("charge.failed")
def handle_charge_failed(webhook_event: WebhookEvent) -> ServiceResult:
    """Charge declined or abandoned: PENDING -> FAILED."""
    data = webhook_event.data
    reference = data.get("reference")
    if not reference:
        return _missing_reference(webhook_event)

    return EscrowService.fail_charge(
        reference,
        reason=data.get("gateway_response") or "Charge failed",
    )


# =============================================================================
# Transfer Handlers
# =============================================================================


@register_handler("transfer.success")
def handle_transfer_success(webhook_event: WebhookEvent) -> ServiceResult:
    data = webhook_event.data
    reference = data.get("reference")
    if not reference:
        return _missing_reference(webhook_event)

    return PayoutService.on_transfer_event(
        reference,
        success=True,
        transfer_code=data.get("transfer_code"),
    )


@register_handler("transfer.failed")
@register_handler("transfer.reversed")
def handle_transfer_failed(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Transfer failed or was reversed by the bank.

    Both roll the payment back to escrow; the payout retry policy decides
    whether another attempt is made.
    """
    data = webhook_event.data
    reference = data.get("reference")
    if not reference:
        return _missing_reference(webhook_event)

    reason = data.get("reason") or data.get("gateway_response") or "no reason given"
    return PayoutService.on_transfer_event(
        reference,
        success=False,
        error=f"{webhook_event.event_type}: {reason}",
        transfer_code=data.get("transfer_code"),
    )


__all__ = [
    "WEBHOOK_HANDLERS",
    "dispatch_webhook",
    "register_handler",
]
