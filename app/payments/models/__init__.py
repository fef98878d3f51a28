"""
Payment domain models.

- Payment: Booking payment held in escrow until release or refund
- Payout: Transfer of a payment's escrow amount to the provider
- WebhookEvent: Idempotency and audit log of gateway callbacks
"""

from payments.models.payment import Payment
from payments.models.payout import Payout
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "Payment",
    "Payout",
    "WebhookEvent",
]
