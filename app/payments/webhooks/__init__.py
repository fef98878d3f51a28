"""
Webhook handling for payment events from Paystack.

Webhooks are verified, stored idempotently under
``(event_type, external_reference)`` and applied synchronously. Failed
events are replayed by the ``replay_failed_webhooks`` task.

Usage:
    # In urls.py
    from payments.webhooks.views import paystack_webhook

    urlpatterns = [
        path("webhooks/paystack/", paystack_webhook, name="paystack-webhook"),
    ]
"""

from payments.webhooks.handlers import dispatch_webhook, register_handler
from payments.webhooks.ingest import IngestResult, WebhookIngestService
from payments.webhooks.views import paystack_webhook

__all__ = [
    "IngestResult",
    "WebhookIngestService",
    "dispatch_webhook",
    "paystack_webhook",
    "register_handler",
]
