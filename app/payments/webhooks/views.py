"""
Webhook endpoint view for Paystack.

Paystack retries any delivery that does not get a 2xx, so the status code
is the retry signal:

- 200: processed, duplicate, unknown event type, or handed to an operator
- 400: body is not a Paystack event
- 401: signature mismatch (nothing stored)
- 500: handler failed; the event is stored and Paystack will redeliver

Usage:
    # In urls.py
    from payments.webhooks.views import paystack_webhook

    urlpatterns = [
        path("webhooks/paystack/", paystack_webhook, name="paystack-webhook"),
    ]
"""

from __future__ import annotations

import json
import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.adapters import SIGNATURE_HEADER
from payments.webhooks.ingest import WebhookIngestService, extract_reference


logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def paystack_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive, verify and apply a Paystack webhook.

    Processing is synchronous: escrow and payout transitions are short,
    row-locked updates with no outbound gateway calls, well inside
    Paystack's response window.

    Example x-paystack-signature header:
        HMAC-SHA512 hex digest of the raw body, keyed with the secret key
    """
    payload = request.body
    signature = request.headers.get(SIGNATURE_HEADER, "")

    if not signature:
        logger.warning("Webhook received without signature header")
        return HttpResponse("Missing signature", status=401)

    # Step 1: Verify signature before trusting any of the body
    if not WebhookIngestService.verify_signature(payload, signature):
        logger.warning("Webhook signature verification failed")
        return HttpResponse("Invalid signature", status=401)

    # Step 2: Decode the event
    try:
        event_data = json.loads(payload)
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        return HttpResponse("Invalid payload", status=400)

    event_type = event_data.get("event") if isinstance(event_data, dict) else None
    if not event_type:
        logger.warning("Webhook missing event type")
        return HttpResponse("Invalid event", status=400)

    reference = extract_reference(event_data)
    logger.info(
        f"Received Paystack webhook: {event_type}",
        extra={"event_type": event_type, "reference": reference},
    )

    # Step 3: Deduplicate and dispatch
    result = WebhookIngestService.ingest(
        event_type=event_type,
        external_reference=reference,
        payload=event_data,
        signature=signature,
        raw_body=payload,
    )

    if result.success:
        if result.data.duplicate:
            return HttpResponse("Already processed", status=200)
        return HttpResponse("Processed", status=200)

    if result.error_code == "INVALID_SIGNATURE":
        return HttpResponse("Invalid signature", status=401)
    if result.error_code == "RETRY_LIMIT_EXCEEDED":
        # Redelivery cannot help; an operator replays it from the admin
        return HttpResponse("Held for manual review", status=200)

    logger.error(
        f"Webhook processing failed: {result.error}",
        extra={"event_type": event_type, "reference": reference, "error_code": result.error_code},
    )
    return HttpResponse("Processing failed", status=500)
