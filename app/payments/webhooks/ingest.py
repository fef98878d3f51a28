"""
Webhook ingest: verify, deduplicate, dispatch, record.

Each gateway event is identified by ``(event_type, external_reference)``.
The first delivery creates the WebhookEvent row; later deliveries of the
same key either find it processed (acknowledged, no side effects) or
unprocessed (dispatched again, up to WEBHOOK_MAX_RETRIES failures).

Processing Flow:
    1. Verify the signature over the raw body (nothing stored if invalid)
    2. Lock or insert the WebhookEvent row
    3. Processed -> duplicate, return success
    4. Past the retry bound -> manual intervention, not dispatched
    5. Run the handler inside a savepoint
    6. Mark processed, or record the error and bump retry_count

Usage:
    from payments.webhooks.ingest import WebhookIngestService

    result = WebhookIngestService.ingest(
        event_type="charge.success",
        external_reference="PAY_1700000000000_ab12cd34ef",
        payload=payload,
        signature=request.headers.get("x-paystack-signature"),
        raw_body=request.body,
    )
    if result.error_code == "INVALID_SIGNATURE":
        return HttpResponse(status=401)
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass

from django.db import IntegrityError

from core.services import BaseService, ServiceResult

from payments.exceptions import InvalidSignature, WebhookProcessingError
from payments.models import WebhookEvent
from payments.services import get_gateway
from payments.signals import alert_manual_intervention
from payments.webhooks.handlers import dispatch_webhook


@dataclass
class IngestResult:
    """Outcome of a successful ingest or replay."""

    event: WebhookEvent
    duplicate: bool = False


def canonical_body(payload: dict) -> bytes:
    """Compact JSON encoding used when the raw request body is unavailable."""
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def extract_reference(payload: dict) -> str | None:
    """``payload["data"]["reference"]``, or None when absent."""
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        return None
    reference = data.get("reference")
    return str(reference) if reference else None


class WebhookIngestService(BaseService):
    """
    Exactly-once application of gateway webhooks.

    The WebhookEvent row is locked with ``select_for_update`` for the whole
    dispatch, so concurrent deliveries of the same key are serialized and
    the second one sees ``processed=True``.
    """

    @classmethod
    def verify_signature(cls, body: bytes, signature: str | None) -> bool:
        return get_gateway().verify_signature(body, signature)

    @classmethod
    def ingest(
        cls,
        event_type: str,
        external_reference: str | None,
        payload: dict,
        signature: str | None,
        raw_body: bytes | None = None,
    ) -> ServiceResult[IngestResult]:
        """
        Verify and apply one webhook delivery.

        Args:
            event_type: Gateway event name
            external_reference: Payment or payout reference of the event
            payload: Decoded JSON body
            signature: Signature header value
            raw_body: Exact request bytes; the signature is computed over
                these when given, else over ``canonical_body(payload)``

        Returns:
            ServiceResult with an IngestResult. Failures:
            - INVALID_SIGNATURE: nothing persisted
            - WEBHOOK_HANDLER_FAILED: event stored with error, retry_count+1
            - RETRY_LIMIT_EXCEEDED: event left for manual intervention
        """
        body = raw_body if raw_body is not None else canonical_body(payload)
        if not cls.verify_signature(body, signature):
            cls.get_logger().warning(
                "Webhook signature verification failed",
                extra={"event_type": event_type, "reference": external_reference},
            )
            return ServiceResult.from_error(
                InvalidSignature(
                    "Webhook signature does not match payload",
                    details={"event_type": event_type, "reference": external_reference},
                )
            )

        with cls.atomic():
            event = cls._lock_or_create(event_type, external_reference, payload)

            if event.processed:
                cls.get_logger().info(
                    "Webhook already processed, acknowledging duplicate",
                    extra={"webhook_event_id": str(event.id), "event_type": event_type},
                )
                return ServiceResult.success(IngestResult(event=event, duplicate=True))

            if event.needs_manual_intervention:
                return cls._retry_limit_exceeded(event)

            event.payload = payload
            return cls._dispatch(event)

    @classmethod
    def replay(cls, webhook_event_id: uuid.UUID, force: bool = False) -> ServiceResult[IngestResult]:
        """
        Re-run the handler for a stored, unprocessed event.

        No signature check: the event was verified when it was received.

        Args:
            webhook_event_id: Event to replay
            force: Dispatch even past the retry bound (operator replay)
        """
        with cls.atomic():
            event = WebhookEvent.objects.select_for_update().filter(id=webhook_event_id).first()
            if event is None:
                return ServiceResult.failure(
                    f"Webhook event {webhook_event_id} not found",
                    error_code="WEBHOOK_EVENT_NOT_FOUND",
                    details={"webhook_event_id": str(webhook_event_id)},
                )
            if event.processed:
                return ServiceResult.success(IngestResult(event=event, duplicate=True))
            if event.needs_manual_intervention and not force:
                return cls._retry_limit_exceeded(event)

            cls.get_logger().info(
                "Replaying webhook event",
                extra={
                    "webhook_event_id": str(event.id),
                    "event_type": event.event_type,
                    "retry_count": event.retry_count,
                    "forced": force,
                },
            )
            return cls._dispatch(event)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @classmethod
    def _lock_or_create(cls, event_type: str, external_reference: str | None, payload: dict) -> WebhookEvent:
        lookup = {"event_type": event_type, "external_reference": external_reference}
        if external_reference is None:
            # No idempotency key: NULL references never collide, each delivery is its own event
            return WebhookEvent.objects.create(payload=payload, **lookup)

        event = WebhookEvent.objects.select_for_update().filter(**lookup).first()
        if event is not None:
            return event

        try:
            with cls.atomic():
                return WebhookEvent.objects.create(payload=payload, **lookup)
        except IntegrityError:
            # A concurrent delivery inserted the key first; wait for its lock
            return WebhookEvent.objects.select_for_update().get(**lookup)

    @classmethod
    def _dispatch(cls, event: WebhookEvent) -> ServiceResult[IngestResult]:
        try:
            with cls.atomic():
                result = dispatch_webhook(event)
                if not result:
                    raise WebhookProcessingError(
                        result.error or "Handler returned failure",
                        details={"handler_error_code": result.error_code},
                    )
        except WebhookProcessingError as e:
            return cls._record_failure(event, e.message, handler_error_code=e.details.get("handler_error_code"))
        except Exception as e:
            cls.get_logger().exception(
                "Webhook handler raised",
                extra={"webhook_event_id": str(event.id), "event_type": event.event_type},
            )
            return cls._record_failure(event, f"{type(e).__name__}: {e}")

        event.mark_processed()
        event.save()
        cls.get_logger().info(
            "Webhook processed",
            extra={"webhook_event_id": str(event.id), "event_type": event.event_type},
        )
        return ServiceResult.success(IngestResult(event=event))

    @classmethod
    def _record_failure(
        cls,
        event: WebhookEvent,
        error: str,
        handler_error_code: str | None = None,
    ) -> ServiceResult[IngestResult]:
        event.mark_failed(error)
        event.save()

        cls.get_logger().warning(
            f"Webhook handler failed: {error}",
            extra={
                "webhook_event_id": str(event.id),
                "event_type": event.event_type,
                "retry_count": event.retry_count,
                "handler_error_code": handler_error_code,
            },
        )
        if event.needs_manual_intervention:
            alert_manual_intervention(
                "webhook_event",
                event.id,
                f"{event.event_type} failed {event.retry_count} times: {error}",
            )

        return ServiceResult.failure(
            error,
            error_code=WebhookProcessingError.default_error_code,
            details={
                "webhook_event_id": str(event.id),
                "retry_count": event.retry_count,
                "handler_error_code": handler_error_code,
            },
        )

    @classmethod
    def _retry_limit_exceeded(cls, event: WebhookEvent) -> ServiceResult[IngestResult]:
        alert_manual_intervention(
            "webhook_event",
            event.id,
            f"{event.event_type} exceeded {event.retry_count} retries: {event.error}",
        )
        return ServiceResult.failure(
            "Webhook event exceeded its retry limit",
            error_code="RETRY_LIMIT_EXCEEDED",
            details={"webhook_event_id": str(event.id), "retry_count": event.retry_count},
        )


__all__ = [
    "IngestResult",
    "WebhookIngestService",
    "canonical_body",
    "extract_reference",
]
