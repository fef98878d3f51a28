"""
WebhookEvent model: idempotency and audit log of gateway callbacks.

One row per idempotency key ``(event_type, external_reference)``. A repeat
delivery of an already processed key is acknowledged without re-running its
side effects; an unprocessed one is retried until the retry bound, after
which it waits for an operator.

Usage:
    from payments.models import WebhookEvent

    event = WebhookEvent.objects.filter(
        event_type="charge.success",
        external_reference="PAY_1700000000000_ab12cd34ef",
    ).first()

    if event and event.processed:
        return  # duplicate delivery
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class WebhookEventQuerySet(models.QuerySet):
    def unprocessed(self):
        return self.filter(processed=False)

    def retryable(self):
        return self.unprocessed().filter(retry_count__lt=settings.WEBHOOK_MAX_RETRIES)

    def needing_intervention(self):
        return self.unprocessed().filter(retry_count__gte=settings.WEBHOOK_MAX_RETRIES)


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks gateway webhook events for exactly-once domain processing.

    Processing Flow:
        1. Webhook arrives, signature verified
        2. Row for (event_type, external_reference) locked or inserted
        3. If processed -> acknowledge (duplicate)
        4. Dispatch to the registered handler inside a savepoint
        5. Success -> processed=True, processed_at set
        6. Failure -> error recorded, retry_count incremented
        7. retry_count >= WEBHOOK_MAX_RETRIES -> manual intervention

    Fields:
        event_type: Gateway event name (e.g. "charge.success")
        external_reference: Payment or payout reference from the payload
        payload: Full JSON body as received
        processed: Whether the handler completed successfully
        error: Last handler error
        retry_count: Failed handler attempts
        processed_at: When processing succeeded

    Note:
        Rows are only deleted by the retention task, and only once processed.
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Gateway event type (e.g., 'charge.success')",
    )

    external_reference = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        db_index=True,
        help_text="Payment or payout reference the event refers to",
    )

    # ==========================================================================
    # Payload
    # ==========================================================================

    payload = models.JSONField(
        default=dict,
        help_text="Full webhook payload from the gateway (JSON)",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    processed = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether the event's side effects have been applied",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    # ==========================================================================
    # Error Handling
    # ==========================================================================

    error = models.TextField(
        null=True,
        blank=True,
        help_text="Error message of the last failed attempt",
    )

    retry_count = models.PositiveIntegerField(
        default=0,
        help_text="Number of failed processing attempts",
    )

    objects = WebhookEventQuerySet.as_manager()

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        db_table = "webhook_events"
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["processed", "retry_count"], name="webhook_processed_retry_idx"),
            models.Index(fields=["processed", "processed_at"], name="webhook_processed_at_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["event_type", "external_reference"],
                name="webhook_event_idempotency_key",
            ),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.event_type}, {self.external_reference})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def can_retry(self) -> bool:
        """Unprocessed and still under the retry bound."""
        return not self.processed and self.retry_count < settings.WEBHOOK_MAX_RETRIES

    @property
    def needs_manual_intervention(self) -> bool:
        """Unprocessed and out of automatic retries."""
        return not self.processed and self.retry_count >= settings.WEBHOOK_MAX_RETRIES

    @property
    def data(self) -> dict:
        """The ``data`` object of the payload, or an empty dict."""
        data = (self.payload or {}).get("data") if isinstance(self.payload, dict) else None
        return data if isinstance(data, dict) else {}

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processed(self) -> None:
        """
        Mark event as successfully processed.

        Note: Does not save - caller must save after calling.
        """
        self.processed = True
        self.processed_at = timezone.now()
        self.error = None

    def mark_failed(self, error: str) -> None:
        """
        Record a failed attempt.

        Note: Does not save - caller must save after calling.
        """
        self.processed = False
        self.error = error
        self.retry_count += 1
