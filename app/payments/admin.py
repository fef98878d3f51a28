"""
Payment admin configuration.

Money and status fields are read-only: state changes go through the
service layer (or the admin actions below, which call it), never through
a form save.
"""

from django.contrib import admin, messages

from payments.models import Payment, Payout, WebhookEvent
from payments.services import PayoutService, ReconciliationService
from payments.state_machines import PayoutStatus
from payments.webhooks.ingest import WebhookIngestService

__all__ = [
    "PaymentAdmin",
    "PayoutAdmin",
    "WebhookEventAdmin",
]


class PayoutInline(admin.StackedInline):
    """Read-only view of a payment's payout."""

    model = Payout
    extra = 0
    can_delete = False
    show_change_link = True
    fields = ["status", "amount", "external_reference", "transfer_code", "attempts", "error"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payment.

    Provides visibility into escrow state and the fee split.
    """

    list_display = [
        "id",
        "booking_id",
        "amount_display",
        "escrow_amount",
        "platform_fee",
        "status",
        "paid_at",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = ["id", "booking_id", "external_reference", "provider_id", "client_id"]
    readonly_fields = [
        "id",
        "booking_id",
        "client_id",
        "provider_id",
        "amount",
        "escrow_amount",
        "platform_fee",
        "currency",
        "external_reference",
        "status",
        "paid_at",
        "released_at",
        "refunded_at",
        "failure_reason",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [PayoutInline]
    actions = ["backfill_breakdown"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "booking_id", "client_id", "provider_id", "status"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount", "escrow_amount", "platform_fee", "currency"),
            },
        ),
        (
            "Gateway",
            {
                "fields": ("external_reference",),
            },
        ),
        (
            "Status Timestamps",
            {
                "fields": ("paid_at", "released_at", "refunded_at"),
            },
        ),
        (
            "Failure Info",
            {
                "fields": ("failure_reason",),
                "classes": ("collapse",),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def amount_display(self, obj: Payment) -> str:
        return f"{obj.amount:.2f} {obj.currency}"

    amount_display.short_description = "Amount"

    @admin.action(description="Backfill fee breakdown")
    def backfill_breakdown(self, request, queryset):
        """Run the breakdown backfill; selection only scopes the report."""
        result = ReconciliationService.backfill_breakdown()
        summary = result.data
        level = messages.WARNING if summary.failed_ids else messages.SUCCESS
        self.message_user(
            request,
            f"Backfill scanned {summary.scanned}, updated {summary.updated}, "
            f"failed {len(summary.failed_ids)}.",
            level=level,
        )

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payments (audit trail)."""
        return False


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payout.

    Provides visibility into payout status and transfer attempts.
    """

    list_display = [
        "id",
        "payment",
        "amount_display",
        "status",
        "attempts",
        "completed_at",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = ["id", "external_reference", "transfer_code", "payment__id", "provider_id"]
    readonly_fields = [
        "id",
        "payment",
        "provider_id",
        "amount",
        "currency",
        "status",
        "external_reference",
        "transfer_code",
        "recipient_code",
        "attempts",
        "submitted_at",
        "completed_at",
        "failed_at",
        "error",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["retry_transfer"]

    def amount_display(self, obj: Payout) -> str:
        return f"{obj.amount:.2f} {obj.currency}"

    amount_display.short_description = "Amount"

    @admin.action(description="Retry selected failed payouts")
    def retry_transfer(self, request, queryset):
        retried = 0
        for payout in queryset.filter(status=PayoutStatus.FAILED):
            result = PayoutService.retry_payout(payout.id)
            if result.success:
                retried += 1
            else:
                self.message_user(
                    request,
                    f"Payout {payout.id}: {result.error}",
                    level=messages.WARNING,
                )
        self.message_user(request, f"Retried {retried} payouts.")

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payouts (audit trail)."""
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Webhook events are immutable once received; operators replay them
    instead of editing.
    """

    list_display = [
        "id",
        "event_type",
        "external_reference",
        "processed",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["processed", "event_type", "created_at"]
    search_fields = ["id", "event_type", "external_reference"]
    readonly_fields = [
        "id",
        "event_type",
        "external_reference",
        "payload",
        "processed",
        "processed_at",
        "error",
        "retry_count",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["replay_events"]

    @admin.action(description="Replay selected webhook events")
    def replay_events(self, request, queryset):
        """Re-dispatch unprocessed events, including those past the retry bound."""
        replayed = 0
        failed = 0
        for event in queryset.filter(processed=False):
            result = WebhookIngestService.replay(event.id, force=True)
            if result.success:
                replayed += 1
            else:
                failed += 1
        level = messages.WARNING if failed else messages.SUCCESS
        self.message_user(request, f"Replayed {replayed} events, {failed} failed again.", level=level)

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        """Disable adding webhook events through admin."""
        return False
