import uuid

import django.db.models.deletion
import django_fsm
from django.db import migrations, models

import payments.models.payment


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Flexible key-value metadata storage",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "booking_id",
                    models.UUIDField(
                        help_text="Booking this payment belongs to (one payment per booking)",
                        unique=True,
                    ),
                ),
                (
                    "client_id",
                    models.UUIDField(
                        blank=True,
                        db_index=True,
                        help_text="Client who pays for the booking",
                        null=True,
                    ),
                ),
                (
                    "provider_id",
                    models.UUIDField(
                        db_index=True,
                        help_text="Provider who receives the payout",
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Total amount charged to the client",
                        max_digits=12,
                    ),
                ),
                (
                    "escrow_amount",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Amount held for the provider (amount - platform_fee)",
                        max_digits=12,
                        null=True,
                    ),
                ),
                (
                    "platform_fee",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Platform commission on this payment",
                        max_digits=12,
                        null=True,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default=payments.models.payment.default_currency,
                        help_text="ISO 4217 currency code",
                        max_length=3,
                    ),
                ),
                (
                    "external_reference",
                    models.CharField(
                        help_text="Gateway transaction reference",
                        max_length=100,
                        unique=True,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("escrow", "In Escrow"),
                            ("processing_release", "Processing Release"),
                            ("released", "Released"),
                            ("refunded", "Refunded"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payment (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "paid_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the gateway confirmed the charge",
                        null=True,
                    ),
                ),
                (
                    "released_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When escrow was paid out to the provider",
                        null=True,
                    ),
                ),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True,
                        help_text="Gateway failure, payout rollback or refund reason",
                        null=True,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "db_table": "payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="payment_status_created_idx"),
                    models.Index(fields=["provider_id", "status"], name="payment_provider_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="payment_amount_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("escrow_amount__isnull", True),
                            ("escrow_amount__gte", 0),
                            _connector="OR",
                        ),
                        name="payment_escrow_amount_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("platform_fee__isnull", True),
                            ("platform_fee__gte", 0),
                            _connector="OR",
                        ),
                        name="payment_platform_fee_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Gateway event type (e.g., 'charge.success')",
                        max_length=100,
                    ),
                ),
                (
                    "external_reference",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Payment or payout reference the event refers to",
                        max_length=100,
                        null=True,
                    ),
                ),
                (
                    "payload",
                    models.JSONField(
                        default=dict,
                        help_text="Full webhook payload from the gateway (JSON)",
                    ),
                ),
                (
                    "processed",
                    models.BooleanField(
                        db_index=True,
                        default=False,
                        help_text="Whether the event's side effects have been applied",
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When event was successfully processed",
                        null=True,
                    ),
                ),
                (
                    "error",
                    models.TextField(
                        blank=True,
                        help_text="Error message of the last failed attempt",
                        null=True,
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Number of failed processing attempts",
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "db_table": "webhook_events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["processed", "retry_count"], name="webhook_processed_retry_idx"),
                    models.Index(fields=["processed", "processed_at"], name="webhook_processed_at_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("event_type", "external_reference"),
                        name="webhook_event_idempotency_key",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payout",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Flexible key-value metadata storage",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "provider_id",
                    models.UUIDField(
                        db_index=True,
                        help_text="Provider receiving the payout",
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Payout amount, equal to the payment's escrow amount",
                        max_digits=12,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default=payments.models.payment.default_currency,
                        help_text="ISO 4217 currency code",
                        max_length=3,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payout (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "external_reference",
                    models.CharField(
                        help_text="Gateway transfer reference of the current attempt",
                        max_length=100,
                        unique=True,
                    ),
                ),
                (
                    "transfer_code",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Gateway transfer code (TRF_xxx)",
                        max_length=100,
                        null=True,
                    ),
                ),
                (
                    "recipient_code",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Gateway transfer recipient of the provider (RCP_xxx)",
                        max_length=100,
                    ),
                ),
                (
                    "attempts",
                    models.PositiveSmallIntegerField(
                        default=1,
                        help_text="Number of transfer attempts, including the current one",
                    ),
                ),
                (
                    "submitted_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the current attempt was accepted by the gateway",
                        null=True,
                    ),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "error",
                    models.TextField(
                        blank=True,
                        help_text="Failure details of the last attempt",
                        null=True,
                    ),
                ),
                (
                    "payment",
                    models.OneToOneField(
                        help_text="Payment whose escrow this payout releases (at most one payout per payment)",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payout",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout",
                "verbose_name_plural": "Payouts",
                "db_table": "payouts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="payout_status_created_idx"),
                    models.Index(fields=["provider_id", "status"], name="payout_provider_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="payout_amount_positive",
                    ),
                ],
            },
        ),
    ]
