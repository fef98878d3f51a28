"""
Payment model: money collected for a booking and held in escrow.

A Payment is created PENDING when the client starts checkout, moves to
ESCROW once the gateway confirms the charge, and leaves escrow either to
the provider (PROCESSING_RELEASE -> RELEASED) or back to the client
(REFUNDED).

Usage:
    from payments.models import Payment
    from payments.state_machines import PaymentStatus

    payment = Payment.objects.create(
        booking_id=booking.booking_id,
        provider_id=booking.provider_id,
        amount=Decimal("1000.00"),
        external_reference=Payment.generate_reference(),
    )

    # State transitions using django-fsm
    payment.mark_escrow()  # pending -> escrow, computes fee split
    payment.save()

    # Or with the domain error on illegal transitions
    payment.apply_transition("refund", reason="booking cancelled")
    payment.save()
"""

from __future__ import annotations

import secrets

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.exceptions import PaymentValidationError
from payments.fees import compute_breakdown, to_money
from payments.models.base import TransitionMixin
from payments.state_machines import PaymentStatus


def default_currency() -> str:
    return settings.PAYMENT_CURRENCY


class Payment(TransitionMixin, UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    Booking payment held in escrow until the job is confirmed complete.

    State Flow:
        PENDING -> ESCROW -> PROCESSING_RELEASE -> RELEASED
        PENDING -> FAILED
        PROCESSING_RELEASE -> ESCROW (payout failed)
        ESCROW -> REFUNDED

    Fields:
        booking_id: Owning booking (1-1, weak reference)
        client_id: Paying client
        provider_id: Provider who will receive the payout
        amount: Total charged to the client
        escrow_amount: Portion held for the provider
        platform_fee: Portion kept by the platform
        currency: ISO 4217 code
        external_reference: Gateway transaction reference
        status: Current FSM state
        paid_at: When the gateway confirmed the charge

    Note:
        Once the split is populated, amount == escrow_amount + platform_fee.
        The split is written in the same save as the PENDING -> ESCROW (or
        PENDING -> FAILED) transition, so no non-PENDING row lacks it unless
        it predates this rule; see ReconciliationService.backfill_breakdown.
    """

    # ==========================================================================
    # Booking Link
    # ==========================================================================

    booking_id = models.UUIDField(
        unique=True,
        help_text="Booking this payment belongs to (one payment per booking)",
    )

    client_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Client who pays for the booking",
    )

    provider_id = models.UUIDField(
        db_index=True,
        help_text="Provider who receives the payout",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Total amount charged to the client",
    )

    escrow_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Amount held for the provider (amount - platform_fee)",
    )

    platform_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Platform commission on this payment",
    )

    currency = models.CharField(
        max_length=3,
        default=default_currency,
        help_text="ISO 4217 currency code",
    )

    # ==========================================================================
    # Gateway & State
    # ==========================================================================

    external_reference = models.CharField(
        max_length=100,
        unique=True,
        help_text="Gateway transaction reference",
    )

    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payment (managed by FSM)",
    )

    # ==========================================================================
    # Timestamps & Failure Info
    # ==========================================================================

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the gateway confirmed the charge",
    )

    released_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When escrow was paid out to the provider",
    )

    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
    )

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Gateway failure, payout rollback or refund reason",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        db_table = "payments"
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["status", "created_at"], name="payment_status_created_idx"),
            models.Index(fields=["provider_id", "status"], name="payment_provider_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payment_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(escrow_amount__isnull=True) | models.Q(escrow_amount__gte=0),
                name="payment_escrow_amount_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(platform_fee__isnull=True) | models.Q(platform_fee__gte=0),
                name="payment_platform_fee_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.id}, {self.status}, {self.amount} {self.currency})"

    def save(self, *args, **kwargs):
        """Reject a populated split that does not add up to the amount."""
        if self.has_breakdown and (
            to_money(self.escrow_amount) + to_money(self.platform_fee) != to_money(self.amount)
        ):
            raise PaymentValidationError(
                "escrow_amount + platform_fee must equal amount",
                details={
                    "payment_id": str(self.id),
                    "amount": str(self.amount),
                    "escrow_amount": str(self.escrow_amount),
                    "platform_fee": str(self.platform_fee),
                },
            )
        super().save(*args, **kwargs)

    @staticmethod
    def generate_reference() -> str:
        """Gateway reference in the form ``PAY_<epoch ms>_<random>``."""
        return f"PAY_{int(timezone.now().timestamp() * 1000)}_{secrets.token_hex(5)}"

    # ==========================================================================
    # Fee Breakdown
    # ==========================================================================

    @property
    def has_breakdown(self) -> bool:
        return self.escrow_amount is not None and self.platform_fee is not None

    def apply_breakdown(self, force: bool = False, fee_rate=None) -> bool:
        """
        Populate escrow_amount and platform_fee from amount.

        A no-op when both are already set, unless ``force`` is True.

        Args:
            force: Recompute even when the split is present
            fee_rate: Override for settings.PLATFORM_FEE_RATE

        Returns:
            True if either field changed

        Note: Does not save - caller must save after calling.
        """
        if self.has_breakdown and not force:
            return False

        breakdown = compute_breakdown(self.amount, fee_rate=fee_rate)
        changed = (
            self.escrow_amount != breakdown.escrow_amount
            or self.platform_fee != breakdown.platform_fee
        )
        self.escrow_amount = breakdown.escrow_amount
        self.platform_fee = breakdown.platform_fee
        return changed

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.ESCROW,
    )
    def mark_escrow(self, paid_at=None):
        """
        Hold the confirmed charge in escrow.

        Transition: PENDING -> ESCROW

        The fee split is computed here so it is persisted by the same save
        that persists the new status.
        """
        self.apply_breakdown()
        self.paid_at = paid_at or timezone.now()

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.FAILED,
    )
    def mark_failed(self, reason: str | None = None):
        """
        Record a failed charge.

        Transition: PENDING -> FAILED
        """
        self.apply_breakdown()
        if reason:
            self.failure_reason = reason

    @transition(
        field=status,
        source=PaymentStatus.ESCROW,
        target=PaymentStatus.PROCESSING_RELEASE,
    )
    def request_release(self):
        """
        Start releasing escrow to the provider.

        Transition: ESCROW -> PROCESSING_RELEASE

        Callers must check the job-completion gate first.
        """
        self.failure_reason = None

    @transition(
        field=status,
        source=PaymentStatus.PROCESSING_RELEASE,
        target=PaymentStatus.RELEASED,
    )
    def mark_released(self):
        """
        Payout completed.

        Transition: PROCESSING_RELEASE -> RELEASED
        """
        self.released_at = timezone.now()

    @transition(
        field=status,
        source=PaymentStatus.ESCROW,
        target=PaymentStatus.RELEASED,
    )
    def release_late(self):
        """
        A payout written off as failed after a timeout settled after all.

        Transition: ESCROW -> RELEASED
        """
        self.released_at = timezone.now()
        self.failure_reason = None

    @transition(
        field=status,
        source=PaymentStatus.PROCESSING_RELEASE,
        target=PaymentStatus.ESCROW,
    )
    def rollback_release(self, reason: str | None = None):
        """
        Payout failed; hold funds in escrow again so release can be retried.

        Transition: PROCESSING_RELEASE -> ESCROW
        """
        if reason:
            self.failure_reason = reason

    @transition(
        field=status,
        source=PaymentStatus.ESCROW,
        target=PaymentStatus.REFUNDED,
    )
    def refund(self, reason: str | None = None):
        """
        Return escrowed funds to the client.

        Transition: ESCROW -> REFUNDED
        """
        self.refunded_at = timezone.now()
        if reason:
            self.failure_reason = reason

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        return self.status in PaymentStatus.terminal()

    @property
    def is_in_escrow(self) -> bool:
        return self.status == PaymentStatus.ESCROW
