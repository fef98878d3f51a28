"""
Payout model for transferring escrowed funds to a provider.

Exactly one Payout exists per Payment (OneToOne on payment_id). A failed
transfer does not create a new row: the same Payout is re-armed with a fresh
gateway reference when the release is retried.

Usage:
    from payments.models import Payout

    payout = Payout.objects.create(
        payment=payment,
        provider_id=payment.provider_id,
        amount=payment.escrow_amount,
        recipient_code="RCP_xxx",
        external_reference=Payout.generate_reference(),
    )

    payout.submit(transfer_code="TRF_xxx")  # pending -> processing
    payout.save()

    payout.complete()  # processing -> completed
    payout.save()
"""

from __future__ import annotations

import secrets

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.exceptions import PaymentValidationError
from payments.models.base import TransitionMixin
from payments.models.payment import default_currency
from payments.state_machines import PayoutStatus


class Payout(TransitionMixin, UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    Transfer of a payment's escrow amount to the provider.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED
        PENDING/PROCESSING -> FAILED
        FAILED -> PENDING (retry, same row)
        FAILED -> COMPLETED (success for a reference left live by a timeout)

    Webhook-driven state changes:
        transfer.success: PENDING/PROCESSING -> COMPLETED
        transfer.failed / transfer.reversed: PENDING/PROCESSING -> FAILED

    Fields:
        payment: Source Payment (unique)
        provider_id: Provider receiving the funds
        amount: Escrow amount of the payment, immutable after creation
        external_reference: Gateway transfer reference for the current attempt
        status: Current FSM state
        transfer_code: Gateway transfer code once submitted
        recipient_code: Gateway recipient of the provider
        error: Failure details of the last attempt
        attempts: Number of transfer attempts made
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    payment = models.OneToOneField(
        "payments.Payment",
        on_delete=models.PROTECT,
        related_name="payout",
        help_text="Payment whose escrow this payout releases (at most one payout per payment)",
    )

    provider_id = models.UUIDField(
        db_index=True,
        help_text="Provider receiving the payout",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Payout amount, equal to the payment's escrow amount",
    )

    currency = models.CharField(
        max_length=3,
        default=default_currency,
        help_text="ISO 4217 currency code",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PayoutStatus.PENDING,
        choices=PayoutStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payout (managed by FSM)",
    )

    # ==========================================================================
    # Gateway Integration
    # ==========================================================================

    external_reference = models.CharField(
        max_length=100,
        unique=True,
        help_text="Gateway transfer reference of the current attempt",
    )

    transfer_code = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        db_index=True,
        help_text="Gateway transfer code (TRF_xxx)",
    )

    recipient_code = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Gateway transfer recipient of the provider (RCP_xxx)",
    )

    # ==========================================================================
    # Attempts & Timestamps
    # ==========================================================================

    attempts = models.PositiveSmallIntegerField(
        default=1,
        help_text="Number of transfer attempts, including the current one",
    )

    submitted_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the current attempt was accepted by the gateway",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
    )

    error = models.TextField(
        null=True,
        blank=True,
        help_text="Failure details of the last attempt",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        db_table = "payouts"
        ordering = ["-created_at"]
        verbose_name = "Payout"
        verbose_name_plural = "Payouts"
        indexes = [
            models.Index(fields=["status", "created_at"], name="payout_status_created_idx"),
            models.Index(fields=["provider_id", "status"], name="payout_provider_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payout_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Payout({self.id}, {self.status}, {self.amount} {self.currency})"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._stored_amount = instance.__dict__.get("amount")
        return instance

    def save(self, *args, **kwargs):
        """Save, refusing to change the amount of an existing payout."""
        stored = getattr(self, "_stored_amount", None)
        if stored is not None and self.amount != stored:
            raise PaymentValidationError(
                "Payout amount is immutable",
                details={
                    "payout_id": str(self.id),
                    "amount": str(stored),
                    "attempted_amount": str(self.amount),
                },
            )
        super().save(*args, **kwargs)
        self._stored_amount = self.amount

    @staticmethod
    def generate_reference() -> str:
        """Gateway reference in the form ``PAYOUT_<epoch ms>_<random>``."""
        return f"PAYOUT_{int(timezone.now().timestamp() * 1000)}_{secrets.token_hex(5)}"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PayoutStatus.PENDING,
        target=PayoutStatus.PROCESSING,
    )
    def submit(self, transfer_code: str | None = None):
        """
        Gateway accepted the transfer request.

        Transition: PENDING -> PROCESSING
        """
        self.transfer_code = transfer_code or self.transfer_code
        self.submitted_at = timezone.now()

    @transition(
        field=status,
        source=[PayoutStatus.PENDING, PayoutStatus.PROCESSING],
        target=PayoutStatus.COMPLETED,
    )
    def complete(self, transfer_code: str | None = None):
        """
        Transfer settled at the gateway.

        Transition: PENDING/PROCESSING -> COMPLETED

        PENDING is accepted because the gateway's webhook can arrive before
        the submission response has been stored.
        """
        if transfer_code:
            self.transfer_code = transfer_code
        self.completed_at = timezone.now()
        self.error = None

    @transition(
        field=status,
        source=[PayoutStatus.PENDING, PayoutStatus.PROCESSING],
        target=PayoutStatus.FAILED,
    )
    def fail(self, error: str | None = None):
        """
        Transfer failed or was reversed.

        Transition: PENDING/PROCESSING -> FAILED
        """
        self.failed_at = timezone.now()
        self.error = error or "Transfer failed"

    @transition(
        field=status,
        source=PayoutStatus.FAILED,
        target=PayoutStatus.COMPLETED,
    )
    def settle_late(self, transfer_code: str | None = None):
        """
        Gateway confirmed a transfer recorded as failed after a timeout.

        Transition: FAILED -> COMPLETED

        Only valid while the payout's reference is kept for reuse; the
        service checks that before calling.
        """
        if transfer_code:
            self.transfer_code = transfer_code
        self.completed_at = timezone.now()
        self.error = None

    @transition(
        field=status,
        source=PayoutStatus.FAILED,
        target=PayoutStatus.PENDING,
    )
    def retry(self, reference: str | None = None):
        """
        Re-arm a failed payout for another attempt.

        Transition: FAILED -> PENDING

        The gateway treats each reference as one transfer, so a new reference
        is generated unless the caller passes the previous one (its transfer
        may still exist after an unanswered attempt).
        """
        self.external_reference = reference or self.generate_reference()
        self.attempts += 1
        self.transfer_code = None
        self.submitted_at = None
        self.failed_at = None

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_complete(self) -> bool:
        return self.status == PayoutStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == PayoutStatus.FAILED
