"""
Escrow service: payment creation and Payment state transitions.

Every transition runs as one read-check-write inside a transaction with the
Payment row locked (``select_for_update``), so two concurrent requests can
never both move the same payment. Illegal transitions come back as
``INVALID_TRANSITION`` failures and leave the row untouched.

Usage:
    from payments.services import EscrowService

    result = EscrowService.initiate_payment(booking_id)
    if result.success:
        redirect_url = result.data.get_meta("authorization_url")

    # From the charge.success webhook
    EscrowService.confirm_charge(reference)

    # When the client confirms the job is done
    result = EscrowService.request_release(payment.id)
    if result.error_code == "NOT_ELIGIBLE":
        ...
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError

from core.services import BaseService, ServiceResult

from payments.collaborators import get_booking_directory, get_completion_proof
from payments.exceptions import (
    AlreadyExists,
    GatewayError,
    InvalidTransition,
    NotEligible,
    PaymentNotFoundError,
    PaymentValidationError,
)
from payments.fees import to_money
from payments.models import Payment
from payments.services.gateway import get_gateway
from payments.signals import notify_status_change
from payments.state_machines import PaymentStatus

if TYPE_CHECKING:
    from datetime import datetime


class EscrowService(BaseService):
    """
    Owns the Payment lifecycle.

    State Flow:
        initiate_payment  -> PENDING
        confirm_charge    PENDING -> ESCROW (fee split computed)
        fail_charge       PENDING -> FAILED
        request_release   ESCROW -> PROCESSING_RELEASE (completion proof required)
        refund            ESCROW -> REFUNDED

    PROCESSING_RELEASE -> RELEASED / ESCROW is driven by PayoutService.
    """

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------

    @classmethod
    def initiate_payment(cls, booking_id: uuid.UUID) -> ServiceResult[Payment]:
        """
        Create the PENDING payment for a booking and start the gateway charge.

        An existing PENDING payment with a checkout URL is returned as-is; one
        whose checkout never started (earlier gateway failure) is retried
        with a fresh reference. Any other existing payment is AlreadyExists.

        Returns:
            ServiceResult with the Payment; ``metadata["authorization_url"]``
            holds the checkout URL
        """
        booking = get_booking_directory().get_booking(booking_id)
        if booking is None:
            return ServiceResult.failure(
                f"Booking {booking_id} not found",
                error_code="BOOKING_NOT_FOUND",
                details={"booking_id": str(booking_id)},
            )

        existing = Payment.objects.filter(booking_id=booking_id).first()
        if existing is not None:
            return cls._resume_existing(existing, booking)

        try:
            amount = cls._validate_amount(booking.amount)
        except PaymentValidationError as e:
            return ServiceResult.from_error(e)

        try:
            with cls.atomic():
                payment = Payment.objects.create(
                    booking_id=booking.booking_id,
                    client_id=booking.client_id,
                    provider_id=booking.provider_id,
                    amount=amount,
                    currency=booking.currency or settings.PAYMENT_CURRENCY,
                    external_reference=Payment.generate_reference(),
                )
        except IntegrityError:
            # Concurrent checkout for the same booking won the insert
            existing = Payment.objects.get(booking_id=booking_id)
            return cls._resume_existing(existing, booking)

        cls.get_logger().info(
            "Created pending payment",
            extra={
                "payment_id": str(payment.id),
                "booking_id": str(booking_id),
                "amount": str(payment.amount),
                "reference": payment.external_reference,
            },
        )
        return cls._start_checkout(payment, booking.client_email)

    @classmethod
    def _resume_existing(cls, payment: Payment, booking) -> ServiceResult[Payment]:
        if payment.status != PaymentStatus.PENDING:
            return ServiceResult.from_error(
                AlreadyExists(
                    f"Booking {payment.booking_id} already has a {payment.status} payment",
                    details={"payment_id": str(payment.id), "status": payment.status},
                )
            )
        if payment.get_meta("authorization_url"):
            return ServiceResult.success(payment)

        Payment.objects.filter(id=payment.id).update(external_reference=Payment.generate_reference())
        payment = Payment.objects.get(id=payment.id)
        return cls._start_checkout(payment, booking.client_email)

    @classmethod
    def _start_checkout(cls, payment: Payment, email: str) -> ServiceResult[Payment]:
        # Outside any transaction: the payment row must survive a gateway error
        try:
            charge = get_gateway().charge(
                amount=payment.amount,
                currency=payment.currency,
                reference=payment.external_reference,
                email=email,
                callback_url=settings.PAYSTACK_CALLBACK_URL or None,
                metadata={"booking_id": str(payment.booking_id), "payment_id": str(payment.id)},
            )
        except GatewayError as e:
            cls.get_logger().warning(
                f"Gateway charge initialization failed: {e}",
                extra={"payment_id": str(payment.id), "reference": payment.external_reference},
            )
            return ServiceResult.from_error(e)

        payment.update_meta(
            authorization_url=charge.authorization_url,
            access_code=charge.access_code,
        )
        payment.save(update_fields=["metadata", "updated_at"])
        return ServiceResult.success(payment)

    @classmethod
    def _validate_amount(cls, value):
        amount = to_money(value)
        minimum = to_money(settings.PAYMENT_MIN_AMOUNT)
        maximum = to_money(settings.PAYMENT_MAX_AMOUNT)
        if not (minimum <= amount <= maximum):
            raise PaymentValidationError(
                f"Amount must be between {minimum} and {maximum}",
                details={"amount": str(amount), "min": str(minimum), "max": str(maximum)},
            )
        return amount

    # -------------------------------------------------------------------------
    # Gateway outcomes
    # -------------------------------------------------------------------------

    @classmethod
    def confirm_charge(
        cls,
        reference: str,
        amount=None,
        paid_at: datetime | None = None,
        gateway_data: dict | None = None,
    ) -> ServiceResult[Payment]:
        """
        Move a charged payment into escrow.

        Transition: PENDING -> ESCROW, with escrow_amount/platform_fee written
        in the same save. A payment already past PENDING is left alone and
        reported as success, so a redelivered charge.success is harmless.

        Args:
            reference: Gateway transaction reference
            amount: Amount the gateway reports as charged, checked against
                the payment when given
            paid_at: Gateway payment timestamp
            gateway_data: Extra gateway fields to keep in metadata
        """
        with cls.atomic():
            payment = Payment.objects.select_for_update().filter(external_reference=reference).first()
            if payment is None:
                return cls._not_found(reference)

            if payment.status != PaymentStatus.PENDING:
                cls.get_logger().info(
                    "Charge already applied, skipping",
                    extra={"payment_id": str(payment.id), "status": payment.status},
                )
                return ServiceResult.success(payment)

            if amount is not None and to_money(amount) != payment.amount:
                cls.get_logger().error(
                    "Charged amount does not match payment amount",
                    extra={
                        "payment_id": str(payment.id),
                        "expected": str(payment.amount),
                        "charged": str(amount),
                    },
                )
                return ServiceResult.failure(
                    "Charged amount does not match payment amount",
                    error_code="AMOUNT_MISMATCH",
                    details={"expected": str(payment.amount), "charged": str(to_money(amount))},
                )

            previous = payment.apply_transition("mark_escrow", paid_at=paid_at)
            if gateway_data:
                payment.update_meta(gateway=gateway_data)
            payment.save()
            notify_status_change(payment, previous)

        cls.get_logger().info(
            "Payment held in escrow",
            extra={
                "payment_id": str(payment.id),
                "escrow_amount": str(payment.escrow_amount),
                "platform_fee": str(payment.platform_fee),
            },
        )
        return ServiceResult.success(payment)

    @classmethod
    def fail_charge(cls, reference: str, reason: str | None = None) -> ServiceResult[Payment]:
        """
        Record a failed charge.

        Transition: PENDING -> FAILED. A payment already past PENDING is left
        alone (a late charge.failed never undoes a confirmed charge).
        """
        with cls.atomic():
            payment = Payment.objects.select_for_update().filter(external_reference=reference).first()
            if payment is None:
                return cls._not_found(reference)

            if payment.status != PaymentStatus.PENDING:
                cls.get_logger().warning(
                    "Ignoring charge failure for payment past pending",
                    extra={"payment_id": str(payment.id), "status": payment.status},
                )
                return ServiceResult.success(payment)

            previous = payment.apply_transition("mark_failed", reason=reason or "Charge failed")
            payment.save()
            notify_status_change(payment, previous)

        cls.get_logger().info(
            "Payment charge failed",
            extra={"payment_id": str(payment.id), "reason": payment.failure_reason},
        )
        return ServiceResult.success(payment)

    # -------------------------------------------------------------------------
    # Release & refund
    # -------------------------------------------------------------------------

    @classmethod
    def request_release(cls, payment_id: uuid.UUID) -> ServiceResult[Payment]:
        """
        Start releasing escrow once the job is proven complete.

        Transition: ESCROW -> PROCESSING_RELEASE

        Returns:
            NOT_ELIGIBLE when the completion gate is closed,
            INVALID_TRANSITION when the payment is not in ESCROW
        """
        payment = Payment.objects.filter(id=payment_id).first()
        if payment is None:
            return cls._not_found(payment_id)

        if payment.status == PaymentStatus.ESCROW and not get_completion_proof().is_release_eligible(
            payment.booking_id
        ):
            cls.get_logger().info(
                "Release requested without completion proof",
                extra={"payment_id": str(payment_id), "booking_id": str(payment.booking_id)},
            )
            return ServiceResult.from_error(
                NotEligible(
                    "Job completion has not been confirmed for this booking",
                    details={"payment_id": str(payment_id), "booking_id": str(payment.booking_id)},
                )
            )

        return cls.transition(payment_id, "request_release")

    @classmethod
    def refund(cls, payment_id: uuid.UUID, reason: str) -> ServiceResult[Payment]:
        """
        Return escrowed funds to the client.

        Transition: ESCROW -> REFUNDED
        """
        return cls.transition(payment_id, "refund", reason=reason)

    @classmethod
    def transition(cls, payment_id: uuid.UUID, name: str, **kwargs) -> ServiceResult[Payment]:
        """
        Lock the payment, apply transition ``name`` and save.

        Returns:
            ServiceResult with the updated Payment, or an INVALID_TRANSITION
            failure with the row unchanged
        """
        try:
            with cls.atomic():
                payment = Payment.objects.select_for_update().filter(id=payment_id).first()
                if payment is None:
                    raise PaymentNotFoundError(
                        f"Payment {payment_id} not found",
                        details={"payment_id": str(payment_id)},
                    )
                previous = payment.apply_transition(name, **kwargs)
                payment.save()
                notify_status_change(payment, previous)
        except (InvalidTransition, PaymentNotFoundError) as e:
            return ServiceResult.from_error(e)

        cls.get_logger().info(
            f"Payment {previous} -> {payment.status}",
            extra={"payment_id": str(payment.id), "transition": name},
        )
        return ServiceResult.success(payment)

    @classmethod
    def _not_found(cls, key) -> ServiceResult:
        cls.get_logger().warning("Payment not found", extra={"lookup": str(key)})
        return ServiceResult.from_error(
            PaymentNotFoundError(f"Payment {key} not found", details={"lookup": str(key)})
        )
