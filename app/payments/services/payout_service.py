"""
Payout service: moving a released escrow to the provider.

The service follows a two-phase pattern around the gateway call:
1. Phase 1: Create (or re-arm) the PENDING payout and commit
2. Phase 2: Call the gateway transfer OUTSIDE any transaction
3. Phase 3: Record the outcome - PROCESSING with the transfer code, or
   FAILED with the payment rolled back to ESCROW

The payout row is committed before money moves, so a crash between phases
leaves a PENDING payout that the transfer webhook (matched on the payout
reference) can still settle.

Usage:
    from payments.services import PayoutService, TransferOutcome

    result = PayoutService.request_payout(payment.id)
    if result.error_code == "NOT_ELIGIBLE":
        ...

    # From the transfer.success / transfer.failed webhooks
    PayoutService.on_transfer_event(reference, success=False, error="Account closed")
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from django.conf import settings
from django.db import IntegrityError, transaction

from core.services import BaseService, ServiceResult

from payments.collaborators import get_booking_directory
from payments.exceptions import (
    AlreadyExists,
    GatewayError,
    InvalidTransition,
    NotEligible,
    PaymentNotFoundError,
)
from payments.models import Payment, Payout
from payments.services.escrow_service import EscrowService
from payments.services.gateway import get_gateway
from payments.signals import (
    alert_manual_intervention,
    notify_status_change,
    payout_completed,
    payout_failed,
    send_on_commit,
)
from payments.state_machines import PaymentStatus, PayoutStatus


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class TransferOutcome:
    """
    Final answer from the gateway about a transfer.

    Attributes:
        success: Whether the funds reached the provider
        transfer_code: Gateway transfer code, when known
        error: Failure description
        ambiguous: True when the gateway never answered (timeout, outage),
            so the transfer may still exist under the same reference
    """

    success: bool
    transfer_code: str | None = None
    error: str | None = None
    ambiguous: bool = False

    @classmethod
    def succeeded(cls, transfer_code: str | None = None) -> TransferOutcome:
        return cls(success=True, transfer_code=transfer_code)

    @classmethod
    def failed(cls, error: str, ambiguous: bool = False) -> TransferOutcome:
        return cls(success=False, error=error, ambiguous=ambiguous)


def retry_delay(attempt: int) -> int:
    """
    Seconds to wait before transfer attempt ``attempt + 1``.

    base * multiplier ** (attempt - 1), capped at the configured maximum.
    """
    delay = settings.PAYOUT_RETRY_BASE_DELAY_SECONDS * (
        settings.PAYOUT_RETRY_BACKOFF_MULTIPLIER ** max(attempt - 1, 0)
    )
    return int(min(delay, settings.PAYOUT_RETRY_MAX_DELAY_SECONDS))


# =============================================================================
# Payout Service
# =============================================================================


class PayoutService(BaseService):
    """
    Creates payouts and applies transfer outcomes.

    Invariants:
        - At most one Payout per Payment (OneToOne + IntegrityError guard)
        - Payout.amount == Payment.escrow_amount, fixed at creation
        - Payout COMPLETED and Payment RELEASED are written in one transaction
        - Payout FAILED and Payment back to ESCROW are written in one transaction
    """

    @classmethod
    def release_and_pay(cls, payment_id: uuid.UUID) -> ServiceResult[Payout]:
        """
        Release escrow and issue the payout in one call.

        Checks that the provider can receive transfers before touching the
        payment, so a missing recipient never strands a payment in
        PROCESSING_RELEASE. The same holds for an existing payout: a FAILED
        one is retried through ``retry_payout``, any other is ALREADY_EXISTS
        with the payment left as it was.
        """
        payment = Payment.objects.filter(id=payment_id).first()
        if payment is None:
            return ServiceResult.from_error(
                PaymentNotFoundError(
                    f"Payment {payment_id} not found",
                    details={"payment_id": str(payment_id)},
                )
            )

        if not cls._recipient_for(payment):
            return ServiceResult.from_error(
                NotEligible(
                    "Provider has no transfer recipient configured",
                    details={"payment_id": str(payment_id), "provider_id": str(payment.provider_id)},
                )
            )

        existing = Payout.objects.filter(payment_id=payment.id).first()
        if existing is not None:
            if existing.is_failed:
                return cls.retry_payout(existing.id)
            return ServiceResult.from_error(
                AlreadyExists(
                    "A payout already exists for this payment",
                    details={"payment_id": str(payment_id), "payout_status": existing.status},
                )
            )

        release = EscrowService.request_release(payment_id)
        if not release:
            return release
        return cls.request_payout(payment_id)

    @classmethod
    def request_payout(cls, payment_id: uuid.UUID) -> ServiceResult[Payout]:
        """
        Create the payout for a payment awaiting release and submit the transfer.

        Returns:
            ServiceResult with the Payout (PROCESSING, or COMPLETED if the
            gateway settled instantly). Failures:
            - NOT_ELIGIBLE: payment is not PROCESSING_RELEASE (no row created)
            - ALREADY_EXISTS: a payout exists for this payment
            - GATEWAY_*: transfer submission failed; the payout is FAILED and
              the payment is back in ESCROW
        """
        try:
            with cls.atomic():
                payment = Payment.objects.select_for_update().filter(id=payment_id).first()
                if payment is None:
                    raise PaymentNotFoundError(
                        f"Payment {payment_id} not found",
                        details={"payment_id": str(payment_id)},
                    )
                if payment.status != PaymentStatus.PROCESSING_RELEASE:
                    raise NotEligible(
                        f"Payment is '{payment.status}', payouts require 'processing_release'",
                        details={"payment_id": str(payment_id), "status": payment.status},
                    )
                if Payout.objects.filter(payment_id=payment.id).exists():
                    raise AlreadyExists(
                        "A payout already exists for this payment",
                        details={"payment_id": str(payment_id)},
                    )

                if payment.apply_breakdown():
                    payment.save()

                payout = Payout.objects.create(
                    payment=payment,
                    provider_id=payment.provider_id,
                    amount=payment.escrow_amount,
                    currency=payment.currency,
                    recipient_code=cls._recipient_for(payment),
                    external_reference=Payout.generate_reference(),
                )
        except IntegrityError:
            cls.get_logger().info(
                "Concurrent payout creation lost the race",
                extra={"payment_id": str(payment_id)},
            )
            return ServiceResult.from_error(
                AlreadyExists(
                    "A payout already exists for this payment",
                    details={"payment_id": str(payment_id)},
                )
            )
        except (PaymentNotFoundError, NotEligible, AlreadyExists) as e:
            cls.get_logger().info(
                f"Payout request rejected: {e.error_code}",
                extra={"payment_id": str(payment_id), "error_code": e.error_code},
            )
            return ServiceResult.from_error(e)

        cls.get_logger().info(
            "Created payout",
            extra={
                "payout_id": str(payout.id),
                "payment_id": str(payment_id),
                "amount": str(payout.amount),
                "reference": payout.external_reference,
            },
        )
        return cls._submit_transfer(payout)

    @classmethod
    def on_transfer_result(cls, payout_id: uuid.UUID, result: TransferOutcome) -> ServiceResult[Payout]:
        """
        Apply the gateway's final answer for a payout.

        Success: Payout -> COMPLETED and Payment -> RELEASED, then
        ``payout_completed``. Failure: Payout -> FAILED with ``error`` and
        Payment -> ESCROW, then ``payout_failed`` and a delayed retry (or a
        manual-intervention alert once attempts are exhausted).

        A repeat of the outcome already recorded is a success no-op. A
        contradicting outcome for a finished payout is INVALID_TRANSITION,
        except a success for a FAILED payout whose reference may still be
        live at the gateway (an earlier attempt went unanswered): that one
        settles the payout and releases the payment.
        """
        try:
            with cls.atomic():
                payout = Payout.objects.select_for_update().filter(id=payout_id).first()
                if payout is None:
                    raise PaymentNotFoundError(
                        f"Payout {payout_id} not found",
                        details={"payout_id": str(payout_id)},
                    )
                payment = Payment.objects.select_for_update().get(id=payout.payment_id)

                if result.success:
                    if payout.is_complete:
                        return ServiceResult.success(payout)
                    cls._complete(payout, payment, result)
                else:
                    if payout.is_failed:
                        return ServiceResult.success(payout)
                    cls._fail(payout, payment, result)
        except (InvalidTransition, PaymentNotFoundError) as e:
            cls.get_logger().error(
                f"Could not apply transfer result: {e}",
                extra={"payout_id": str(payout_id), "success": result.success},
            )
            if isinstance(e, InvalidTransition):
                alert_manual_intervention(
                    "payout",
                    payout_id,
                    f"Contradicting transfer result ({'success' if result.success else 'failure'}) "
                    f"for payout in '{e.details.get('current_status')}'",
                )
            return ServiceResult.from_error(e)

        return ServiceResult.success(payout)

    @classmethod
    def on_transfer_event(
        cls,
        reference: str,
        success: bool,
        error: str | None = None,
        transfer_code: str | None = None,
    ) -> ServiceResult[Payout]:
        """Resolve a transfer webhook to its payout by reference and apply it."""
        payout = Payout.objects.filter(external_reference=reference).only("id").first()
        if payout is None and transfer_code:
            payout = Payout.objects.filter(transfer_code=transfer_code).only("id").first()
        if payout is None:
            return ServiceResult.from_error(
                PaymentNotFoundError(
                    f"No payout for transfer reference {reference}",
                    details={"reference": reference, "transfer_code": transfer_code},
                )
            )

        outcome = (
            TransferOutcome.succeeded(transfer_code)
            if success
            else TransferOutcome.failed(error or "Transfer failed")
        )
        return cls.on_transfer_result(payout.id, outcome)

    @classmethod
    def retry_payout(cls, payout_id: uuid.UUID) -> ServiceResult[Payout]:
        """
        Make another transfer attempt for a FAILED payout.

        The payment goes ESCROW -> PROCESSING_RELEASE again (the completion
        gate is re-checked), the same payout row is re-armed FAILED -> PENDING
        and the transfer is resubmitted. After an ambiguous failure the
        previous reference is reused so the gateway cannot pay twice.
        """
        payout = Payout.objects.select_related("payment").filter(id=payout_id).first()
        if payout is None:
            return ServiceResult.from_error(
                PaymentNotFoundError(f"Payout {payout_id} not found", details={"payout_id": str(payout_id)})
            )
        if payout.status != PayoutStatus.FAILED:
            cls.get_logger().info(
                "Payout no longer failed, skipping retry",
                extra={"payout_id": str(payout_id), "status": payout.status},
            )
            return ServiceResult.success(payout)

        if payout.attempts >= settings.PAYOUT_MAX_ATTEMPTS:
            alert_manual_intervention("payout", payout.id, f"Retry limit reached: {payout.error}")
            return ServiceResult.failure(
                "Payout retry limit reached",
                error_code="RETRY_LIMIT_EXCEEDED",
                details={"payout_id": str(payout.id), "attempts": payout.attempts},
            )

        if payout.payment.is_in_escrow:
            release = EscrowService.request_release(payout.payment_id)
            if not release:
                return release
        elif payout.payment.status != PaymentStatus.PROCESSING_RELEASE:
            return ServiceResult.from_error(
                InvalidTransition(
                    f"Payment is '{payout.payment.status}', cannot retry its payout",
                    details={
                        "payout_id": str(payout.id),
                        "current_status": payout.payment.status,
                        "transition": "retry",
                    },
                )
            )

        with cls.atomic():
            payout = Payout.objects.select_for_update().get(id=payout_id)
            if payout.status != PayoutStatus.FAILED:
                return ServiceResult.success(payout)
            reuse = payout.get_meta("reuse_reference", False)
            payout.apply_transition("retry", reference=payout.external_reference if reuse else None)
            payout.save()

        cls.get_logger().info(
            "Retrying payout",
            extra={
                "payout_id": str(payout.id),
                "attempt": payout.attempts,
                "reference": payout.external_reference,
            },
        )
        return cls._submit_transfer(payout)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @classmethod
    def _submit_transfer(cls, payout: Payout) -> ServiceResult[Payout]:
        # Phase 2: gateway call, no transaction open
        try:
            transfer = get_gateway().transfer(
                recipient=payout.recipient_code,
                amount=payout.amount,
                reference=payout.external_reference,
                currency=payout.currency,
                reason=f"Payout for payment {payout.payment_id}",
            )
        except GatewayError as e:
            cls.get_logger().warning(
                f"Transfer submission failed: {e}",
                extra={
                    "payout_id": str(payout.id),
                    "error_code": e.error_code,
                    "is_retryable": e.is_retryable,
                },
            )
            cls.on_transfer_result(payout.id, TransferOutcome.failed(str(e), ambiguous=e.is_retryable))
            failure = ServiceResult.from_error(e)
            failure.data = Payout.objects.get(id=payout.id)
            return failure

        if transfer.failed:
            return cls.on_transfer_result(
                payout.id,
                TransferOutcome.failed(f"Gateway reported transfer {transfer.status}"),
            )

        # Phase 3: record acceptance unless a webhook already settled it
        with cls.atomic():
            payout = Payout.objects.select_for_update().get(id=payout.id)
            if payout.status == PayoutStatus.PENDING:
                payout.apply_transition("submit", transfer_code=transfer.transfer_code)
                payout.save()

        if transfer.status == "otp":
            alert_manual_intervention("payout", payout.id, "Transfer awaits OTP finalization")

        cls.get_logger().info(
            "Transfer submitted",
            extra={
                "payout_id": str(payout.id),
                "transfer_code": transfer.transfer_code,
                "gateway_status": transfer.status,
            },
        )

        if transfer.succeeded:
            return cls.on_transfer_result(payout.id, TransferOutcome.succeeded(transfer.transfer_code))
        return ServiceResult.success(payout)

    @classmethod
    def _complete(cls, payout: Payout, payment: Payment, result: TransferOutcome) -> None:
        late = payout.is_failed and payout.get_meta("reuse_reference", False)
        payout.apply_transition("settle_late" if late else "complete", transfer_code=result.transfer_code)
        if late and payment.is_in_escrow:
            previous = payment.apply_transition("release_late")
        else:
            previous = payment.apply_transition("mark_released")
        payout.save()
        payment.save()

        notify_status_change(payment, previous)
        send_on_commit(payout_completed, sender=Payout, payout=payout)
        cls.get_logger().info(
            "Payout completed",
            extra={
                "payout_id": str(payout.id),
                "payment_id": str(payment.id),
                "amount": str(payout.amount),
                "late": late,
            },
        )

    @classmethod
    def _fail(cls, payout: Payout, payment: Payment, result: TransferOutcome) -> None:
        payout.apply_transition("fail", error=result.error)
        # Once a reference may exist at the gateway it is never replaced
        payout.update_meta(reuse_reference=payout.get_meta("reuse_reference", False) or result.ambiguous)
        previous = payment.apply_transition("rollback_release", reason=result.error)
        payout.save()
        payment.save()

        will_retry = payout.attempts < settings.PAYOUT_MAX_ATTEMPTS
        notify_status_change(payment, previous)
        send_on_commit(payout_failed, sender=Payout, payout=payout, will_retry=will_retry)

        cls.get_logger().warning(
            "Payout failed, payment returned to escrow",
            extra={
                "payout_id": str(payout.id),
                "payment_id": str(payment.id),
                "attempt": payout.attempts,
                "error": result.error,
                "will_retry": will_retry,
            },
        )

        if will_retry:
            cls._schedule_retry(payout)
        else:
            alert_manual_intervention(
                "payout",
                payout.id,
                f"Transfer failed after {payout.attempts} attempts: {result.error}",
            )

    @classmethod
    def _schedule_retry(cls, payout: Payout) -> None:
        from payments.tasks import retry_payout_transfer

        countdown = retry_delay(payout.attempts)
        payout_id = str(payout.id)
        transaction.on_commit(
            lambda: retry_payout_transfer.apply_async(args=[payout_id], countdown=countdown)
        )

    @classmethod
    def _recipient_for(cls, payment: Payment) -> str:
        booking = get_booking_directory().get_booking(payment.booking_id)
        return booking.provider_recipient_code if booking else ""


__all__ = [
    "PayoutService",
    "TransferOutcome",
    "retry_delay",
]
