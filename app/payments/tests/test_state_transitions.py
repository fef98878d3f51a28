"""
Tests for the Payment and Payout state machines.

Covers every legal transition and checks that an illegal one raises
InvalidTransition without touching the instance or its row.
"""

from decimal import Decimal

import pytest

from payments.exceptions import InvalidTransition
from payments.models import Payment, Payout
from payments.state_machines import PaymentStatus, PayoutStatus
from payments.tests.factories import PaymentFactory, PayoutFactory


LEGAL_PAYMENT_TRANSITIONS = [
    (PaymentStatus.PENDING, "mark_escrow", PaymentStatus.ESCROW),
    (PaymentStatus.PENDING, "mark_failed", PaymentStatus.FAILED),
    (PaymentStatus.ESCROW, "request_release", PaymentStatus.PROCESSING_RELEASE),
    (PaymentStatus.ESCROW, "refund", PaymentStatus.REFUNDED),
    (PaymentStatus.ESCROW, "release_late", PaymentStatus.RELEASED),
    (PaymentStatus.PROCESSING_RELEASE, "mark_released", PaymentStatus.RELEASED),
    (PaymentStatus.PROCESSING_RELEASE, "rollback_release", PaymentStatus.ESCROW),
]

ALL_PAYMENT_TRANSITIONS = sorted({name for _, name, _ in LEGAL_PAYMENT_TRANSITIONS})


@pytest.mark.django_db
class TestPaymentTransitions:
    @pytest.mark.parametrize("source,name,target", LEGAL_PAYMENT_TRANSITIONS)
    def test_legal_transition(self, source, name, target):
        payment = PaymentFactory(status=source)

        previous = payment.apply_transition(name)
        payment.save()

        assert previous == source
        assert Payment.objects.get(id=payment.id).status == target

    @pytest.mark.parametrize("source", list(PaymentStatus.values))
    @pytest.mark.parametrize("name", ALL_PAYMENT_TRANSITIONS)
    def test_illegal_transition_leaves_payment_unchanged(self, source, name):
        if (source, name) in {(s, n) for s, n, _ in LEGAL_PAYMENT_TRANSITIONS}:
            pytest.skip("legal transition")
        payment = PaymentFactory(status=source)

        with pytest.raises(InvalidTransition) as exc_info:
            payment.apply_transition(name)

        assert payment.status == source
        assert Payment.objects.get(id=payment.id).status == source
        assert exc_info.value.error_code == "INVALID_TRANSITION"
        assert exc_info.value.details["current_status"] == source
        assert exc_info.value.details["transition"] == name

    def test_terminal_states_have_no_exits(self):
        for status in PaymentStatus.terminal():
            payment = PaymentFactory(status=status)
            for name in ALL_PAYMENT_TRANSITIONS:
                with pytest.raises(InvalidTransition):
                    payment.apply_transition(name)

    def test_mark_escrow_writes_breakdown_and_paid_at(self):
        payment = PaymentFactory(amount=Decimal("1000.00"))

        payment.mark_escrow()
        payment.save()

        stored = Payment.objects.get(id=payment.id)
        assert stored.escrow_amount == Decimal("900.00")
        assert stored.platform_fee == Decimal("100.00")
        assert stored.paid_at is not None

    def test_rollback_release_records_reason(self):
        payment = PaymentFactory(processing_release=True)

        payment.rollback_release(reason="Account closed")

        assert payment.status == PaymentStatus.ESCROW
        assert payment.failure_reason == "Account closed"

    def test_request_release_clears_previous_failure(self):
        payment = PaymentFactory(escrow=True, failure_reason="Account closed")

        payment.request_release()

        assert payment.failure_reason is None

    def test_release_late_sets_released_at(self):
        payment = PaymentFactory(escrow=True, failure_reason="[GATEWAY_TIMEOUT] No answer")

        payment.release_late()

        assert payment.status == PaymentStatus.RELEASED
        assert payment.released_at is not None
        assert payment.failure_reason is None

    def test_refund_sets_refunded_at(self):
        payment = PaymentFactory(escrow=True)

        payment.refund(reason="Cancelled by client")

        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refunded_at is not None
        assert payment.failure_reason == "Cancelled by client"

    def test_status_cannot_be_assigned_directly(self):
        payment = PaymentFactory()

        with pytest.raises(AttributeError):
            payment.status = PaymentStatus.RELEASED


@pytest.mark.django_db
class TestPayoutTransitions:
    def test_submit_then_complete(self):
        payout = PayoutFactory(status=PayoutStatus.PENDING, transfer_code=None)

        payout.submit(transfer_code="TRF_abc")
        payout.save()
        payout.complete()
        payout.save()

        stored = Payout.objects.get(id=payout.id)
        assert stored.status == PayoutStatus.COMPLETED
        assert stored.transfer_code == "TRF_abc"
        assert stored.submitted_at is not None
        assert stored.completed_at is not None

    def test_complete_accepted_from_pending(self):
        payout = PayoutFactory(status=PayoutStatus.PENDING)

        payout.complete(transfer_code="TRF_webhook")

        assert payout.status == PayoutStatus.COMPLETED
        assert payout.transfer_code == "TRF_webhook"

    @pytest.mark.parametrize("source", [PayoutStatus.PENDING, PayoutStatus.PROCESSING])
    def test_fail_records_error(self, source):
        payout = PayoutFactory(status=source)

        payout.fail(error="Insufficient balance")

        assert payout.status == PayoutStatus.FAILED
        assert payout.error == "Insufficient balance"
        assert payout.failed_at is not None

    def test_retry_rearms_with_new_reference(self):
        payout = PayoutFactory(failed=True)
        old_reference = payout.external_reference

        payout.retry()

        assert payout.status == PayoutStatus.PENDING
        assert payout.attempts == 2
        assert payout.external_reference != old_reference
        assert payout.external_reference.startswith("PAYOUT_")
        assert payout.transfer_code is None
        assert payout.failed_at is None

    def test_retry_can_reuse_reference(self):
        payout = PayoutFactory(failed=True)
        old_reference = payout.external_reference

        payout.retry(reference=old_reference)

        assert payout.external_reference == old_reference
        assert payout.attempts == 2

    def test_settle_late_completes_failed_payout(self):
        payout = PayoutFactory(failed=True, error="[GATEWAY_TIMEOUT] No answer")

        payout.settle_late(transfer_code="TRF_late")
        payout.save()

        stored = Payout.objects.get(id=payout.id)
        assert stored.status == PayoutStatus.COMPLETED
        assert stored.transfer_code == "TRF_late"
        assert stored.completed_at is not None
        assert stored.error is None

    @pytest.mark.parametrize(
        "source,name",
        [
            (PayoutStatus.COMPLETED, "fail"),
            (PayoutStatus.COMPLETED, "retry"),
            (PayoutStatus.FAILED, "complete"),
            (PayoutStatus.PROCESSING, "submit"),
            (PayoutStatus.PROCESSING, "retry"),
            (PayoutStatus.PROCESSING, "settle_late"),
            (PayoutStatus.COMPLETED, "settle_late"),
        ],
    )
    def test_illegal_transition_leaves_payout_unchanged(self, source, name):
        payout = PayoutFactory(status=source)

        with pytest.raises(InvalidTransition):
            payout.apply_transition(name)

        assert payout.status == source
        assert Payout.objects.get(id=payout.id).status == source
