"""
Tests for EscrowService.

Covers checkout creation, gateway charge outcomes, the release gate and
refunds, including the rule that a rejected transition leaves the payment
exactly as it was.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from payments.exceptions import GatewayUnavailableError
from payments.models import Payment
from payments.services import EscrowService
from payments.signals import payment_status_changed
from payments.state_machines import PaymentStatus
from payments.tests.factories import PaymentFactory
from payments.tests.fakes import ELIGIBLE, make_booking


@pytest.mark.django_db
class TestInitiatePayment:
    def test_creates_pending_payment_and_starts_checkout(self, booking, gateway):
        result = EscrowService.initiate_payment(booking.booking_id)

        assert result.success
        payment = Payment.objects.get(booking_id=booking.booking_id)
        assert payment.status == PaymentStatus.PENDING
        assert payment.amount == Decimal("1000.00")
        assert payment.client_id == booking.client_id
        assert payment.provider_id == booking.provider_id
        assert payment.has_breakdown is False
        assert payment.get_meta("authorization_url") == (
            f"https://checkout.paystack.com/{payment.external_reference}"
        )

        [charge] = gateway.charges
        assert charge["amount"] == Decimal("1000.00")
        assert charge["reference"] == payment.external_reference
        assert charge["email"] == "client@example.com"
        assert charge["metadata"]["payment_id"] == str(payment.id)

    def test_second_call_returns_same_checkout(self, booking, gateway):
        first = EscrowService.initiate_payment(booking.booking_id)
        second = EscrowService.initiate_payment(booking.booking_id)

        assert second.success
        assert second.data.id == first.data.id
        assert len(gateway.charges) == 1
        assert Payment.objects.count() == 1

    def test_unknown_booking(self, db):
        result = EscrowService.initiate_payment("6f1c1f5e-8a55-4c8e-9c0e-3d5d4f0b7a11")

        assert result.error_code == "BOOKING_NOT_FOUND"
        assert Payment.objects.count() == 0

    @pytest.mark.parametrize("amount", ["5.00", "100000.01"])
    def test_amount_outside_bounds(self, db, amount):
        booking = make_booking(amount=amount)

        result = EscrowService.initiate_payment(booking.booking_id)

        assert result.error_code == "PAYMENT_VALIDATION_ERROR"
        assert Payment.objects.count() == 0

    def test_gateway_failure_keeps_pending_payment_for_retry(self, booking, gateway):
        gateway.charge_error = GatewayUnavailableError("Paystack down")

        result = EscrowService.initiate_payment(booking.booking_id)

        assert result.error_code == "GATEWAY_UNAVAILABLE"
        payment = Payment.objects.get(booking_id=booking.booking_id)
        assert payment.status == PaymentStatus.PENDING
        assert payment.get_meta("authorization_url") is None
        first_reference = payment.external_reference

        gateway.charge_error = None
        retry = EscrowService.initiate_payment(booking.booking_id)

        assert retry.success
        assert retry.data.id == payment.id
        assert retry.data.external_reference != first_reference
        assert gateway.charges[-1]["reference"] == retry.data.external_reference

    def test_booking_with_settled_payment_already_exists(self, escrow_payment, gateway):
        result = EscrowService.initiate_payment(escrow_payment.booking_id)

        assert result.error_code == "ALREADY_EXISTS"
        assert result.details["status"] == PaymentStatus.ESCROW
        assert gateway.charges == []


@pytest.mark.django_db
class TestConfirmCharge:
    def test_moves_payment_into_escrow_with_breakdown(self, pending_payment):
        result = EscrowService.confirm_charge(
            pending_payment.external_reference,
            amount=Decimal("1000.00"),
            gateway_data={"channel": "card"},
        )

        assert result.success
        payment = Payment.objects.get(id=pending_payment.id)
        assert payment.status == PaymentStatus.ESCROW
        assert payment.escrow_amount == Decimal("900.00")
        assert payment.platform_fee == Decimal("100.00")
        assert payment.paid_at is not None
        assert payment.get_meta("gateway") == {"channel": "card"}

    def test_duplicate_confirmation_is_noop(self, pending_payment):
        EscrowService.confirm_charge(pending_payment.external_reference)
        first = Payment.objects.get(id=pending_payment.id)

        result = EscrowService.confirm_charge(pending_payment.external_reference)

        assert result.success
        second = Payment.objects.get(id=pending_payment.id)
        assert second.status == PaymentStatus.ESCROW
        assert second.paid_at == first.paid_at
        assert second.updated_at == first.updated_at

    def test_amount_mismatch_leaves_payment_pending(self, pending_payment):
        result = EscrowService.confirm_charge(
            pending_payment.external_reference,
            amount=Decimal("10.00"),
        )

        assert result.error_code == "AMOUNT_MISMATCH"
        assert result.details == {"expected": "1000.00", "charged": "10.00"}
        assert Payment.objects.get(id=pending_payment.id).status == PaymentStatus.PENDING

    def test_unknown_reference(self, db):
        result = EscrowService.confirm_charge("PAY_missing")

        assert result.error_code == "PAYMENT_NOT_FOUND"

    def test_announces_status_change_after_commit(self, pending_payment, django_capture_on_commit_callbacks):
        receiver = MagicMock()
        payment_status_changed.connect(receiver)
        try:
            with django_capture_on_commit_callbacks(execute=True):
                EscrowService.confirm_charge(pending_payment.external_reference)
        finally:
            payment_status_changed.disconnect(receiver)

        receiver.assert_called_once()
        kwargs = receiver.call_args.kwargs
        assert kwargs["previous_status"] == PaymentStatus.PENDING
        assert kwargs["status"] == PaymentStatus.ESCROW
        assert kwargs["payment"].id == pending_payment.id


@pytest.mark.django_db
class TestFailCharge:
    def test_marks_payment_failed(self, pending_payment):
        result = EscrowService.fail_charge(pending_payment.external_reference, reason="Declined")

        assert result.success
        payment = Payment.objects.get(id=pending_payment.id)
        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_reason == "Declined"
        assert payment.escrow_amount + payment.platform_fee == payment.amount

    def test_late_failure_does_not_undo_escrow(self, escrow_payment):
        result = EscrowService.fail_charge(escrow_payment.external_reference, reason="Declined")

        assert result.success
        assert Payment.objects.get(id=escrow_payment.id).status == PaymentStatus.ESCROW


@pytest.mark.django_db
class TestRequestRelease:
    def test_requires_completion_proof(self, escrow_payment):
        result = EscrowService.request_release(escrow_payment.id)

        assert result.error_code == "NOT_ELIGIBLE"
        assert Payment.objects.get(id=escrow_payment.id).status == PaymentStatus.ESCROW

    def test_moves_to_processing_release(self, escrow_payment):
        ELIGIBLE.add(escrow_payment.booking_id)

        result = EscrowService.request_release(escrow_payment.id)

        assert result.success
        assert Payment.objects.get(id=escrow_payment.id).status == PaymentStatus.PROCESSING_RELEASE

    def test_pending_payment_cannot_be_released(self, pending_payment):
        ELIGIBLE.add(pending_payment.booking_id)

        result = EscrowService.request_release(pending_payment.id)

        assert result.error_code == "INVALID_TRANSITION"
        assert result.details["current_status"] == PaymentStatus.PENDING
        assert Payment.objects.get(id=pending_payment.id).status == PaymentStatus.PENDING


@pytest.mark.django_db
class TestRefund:
    def test_refunds_escrow(self, escrow_payment):
        result = EscrowService.refund(escrow_payment.id, reason="Provider no-show")

        assert result.success
        payment = Payment.objects.get(id=escrow_payment.id)
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.failure_reason == "Provider no-show"
        assert payment.refunded_at is not None

    def test_released_payment_cannot_be_refunded(self, db):
        payment = PaymentFactory(released=True)

        result = EscrowService.refund(payment.id, reason="Too late")

        assert result.error_code == "INVALID_TRANSITION"
        stored = Payment.objects.get(id=payment.id)
        assert stored.status == PaymentStatus.RELEASED
        assert stored.refunded_at is None
        assert stored.failure_reason is None

    def test_unknown_payment(self, db):
        result = EscrowService.refund("6f1c1f5e-8a55-4c8e-9c0e-3d5d4f0b7a11", reason="x")

        assert result.error_code == "PAYMENT_NOT_FOUND"
