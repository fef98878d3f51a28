"""
Tests for the Paystack webhook handlers.
"""

from decimal import Decimal

import pytest

from payments.models import Payment, Payout
from payments.state_machines import PaymentStatus, PayoutStatus
from payments.tests.factories import PaymentFactory, PayoutFactory, WebhookEventFactory
from payments.webhooks.handlers import WEBHOOK_HANDLERS, dispatch_webhook
from payments.webhooks.tests.payloads import charge_success, paystack_event


def stored_event(payload):
    return WebhookEventFactory(
        event_type=payload["event"],
        external_reference=payload["data"].get("reference"),
        payload=payload,
    )


def test_registered_event_types():
    assert {
        "charge.success",
        "charge.failed",
        "transfer.success",
        "transfer.failed",
        "transfer.reversed",
    } <= set(WEBHOOK_HANDLERS)


@pytest.mark.django_db
class TestChargeHandlers:
    def test_charge_success_converts_subunits(self):
        payment = PaymentFactory(external_reference="TX123", amount=Decimal("1000.00"))

        result = dispatch_webhook(stored_event(charge_success("TX123", amount_subunit=100000)))

        assert result.success
        stored = Payment.objects.get(id=payment.id)
        assert stored.status == PaymentStatus.ESCROW
        assert stored.get_meta("gateway")["transaction_id"] == 4099260516
        assert stored.paid_at.year == 2026

    def test_charge_success_for_wrong_amount(self):
        payment = PaymentFactory(external_reference="TX123", amount=Decimal("1000.00"))

        result = dispatch_webhook(stored_event(charge_success("TX123", amount_subunit=1000)))

        assert result.error_code == "AMOUNT_MISMATCH"
        assert Payment.objects.get(id=payment.id).status == PaymentStatus.PENDING

    def test_missing_reference(self):
        event = WebhookEventFactory(
            event_type="charge.success",
            external_reference=None,
            payload={"event": "charge.success", "data": {"amount": 100000}},
        )

        result = dispatch_webhook(event)

        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"

    def test_charge_failed(self):
        payment = PaymentFactory(external_reference="TX123")

        result = dispatch_webhook(
            stored_event(paystack_event("charge.failed", "TX123", gateway_response="Insufficient Funds"))
        )

        assert result.success
        stored = Payment.objects.get(id=payment.id)
        assert stored.status == PaymentStatus.FAILED
        assert stored.failure_reason == "Insufficient Funds"


@pytest.mark.django_db
class TestTransferHandlers:
    def test_transfer_success_releases_payment(self):
        payout = PayoutFactory(external_reference="PAYOUT_1")

        result = dispatch_webhook(
            stored_event(paystack_event("transfer.success", "PAYOUT_1", transfer_code="TRF_abc"))
        )

        assert result.success
        assert Payout.objects.get(id=payout.id).status == PayoutStatus.COMPLETED
        assert Payment.objects.get(id=payout.payment_id).status == PaymentStatus.RELEASED

    @pytest.mark.parametrize("event_type", ["transfer.failed", "transfer.reversed"])
    def test_transfer_failure_returns_payment_to_escrow(self, event_type, mock_retry_task):
        payout = PayoutFactory(external_reference="PAYOUT_1")

        result = dispatch_webhook(
            stored_event(paystack_event(event_type, "PAYOUT_1", reason="Account closed"))
        )

        assert result.success
        stored = Payout.objects.get(id=payout.id)
        assert stored.status == PayoutStatus.FAILED
        assert stored.error == f"{event_type}: Account closed"
        assert Payment.objects.get(id=payout.payment_id).status == PaymentStatus.ESCROW

    def test_unknown_transfer_reference(self):
        result = dispatch_webhook(stored_event(paystack_event("transfer.success", "PAYOUT_missing")))

        assert result.error_code == "PAYMENT_NOT_FOUND"


@pytest.mark.django_db
def test_unhandled_event_type_is_acknowledged():
    result = dispatch_webhook(stored_event(paystack_event("customeridentification.success", "CUS_1")))

    assert result.success
    assert result.data is None
