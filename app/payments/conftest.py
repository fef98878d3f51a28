"""
Pytest fixtures shared by all payments tests.

Every test runs against the in-memory booking directory, completion proof
and gateway from payments.tests.fakes; nothing talks to Paystack, Redis or
a Celery broker.

Usage:
    def test_release(escrow_payment, gateway):
        ELIGIBLE.add(escrow_payment.booking_id)
        PayoutService.release_and_pay(escrow_payment.id)
        assert gateway.transfers[0]["amount"] == Decimal("900.00")
"""

import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from django.test import Client
from django.urls import reverse

from authentication.tests.factories import UserFactory
from payments.services import set_gateway
from payments.tests import fakes
from payments.tests.factories import PaymentFactory


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture(autouse=True)
def collaborators(settings):
    """Point the payment core at the fake booking side and fix the policy."""
    settings.PAYMENTS_BOOKING_DIRECTORY = "payments.tests.fakes.FakeBookingDirectory"
    settings.PAYMENTS_COMPLETION_PROOF = "payments.tests.fakes.FakeCompletionProof"
    settings.PLATFORM_FEE_RATE = Decimal("0.10")
    settings.PAYMENT_CURRENCY = "ZAR"
    settings.PAYOUT_MAX_ATTEMPTS = 3
    settings.WEBHOOK_MAX_RETRIES = 3
    fakes.BOOKINGS.clear()
    fakes.ELIGIBLE.clear()
    yield
    fakes.BOOKINGS.clear()
    fakes.ELIGIBLE.clear()


@pytest.fixture(autouse=True)
def gateway():
    """Install a FakeGateway for the duration of the test."""
    fake = fakes.FakeGateway()
    set_gateway(fake)
    yield fake
    set_gateway(None)


@pytest.fixture
def mock_redis():
    """Replace the Redis connection used by DistributedLock."""
    redis = MagicMock()
    redis.set.return_value = True
    redis.eval.return_value = 1
    with patch("payments.locks.get_redis_connection", return_value=redis):
        yield redis


@pytest.fixture
def mock_retry_task():
    """Capture payout retries scheduled on commit instead of queueing them."""
    with patch("payments.tasks.retry_payout_transfer.apply_async") as apply_async:
        yield apply_async


# =============================================================================
# Parties
# =============================================================================


@pytest.fixture
def client_user(db):
    return UserFactory(email="client@example.com")


@pytest.fixture
def provider_user(db):
    return UserFactory(email="provider@example.com")


@pytest.fixture
def staff_user(db):
    return UserFactory(email="ops@example.com", is_staff=True)


@pytest.fixture
def booking(client_user, provider_user):
    """A 1000.00 ZAR booking between client_user and provider_user."""
    return fakes.make_booking(client_id=client_user.pk, provider_id=provider_user.pk)


# =============================================================================
# Payments
# =============================================================================


@pytest.fixture
def pending_payment(booking):
    return PaymentFactory(
        booking_id=booking.booking_id,
        client_id=booking.client_id,
        provider_id=booking.provider_id,
    )


@pytest.fixture
def escrow_payment(booking):
    return PaymentFactory(
        booking_id=booking.booking_id,
        client_id=booking.client_id,
        provider_id=booking.provider_id,
        escrow=True,
    )


@pytest.fixture
def releasing_payment(booking):
    return PaymentFactory(
        booking_id=booking.booking_id,
        client_id=booking.client_id,
        provider_id=booking.provider_id,
        processing_release=True,
    )


# =============================================================================
# Webhooks
# =============================================================================


@pytest.fixture
def post_webhook(db):
    """
    POST a payload to the Paystack webhook endpoint.

    Args (of the returned callable):
        payload: dict encoded as JSON, or raw bytes
        signature: header value; defaults to a valid signature, None omits it
    """
    client = Client()
    url = reverse("payments:paystack-webhook")

    def _post(payload, signature="valid"):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
        headers = {}
        if signature == "valid":
            headers["HTTP_X_PAYSTACK_SIGNATURE"] = fakes.sign(body)
        elif signature is not None:
            headers["HTTP_X_PAYSTACK_SIGNATURE"] = signature
        return client.post(url, data=body, content_type="application/json", **headers)

    return _post
