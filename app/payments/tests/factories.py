"""
Factory Boy factories for payment test data.

Status is a protected FSM field: it can be given at construction time
(factories create rows directly in any state) but never assigned afterwards.

Usage:
    from payments.tests.factories import PaymentFactory, PayoutFactory

    payment = PaymentFactory()                       # PENDING, no split
    payment = PaymentFactory(escrow=True)            # ESCROW, 900.00 / 100.00
    payment = PaymentFactory(processing_release=True)

    payout = PayoutFactory()                         # PROCESSING, payment PROCESSING_RELEASE
    payout = PayoutFactory(failed=True)              # FAILED, payment back in ESCROW
"""

import uuid
from decimal import Decimal

import factory
from django.utils import timezone

from payments.models import Payment, Payout, WebhookEvent
from payments.state_machines import PaymentStatus, PayoutStatus


class PaymentFactory(factory.django.DjangoModelFactory):
    """Factory for Payment; PENDING with a 1000.00 ZAR amount by default."""

    class Meta:
        model = Payment

    booking_id = factory.LazyFunction(uuid.uuid4)
    client_id = factory.LazyFunction(uuid.uuid4)
    provider_id = factory.LazyFunction(uuid.uuid4)
    amount = Decimal("1000.00")
    currency = "ZAR"
    external_reference = factory.Sequence(lambda n: f"PAY_TEST_{n:06d}")
    status = PaymentStatus.PENDING

    class Params:
        escrow = factory.Trait(
            status=PaymentStatus.ESCROW,
            escrow_amount=Decimal("900.00"),
            platform_fee=Decimal("100.00"),
            paid_at=factory.LazyFunction(timezone.now),
        )
        processing_release = factory.Trait(
            status=PaymentStatus.PROCESSING_RELEASE,
            escrow_amount=Decimal("900.00"),
            platform_fee=Decimal("100.00"),
            paid_at=factory.LazyFunction(timezone.now),
        )
        released = factory.Trait(
            status=PaymentStatus.RELEASED,
            escrow_amount=Decimal("900.00"),
            platform_fee=Decimal("100.00"),
            paid_at=factory.LazyFunction(timezone.now),
            released_at=factory.LazyFunction(timezone.now),
        )


class PayoutFactory(factory.django.DjangoModelFactory):
    """Factory for Payout; PROCESSING for a PROCESSING_RELEASE payment by default."""

    class Meta:
        model = Payout

    payment = factory.SubFactory(PaymentFactory, processing_release=True)
    provider_id = factory.LazyAttribute(lambda o: o.payment.provider_id)
    amount = factory.LazyAttribute(lambda o: o.payment.escrow_amount)
    currency = "ZAR"
    recipient_code = "RCP_test_provider"
    external_reference = factory.Sequence(lambda n: f"PAYOUT_TEST_{n:06d}")
    transfer_code = factory.Sequence(lambda n: f"TRF_seed_{n}")
    status = PayoutStatus.PROCESSING
    attempts = 1

    class Params:
        failed = factory.Trait(
            status=PayoutStatus.FAILED,
            payment=factory.SubFactory(PaymentFactory, escrow=True),
            error="Account closed",
            failed_at=factory.LazyFunction(timezone.now),
        )


class WebhookEventFactory(factory.django.DjangoModelFactory):
    """Factory for WebhookEvent; an unprocessed charge.success by default."""

    class Meta:
        model = WebhookEvent

    event_type = "charge.success"
    external_reference = factory.Sequence(lambda n: f"PAY_EVT_{n:06d}")
    payload = factory.LazyAttribute(
        lambda o: {
            "event": o.event_type,
            "data": {"reference": o.external_reference, "amount": 100000},
        }
    )
    processed = False
    retry_count = 0
