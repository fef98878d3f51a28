"""
Status enums for the escrow payment models.

Stored as lowercase strings via Django TextChoices and driven by django-fsm
transitions on the models.

State Machines Overview:

Payment:
    pending → escrow → processing_release → released
    pending → failed
    processing_release → escrow (payout failed, retry allowed)
    escrow → released (late success for a timed-out payout)
    escrow → refunded

Payout:
    pending → processing → completed
    pending/processing → failed
    failed → pending (explicit retry only)
    failed → completed (late success for a timed-out transfer)
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    Lifecycle of a booking payment.

    Terminal states: RELEASED, REFUNDED, FAILED

    State Flow:
        PENDING → ESCROW                  charge confirmed by gateway
        PENDING → FAILED                  charge failed
        ESCROW → PROCESSING_RELEASE       job completion proven
        PROCESSING_RELEASE → RELEASED     payout completed
        PROCESSING_RELEASE → ESCROW       payout failed
        ESCROW → RELEASED                 timed-out payout settled late
        ESCROW → REFUNDED                 cancellation or dispute
    """

    PENDING = "pending", "Pending"
    ESCROW = "escrow", "In Escrow"
    PROCESSING_RELEASE = "processing_release", "Processing Release"
    RELEASED = "released", "Released"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"

    @classmethod
    def terminal(cls) -> frozenset[str]:
        return frozenset({cls.RELEASED, cls.REFUNDED, cls.FAILED})


class PayoutStatus(models.TextChoices):
    """
    Lifecycle of a provider payout.

    Terminal states: COMPLETED, FAILED (FAILED is only left through an
    explicit retry, which re-arms the same row)

    State Flow:
        PENDING → PROCESSING → COMPLETED
        PENDING/PROCESSING → FAILED
        FAILED → PENDING (retry)
        FAILED → COMPLETED (timed-out transfer settled late)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
