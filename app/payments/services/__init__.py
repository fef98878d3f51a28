"""
Payment services for coordinating escrow operations.

This module provides:
- EscrowService: Payment creation and Payment state transitions
- PayoutService: Transfers of released escrow to providers
- ReconciliationService: Repair of missing fee breakdowns

Usage:
    from payments.services import EscrowService, PayoutService

    result = EscrowService.initiate_payment(booking_id)

    # Client confirmed the job: release escrow and pay the provider
    result = PayoutService.release_and_pay(payment.id)

    # Nightly repair
    from payments.services import ReconciliationService

    result = ReconciliationService.backfill_breakdown()
"""

from payments.services.escrow_service import EscrowService
from payments.services.gateway import get_gateway, set_gateway
from payments.services.payout_service import (
    PayoutService,
    TransferOutcome,
    retry_delay,
)
from payments.services.reconciliation_service import (
    BackfillResult,
    ReconciliationService,
)

__all__ = [
    "BackfillResult",
    "EscrowService",
    "PayoutService",
    "ReconciliationService",
    "TransferOutcome",
    "get_gateway",
    "retry_delay",
    "set_gateway",
]
