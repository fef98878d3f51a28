"""
Payment gateway adapters.

All external payment API calls go through these adapters so error handling,
timeouts and amount conversion are consistent.

Usage:
    from payments.adapters import PaystackAdapter

    gateway = PaystackAdapter.from_settings()
    result = gateway.transfer(recipient="RCP_xxx", amount=Decimal("900.00"),
                              reference="PAYOUT_...", currency="ZAR")
"""

from payments.adapters.paystack_adapter import (
    SIGNATURE_HEADER,
    ChargeResult,
    PaystackAdapter,
    TransferResult,
    compute_signature,
    to_subunit,
)

__all__ = [
    "SIGNATURE_HEADER",
    "ChargeResult",
    "PaystackAdapter",
    "TransferResult",
    "compute_signature",
    "to_subunit",
]
