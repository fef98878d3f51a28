"""
Platform fee breakdown.

The platform keeps ``PLATFORM_FEE_RATE`` of every charge; the rest is held in
escrow for the provider. The fee is rounded half-up to cents and the escrow
amount is derived by subtraction, so the two always add back to the charged
amount exactly.

Usage:
    from payments.fees import compute_breakdown

    breakdown = compute_breakdown(Decimal("1000.00"))
    breakdown.platform_fee   # Decimal("100.00")
    breakdown.escrow_amount  # Decimal("900.00")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.conf import settings

from payments.exceptions import PaymentValidationError

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class FeeBreakdown:
    """Split of a charged amount between provider escrow and platform fee."""

    escrow_amount: Decimal
    platform_fee: Decimal

    @property
    def total(self) -> Decimal:
        return self.escrow_amount + self.platform_fee


def to_money(value) -> Decimal:
    """Coerce ``value`` to a Decimal quantized to cents."""
    try:
        return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise PaymentValidationError(
            f"Invalid monetary amount: {value!r}",
            details={"value": str(value)},
        ) from e


def get_fee_rate() -> Decimal:
    """Configured platform fee rate as a Decimal."""
    return Decimal(str(settings.PLATFORM_FEE_RATE))


def compute_breakdown(amount, fee_rate=None) -> FeeBreakdown:
    """
    Compute the escrow/fee split for ``amount``.

    Args:
        amount: Total charged to the client (Decimal, str or int)
        fee_rate: Fraction kept by the platform; defaults to
            settings.PLATFORM_FEE_RATE

    Returns:
        FeeBreakdown with ``escrow_amount + platform_fee == amount``

    Raises:
        PaymentValidationError: If amount <= 0 or fee_rate is outside [0, 1)
    """
    amount = to_money(amount)
    rate = get_fee_rate() if fee_rate is None else Decimal(str(fee_rate))

    if amount <= 0:
        raise PaymentValidationError(
            "Amount must be positive",
            details={"amount": str(amount)},
        )
    if not (Decimal("0") <= rate < Decimal("1")):
        raise PaymentValidationError(
            "Fee rate must be in [0, 1)",
            details={"fee_rate": str(rate)},
        )

    platform_fee = (amount * rate).quantize(CENTS, rounding=ROUND_HALF_UP)
    return FeeBreakdown(
        escrow_amount=amount - platform_fee,
        platform_fee=platform_fee,
    )
