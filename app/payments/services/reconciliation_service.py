"""
Reconciliation service for repairing derived payment data.

Payments created before the fee split was written at escrow time (or rows
touched by manual fixes) can lack escrow_amount/platform_fee. This service
finds such rows and fills the split in from the amount.

Repair rules:
    - Only escrow_amount and platform_fee are written; amount and status are
      never touched, and no transition is run
    - PENDING payments are skipped (the split is set when they leave PENDING)
    - A populated split is left alone unless ``force`` is set and it does not
      add up to the amount
    - Running twice changes nothing the second time

Usage:
    from payments.services import ReconciliationService

    result = ReconciliationService.backfill_breakdown()
    print(f"Updated {result.data.updated} of {result.data.scanned}")

    mismatched = ReconciliationService.find_breakdown_mismatches()
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from django.db import DatabaseError
from django.db.models import Q

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult

from payments.fees import to_money
from payments.models import Payment
from payments.state_machines import PaymentStatus


DEFAULT_BATCH_SIZE = 500


@dataclass
class BackfillResult:
    """Summary of a backfill run."""

    scanned: int = 0
    updated: int = 0
    skipped: int = 0
    failed_ids: list[uuid.UUID] = field(default_factory=list)


class ReconciliationService(BaseService):
    """
    Detects and repairs missing or inconsistent fee breakdowns.

    Each row is repaired in its own transaction under ``select_for_update``
    and re-checked after the lock is taken, so a concurrent escrow
    transition that writes the split first is not overwritten.
    """

    @classmethod
    def _missing_breakdown(cls):
        return Payment.objects.exclude(status=PaymentStatus.PENDING).filter(
            Q(escrow_amount__isnull=True) | Q(platform_fee__isnull=True)
        )

    @classmethod
    def find_breakdown_mismatches(cls) -> list[uuid.UUID]:
        """
        Ids of non-PENDING payments whose split is missing or wrong.

        The sum is compared in Python with cent quantization because
        database-side decimal arithmetic differs between backends.
        """
        mismatched = []
        payments = (
            Payment.objects.exclude(status=PaymentStatus.PENDING)
            .only("id", "amount", "escrow_amount", "platform_fee")
            .order_by("created_at")
        )
        for payment in payments.iterator():
            if not payment.has_breakdown or not cls._sums_to_amount(payment):
                mismatched.append(payment.id)
        return mismatched

    @classmethod
    def backfill_breakdown(
        cls,
        force: bool = False,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> ServiceResult[BackfillResult]:
        """
        Populate escrow_amount/platform_fee for payments missing them.

        Args:
            force: Also recompute splits that do not add up to the amount
            batch_size: Number of ids fetched per query

        Returns:
            ServiceResult with a BackfillResult. Rows that could not be
            repaired are listed in ``failed_ids`` and logged; they do not
            stop the run.
        """
        result = BackfillResult()
        if force:
            ids = cls.find_breakdown_mismatches()
        else:
            ids = list(cls._missing_breakdown().order_by("created_at").values_list("id", flat=True))

        cls.get_logger().info(
            "Starting fee breakdown backfill",
            extra={"candidates": len(ids), "force": force},
        )

        for start in range(0, len(ids), batch_size):
            for payment_id in ids[start:start + batch_size]:
                result.scanned += 1
                try:
                    changed = cls._repair(payment_id, force=force)
                except (BaseApplicationError, DatabaseError) as e:
                    cls.get_logger().error(
                        f"Failed to backfill breakdown: {e}",
                        extra={"payment_id": str(payment_id)},
                    )
                    result.failed_ids.append(payment_id)
                    continue

                if changed:
                    result.updated += 1
                else:
                    result.skipped += 1

        cls.get_logger().info(
            "Fee breakdown backfill finished",
            extra={
                "scanned": result.scanned,
                "updated": result.updated,
                "skipped": result.skipped,
                "failed": len(result.failed_ids),
            },
        )
        return ServiceResult.success(result)

    @classmethod
    def _repair(cls, payment_id: uuid.UUID, force: bool) -> bool:
        with cls.atomic():
            payment = Payment.objects.select_for_update().filter(id=payment_id).first()
            if payment is None or payment.status == PaymentStatus.PENDING:
                return False

            recompute = force and payment.has_breakdown and not cls._sums_to_amount(payment)
            if payment.has_breakdown and not recompute:
                return False

            # Bypass Payment.save(): a forced repair starts from a row whose
            # split is inconsistent
            escrow_before, fee_before = payment.escrow_amount, payment.platform_fee
            payment.apply_breakdown(force=True)
            Payment.objects.filter(id=payment.id).update(
                escrow_amount=payment.escrow_amount,
                platform_fee=payment.platform_fee,
            )

        cls.get_logger().info(
            "Backfilled fee breakdown",
            extra={
                "payment_id": str(payment_id),
                "status": payment.status,
                "escrow_amount": str(payment.escrow_amount),
                "platform_fee": str(payment.platform_fee),
                "previous_escrow_amount": str(escrow_before),
                "previous_platform_fee": str(fee_before),
            },
        )
        return True

    @staticmethod
    def _sums_to_amount(payment: Payment) -> bool:
        return to_money(payment.escrow_amount) + to_money(payment.platform_fee) == to_money(payment.amount)


__all__ = [
    "BackfillResult",
    "ReconciliationService",
]
