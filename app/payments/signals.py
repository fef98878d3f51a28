"""
Django signals emitted by the payments app.

The payment core does not deliver notifications itself. It announces state
changes, and the notification and booking services subscribe:

    from django.dispatch import receiver
    from payments.signals import payout_completed

    @receiver(payout_completed)
    def notify_provider(sender, payout, **kwargs):
        ...

Signals are sent with ``send_robust`` after the surrounding transaction
commits, so a failing receiver never rolls back a payment and a rolled-back
payment never produces a notification.

Signals:
    payment_status_changed(payment, previous_status, status)
    payout_completed(payout)
    payout_failed(payout, will_retry)
    manual_intervention_required(kind, object_id, reason)
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)


payment_status_changed = Signal()
payout_completed = Signal()
payout_failed = Signal()
manual_intervention_required = Signal()


def send_on_commit(signal: Signal, sender, **kwargs) -> None:
    """
    Queue ``signal`` to be sent once the current transaction commits.

    Receiver errors are logged and otherwise ignored. Outside a transaction
    the signal is sent immediately.
    """

    def _send():
        for receiver, response in signal.send_robust(sender=sender, **kwargs):
            if isinstance(response, Exception):
                logger.error(
                    f"Signal receiver {getattr(receiver, '__qualname__', receiver)} failed: {response}",
                    exc_info=response,
                )

    transaction.on_commit(_send)


def notify_status_change(payment, previous_status: str) -> None:
    """Announce a Payment status change to the booking/notification side."""
    if previous_status == payment.status:
        return
    send_on_commit(
        payment_status_changed,
        sender=type(payment),
        payment=payment,
        previous_status=previous_status,
        status=payment.status,
    )


def alert_manual_intervention(kind: str, object_id, reason: str) -> None:
    """Log at ERROR and emit manual_intervention_required."""
    logger.error(
        f"Manual intervention required for {kind} {object_id}: {reason}",
        extra={"kind": kind, "object_id": str(object_id), "reason": reason},
    )
    send_on_commit(
        manual_intervention_required,
        sender=None,
        kind=kind,
        object_id=str(object_id),
        reason=reason,
    )


def register_signals():
    """Called from PaymentsConfig.ready(); receivers live in other apps."""
    logger.debug("Payment signals registered")
