"""
Celery tasks for payment processing.

This module provides async tasks for:
- Retrying failed payout transfers (scheduled by PayoutService with backoff)
- Replaying failed webhook events
- Reporting webhook events that ran out of retries
- Backfilling missing fee breakdowns
- Periodic cleanup of old processed webhook events

The periodic tasks are registered with django-celery-beat by migration
0002_periodic_task_schedules.

Usage:
    from payments.tasks import retry_payout_transfer

    retry_payout_transfer.apply_async(args=[str(payout.id)], countdown=4)
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.db import OperationalError
from django.utils import timezone

from payments.exceptions import (
    GatewayRateLimitError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    LockAcquisitionError,
)
from payments.locks import DistributedLock
from payments.models import WebhookEvent

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

WEBHOOK_REPLAY_BATCH_SIZE = 100
WEBHOOK_REPLAY_LOCK_TTL = 300
BACKFILL_LOCK_TTL = 3600
PAYOUT_RETRY_LOCK_TTL = 120

TRANSIENT_ERRORS = (
    GatewayTimeoutError,
    GatewayUnavailableError,
    GatewayRateLimitError,
    OperationalError,
)


# =============================================================================
# Payout Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=TRANSIENT_ERRORS,
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 5},
    acks_late=True,
)
def retry_payout_transfer(self, payout_id: str) -> dict:
    """
    Make the next transfer attempt for a FAILED payout.

    Gateway failures inside the attempt are recorded on the payout (and
    schedule the following attempt), so only infrastructure errors reach
    Celery's retry.

    Returns:
        Dict with the attempt outcome
    """
    from payments.services import PayoutService

    if isinstance(payout_id, str):
        payout_id = UUID(payout_id)

    try:
        with DistributedLock(f"payout:{payout_id}", ttl=PAYOUT_RETRY_LOCK_TTL, blocking=False):
            result = PayoutService.retry_payout(payout_id)
    except LockAcquisitionError:
        logger.info(
            "Payout retry already running elsewhere, skipping",
            extra={"payout_id": str(payout_id)},
        )
        return {"status": "locked", "payout_id": str(payout_id)}

    if result.success:
        return {
            "status": result.data.status,
            "payout_id": str(payout_id),
            "attempts": result.data.attempts,
        }

    logger.warning(
        f"Payout retry did not succeed: {result.error}",
        extra={"payout_id": str(payout_id), "error_code": result.error_code},
    )
    return {"status": "failed", "payout_id": str(payout_id), "error_code": result.error_code}


# =============================================================================
# Webhook Tasks
# =============================================================================


@shared_task
def replay_failed_webhooks(batch_size: int = WEBHOOK_REPLAY_BATCH_SIZE) -> dict:
    """
    Periodic task to replay unprocessed webhook events under the retry bound.

    Each replay that fails again increments the event's retry_count, so an
    event is replayed at most WEBHOOK_MAX_RETRIES times in total.

    Returns:
        Dict with counts of replayed and still-failing events
    """
    from payments.webhooks.ingest import WebhookIngestService

    try:
        lock = DistributedLock("payments:webhook-replay", ttl=WEBHOOK_REPLAY_LOCK_TTL, blocking=False)
        lock.acquire()
    except LockAcquisitionError:
        logger.info("Webhook replay already running, skipping")
        return {"status": "locked"}

    replayed = 0
    failed = 0
    try:
        event_ids = list(
            WebhookEvent.objects.retryable()
            .order_by("created_at")
            .values_list("id", flat=True)[:batch_size]
        )
        for event_id in event_ids:
            result = WebhookIngestService.replay(event_id)
            if result.success:
                replayed += 1
            else:
                failed += 1
    finally:
        lock.release()

    logger.info(
        f"Replayed {replayed} webhook events, {failed} still failing",
        extra={"replayed_count": replayed, "failed_count": failed},
    )
    return {"replayed_count": replayed, "failed_count": failed}


@shared_task
def report_stalled_webhooks() -> dict:
    """
    Periodic task to surface events that ran out of automatic retries.

    Each one is logged at ERROR and announced through
    ``manual_intervention_required``. Events stay unprocessed until an
    operator replays them.
    """
    from payments.signals import alert_manual_intervention

    stalled = WebhookEvent.objects.needing_intervention().order_by("created_at")

    reported = 0
    for event in stalled.iterator():
        alert_manual_intervention(
            "webhook_event",
            event.id,
            f"{event.event_type} ({event.external_reference}) stalled after "
            f"{event.retry_count} attempts: {event.error}",
        )
        reported += 1

    return {"reported_count": reported}


@shared_task
def cleanup_old_webhooks(days: int | None = None) -> dict:
    """
    Periodic task to clean up old processed webhook events.

    Unprocessed events are never deleted, whatever their age.

    Args:
        days: Retention in days (defaults to WEBHOOK_RETENTION_DAYS)
    """
    days = days if days is not None else settings.WEBHOOK_RETENTION_DAYS
    cutoff = timezone.now() - timedelta(days=days)

    deleted_count, _ = WebhookEvent.objects.filter(
        processed=True,
        processed_at__lt=cutoff,
    ).delete()

    if deleted_count > 0:
        logger.info(
            f"Deleted {deleted_count} old webhook events",
            extra={
                "deleted_count": deleted_count,
                "cutoff_date": cutoff.isoformat(),
            },
        )

    return {"deleted_count": deleted_count}


# =============================================================================
# Reconciliation Tasks
# =============================================================================


@shared_task
def backfill_payment_breakdown(force: bool = False) -> dict:
    """
    Periodic task to fill in missing escrow_amount/platform_fee.

    Returns:
        Dict with the BackfillResult counters
    """
    from payments.services import ReconciliationService

    try:
        with DistributedLock("payments:backfill", ttl=BACKFILL_LOCK_TTL, blocking=False):
            result = ReconciliationService.backfill_breakdown(force=force)
    except LockAcquisitionError:
        logger.warning("Fee breakdown backfill already running, skipping")
        return {"status": "locked"}

    summary = result.data
    return {
        "scanned": summary.scanned,
        "updated": summary.updated,
        "skipped": summary.skipped,
        "failed_ids": [str(payment_id) for payment_id in summary.failed_ids],
    }
