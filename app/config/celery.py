"""
Celery configuration for the Django application.

Celery runs the payments background work:
- Payout transfer retries with exponential backoff (retry_payout_transfer)
- Replay of failed webhook events (replay_failed_webhooks)
- Reporting events that need manual intervention (report_stalled_webhooks)
- Retention cleanup of processed webhook events (cleanup_old_webhooks)
- Fee breakdown backfill (backfill_payment_breakdown)

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps. Periodic schedules
live in the database (django-celery-beat) and are managed from the admin.

Usage:
    from payments.tasks import retry_payout_transfer

    retry_payout_transfer.apply_async(args=[str(payout.id)], countdown=4)

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Create Celery application instance
# The name should match the Django project name
app = Celery("config")

# Load configuration from Django settings
# All Celery settings should be prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Auto-discover tasks from all registered Django apps
# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
