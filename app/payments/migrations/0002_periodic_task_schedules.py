"""
Register celery-beat schedules for the payment maintenance tasks.

- Replay failed webhook events every 5 minutes
- Report webhook events that exhausted their retries every hour
- Backfill missing fee breakdowns daily
- Delete processed webhook events past retention daily
"""

from django.db import migrations

INTERVAL_TASKS = [
    (
        "Replay Failed Payment Webhooks",
        "payments.tasks.replay_failed_webhooks",
        5,
        "minutes",
        "Re-runs unprocessed webhook events that are still under the retry limit.",
    ),
    (
        "Report Stalled Payment Webhooks",
        "payments.tasks.report_stalled_webhooks",
        1,
        "hours",
        "Raises manual-intervention alerts for webhook events out of retries.",
    ),
    (
        "Backfill Payment Fee Breakdown",
        "payments.tasks.backfill_payment_breakdown",
        1,
        "days",
        "Fills escrow_amount/platform_fee on non-pending payments missing them.",
    ),
    (
        "Clean Up Old Webhook Events",
        "payments.tasks.cleanup_old_webhooks",
        1,
        "days",
        "Deletes processed webhook events older than the retention window.",
    ),
]


def create_periodic_tasks(apps, schema_editor):
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for name, task, every, period, description in INTERVAL_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=every,
            period=period,
        )
        PeriodicTask.objects.get_or_create(
            name=name,
            defaults={
                "task": task,
                "interval": schedule,
                "enabled": True,
                "description": description,
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[name for name, *_ in INTERVAL_TASKS],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0018_improve_crontab_helptext"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
