"""
Payments app configuration.

Escrow payments, provider payouts and gateway webhook ingestion.
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"

    def ready(self):
        from payments import signals
        from payments.webhooks import handlers  # noqa: F401 - registers handlers

        signals.register_signals()
