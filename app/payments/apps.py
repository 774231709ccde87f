"""
Payments app configuration.

This app provides the payment settlement infrastructure:
- Wallet ledger with an append-only transaction trail
- Paystack and Monnify webhook verification and idempotent processing
- Order settlement (main balance or subaccount split)
- Refunds and ledger reversals
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"

    def ready(self):
        from payments.signals import register_signals

        # Populates the webhook handler registry
        import payments.webhooks.handlers  # noqa: F401

        register_signals()
