"""
Webhook handling for Paystack and Monnify payment events.

This package verifies provider webhooks, stores them idempotently and
processes them asynchronously via Celery tasks:

- verification: PaymentVerificationEngine (signature check + payload decode)
- store: WebhookEventStore (duplicate suppression, retry scheduling)
- handlers: Event type -> handler registry
- views: provider_webhook HTTP endpoint

Usage:
    # In urls.py
    from payments.webhooks.views import provider_webhook

    urlpatterns = [
        path("webhooks/<str:provider>/", provider_webhook, name="provider_webhook"),
    ]
"""

from payments.webhooks.handlers import dispatch_webhook, register_handler
from payments.webhooks.store import RecordResult, WebhookEventStore
from payments.webhooks.verification import PaymentVerificationEngine
from payments.webhooks.views import provider_webhook

__all__ = [
    "PaymentVerificationEngine",
    "RecordResult",
    "WebhookEventStore",
    "dispatch_webhook",
    "provider_webhook",
    "register_handler",
]
