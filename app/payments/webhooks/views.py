"""
Webhook endpoint view for payment providers.

This module provides the HTTP endpoint for receiving Paystack and Monnify
webhooks. The view:
1. Verifies the webhook signature against the raw body
2. Records the WebhookEvent (idempotent per provider + event id)
3. Queues the event for async processing
4. Returns immediately

Usage:
    # In urls.py
    from payments.webhooks.views import provider_webhook

    urlpatterns = [
        path("webhooks/<str:provider>/", provider_webhook, name="provider_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from core.exceptions import NotFoundError
from payments.exceptions import InvalidSignature, MalformedWebhook
from payments.webhooks.store import WebhookEventStore
from payments.webhooks.verification import PaymentVerificationEngine

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def provider_webhook(request: HttpRequest, provider: str) -> HttpResponse:
    """
    Receive and queue a provider webhook.

    Providers retry deliveries that do not get a 2xx response, so every
    accepted delivery (new or duplicate) returns 200. Nothing is recorded
    for a request that fails signature verification.

    Security:
    - HMAC-SHA512 signature over the raw body, compared in constant time
    - CSRF exemption required for external webhooks
    - Only POST requests accepted

    Idempotency:
    - (provider, event_id) is unique on WebhookEvent
    - A processed duplicate returns 200 without reprocessing
    - An unprocessed duplicate is queued again

    Returns:
        HttpResponse with status:
        - 200: Event accepted (new or duplicate)
        - 400: Signed body is not a usable payload
        - 401: Signature missing or invalid
        - 404: Unknown provider
    """
    try:
        header = PaymentVerificationEngine.signature_header(provider)
    except NotFoundError:
        logger.warning("Webhook received for unknown provider", extra={"provider": provider})
        return HttpResponse("Unknown provider", status=404)

    # Step 1: Verify signature and parse
    try:
        webhook = PaymentVerificationEngine.verify(
            provider,
            request.body,
            request.headers.get(header),
        )
    except InvalidSignature:
        return HttpResponse("Invalid signature", status=401)
    except MalformedWebhook as e:
        logger.warning(
            "Malformed webhook payload",
            extra={"provider": provider, "error": e.message},
        )
        return HttpResponse("Invalid payload", status=400)

    logger.info(
        f"Received {webhook.provider} webhook: {webhook.event_type}",
        extra={
            "provider": webhook.provider,
            "event_id": webhook.event_id,
            "reference": webhook.reference,
        },
    )

    # Step 2: Record the event (duplicates are detected, not raised)
    result = WebhookEventStore.record_if_new(
        provider=webhook.provider,
        event_id=webhook.event_id,
        event_type=webhook.event_type,
        reference=webhook.reference,
        payload=webhook.payload,
    )

    # Step 3: If already processed, return success
    if not result.is_new and result.processed:
        logger.info(
            "Webhook already processed, returning success",
            extra={"provider": webhook.provider, "event_id": webhook.event_id},
        )
        return HttpResponse("Already processed", status=200)

    # Step 4: Queue for async processing
    try:
        from payments.tasks import process_webhook_event

        process_webhook_event.delay(str(result.event_record_id))
        logger.info(
            "Webhook queued for processing",
            extra={
                "event_id": webhook.event_id,
                "webhook_event_id": str(result.event_record_id),
            },
        )
    except Exception as e:
        # The retry sweep only picks up events with next_retry_at, so the
        # provider's own redelivery is what re-queues this one
        logger.error(
            f"Failed to queue webhook: {type(e).__name__}",
            extra={"event_id": webhook.event_id},
            exc_info=True,
        )

    return HttpResponse("Accepted", status=200)
