"""
Payment verification engine.

Turns a raw webhook request into a VerifiedWebhook. The signature is
checked before the body is parsed; a body that fails verification is never
decoded or acted on.

Usage:
    from payments.webhooks.verification import PaymentVerificationEngine

    webhook = PaymentVerificationEngine.verify(
        "paystack",
        request.body,
        request.headers.get("x-paystack-signature"),
    )
    if webhook.outcome and webhook.outcome.is_success:
        ...
"""

from __future__ import annotations

import json
import logging

from payments.adapters import VerifiedWebhook, get_adapter
from payments.exceptions import InvalidSignature, MalformedWebhook

logger = logging.getLogger(__name__)


class PaymentVerificationEngine:
    """
    Verifies and decodes provider webhooks.

    All methods are classmethods - no instance state is maintained.
    """

    @classmethod
    def signature_header(cls, provider: str) -> str:
        """Return the HTTP header a provider puts its signature in."""
        return get_adapter(provider).signature_header

    @classmethod
    def verify(
        cls,
        provider: str,
        raw_body: bytes,
        signature: str | None,
    ) -> VerifiedWebhook:
        """
        Verify a webhook signature and parse its payload.

        Steps:
        1. HMAC-SHA512 of raw_body with the provider secret, compared in
           constant time against the signature (hex case ignored)
        2. JSON decode of the body
        3. Provider-specific parse: event id, event type, reference and,
           for charge events, a PaymentOutcome with the decoded status

        Args:
            provider: Provider name (case-insensitive)
            raw_body: Exact request body bytes
            signature: Signature header value

        Returns:
            VerifiedWebhook

        Raises:
            NotFoundError: If the provider is not supported
            InvalidSignature: If the signature is missing or wrong
            MalformedWebhook: If the signed body is not a usable payload
        """
        adapter = get_adapter(provider)

        if not adapter.verify_signature(raw_body, signature):
            logger.warning(
                "Webhook signature verification failed",
                extra={
                    "provider": adapter.provider,
                    "signature_present": bool(signature),
                },
            )
            raise InvalidSignature(
                "Webhook signature is missing or invalid",
                details={"provider": adapter.provider},
            )

        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError):
            raise MalformedWebhook(
                "Webhook body is not valid JSON",
                details={"provider": adapter.provider},
            )
        if not isinstance(payload, dict):
            raise MalformedWebhook(
                "Webhook body must be a JSON object",
                details={"provider": adapter.provider},
            )

        webhook = adapter.parse(payload)

        if webhook.outcome is not None and webhook.outcome.is_unrecognized:
            logger.warning(
                "Webhook carries an unrecognized payment status; held as pending for review",
                extra={
                    "provider": webhook.provider,
                    "event_id": webhook.event_id,
                    "reference": webhook.reference,
                    "provider_status": webhook.outcome.provider_status,
                },
            )

        return webhook
