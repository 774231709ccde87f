"""
Monnify webhook adapter.

Monnify signs the raw body with HMAC-SHA512 keyed by the client secret and
sends the hex digest in ``monnify-signature``. Amounts are in naira and are
converted to kobo here.

Payload shape:
    {
        "eventType": "SUCCESSFUL_TRANSACTION",
        "eventData": {
            "transactionReference": "MNFY|20|20260101|000123",
            "paymentReference": "QKY-ORD-1767790000000-A1B2",
            "amountPaid": "5000.00",
            "totalPayment": "5000.00",
            "paymentStatus": "PAID",
            "currency": "NGN"
        }
    }
"""

from __future__ import annotations

from typing import Any

from payments.adapters.base import (
    PaymentOutcome,
    ProviderAdapter,
    VerifiedWebhook,
    require_mapping,
    to_minor_units,
)
from payments.exceptions import MalformedWebhook
from payments.state_machines import PaymentStatus, Provider

SUCCESSFUL_TRANSACTION = "SUCCESSFUL_TRANSACTION"
FAILED_TRANSACTION = "FAILED_TRANSACTION"
REVERSED_TRANSACTION = "REVERSED_TRANSACTION"

# Event types that report a collection outcome
TRANSACTION_EVENTS = frozenset(
    {SUCCESSFUL_TRANSACTION, FAILED_TRANSACTION, REVERSED_TRANSACTION}
)

KOBO_PER_NAIRA = 100


class MonnifyAdapter(ProviderAdapter):
    """
    Adapter for Monnify webhooks.

    Status vocabulary:
        PAID, OVERPAID -> SUCCESS
        FAILED, DECLINED, EXPIRED, ABANDONED, REVERSED -> FAILED
        PENDING, PARTIALLY_PAID -> PENDING
    """

    provider = Provider.MONNIFY
    signature_header = "monnify-signature"
    secret_setting = "MONNIFY_CLIENT_SECRET"
    status_map = {
        "PAID": PaymentStatus.SUCCESS,
        "OVERPAID": PaymentStatus.SUCCESS,
        "FAILED": PaymentStatus.FAILED,
        "DECLINED": PaymentStatus.FAILED,
        "EXPIRED": PaymentStatus.FAILED,
        "ABANDONED": PaymentStatus.FAILED,
        "REVERSED": PaymentStatus.FAILED,
        "PENDING": PaymentStatus.PENDING,
        "PARTIALLY_PAID": PaymentStatus.PENDING,
    }

    @classmethod
    def normalize_status(cls, provider_status: str) -> str:
        return provider_status.strip().upper()

    @classmethod
    def parse(cls, payload: dict[str, Any]) -> VerifiedWebhook:
        """
        Parse a Monnify webhook body.

        Event id is ``"{eventType}:{transactionReference}"``. The business
        reference is the paymentReference the checkout was created with.

        Raises:
            MalformedWebhook: If eventType, eventData or
                transactionReference are missing
        """
        event_type = payload.get("eventType") if isinstance(payload, dict) else None
        if not event_type or not isinstance(event_type, str):
            raise MalformedWebhook("Monnify webhook has no eventType")
        data = require_mapping(payload, "eventData")

        transaction_reference = data.get("transactionReference")
        if not transaction_reference:
            raise MalformedWebhook(
                "Monnify webhook has no transactionReference",
                details={"eventType": event_type},
            )
        reference = str(data.get("paymentReference") or transaction_reference)

        outcome = None
        if event_type in TRANSACTION_EVENTS:
            outcome = cls.parse_outcome(data, reference)

        return VerifiedWebhook(
            provider=cls.provider,
            event_id=f"{event_type}:{transaction_reference}",
            event_type=event_type,
            reference=reference,
            payload=payload,
            outcome=outcome,
        )

    @classmethod
    def parse_outcome(cls, data: dict[str, Any], reference: str) -> PaymentOutcome:
        amount = data.get("amountPaid")
        if amount is None:
            amount = data.get("totalPayment")
        provider_status = str(data.get("paymentStatus") or "")
        status, is_unrecognized = cls.decode_status(provider_status)

        return PaymentOutcome(
            reference=reference,
            amount_paid=to_minor_units(amount, scale=KOBO_PER_NAIRA),
            currency=str(data.get("currency") or "NGN").upper(),
            provider_status=provider_status,
            status=status,
            is_unrecognized=is_unrecognized,
            provider=cls.provider,
        )
