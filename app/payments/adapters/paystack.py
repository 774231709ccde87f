"""
Paystack webhook adapter.

Paystack signs the raw body with HMAC-SHA512 keyed by the account secret key
and sends the hex digest in ``x-paystack-signature``. Amounts are already in
kobo.

Payload shape (charge events):
    {
        "event": "charge.success",
        "data": {
            "id": 302961,
            "reference": "QKY-ORD-1767790000000-A1B2",
            "amount": 500000,
            "currency": "NGN",
            "status": "success",
            "subaccount": {"subaccount_code": "ACCT_x", "split_share": 475000}
        }
    }

Refund events (refund.processed, refund.failed) carry the original charge in
``data.transaction_reference``.
Transfer events (transfer.failed, transfer.reversed) carry the withdrawal
reference in ``data.reference``.
"""

from __future__ import annotations

from typing import Any

from payments.adapters.base import (
    PaymentOutcome,
    ProviderAdapter,
    SplitInfo,
    VerifiedWebhook,
    require_mapping,
    to_minor_units,
)
from payments.exceptions import MalformedWebhook
from payments.state_machines import PaymentStatus, Provider

CHARGE_SUCCESS = "charge.success"
REFUND_PROCESSED = "refund.processed"
REFUND_FAILED = "refund.failed"

REFUND_EVENTS = frozenset({REFUND_PROCESSED, REFUND_FAILED, "refund.pending"})

TRANSFER_FAILED = "transfer.failed"
TRANSFER_REVERSED = "transfer.reversed"


class PaystackAdapter(ProviderAdapter):
    """
    Adapter for Paystack webhooks.

    Status vocabulary:
        success -> SUCCESS
        failed, abandoned, reversed -> FAILED
        pending, ongoing, processing, queued -> PENDING
    """

    provider = Provider.PAYSTACK
    signature_header = "x-paystack-signature"
    secret_setting = "PAYSTACK_SECRET_KEY"
    status_map = {
        "success": PaymentStatus.SUCCESS,
        "failed": PaymentStatus.FAILED,
        "abandoned": PaymentStatus.FAILED,
        "reversed": PaymentStatus.FAILED,
        "pending": PaymentStatus.PENDING,
        "ongoing": PaymentStatus.PENDING,
        "processing": PaymentStatus.PENDING,
        "queued": PaymentStatus.PENDING,
    }

    @classmethod
    def normalize_status(cls, provider_status: str) -> str:
        return provider_status.strip().lower()

    @classmethod
    def parse(cls, payload: dict[str, Any]) -> VerifiedWebhook:
        """
        Parse a Paystack webhook body.

        Event id is ``"{event}:{data.id}"``, falling back to the reference
        when the provider omits data.id.

        Args:
            payload: Decoded JSON body

        Returns:
            VerifiedWebhook; outcome is set for charge events only

        Raises:
            MalformedWebhook: If event or data are missing, or a charge has
                no reference
        """
        event_type = payload.get("event") if isinstance(payload, dict) else None
        if not event_type or not isinstance(event_type, str):
            raise MalformedWebhook("Paystack webhook has no event type")
        data = require_mapping(payload, "data")

        if event_type in REFUND_EVENTS:
            reference = str(data.get("transaction_reference") or data.get("reference") or "")
        else:
            reference = str(data.get("reference") or "")

        object_id = data.get("id")
        identity = object_id if object_id not in (None, "") else reference
        if identity in (None, ""):
            raise MalformedWebhook(
                "Paystack webhook has neither data.id nor a reference",
                details={"event": event_type},
            )

        outcome = None
        if event_type.startswith("charge."):
            outcome = cls.parse_outcome(data)

        return VerifiedWebhook(
            provider=cls.provider,
            event_id=f"{event_type}:{identity}",
            event_type=event_type,
            reference=reference,
            payload=payload,
            outcome=outcome,
        )

    @classmethod
    def parse_outcome(cls, data: dict[str, Any]) -> PaymentOutcome:
        """Build a PaymentOutcome from the ``data`` object of a charge event."""
        reference = data.get("reference")
        if not reference:
            raise MalformedWebhook("Paystack charge has no reference")

        amount = to_minor_units(data.get("amount"))
        provider_status = str(data.get("status") or "")
        status, is_unrecognized = cls.decode_status(provider_status)

        return PaymentOutcome(
            reference=str(reference),
            amount_paid=amount,
            currency=str(data.get("currency") or "NGN").upper(),
            provider_status=provider_status,
            status=status,
            split_info=cls.parse_split(data, amount),
            is_unrecognized=is_unrecognized,
            provider=cls.provider,
        )

    @classmethod
    def parse_split(cls, data: dict[str, Any], amount: int) -> SplitInfo | None:
        """
        Extract split routing from ``data.subaccount``.

        The subaccount share comes from ``subaccount.split_share`` or, when
        absent, ``fees_split.subaccount``. Whatever is not routed to the
        subaccount is the platform share.
        """
        subaccount = data.get("subaccount")
        if not isinstance(subaccount, dict):
            return None
        code = subaccount.get("subaccount_code")
        if not code:
            return None

        share = subaccount.get("split_share")
        if share is None and isinstance(data.get("fees_split"), dict):
            share = data["fees_split"].get("subaccount")
        subaccount_share = to_minor_units(share) if share is not None else 0

        return SplitInfo(
            subaccount_code=str(code),
            subaccount_share=subaccount_share,
            platform_share=max(amount - subaccount_share, 0),
        )
