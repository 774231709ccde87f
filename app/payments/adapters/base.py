"""
Shared types and behaviour for payment provider adapters.

A provider adapter knows three things about one provider:
- How its webhooks are signed (header name, secret setting, HMAC-SHA512)
- Its payment status vocabulary and how it maps to PaymentStatus
- Where the reference, amount, currency and split data sit in its payload

Adapters never touch the database. They turn a signed raw body into a
VerifiedWebhook that the webhook store and settlement service consume.

Usage:
    from payments.adapters import get_adapter

    adapter = get_adapter("paystack")
    if not adapter.verify_signature(raw_body, signature):
        raise InvalidSignature("Signature mismatch")
    webhook = adapter.parse(json.loads(raw_body))
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from django.conf import settings

from payments.exceptions import MalformedWebhook
from payments.state_machines import PaymentStatus

if TYPE_CHECKING:
    from collections.abc import Mapping


# =============================================================================
# Data Types
# =============================================================================


@dataclass(frozen=True)
class SplitInfo:
    """
    Split payment routing reported by the provider.

    Attributes:
        subaccount_code: Provider subaccount that received the merchant share
        subaccount_share: Amount routed to the subaccount (minor units)
        platform_share: Amount kept by the platform (minor units)
    """

    subaccount_code: str
    subaccount_share: int = 0
    platform_share: int = 0


@dataclass
class PaymentOutcome:
    """
    Decoded payment result carried by a charge webhook.

    Attributes:
        reference: Payment reference the order was checked out with
        amount_paid: Amount the customer paid (minor units)
        currency: ISO 4217 currency code
        provider_status: Status string exactly as the provider sent it
        status: PaymentStatus (SUCCESS, FAILED or PENDING)
        split_info: Present when the provider split the payment
        is_unrecognized: True when provider_status is outside the known vocabulary
        provider: Provider that reported the outcome
    """

    reference: str
    amount_paid: int
    currency: str
    provider_status: str
    status: str
    split_info: SplitInfo | None = None
    is_unrecognized: bool = False
    provider: str = ""

    @property
    def is_success(self) -> bool:
        return self.status == PaymentStatus.SUCCESS

    @property
    def is_failed(self) -> bool:
        return self.status == PaymentStatus.FAILED


@dataclass
class VerifiedWebhook:
    """
    A webhook whose signature checked out, parsed into its parts.

    Attributes:
        provider: Provider that sent the webhook
        event_id: Provider event identity, unique per provider
        event_type: Provider event type (e.g. 'charge.success')
        reference: Business reference for correlation
        payload: Parsed JSON body
        outcome: Payment outcome for charge events, None for other events
    """

    provider: str
    event_id: str
    event_type: str
    reference: str
    payload: dict[str, Any] = field(default_factory=dict)
    outcome: PaymentOutcome | None = None


# =============================================================================
# Parsing Helpers
# =============================================================================


def to_minor_units(value: Any, scale: int = 1) -> int:
    """
    Convert a provider amount to an integer number of minor units.

    Args:
        value: int, float, numeric string or Decimal from the payload
        scale: Multiplier applied before truncation (100 for amounts in
            major units)

    Returns:
        Amount in minor units

    Raises:
        MalformedWebhook: If the value is missing or not numeric

    Example:
        to_minor_units(500000)          # 500000 (Paystack, already kobo)
        to_minor_units("5000.00", 100)  # 500000 (Monnify, naira)
    """
    if value is None or isinstance(value, bool):
        raise MalformedWebhook("Webhook amount is missing", details={"value": value})
    try:
        amount = Decimal(str(value)) * scale
    except (InvalidOperation, ValueError):
        raise MalformedWebhook(
            "Webhook amount is not numeric",
            details={"value": str(value)},
        )
    if amount < 0:
        raise MalformedWebhook("Webhook amount is negative", details={"value": str(value)})
    return int(amount)


def require_mapping(payload: Any, key: str) -> Mapping[str, Any]:
    """Return payload[key] when it is a JSON object, else raise MalformedWebhook."""
    value = payload.get(key) if isinstance(payload, dict) else None
    if not isinstance(value, dict):
        raise MalformedWebhook(
            f"Webhook payload has no '{key}' object",
            details={"missing": key},
        )
    return value


# =============================================================================
# Provider Adapter Base
# =============================================================================


class ProviderAdapter:
    """
    Base class for provider adapters.

    All methods are classmethods - no instance state is maintained.
    Subclasses set the class attributes and implement parse().

    Attributes:
        provider: Provider enum value
        signature_header: HTTP header carrying the hex HMAC-SHA512 signature
        secret_setting: Django setting holding the signing secret
        status_map: Normalized provider status -> PaymentStatus
    """

    provider: str = ""
    signature_header: str = ""
    secret_setting: str = ""
    status_map: dict[str, str] = {}

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Signature
    # =========================================================================

    @classmethod
    def get_secret(cls) -> str:
        return getattr(settings, cls.secret_setting, "") or ""

    @classmethod
    def compute_signature(cls, raw_body: bytes, secret: str | None = None) -> str:
        """
        Compute the hex HMAC-SHA512 of a raw body.

        Args:
            raw_body: Exact request body bytes
            secret: Signing secret (defaults to the configured secret)

        Returns:
            Lowercase hex digest
        """
        key = (secret if secret is not None else cls.get_secret()).encode()
        return hmac.new(key, raw_body, hashlib.sha512).hexdigest()

    @classmethod
    def verify_signature(cls, raw_body: bytes, signature: str | None) -> bool:
        """
        Check a webhook signature in constant time.

        Hex case is ignored. A missing signature or an unconfigured secret
        never verifies.

        Args:
            raw_body: Exact request body bytes
            signature: Value of the provider signature header

        Returns:
            True if the signature matches
        """
        if not signature:
            return False

        secret = cls.get_secret()
        if not secret:
            cls.get_logger().error(
                "Webhook secret is not configured",
                extra={"provider": cls.provider, "setting": cls.secret_setting},
            )
            return False

        expected = cls.compute_signature(raw_body, secret)
        return hmac.compare_digest(expected, signature.strip().lower())

    # =========================================================================
    # Status Decoding
    # =========================================================================

    @classmethod
    def normalize_status(cls, provider_status: str) -> str:
        return provider_status.strip()

    @classmethod
    def decode_status(cls, provider_status: str | None) -> tuple[str, bool]:
        """
        Map a provider status to PaymentStatus.

        Unknown statuses decode to PENDING and are flagged so they can be
        reviewed; they never decode to SUCCESS.

        Args:
            provider_status: Status string from the payload

        Returns:
            Tuple of (PaymentStatus value, is_unrecognized)
        """
        normalized = cls.normalize_status(provider_status or "")
        status = cls.status_map.get(normalized)
        if status is None:
            cls.get_logger().warning(
                "Unrecognized provider payment status",
                extra={"provider": cls.provider, "provider_status": provider_status},
            )
            return PaymentStatus.PENDING, True
        return status, False

    # =========================================================================
    # Payload Parsing
    # =========================================================================

    @classmethod
    def parse(cls, payload: dict[str, Any]) -> VerifiedWebhook:
        """
        Parse a verified payload.

        Raises:
            MalformedWebhook: If required fields are missing
        """
        raise NotImplementedError


__all__ = [
    "SplitInfo",
    "PaymentOutcome",
    "VerifiedWebhook",
    "ProviderAdapter",
    "to_minor_units",
    "require_mapping",
]
