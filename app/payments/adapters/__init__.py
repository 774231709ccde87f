"""
Payment provider adapters.

This module provides one adapter per payment provider that delivers
webhooks. Adapters verify signatures, decode provider status vocabularies
and parse payloads into provider-neutral types. They never touch the
database.

Usage:
    from payments.adapters import get_adapter

    adapter = get_adapter("paystack")
    signature = request.headers.get(adapter.signature_header)
    if adapter.verify_signature(request.body, signature):
        webhook = adapter.parse(json.loads(request.body))
"""

from __future__ import annotations

from core.exceptions import NotFoundError
from payments.adapters.base import (
    PaymentOutcome,
    ProviderAdapter,
    SplitInfo,
    VerifiedWebhook,
)
from payments.adapters.monnify import MonnifyAdapter
from payments.adapters.paystack import PaystackAdapter
from payments.state_machines import Provider

ADAPTERS: dict[str, type[ProviderAdapter]] = {
    Provider.PAYSTACK: PaystackAdapter,
    Provider.MONNIFY: MonnifyAdapter,
}


def get_adapter(provider: str) -> type[ProviderAdapter]:
    """
    Look up the adapter for a provider name (case-insensitive).

    Raises:
        NotFoundError: If the provider is not supported
    """
    adapter = ADAPTERS.get((provider or "").upper())
    if adapter is None:
        raise NotFoundError(
            f"Unsupported payment provider: {provider}",
            error_code="UNKNOWN_PROVIDER",
            details={"provider": provider},
        )
    return adapter


__all__ = [
    "ADAPTERS",
    "get_adapter",
    "MonnifyAdapter",
    "PaymentOutcome",
    "PaystackAdapter",
    "ProviderAdapter",
    "SplitInfo",
    "VerifiedWebhook",
]
