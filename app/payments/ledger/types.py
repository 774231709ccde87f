"""
Data types for wallet ledger operations.

This module defines dataclasses used throughout the ledger system
for type-safe data transfer between layers.

Types:
    WalletBalance: Snapshot of a wallet's three balances
    LedgerEntryParams: Parameters for one wallet mutation

Usage:
    from payments.ledger.types import LedgerEntryParams

    params = LedgerEntryParams(user_id=merchant_id, amount=4900, ...)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class WalletBalance:
    """Point-in-time view of a wallet's balances."""

    user_id: uuid.UUID
    available: int
    ledger: int
    pending: int
    currency: str


@dataclass
class LedgerEntryParams:
    """
    Parameters for one wallet mutation.

    Required Attributes:
        user_id: Owner of the wallet to mutate
        amount: Amount in minor units (must be positive)
        reference: Unique reference; doubles as the idempotency key
        type: TransactionType value (credit / debit / reversal)
        category: TransactionCategory value

    Optional Attributes:
        description: Human-readable description
        metadata: Arbitrary JSON-serializable data
        order_id: Related order UUID
        settlement_id: Related settlement UUID
        related_transaction_id: Transaction being reversed
        is_split: Record the entry without moving balances. Only
            WalletLedger.record_split sets this.

    Example:
        params = LedgerEntryParams(
            user_id=merchant_id,
            amount=4900,
            reference="STL-4F1A...",
            type=TransactionType.CREDIT,
            category=TransactionCategory.SETTLEMENT,
        )
    """

    # Required fields
    user_id: uuid.UUID
    amount: int
    reference: str
    type: str
    category: str

    # Optional fields
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    order_id: uuid.UUID | None = None
    settlement_id: uuid.UUID | None = None
    related_transaction_id: uuid.UUID | None = None
    is_split: bool = False

    def __post_init__(self) -> None:
        """Validate params after initialization."""
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if not self.reference:
            raise ValueError("reference is required")
