"""
Wallet Ledger - authoritative per-user balances with an audit trail.

Every balance mutation is paired with exactly one immutable Transaction row
written in the same database transaction.

Public API:
    Models:
        Wallet - One per user, available/ledger/pending balances
        Transaction - Immutable ledger entry

    Service:
        wallet_ledger - Singleton instance of WalletLedger
        WalletLedger - Class with all ledger operations

    Types:
        WalletBalance - Balance snapshot
        LedgerEntryParams - Parameters for one mutation

    Exceptions:
        LedgerError - Base exception for ledger operations
        WalletNotFound - Wallet lookup failures
        InactiveWallet - Mutation of a non-active wallet
        InsufficientFunds - Debit larger than available balance
        ReferenceConflict - Reference reused for a different entry

Usage:
    from payments.ledger import WalletLedger, InsufficientFunds

    WalletLedger.get_or_create_wallet(merchant_id)
    WalletLedger.credit(merchant_id, 4900, "STL-4F1A...")

    try:
        WalletLedger.debit(merchant_id, 10000, "QKY-WDR-...")
    except InsufficientFunds as e:
        print(f"Need {e.required}, have {e.available}")
"""

from .exceptions import (
    InactiveWallet,
    InsufficientFunds,
    LedgerError,
    ReferenceConflict,
    WalletNotFound,
)
from .models import Transaction, Wallet
from .services import WalletLedger, wallet_ledger
from .types import LedgerEntryParams, WalletBalance

__all__ = [
    # Models
    "Wallet",
    "Transaction",
    # Service
    "wallet_ledger",
    "WalletLedger",
    # Types
    "WalletBalance",
    "LedgerEntryParams",
    # Exceptions
    "LedgerError",
    "WalletNotFound",
    "InactiveWallet",
    "InsufficientFunds",
    "ReferenceConflict",
]
