"""
Ledger-specific exceptions for wallet operations.

This module provides a hierarchy of exceptions for wallet ledger operations,
inheriting from the core exception base class for API consistency.

Exception Hierarchy:
    LedgerError (base)
    ├── WalletNotFound - Wallet lookup failures
    ├── InactiveWallet - Mutations on a wallet that is not ACTIVE
    ├── InsufficientFunds - Debit larger than the available balance
    └── ReferenceConflict - Reference reused for a different entry

Usage:
    from payments.ledger.exceptions import InsufficientFunds, WalletNotFound

    if wallet.available_balance < amount:
        raise InsufficientFunds(wallet.user_id, required=amount, available=wallet.available_balance)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    import uuid
    from typing import Any


class LedgerError(BaseApplicationError):
    """
    Base exception for all ledger operations.

    Ledger errors are domain errors: they are surfaced to the caller of
    refund and payout flows and are never retried automatically.

    Example:
        try:
            WalletLedger.debit(user_id, amount, reference)
        except LedgerError as e:
            logger.error(f"Ledger operation failed: {e}")
            return Response(e.to_dict(), status=e.http_status)
    """

    default_error_code: str = "LEDGER_ERROR"
    is_retryable: bool = False


class WalletNotFound(LedgerError):
    """
    Raised when a user has no wallet.

    Example:
        wallet = Wallet.objects.filter(user_id=user_id).first()
        if not wallet:
            raise WalletNotFound(
                f"Wallet for user {user_id} not found",
                details={"user_id": str(user_id)}
            )
    """

    default_error_code: str = "WALLET_NOT_FOUND"
    http_status: int = 404


class InactiveWallet(LedgerError):
    """
    Raised when mutating a wallet whose status is not ACTIVE.

    Suspended, closed and pending wallets keep their history but reject
    credits and debits.
    """

    default_error_code: str = "INACTIVE_WALLET"
    http_status: int = 409


class InsufficientFunds(LedgerError):
    """
    Raised when a debit exceeds the wallet's available balance.

    Stores the user ID, required amount, and available balance
    for detailed error reporting. Nothing is written when this is raised.

    Attributes:
        user_id: Owner of the wallet with insufficient funds
        required: The amount (minor units) that was required
        available: The amount (minor units) that was available

    Example:
        if wallet.available_balance < amount:
            raise InsufficientFunds(
                wallet.user_id,
                required=amount,
                available=wallet.available_balance,
            )
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"
    http_status: int = 422

    def __init__(
        self,
        user_id: uuid.UUID,
        required: int,
        available: int,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize with wallet owner and amounts.

        Args:
            user_id: Owner of the wallet with insufficient funds
            required: Amount required in minor units
            available: Amount available in minor units
            error_code: Optional custom error code
            details: Optional additional error context
        """
        self.user_id = user_id
        self.required = required
        self.available = available

        message = (
            f"Wallet for user {user_id} has insufficient funds: "
            f"required {required}, available {available}"
        )

        full_details = {
            "user_id": str(user_id),
            "required": required,
            "available": available,
        }
        if details:
            full_details.update(details)

        super().__init__(
            message=message,
            error_code=error_code,
            details=full_details,
        )


class ReferenceConflict(LedgerError):
    """
    Raised when a reference is reused for a different ledger entry.

    A replay must target the same wallet with the same type and amount
    to return the original Transaction. Anything else is a collision and
    nothing is written.
    """

    default_error_code: str = "REFERENCE_CONFLICT"
    http_status: int = 409
