"""
Payout service for wallet withdrawals to a bank account.

A payout is two steps around an external bank transfer:

    request_payout  -> debit the wallet (WITHDRAWAL, QKY-WDR-... reference)
                       and send payout_requested for the transfer collaborator
    fail_payout     -> the transfer failed: credit the amount back with a
                       linked ``<reference>-REV`` row and mark the debit FAILED

The debit commits before the transfer is attempted, so funds are held while
money is leaving the system. If the wallet cannot cover the amount,
InsufficientFunds reaches the caller and nothing is persisted.

Usage:
    from payments.services import PayoutService

    txn = PayoutService.request_payout(merchant_id, 10000, destination={"bank_code": "058"})

    # Later, when the transfer collaborator reports a failure
    PayoutService.fail_payout(txn.reference, reason="Account name mismatch")
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from django.utils import timezone

from core.exceptions import ValidationError
from core.services import BaseService
from payments.exceptions import PayoutError
from payments.ledger import Transaction, wallet_ledger
from payments.references import payout_reversal_reference, withdrawal_reference
from payments.signals import payout_failed, payout_requested, send_on_commit
from payments.state_machines import TransactionCategory, TransactionStatus, TransactionType

if TYPE_CHECKING:
    import uuid


class PayoutService(BaseService):
    """
    Debits wallets for withdrawals and credits failed transfers back.

    All methods are classmethods - no instance state is maintained.
    """

    @classmethod
    def request_payout(
        cls,
        user_id: uuid.UUID,
        amount: int,
        destination: dict[str, Any] | None = None,
        narration: str = "",
    ) -> Transaction:
        """
        Debit a wallet for a withdrawal.

        Args:
            user_id: Owner of the wallet
            amount: Amount in minor units
            destination: Bank details passed through to the transfer
                collaborator and stored on the debit
            narration: Description for the debit and the transfer

        Returns:
            The WITHDRAWAL debit Transaction

        Raises:
            ValidationError: If amount is not positive
            WalletNotFound: If the user has no wallet
            InactiveWallet: If the wallet is not ACTIVE
            InsufficientFunds: If the available balance is below amount;
                nothing is persisted
        """
        if amount <= 0:
            raise ValidationError(
                "Payout amount must be greater than 0",
                error_code="INVALID_AMOUNT",
                details={"amount": amount},
            )

        destination = dict(destination or {})
        with cls.atomic():
            txn = wallet_ledger.debit(
                user_id,
                amount,
                withdrawal_reference(),
                {"destination": destination},
                category=TransactionCategory.WITHDRAWAL,
                description=narration or "Wallet withdrawal",
            )

        cls.get_logger().info(
            "Payout requested",
            extra={
                "user_id": str(user_id),
                "reference": txn.reference,
                "amount": amount,
                "balance_after": txn.balance_after,
            },
        )
        send_on_commit(
            payout_requested,
            sender=Transaction,
            transaction=txn,
            destination=destination,
        )
        return txn

    @classmethod
    def fail_payout(cls, reference: str, reason: str = "") -> Transaction:
        """
        Credit a failed withdrawal back to its wallet.

        Idempotent: a payout that was already failed returns its existing
        reversal and no signal is sent again.

        Args:
            reference: Reference of the WITHDRAWAL debit
            reason: Why the transfer failed

        Returns:
            The reversal credit Transaction

        Raises:
            PayoutError: If no withdrawal debit has this reference
            InactiveWallet: If the wallet is no longer ACTIVE
        """
        log = cls.get_logger()
        reason = reason or "Transfer failed"

        with cls.atomic():
            original = (
                Transaction.objects.select_for_update()
                .filter(
                    reference=reference,
                    type=TransactionType.DEBIT,
                    category=TransactionCategory.WITHDRAWAL,
                )
                .first()
            )
            if original is None:
                raise PayoutError(
                    f"Withdrawal {reference} not found",
                    error_code="PAYOUT_NOT_FOUND",
                    details={"reference": reference},
                )

            already_failed = original.status == TransactionStatus.FAILED
            reversal = wallet_ledger.credit(
                original.user_id,
                original.amount,
                payout_reversal_reference(original.reference),
                {"originalReference": original.reference, "reason": reason},
                category=TransactionCategory.WITHDRAWAL,
                description=f"Reversal for failed payout {original.reference}",
                related_transaction_id=original.id,
            )
            if already_failed:
                log.info(
                    "Payout already failed",
                    extra={"reference": original.reference, "reversal": reversal.reference},
                )
                return reversal

            # Ledger rows are immutable through save(); only the status moves
            Transaction.objects.filter(id=original.id).update(
                status=TransactionStatus.FAILED,
                updated_at=timezone.now(),
            )
            original.status = TransactionStatus.FAILED

        log.warning(
            "Payout failed and was credited back",
            extra={
                "user_id": str(original.user_id),
                "reference": original.reference,
                "reversal": reversal.reference,
                "amount": original.amount,
                "reason": reason,
            },
        )
        send_on_commit(
            payout_failed,
            sender=Transaction,
            transaction=original,
            reversal=reversal,
            reason=reason,
        )
        return reversal
