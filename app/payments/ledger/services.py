"""
Wallet ledger service for balance mutations.

This module provides the WalletLedger class which encapsulates all
business logic for wallet operations. All wallet writes should go
through this service to ensure proper locking, validation and audit rows.

Usage:
    from payments.ledger.services import WalletLedger, wallet_ledger

    WalletLedger.get_or_create_wallet(merchant_id)
    txn = WalletLedger.credit(merchant_id, 4900, "STL-4F1A...")
    balance = wallet_ledger.get_balance(merchant_id)
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from payments.state_machines import TransactionCategory, TransactionType

from .exceptions import InactiveWallet, InsufficientFunds, ReferenceConflict, WalletNotFound
from .models import DEFAULT_CURRENCY, OUTFLOW_TYPES, Transaction, Wallet
from .types import LedgerEntryParams, WalletBalance

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class WalletLedger:
    """
    Service class for wallet ledger operations.

    Key features:
    - Row lock (SELECT ... FOR UPDATE) on the wallet for every mutation
    - Idempotency by transaction reference (safe to retry)
    - Balance validation before debits
    - Wallet update and Transaction row written in one atomic unit

    All methods are static - no instance state is maintained.
    """

    @staticmethod
    def get_or_create_wallet(
        user_id: uuid.UUID,
        currency: str = DEFAULT_CURRENCY,
    ) -> Wallet:
        """
        Get the user's wallet, creating an empty active one if missing.

        Args:
            user_id: Owner of the wallet
            currency: ISO 4217 currency code for a new wallet

        Returns:
            The existing or newly created Wallet
        """
        wallet, created = Wallet.objects.get_or_create(
            user_id=user_id,
            defaults={"currency": currency},
        )
        if created:
            logger.info("Wallet created", extra={"user_id": str(user_id)})
        return wallet

    @staticmethod
    def get_wallet(user_id: uuid.UUID) -> Wallet:
        """
        Get wallet by owner.

        Raises:
            WalletNotFound: If the user has no wallet
        """
        try:
            return Wallet.objects.get(user_id=user_id)
        except Wallet.DoesNotExist:
            raise WalletNotFound(
                f"Wallet for user {user_id} not found",
                details={"user_id": str(user_id)},
            )

    @staticmethod
    def get_balance(user_id: uuid.UUID) -> WalletBalance:
        """
        Get current balances for a user's wallet.

        Raises:
            WalletNotFound: If the user has no wallet
        """
        wallet = WalletLedger.get_wallet(user_id)
        return WalletBalance(
            user_id=wallet.user_id,
            available=wallet.available_balance,
            ledger=wallet.ledger_balance,
            pending=wallet.pending_balance,
            currency=wallet.currency,
        )

    @staticmethod
    def history(
        user_id: uuid.UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Transaction]:
        """
        Get the user's transactions, newest first.

        Args:
            user_id: Wallet owner
            limit: Maximum number of rows (default: 50)
            offset: Number of rows to skip (default: 0)
        """
        return list(
            Transaction.objects.filter(user_id=user_id).order_by("-created_at")[
                offset : offset + limit
            ]
        )

    @staticmethod
    def credit(
        user_id: uuid.UUID,
        amount: int,
        reference: str,
        metadata: dict[str, Any] | None = None,
        *,
        category: str = TransactionCategory.SETTLEMENT,
        description: str = "",
        order_id: uuid.UUID | None = None,
        settlement_id: uuid.UUID | None = None,
        related_transaction_id: uuid.UUID | None = None,
    ) -> Transaction:
        """
        Add funds to a wallet.

        Idempotent - a second call with the same reference, wallet and
        amount returns the first Transaction without changing the balance.

        The wallet must already exist; this never creates one. Callers
        that may be first to touch a user call get_or_create_wallet
        beforehand, outside the locked section.

        Args:
            user_id: Owner of the wallet to credit
            amount: Amount in minor units (must be positive)
            reference: Unique transaction reference
            metadata: Extra data stored on the Transaction. An ``isSplit``
                key is dropped; use record_split for split entries.

        Returns:
            The created or existing Transaction

        Raises:
            WalletNotFound: If the user has no wallet
            InactiveWallet: If the wallet is not ACTIVE
            ReferenceConflict: If the reference belongs to a different entry
        """
        return WalletLedger.record_entry(
            LedgerEntryParams(
                user_id=user_id,
                amount=amount,
                reference=reference,
                type=TransactionType.CREDIT,
                category=category,
                description=description,
                metadata=_entry_metadata(metadata),
                order_id=order_id,
                settlement_id=settlement_id,
                related_transaction_id=related_transaction_id,
            )
        )

    @staticmethod
    def debit(
        user_id: uuid.UUID,
        amount: int,
        reference: str,
        metadata: dict[str, Any] | None = None,
        *,
        transaction_type: str = TransactionType.DEBIT,
        category: str = TransactionCategory.WITHDRAWAL,
        description: str = "",
        order_id: uuid.UUID | None = None,
        settlement_id: uuid.UUID | None = None,
        related_transaction_id: uuid.UUID | None = None,
    ) -> Transaction:
        """
        Remove funds from a wallet.

        Use ``transaction_type=TransactionType.REVERSAL`` with
        ``related_transaction_id`` to reverse an earlier credit. Like
        credit(), the wallet must already exist.

        Returns:
            The created or existing Transaction

        Raises:
            WalletNotFound: If the user has no wallet
            InactiveWallet: If the wallet is not ACTIVE
            InsufficientFunds: If available balance is below amount;
                nothing is written
            ReferenceConflict: If the reference belongs to a different entry
        """
        if transaction_type not in OUTFLOW_TYPES:
            raise ValueError(f"debit() cannot write a {transaction_type!r} entry")

        return WalletLedger.record_entry(
            LedgerEntryParams(
                user_id=user_id,
                amount=amount,
                reference=reference,
                type=transaction_type,
                category=category,
                description=description,
                metadata=_entry_metadata(metadata),
                order_id=order_id,
                settlement_id=settlement_id,
                related_transaction_id=related_transaction_id,
            )
        )

    @staticmethod
    def record_split(
        user_id: uuid.UUID,
        amount: int,
        reference: str,
        metadata: dict[str, Any] | None = None,
        *,
        order_id: uuid.UUID | None = None,
        settlement_id: uuid.UUID | None = None,
    ) -> Transaction:
        """
        Record a subaccount split without touching balances.

        The provider already delivered the funds to the merchant's
        subaccount, so the row has balance_before == balance_after and
        ``metadata.isSplit = True``. Inactive wallets are accepted since
        no balance changes.

        Returns:
            The created or existing Transaction
        """
        metadata = dict(metadata or {})
        metadata["isSplit"] = True
        return WalletLedger.record_entry(
            LedgerEntryParams(
                user_id=user_id,
                amount=amount,
                reference=reference,
                type=TransactionType.CREDIT,
                category=TransactionCategory.SETTLEMENT,
                description="Split payment settled to merchant subaccount",
                metadata=metadata,
                order_id=order_id,
                settlement_id=settlement_id,
                is_split=True,
            )
        )

    @staticmethod
    def record_entry(params: LedgerEntryParams) -> Transaction:
        """
        Apply one ledger entry to a wallet.

        Steps, all inside one atomic block:
        1. Lock the wallet row
        2. Return the existing Transaction if the reference was used for
           the same wallet, type and amount
        3. Validate wallet status and available balance
        4. Write the Transaction, then the new wallet balances

        Raises:
            WalletNotFound: If the user has no wallet
            InactiveWallet: If the wallet is not ACTIVE
            InsufficientFunds: If an outflow exceeds the available balance
            ReferenceConflict: If the reference belongs to a different entry
        """
        is_split = params.is_split
        is_outflow = params.type in OUTFLOW_TYPES

        with transaction.atomic():
            try:
                wallet = Wallet.objects.select_for_update().get(user_id=params.user_id)
            except Wallet.DoesNotExist:
                raise WalletNotFound(
                    f"Wallet for user {params.user_id} not found",
                    details={"user_id": str(params.user_id)},
                )

            # Idempotency check must happen under the lock and before
            # validation so a replay never fails on a since-spent balance
            existing = Transaction.objects.filter(reference=params.reference).first()
            if existing is not None:
                _check_replay(existing, wallet, params)
                logger.info(
                    "Ledger entry already applied",
                    extra={"reference": params.reference, "transaction_id": str(existing.id)},
                )
                return existing

            if not is_split and not wallet.is_active:
                raise InactiveWallet(
                    f"Wallet for user {wallet.user_id} is {wallet.status}",
                    details={"user_id": str(wallet.user_id), "status": wallet.status},
                )

            balance_before = wallet.available_balance
            if is_split:
                balance_after = balance_before
            elif is_outflow:
                if balance_before < params.amount:
                    raise InsufficientFunds(
                        wallet.user_id,
                        required=params.amount,
                        available=balance_before,
                    )
                balance_after = balance_before - params.amount
            else:
                balance_after = balance_before + params.amount

            try:
                with transaction.atomic():
                    txn = Transaction.objects.create(
                        wallet=wallet,
                        user_id=wallet.user_id,
                        reference=params.reference,
                        type=params.type,
                        category=params.category,
                        amount=params.amount,
                        currency=wallet.currency,
                        balance_before=balance_before,
                        balance_after=balance_after,
                        description=params.description,
                        metadata=params.metadata,
                        order_id=params.order_id,
                        settlement_id=params.settlement_id,
                        related_transaction_id=params.related_transaction_id,
                    )
            except IntegrityError:
                # Another process wrote the same reference first
                existing = Transaction.objects.get(reference=params.reference)
                _check_replay(existing, wallet, params)
                return existing

            if balance_after != balance_before:
                delta = balance_after - balance_before
                wallet.available_balance = balance_after
                wallet.ledger_balance += delta
                wallet.save(update_fields=["available_balance", "ledger_balance", "updated_at"])

        logger.info(
            "Ledger entry applied",
            extra={
                "reference": txn.reference,
                "user_id": str(txn.user_id),
                "type": txn.type,
                "amount": txn.amount,
                "balance_before": balance_before,
                "balance_after": balance_after,
                "is_split": is_split,
            },
        )
        return txn


def _entry_metadata(metadata: dict[str, Any] | None) -> dict[str, Any]:
    """Copy caller metadata; the split marker is set only by record_split."""
    metadata = dict(metadata or {})
    metadata.pop("isSplit", None)
    return metadata


def _check_replay(existing: Transaction, wallet: Wallet, params: LedgerEntryParams) -> None:
    """Raise ReferenceConflict unless ``params`` repeats ``existing``."""
    mismatches = {}
    if existing.wallet_id != wallet.id:
        mismatches["user_id"] = str(existing.user_id)
    if existing.type != params.type:
        mismatches["type"] = existing.type
    if existing.amount != params.amount:
        mismatches["amount"] = existing.amount
    if not mismatches:
        return

    logger.warning(
        "Ledger reference reused for a different entry",
        extra={
            "reference": params.reference,
            "transaction_id": str(existing.id),
            "user_id": str(params.user_id),
        },
    )
    raise ReferenceConflict(
        f"Reference {params.reference} already used by transaction {existing.id}",
        details={"reference": params.reference, "existing": mismatches},
    )


# Singleton instance for convenience
# Usage: from payments.ledger.services import wallet_ledger
wallet_ledger = WalletLedger()
