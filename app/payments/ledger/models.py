"""
Wallet ledger models.

This module defines the authoritative balance store:
- Wallet: One per user, holding available/ledger/pending balances
- Transaction: Immutable audit row written with every balance mutation

Every change to a wallet's balances is paired with exactly one Transaction
row in the same database transaction. The only Transaction that does not
move the balance is the subaccount split record (``metadata.isSplit``),
where funds were routed to the merchant by the provider.

Usage:
    from payments.ledger.models import Transaction, Wallet

    wallet = Wallet.objects.get(user_id=merchant_id)
    wallet.transactions.order_by("-created_at")[:20]
"""

from __future__ import annotations

from django.db import models
from django.db.models import F, Q

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import (
    TransactionCategory,
    TransactionStatus,
    TransactionType,
    WalletStatus,
)

DEFAULT_CURRENCY = "NGN"

# Transaction types that take money out of the wallet
OUTFLOW_TYPES = (TransactionType.DEBIT, TransactionType.REVERSAL)


class Wallet(UUIDPrimaryKeyMixin, BaseModel):
    """
    A user's wallet.

    Balances are integers in the currency's minor unit (kobo for NGN).
    The row is locked with SELECT ... FOR UPDATE for every mutation.

    Fields:
        id: UUID primary key (from UUIDPrimaryKeyMixin)
        user_id: Owner of the wallet (one wallet per user)
        available_balance: Spendable funds
        ledger_balance: Book balance, including funds not yet available
        pending_balance: Funds awaiting clearance
        currency: ISO 4217 currency code (default: 'NGN')
        status: Lifecycle status; only ACTIVE wallets can be mutated

    Constraints:
        - All balances non-negative (PositiveBigIntegerField + checks)
        - available_balance <= ledger_balance
    """

    user_id = models.UUIDField(
        unique=True,
        help_text="UUID of the user who owns this wallet",
    )
    available_balance = models.PositiveBigIntegerField(
        default=0,
        help_text="Spendable balance in minor units",
    )
    ledger_balance = models.PositiveBigIntegerField(
        default=0,
        help_text="Book balance in minor units",
    )
    pending_balance = models.PositiveBigIntegerField(
        default=0,
        help_text="Balance awaiting clearance in minor units",
    )
    currency = models.CharField(
        max_length=3,
        default=DEFAULT_CURRENCY,
        help_text="ISO 4217 currency code",
    )
    status = models.CharField(
        max_length=20,
        choices=WalletStatus.choices,
        default=WalletStatus.ACTIVE,
        db_index=True,
        help_text="Wallet lifecycle status",
    )

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(available_balance__lte=F("ledger_balance")),
                name="wallet_available_lte_ledger",
            ),
            models.CheckConstraint(
                condition=Q(available_balance__gte=0)
                & Q(ledger_balance__gte=0)
                & Q(pending_balance__gte=0),
                name="wallet_balances_non_negative",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation."""
        return f"Wallet({self.user_id}): {self.available_balance} {self.currency}"

    @property
    def is_active(self) -> bool:
        return self.status == WalletStatus.ACTIVE


class Transaction(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    An immutable ledger entry for one wallet mutation.

    Invariant:
        balance_after = balance_before + amount for CREDIT
        balance_after = balance_before - amount for DEBIT / REVERSAL
        balance_after = balance_before when metadata["isSplit"] is true

    Corrections never edit a row; a new REVERSAL row is written and linked
    through related_transaction.

    Fields:
        id: UUID primary key (from UUIDPrimaryKeyMixin)
        wallet: Wallet that was mutated (PROTECT, history is retained)
        user_id: Wallet owner, denormalized for history queries
        reference: Unique reference, also the idempotency key
        type: credit / debit / reversal
        category: Business category (settlement, refund, ...)
        status: Outcome of the entry (success for applied rows)
        amount: Amount in minor units (always positive)
        balance_before: Wallet available balance before the entry
        balance_after: Wallet available balance after the entry
        related_transaction: Transaction this row reverses
        order_id: Order the entry belongs to, when any
        settlement: Settlement that produced the entry, when any
    """

    wallet = models.ForeignKey(
        Wallet,
        on_delete=models.PROTECT,
        related_name="transactions",
        help_text="Wallet this entry belongs to",
    )
    user_id = models.UUIDField(
        db_index=True,
        help_text="Owner of the wallet",
    )
    reference = models.CharField(
        max_length=100,
        unique=True,
        help_text="Unique reference; replays with the same value are idempotent",
    )
    type = models.CharField(
        max_length=20,
        choices=TransactionType.choices,
        help_text="Direction of the entry",
    )
    category = models.CharField(
        max_length=30,
        choices=TransactionCategory.choices,
        help_text="Business category of the entry",
    )
    status = models.CharField(
        max_length=20,
        choices=TransactionStatus.choices,
        default=TransactionStatus.SUCCESS,
        help_text="Outcome of the entry",
    )
    amount = models.PositiveBigIntegerField(
        help_text="Amount in minor units (always positive)",
    )
    currency = models.CharField(
        max_length=3,
        default=DEFAULT_CURRENCY,
        help_text="ISO 4217 currency code",
    )
    balance_before = models.PositiveBigIntegerField(
        help_text="Available balance before this entry",
    )
    balance_after = models.PositiveBigIntegerField(
        help_text="Available balance after this entry",
    )
    description = models.TextField(
        blank=True,
        default="",
        help_text="Human-readable description",
    )
    related_transaction = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reversals",
        help_text="Transaction reversed by this entry",
    )
    order_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Order this entry belongs to",
    )
    settlement = models.ForeignKey(
        "payments.Settlement",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
        help_text="Settlement that produced this entry",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user_id", "created_at"]),
            models.Index(fields=["type", "category"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="transaction_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation."""
        return f"{self.get_type_display()} {self.amount} ({self.reference})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Transactions are immutable once written")
        super().save(*args, **kwargs)

    @property
    def is_split(self) -> bool:
        return bool(self.get_meta("isSplit", False))

    @property
    def is_outflow(self) -> bool:
        return self.type in OUTFLOW_TYPES
