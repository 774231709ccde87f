"""
Django admin configuration for wallet ledger models.

This module configures the admin interface for Wallet and Transaction,
enforcing immutability for transactions while providing visibility into
wallet balances and history.

Key features:
- Transaction is immutable (no add/edit/delete permissions)
- Wallet balances are read-only; they only move through WalletLedger
- Useful filters and search capabilities
"""

from django.contrib import admin

from .models import Transaction, Wallet


def format_minor_units(amount: int, currency: str) -> str:
    return f"{amount / 100:,.2f} {currency.upper()}"


class TransactionInline(admin.TabularInline):
    """Recent transactions shown on the wallet page."""

    model = Transaction
    fk_name = "wallet"
    extra = 0
    can_delete = False
    show_change_link = True
    fields = ["reference", "type", "category", "amount", "balance_before", "balance_after", "created_at"]
    readonly_fields = fields
    ordering = ["-created_at"]

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    """
    Admin configuration for Wallet.

    Only the status can be changed here (suspend / reactivate); balances
    are owned by the ledger service.
    """

    list_display = [
        "id",
        "user_id",
        "available_display",
        "ledger_balance",
        "pending_balance",
        "status",
        "created_at",
    ]
    list_filter = ["status", "currency"]
    search_fields = ["id", "user_id"]
    readonly_fields = [
        "id",
        "user_id",
        "available_balance",
        "ledger_balance",
        "pending_balance",
        "currency",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
    inlines = [TransactionInline]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "user_id", "status"),
            },
        ),
        (
            "Balances",
            {
                "fields": ("available_balance", "ledger_balance", "pending_balance", "currency"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def available_display(self, obj: Wallet) -> str:
        """Display the available balance formatted as currency."""
        return format_minor_units(obj.available_balance, obj.currency)

    available_display.short_description = "Available"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for wallets (history is retained)."""
        return False


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """
    Admin configuration for Transaction.

    Transactions are immutable - they cannot be edited or deleted
    through the admin interface. Corrections are made with new
    reversal entries.
    """

    list_display = [
        "id",
        "created_at",
        "reference",
        "type",
        "category",
        "amount_display",
        "balance_before",
        "balance_after",
        "user_id",
    ]
    list_filter = ["type", "category", "status", "created_at"]
    search_fields = [
        "id",
        "reference",
        "user_id",
        "order_id",
        "description",
    ]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "wallet",
        "user_id",
        "reference",
        "type",
        "category",
        "status",
        "amount",
        "currency",
        "balance_before",
        "balance_after",
        "description",
        "related_transaction",
        "order_id",
        "settlement",
        "metadata",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def amount_display(self, obj: Transaction) -> str:
        """Display the amount formatted as currency, negative for outflows."""
        sign = "-" if obj.is_outflow else ""
        return f"{sign}{format_minor_units(obj.amount, obj.currency)}"

    amount_display.short_description = "Amount"

    def has_add_permission(self, request) -> bool:
        """Transactions are written by WalletLedger only."""
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        """Transactions are immutable."""
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Transactions are never deleted."""
        return False
