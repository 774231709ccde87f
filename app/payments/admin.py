"""
Payment admin configuration.

This file imports admin configurations from the ledger submodule
and registers payment domain models with the Django admin.

Status fields managed by django-fsm are read-only here; transitions go
through the service layer so history rows and ledger entries stay in step.
"""

from django.contrib import admin

from payments.ledger.admin import TransactionAdmin, WalletAdmin, format_minor_units
from payments.models import (
    Order,
    OrderPayment,
    OrderStatusHistory,
    Refund,
    Settlement,
    WebhookEvent,
)

__all__ = [
    "WalletAdmin",
    "TransactionAdmin",
    "OrderAdmin",
    "OrderPaymentAdmin",
    "SettlementAdmin",
    "RefundAdmin",
    "WebhookEventAdmin",
]


# =============================================================================
# Orders
# =============================================================================


class OrderStatusHistoryInline(admin.TabularInline):
    model = OrderStatusHistory
    extra = 0
    can_delete = False
    fields = ["previous_status", "status", "triggered_by", "triggered_by_user_id", "notes", "created_at"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


class OrderPaymentInline(admin.TabularInline):
    model = OrderPayment
    extra = 0
    can_delete = False
    show_change_link = True
    fields = ["payment_reference", "provider", "amount", "status", "paid_at"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Admin configuration for Order.

    Provides visibility into orders, their payments and status history.
    """

    list_display = [
        "order_reference",
        "merchant_id",
        "total_display",
        "status",
        "payment_status",
        "refunded_amount",
        "created_at",
    ]
    list_filter = ["status", "payment_status", "currency", "created_at"]
    search_fields = [
        "id",
        "order_reference",
        "transaction_reference",
        "merchant_id",
        "customer_id",
    ]
    readonly_fields = [
        "id",
        "order_reference",
        "status",
        "payment_status",
        "refunded_amount",
        "total",
        "paid_at",
        "cancelled_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [OrderPaymentInline, OrderStatusHistoryInline]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "order_reference", "transaction_reference", "status", "payment_status"),
            },
        ),
        (
            "Parties",
            {
                "fields": ("business_id", "merchant_id", "customer_id"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("subtotal", "shipping_fee", "tax", "discount", "total", "currency", "refunded_amount"),
            },
        ),
        (
            "Status Timestamps",
            {
                "fields": ("paid_at", "cancelled_at"),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def total_display(self, obj: Order) -> str:
        """Display the total formatted as currency."""
        return format_minor_units(obj.total, obj.currency)

    total_display.short_description = "Total"


@admin.register(OrderPayment)
class OrderPaymentAdmin(admin.ModelAdmin):
    """Admin configuration for OrderPayment (read-only)."""

    list_display = ["payment_reference", "order", "provider", "amount", "status", "paid_at", "created_at"]
    list_filter = ["provider", "status", "created_at"]
    search_fields = ["id", "payment_reference", "order__order_reference"]
    readonly_fields = [
        "id",
        "order",
        "payment_reference",
        "provider",
        "payment_method",
        "amount",
        "provider_fee",
        "net_amount",
        "currency",
        "status",
        "provider_response",
        "paid_at",
        "failure_reason",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


# =============================================================================
# Settlements & Refunds
# =============================================================================


@admin.register(Settlement)
class SettlementAdmin(admin.ModelAdmin):
    """
    Admin configuration for Settlement.

    Settlements are written by the settlement service and never edited.
    """

    list_display = [
        "settlement_reference",
        "order",
        "merchant_id",
        "mode",
        "status",
        "gross_amount",
        "platform_fee",
        "amount",
        "settled_at",
    ]
    list_filter = ["mode", "status", "created_at"]
    search_fields = ["id", "settlement_reference", "order__order_reference", "merchant_id", "subaccount_code"]
    readonly_fields = [
        "id",
        "order",
        "settlement_reference",
        "merchant_id",
        "gross_amount",
        "platform_fee",
        "holdback_amount",
        "amount",
        "currency",
        "status",
        "mode",
        "subaccount_code",
        "settled_at",
        "metadata",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for settlements (audit trail)."""
        return False


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    """
    Admin configuration for Refund.

    Provides visibility into refund status and history.
    """

    list_display = [
        "refund_reference",
        "order",
        "amount_display",
        "refund_type",
        "refund_method",
        "status",
        "reason",
        "completed_at",
        "created_at",
    ]
    list_filter = ["status", "refund_type", "refund_method", "reason", "created_at"]
    search_fields = [
        "id",
        "refund_reference",
        "order__order_reference",
        "reason_notes",
    ]
    readonly_fields = [
        "id",
        "order",
        "settlement",
        "reversal_transaction",
        "refund_reference",
        "status",
        "amount",
        "currency",
        "requested_by",
        "provider_metadata",
        "completed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "refund_reference", "order", "settlement", "status"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount", "currency", "refund_type", "refund_method"),
            },
        ),
        (
            "Refund Details",
            {
                "fields": ("reason", "reason_notes", "requested_by", "reversal_transaction"),
            },
        ),
        (
            "Failure Info",
            {
                "fields": ("failure_reason", "provider_metadata"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("completed_at", "created_at", "updated_at"),
            },
        ),
    )

    def amount_display(self, obj: Refund) -> str:
        """Display the amount formatted as currency."""
        return format_minor_units(obj.amount, obj.currency)

    amount_display.short_description = "Amount"

    def has_add_permission(self, request) -> bool:
        """Refunds are created through the refund API."""
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for refunds (audit trail)."""
        return False


# =============================================================================
# Webhooks
# =============================================================================


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received; only the retry
    schedule can be edited to force an early retry.
    """

    list_display = [
        "event_id",
        "provider",
        "event_type",
        "reference",
        "processed",
        "attempts",
        "next_retry_at",
        "created_at",
    ]
    list_filter = ["provider", "processed", "event_type", "created_at"]
    search_fields = ["id", "event_id", "reference", "event_type"]
    readonly_fields = [
        "id",
        "provider",
        "event_id",
        "event_type",
        "reference",
        "payload",
        "processed",
        "processed_at",
        "attempts",
        "error",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "provider", "event_id", "event_type", "reference"),
            },
        ),
        (
            "Processing",
            {
                "fields": ("processed", "processed_at", "attempts", "next_retry_at"),
            },
        ),
        (
            "Error Info",
            {
                "fields": ("error",),
                "classes": ("collapse",),
            },
        ),
        (
            "Payload",
            {
                "fields": ("payload",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        """Disable adding webhook events through admin."""
        return False
