"""
State enums for payment models.

This module defines all state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Order States:
    pending → [payment_initiated →] confirmed → processing → shipped
        → delivered → completed
    any pre-delivered state → cancelled / returned / refunded (terminal)

OrderPayment States:
    pending → success
    pending → failed

Settlement States:
    pending → completed (main balance)
    pending → skipped (subaccount split, wallet untouched)
    pending → failed

Refund States:
    requested → processing → completed
    requested → processing → failed
"""

from django.db import models


class OrderStatus(models.TextChoices):
    """
    States for the Order model lifecycle.

    Terminal states: COMPLETED, CANCELLED, RETURNED, REFUNDED

    State Flow:
        PENDING → PAYMENT_INITIATED → CONFIRMED → PROCESSING → SHIPPED
            → DELIVERED → COMPLETED
        PENDING → CONFIRMED (payment confirmed without a checkout step)

    Terminal Branches (from any pre-DELIVERED state):
        → CANCELLED / RETURNED / REFUNDED
    """

    PENDING = "pending", "Pending"
    PAYMENT_INITIATED = "payment_initiated", "Payment Initiated"
    CONFIRMED = "confirmed", "Confirmed"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    RETURNED = "returned", "Returned"
    REFUNDED = "refunded", "Refunded"


# States from which the terminal cancel/return/refund branches are reachable
PRE_DELIVERY_STATES = [
    OrderStatus.PENDING,
    OrderStatus.PAYMENT_INITIATED,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
]

# States in which an order can still be settled by a payment webhook
AWAITING_PAYMENT_STATES = [
    OrderStatus.PENDING,
    OrderStatus.PAYMENT_INITIATED,
]


class OrderPaymentStatus(models.TextChoices):
    """
    Payment status summary stored on the Order.

    Mirrors the customer-facing view of the money, independent of the
    fulfilment lifecycle in OrderStatus.
    """

    PENDING = "pending", "Pending"
    INITIATED = "initiated", "Initiated"
    PROCESSING = "processing", "Processing"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    EXPIRED = "expired", "Expired"
    REFUNDED = "refunded", "Refunded"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"


class PaymentAttemptStatus(models.TextChoices):
    """
    Status of one OrderPayment attempt.

    At most one attempt per order may reach SUCCESS.
    """

    PENDING = "pending", "Pending"
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"


class PaymentMethod(models.TextChoices):
    BANK_TRANSFER = "bank_transfer", "Bank Transfer"
    CARD = "card", "Card"
    WALLET = "wallet", "Wallet"
    USSD = "ussd", "USSD"
    CASH_ON_DELIVERY = "cash_on_delivery", "Cash on Delivery"


class PaymentStatus(models.TextChoices):
    """
    Internal tri-state decoded from provider status vocabularies.

    Unknown provider statuses decode to PENDING, never SUCCESS.
    """

    SUCCESS = "SUCCESS", "Success"
    FAILED = "FAILED", "Failed"
    PENDING = "PENDING", "Pending"


class SettlementMode(models.TextChoices):
    """
    How funds for a paid order reach the merchant.

    - MAIN_BALANCE: Funds land in the platform account; the merchant wallet
      is credited internally
    - SUBACCOUNT: The provider split the payment to the merchant's
      subaccount; the wallet is not credited
    """

    MAIN_BALANCE = "MAIN_BALANCE", "Main Balance"
    SUBACCOUNT = "SUBACCOUNT", "Subaccount"


class SettlementStatus(models.TextChoices):
    """
    States for the Settlement model.

    Terminal states: COMPLETED, SKIPPED, FAILED
    """

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    SKIPPED = "skipped", "Skipped"
    FAILED = "failed", "Failed"


class RefundStatus(models.TextChoices):
    """
    States for the Refund model lifecycle.

    Terminal states: COMPLETED, FAILED

    State Flow:
        REQUESTED → PROCESSING → COMPLETED
        REQUESTED → PROCESSING → FAILED
    """

    REQUESTED = "requested", "Requested"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class RefundType(models.TextChoices):
    FULL = "full", "Full"
    PARTIAL = "partial", "Partial"


class RefundMethod(models.TextChoices):
    """
    Where refunded money goes.

    - WALLET: Debit the merchant wallet internally
    - ORIGINAL_PAYMENT / BANK_ACCOUNT: External payout, handled by the
      provider refund API or a bank transfer collaborator
    """

    ORIGINAL_PAYMENT = "original_payment", "Original Payment"
    WALLET = "wallet", "Wallet"
    BANK_ACCOUNT = "bank_account", "Bank Account"


class RefundReason(models.TextChoices):
    CUSTOMER_REQUEST = "customer_request", "Customer Request"
    OUT_OF_STOCK = "out_of_stock", "Out of Stock"
    DAMAGED_PRODUCT = "damaged_product", "Damaged Product"
    WRONG_ITEM = "wrong_item", "Wrong Item"
    MERCHANT_CANCELLED = "merchant_cancelled", "Merchant Cancelled"
    PAYMENT_ISSUE = "payment_issue", "Payment Issue"
    FRAUD = "fraud", "Fraud"
    OTHER = "other", "Other"


class TriggeredBy(models.TextChoices):
    """Actor recorded on each order status history entry."""

    USER = "USER", "User"
    MERCHANT = "MERCHANT", "Merchant"
    SYSTEM = "SYSTEM", "System"
    ADMIN = "ADMIN", "Admin"


class Provider(models.TextChoices):
    """Payment providers that deliver webhooks."""

    PAYSTACK = "PAYSTACK", "Paystack"
    MONNIFY = "MONNIFY", "Monnify"


class WalletStatus(models.TextChoices):
    """
    Wallet lifecycle status.

    Only ACTIVE wallets accept credits and debits.
    """

    PENDING = "pending", "Pending"
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"
    SUSPENDED = "suspended", "Suspended"
    CLOSED = "closed", "Closed"


class TransactionType(models.TextChoices):
    """
    Direction of a ledger Transaction.

    REVERSAL moves money out of the wallet like DEBIT and links back to the
    transaction it reverses.
    """

    CREDIT = "credit", "Credit"
    DEBIT = "debit", "Debit"
    REVERSAL = "reversal", "Reversal"


class TransactionCategory(models.TextChoices):
    ORDER_PAYMENT = "order_payment", "Order Payment"
    SETTLEMENT = "settlement", "Settlement"
    WITHDRAWAL = "withdrawal", "Withdrawal"
    REFUND = "refund", "Refund"
    WALLET_FUNDING = "wallet_funding", "Wallet Funding"
    FEE = "fee", "Fee"
    COMMISSION = "commission", "Commission"


class TransactionStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"
    REVERSED = "reversed", "Reversed"
    CANCELLED = "cancelled", "Cancelled"


__all__ = [
    "OrderStatus",
    "PRE_DELIVERY_STATES",
    "AWAITING_PAYMENT_STATES",
    "OrderPaymentStatus",
    "PaymentAttemptStatus",
    "PaymentMethod",
    "PaymentStatus",
    "SettlementMode",
    "SettlementStatus",
    "RefundStatus",
    "RefundType",
    "RefundMethod",
    "RefundReason",
    "TriggeredBy",
    "Provider",
    "WalletStatus",
    "TransactionType",
    "TransactionCategory",
    "TransactionStatus",
]
