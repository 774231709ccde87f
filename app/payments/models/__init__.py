"""
Payment domain models.

This module contains all payment-related models:
- Order: Purchase intent with the fulfilment state machine
- OrderStatusHistory: Append-only log of order transitions
- OrderPayment: One provider payment attempt against an order
- Settlement: Distribution of a paid order's funds to the merchant
- Refund: Money returned against a settled order
- WebhookEvent: Provider webhook tracking for idempotent processing
- Wallet / Transaction: Wallet ledger (defined in payments.ledger.models)
"""

from payments.ledger.models import Transaction, Wallet
from payments.models.order import Order, OrderStatusHistory
from payments.models.order_payment import OrderPayment
from payments.models.refund import Refund
from payments.models.settlement import Settlement
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "Order",
    "OrderPayment",
    "OrderStatusHistory",
    "Refund",
    "Settlement",
    "Transaction",
    "Wallet",
    "WebhookEvent",
]
