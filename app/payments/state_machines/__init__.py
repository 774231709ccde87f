"""
State machine enums and helpers for payment models.

This module defines the state enums used by payment models with django-fsm.
"""

from payments.state_machines.states import (
    AWAITING_PAYMENT_STATES,
    PRE_DELIVERY_STATES,
    OrderPaymentStatus,
    OrderStatus,
    PaymentAttemptStatus,
    PaymentMethod,
    PaymentStatus,
    Provider,
    RefundMethod,
    RefundReason,
    RefundStatus,
    RefundType,
    SettlementMode,
    SettlementStatus,
    TransactionCategory,
    TransactionStatus,
    TransactionType,
    TriggeredBy,
    WalletStatus,
)

__all__ = [
    "AWAITING_PAYMENT_STATES",
    "PRE_DELIVERY_STATES",
    "OrderPaymentStatus",
    "OrderStatus",
    "PaymentAttemptStatus",
    "PaymentMethod",
    "PaymentStatus",
    "Provider",
    "RefundMethod",
    "RefundReason",
    "RefundStatus",
    "RefundType",
    "SettlementMode",
    "SettlementStatus",
    "TransactionCategory",
    "TransactionStatus",
    "TransactionType",
    "TriggeredBy",
    "WalletStatus",
]
