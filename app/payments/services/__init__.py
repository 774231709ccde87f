"""
Payment services for coordinating settlement operations.

This module provides:
- OrderStateMachine: Applies order transitions with status history
- SettlementService: Applies verified payment outcomes and settles orders
- RefundService: Refunds orders by reversing their settlement
- PayoutService: Debits wallet withdrawals and credits failed transfers back

Usage:
    from payments.services import SettlementService

    order = SettlementService.resolve_order(outcome.reference)
    result = SettlementService.settle(order.id, outcome)

    # Refund part of a settled order
    from payments.services import RefundService

    result = RefundService.refund(order.id, amount=2500)

    # Withdraw from a wallet
    from payments.services import PayoutService

    txn = PayoutService.request_payout(merchant_id, 10000)

    # Move an order forward
    from payments.services import OrderStateMachine

    OrderStateMachine.apply(order, "ship")
"""

from payments.services.order_state import (
    ORDER_TRANSITIONS,
    OrderStateMachine,
)
from payments.services.payout_service import PayoutService
from payments.services.refund_service import (
    RefundResult,
    RefundService,
)
from payments.services.settlement_service import (
    SettlementBreakdown,
    SettlementResult,
    SettlementService,
    compute_breakdown,
)

__all__ = [
    "ORDER_TRANSITIONS",
    "OrderStateMachine",
    "PayoutService",
    "RefundResult",
    "RefundService",
    "SettlementBreakdown",
    "SettlementResult",
    "SettlementService",
    "compute_breakdown",
]
