"""
Payments app for provider webhooks, settlement and the wallet ledger.

This app handles:
- Paystack / Monnify webhook verification and duplicate suppression
- Settling paid orders into merchant wallets or provider subaccounts
- Wallet balances with an immutable transaction audit trail
- Refunds that reverse a prior settlement

Related apps:
    - core: Base models, service result, exceptions, idempotency, permissions

Usage:
    from payments.services import SettlementService, RefundService

    result = SettlementService.settle(order.id, outcome)
    refund = RefundService.refund(order.id, amount=2500)
"""
