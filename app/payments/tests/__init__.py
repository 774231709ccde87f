"""
Tests for payments app.

This package contains test modules for:
- test_models.py: Order, OrderPayment, Settlement, Refund, WebhookEvent models
- test_state_transitions.py: OrderStateMachine and status history
- test_settlement_service.py: Settlement orchestration
- test_refund_service.py: Refunds and ledger reversals
- test_views.py: Refund and wallet API endpoints
- test_integration.py: Signed webhook to wallet balance journeys

Usage:
    pytest app/payments/tests/
    pytest app/payments/tests/test_settlement_service.py
"""
