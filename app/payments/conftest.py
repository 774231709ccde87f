"""
Pytest fixtures for payment tests.

This module provides fixtures for creating payment-related test data.
Fixtures are designed to provide objects in various states for testing
settlement, refund and webhook flows.

Lives at the app root so the ledger, adapters and webhooks test packages
share it; package-specific fixtures stay in each tests/conftest.py.

Usage:
    def test_settle(pending_order, fee_settings):
        result = SettlementService.settle(pending_order.id, outcome)
        assert result.settlement.amount == 4900
"""

import uuid

import pytest

from payments.ledger import WalletLedger
from payments.state_machines import SettlementMode
from payments.tests.factories import (
    MONNIFY_TEST_SECRET,
    PAYSTACK_TEST_SECRET,
    OrderFactory,
    OrderPaymentFactory,
    SettlementFactory,
    UserFactory,
    WebhookEventFactory,
)


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def provider_settings(settings):
    """Provider secrets and neutral settlement defaults for every test."""
    settings.PAYSTACK_SECRET_KEY = PAYSTACK_TEST_SECRET
    settings.MONNIFY_CLIENT_SECRET = MONNIFY_TEST_SECRET
    settings.SETTLEMENT_MODE = SettlementMode.MAIN_BALANCE
    settings.PLATFORM_FEE_PERCENTAGE = 0
    settings.PLATFORM_FEE_MAX = None
    settings.SETTLEMENT_PERCENTAGE = 100
    settings.PAYMENT_FAILURE_POLICY = "cancel"
    settings.WEBHOOK_RETRY_BASE_SECONDS = 30
    settings.WEBHOOK_RETRY_MAX_SECONDS = 3600
    settings.WEBHOOK_MAX_ATTEMPTS = 8
    return settings


@pytest.fixture
def fee_settings(settings):
    """2% platform fee, full settlement."""
    settings.PLATFORM_FEE_PERCENTAGE = 2
    return settings


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a test user."""
    return UserFactory()


@pytest.fixture
def merchant_id():
    return uuid.uuid4()


@pytest.fixture
def merchant_wallet(db, merchant_id):
    """Empty active wallet for the merchant."""
    return WalletLedger.get_or_create_wallet(merchant_id)


# =============================================================================
# Order Fixtures
# =============================================================================


@pytest.fixture
def pending_order(db, merchant_id):
    """Order of 5000 kobo awaiting payment, with a pending Paystack attempt."""
    order = OrderFactory(merchant_id=merchant_id, subtotal=5000)
    OrderPaymentFactory(order=order, payment_reference=order.order_reference)
    return order


@pytest.fixture
def settled_order(db, merchant_id):
    """
    Order confirmed and settled with 1000 kobo.

    The merchant wallet is credited through the ledger so a settlement
    credit Transaction exists for reversals.
    """
    from payments.services import OrderStateMachine
    from payments.state_machines import PaymentAttemptStatus, TransactionCategory

    order = OrderFactory(merchant_id=merchant_id, subtotal=1000)
    OrderPaymentFactory(
        order=order,
        payment_reference=order.order_reference,
        status=PaymentAttemptStatus.SUCCESS,
    )
    OrderStateMachine.apply(order, "confirm")
    settlement = SettlementFactory(order=order, merchant_id=merchant_id, amount=1000)
    WalletLedger.get_or_create_wallet(merchant_id)
    WalletLedger.credit(
        merchant_id,
        1000,
        settlement.settlement_reference,
        category=TransactionCategory.SETTLEMENT,
        order_id=order.id,
        settlement_id=settlement.id,
    )
    return order


# =============================================================================
# Webhook Event Fixtures
# =============================================================================


@pytest.fixture
def pending_webhook(db):
    """Unprocessed Paystack charge.success event."""
    return WebhookEventFactory()


@pytest.fixture
def processed_webhook(db):
    """Webhook event that was handled successfully."""
    from django.utils import timezone

    return WebhookEventFactory(processed=True, processed_at=timezone.now(), attempts=1)


# =============================================================================
# Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_redis(mocker):
    """Mock Redis connection for lock tests."""
    mock_redis = mocker.MagicMock()
    mocker.patch(
        "payments.locks.get_redis_connection",
        return_value=mock_redis,
    )
    return mock_redis
