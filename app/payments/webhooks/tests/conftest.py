"""
Pytest fixtures for webhook tests.

Provides fixtures for testing webhook views, handlers, and tasks including
signed provider request builders and a lock that never touches Redis.
"""

import json

import pytest
from django.test import RequestFactory

from payments.tests.factories import (
    MONNIFY_TEST_SECRET,
    PAYSTACK_TEST_SECRET,
    sign,
)


# =============================================================================
# Request Fixtures
# =============================================================================


@pytest.fixture
def rf():
    """Request factory for creating test requests."""
    return RequestFactory()


@pytest.fixture
def paystack_request(rf):
    """
    Build a signed Paystack webhook request.

    Usage:
        request = paystack_request(payload)
        request = paystack_request(payload, signature="bad")
    """

    def build(payload, signature=None, raw_body=None):
        body = raw_body if raw_body is not None else json.dumps(payload).encode()
        if signature is None:
            signature = sign(body, PAYSTACK_TEST_SECRET)
        headers = {"HTTP_X_PAYSTACK_SIGNATURE": signature} if signature else {}
        return rf.post(
            "/api/v1/payments/webhooks/paystack/",
            data=body,
            content_type="application/json",
            **headers,
        )

    return build


@pytest.fixture
def monnify_request(rf):
    """Build a signed Monnify webhook request."""

    def build(payload, signature=None):
        body = json.dumps(payload).encode()
        if signature is None:
            signature = sign(body, MONNIFY_TEST_SECRET)
        return rf.post(
            "/api/v1/payments/webhooks/monnify/",
            data=body,
            content_type="application/json",
            HTTP_MONNIFY_SIGNATURE=signature,
        )

    return build


# =============================================================================
# Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_delay(mocker):
    """Capture process_webhook_event.delay calls instead of queuing."""
    return mocker.patch("payments.tasks.process_webhook_event.delay")


@pytest.fixture
def free_lock(mock_redis):
    """Redis lock that is always available."""
    mock_redis.set.return_value = True
    mock_redis.eval.return_value = 1
    return mock_redis
