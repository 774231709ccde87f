"""
Tests for the payments REST API.

Tests cover:
- Authentication and capability checks
- Refund creation, validation errors and domain errors
- Idempotency-Key replay on refund creation
- Wallet balance and history lookup
"""

import uuid

import pytest
from django.contrib.auth.models import Permission
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from payments.ledger import WalletLedger
from payments.models import Refund
from payments.state_machines import RefundStatus, TransactionCategory
from payments.tests.factories import OrderFactory, UserFactory


def grant(user, *codenames):
    """Give a user payments model permissions by codename."""
    perms = Permission.objects.filter(content_type__app_label="payments", codename__in=codenames)
    user.user_permissions.add(*perms)
    return user


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def refund_user(db):
    """User allowed to create refunds."""
    return grant(UserFactory(), "add_refund")


@pytest.fixture
def wallet_user(db):
    """User allowed to view wallets."""
    return grant(UserFactory(), "view_wallet")


def refund_url(order_id):
    return reverse("payments:order_refunds", kwargs={"order_id": order_id})


def wallet_url(user_id):
    return reverse("payments:wallet_detail", kwargs={"user_id": user_id})


# =============================================================================
# Refund Creation
# =============================================================================


class TestRefundCreateView:
    """Tests for POST /api/v1/payments/orders/{order_id}/refunds/."""

    def test_requires_authentication(self, api_client, settled_order):
        """Anonymous callers are rejected."""
        response = api_client.post(refund_url(settled_order.id), {"amount": 100}, format="json")

        assert response.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN)
        assert not Refund.objects.exists()

    def test_requires_capability(self, api_client, settled_order, user):
        """Authenticated users without payments.add_refund are forbidden."""
        api_client.force_authenticate(user=user)

        response = api_client.post(refund_url(settled_order.id), {"amount": 100}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert not Refund.objects.exists()

    def test_partial_refund(self, api_client, settled_order, refund_user, merchant_id):
        """A valid request creates a completed wallet refund."""
        api_client.force_authenticate(user=refund_user)

        response = api_client.post(
            refund_url(settled_order.id),
            {"amount": 400, "reason": "damaged_product", "reason_notes": "Cracked"},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["amount"] == 400
        assert data["status"] == RefundStatus.COMPLETED
        assert data["refund_type"] == "partial"
        assert data["order_id"] == str(settled_order.id)
        assert data["reversal_reference"].startswith("REV-")
        assert data["settlement_reference"].startswith("STL-")
        assert WalletLedger.get_balance(merchant_id).available == 600

    def test_superuser_allowed(self, api_client, settled_order):
        """Superusers hold every capability."""
        admin = UserFactory(is_superuser=True, is_staff=True)
        api_client.force_authenticate(user=admin)

        response = api_client.post(refund_url(settled_order.id), {}, format="json")

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["refund_type"] == "full"

    def test_external_refund_is_processing(self, api_client, settled_order, refund_user):
        """Refunds to the original payment method are not completed yet."""
        api_client.force_authenticate(user=refund_user)

        response = api_client.post(
            refund_url(settled_order.id),
            {"amount": 400, "refund_method": "original_payment"},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["status"] == RefundStatus.PROCESSING
        assert response.json()["reversal_reference"] is None

    def test_partial_without_amount_is_invalid(self, api_client, settled_order, refund_user):
        """Serializer validation rejects a partial refund with no amount."""
        api_client.force_authenticate(user=refund_user)

        response = api_client.post(
            refund_url(settled_order.id), {"refund_type": "partial"}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "amount" in response.json()

    def test_amount_too_large(self, api_client, settled_order, refund_user):
        """Domain errors are returned with their code and status."""
        api_client.force_authenticate(user=refund_user)

        response = api_client.post(refund_url(settled_order.id), {"amount": 5000}, format="json")

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_REFUND_AMOUNT"

    def test_insufficient_funds(self, api_client, settled_order, refund_user, merchant_id):
        """A wallet that cannot cover the refund yields 422 INSUFFICIENT_FUNDS."""
        WalletLedger.debit(
            merchant_id, 950, "QKY-WDR-TEST-0001", category=TransactionCategory.WITHDRAWAL
        )
        api_client.force_authenticate(user=refund_user)

        response = api_client.post(refund_url(settled_order.id), {"amount": 100}, format="json")

        assert response.status_code == 422
        body = response.json()
        assert body["error_code"] == "INSUFFICIENT_FUNDS"
        assert body["details"]["available"] == 50
        assert not Refund.objects.exists()

    def test_unknown_order(self, api_client, refund_user):
        """Refunding a missing order returns 404."""
        api_client.force_authenticate(user=refund_user)

        response = api_client.post(refund_url(uuid.uuid4()), {"amount": 100}, format="json")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error_code"] == "ORDER_NOT_FOUND"

    def test_unpaid_order(self, api_client, refund_user):
        """Orders awaiting payment cannot be refunded."""
        order = OrderFactory()
        api_client.force_authenticate(user=refund_user)

        response = api_client.post(refund_url(order.id), {"amount": 100}, format="json")

        assert response.status_code == 422
        assert response.json()["error_code"] == "ORDER_NOT_PAID"

    def test_idempotency_key_replays_response(self, api_client, settled_order, refund_user, merchant_id):
        """A repeated Idempotency-Key returns the first refund without a second debit."""
        api_client.force_authenticate(user=refund_user)
        headers = {"HTTP_IDEMPOTENCY_KEY": "refund-attempt-1"}

        first = api_client.post(refund_url(settled_order.id), {"amount": 300}, format="json", **headers)
        second = api_client.post(refund_url(settled_order.id), {"amount": 300}, format="json", **headers)

        assert first.status_code == status.HTTP_201_CREATED
        assert second.status_code == status.HTTP_201_CREATED
        assert second["Idempotent-Replayed"] == "true"
        assert second.json()["refund_reference"] == first.json()["refund_reference"]
        assert Refund.objects.count() == 1
        assert WalletLedger.get_balance(merchant_id).available == 700

    def test_failed_request_releases_idempotency_key(self, api_client, settled_order, refund_user):
        """A rejected request can be retried with the same key."""
        api_client.force_authenticate(user=refund_user)
        headers = {"HTTP_IDEMPOTENCY_KEY": "refund-attempt-2"}

        rejected = api_client.post(refund_url(settled_order.id), {"amount": 5000}, format="json", **headers)
        accepted = api_client.post(refund_url(settled_order.id), {"amount": 500}, format="json", **headers)

        assert rejected.status_code == 422
        assert accepted.status_code == status.HTTP_201_CREATED
        assert accepted.has_header("Idempotent-Replayed") is False


# =============================================================================
# Wallet Detail
# =============================================================================


class TestWalletDetailView:
    """Tests for GET /api/v1/payments/wallets/{user_id}/."""

    def test_requires_capability(self, api_client, user, merchant_wallet, merchant_id):
        """payments.view_wallet is required."""
        api_client.force_authenticate(user=user)

        response = api_client.get(wallet_url(merchant_id))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_balances_and_history(self, api_client, wallet_user, settled_order, merchant_id):
        """Balances and newest-first history are returned."""
        WalletLedger.debit(merchant_id, 250, "QKY-WDR-TEST-0002")
        api_client.force_authenticate(user=wallet_user)

        response = api_client.get(wallet_url(merchant_id))

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["user_id"] == str(merchant_id)
        assert data["available"] == 750
        assert data["ledger"] == 750
        assert data["pending"] == 0
        assert data["currency"] == "NGN"
        categories = {row["reference"]: row["category"] for row in data["history"]}
        assert len(categories) == 2
        assert categories["QKY-WDR-TEST-0002"] == TransactionCategory.WITHDRAWAL
        settlement_rows = [c for c in categories.values() if c == TransactionCategory.SETTLEMENT]
        assert len(settlement_rows) == 1

    def test_history_pagination(self, api_client, wallet_user, merchant_wallet, merchant_id):
        """limit and offset page through the history."""
        for n in range(5):
            WalletLedger.credit(merchant_id, 100, f"QKY-FND-TEST-{n:04d}")
        api_client.force_authenticate(user=wallet_user)

        response = api_client.get(wallet_url(merchant_id), {"limit": 2, "offset": 1})

        assert response.status_code == status.HTTP_200_OK
        assert len(response.json()["history"]) == 2
        assert response.json()["available"] == 500

    def test_invalid_limit_falls_back_to_default(self, api_client, wallet_user, merchant_wallet, merchant_id):
        """Non-numeric paging parameters are ignored."""
        api_client.force_authenticate(user=wallet_user)

        response = api_client.get(wallet_url(merchant_id), {"limit": "lots"})

        assert response.status_code == status.HTTP_200_OK

    def test_missing_wallet(self, api_client, wallet_user):
        """Unknown wallet owners return 404 WALLET_NOT_FOUND."""
        api_client.force_authenticate(user=wallet_user)

        response = api_client.get(wallet_url(uuid.uuid4()))

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error_code"] == "WALLET_NOT_FOUND"
