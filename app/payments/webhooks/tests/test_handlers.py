"""
Tests for webhook event handlers.

Tests cover:
- Handler registry and dispatch
- Charge handlers settling orders for Paystack and Monnify
- Permanent failures returned as failed results
- Transient failures propagated for retry
- Refund webhooks closing external refunds
"""

import pytest

from core.services import ServiceResult
from payments.exceptions import ConcurrentSettlementConflict
from payments.ledger import Transaction, WalletLedger
from payments.models import Order, OrderPayment, Refund
from payments.services import PayoutService, RefundService
from payments.state_machines import (
    OrderStatus,
    PaymentAttemptStatus,
    Provider,
    RefundMethod,
    RefundStatus,
    SettlementMode,
    TransactionStatus,
)
from payments.tests.factories import (
    WebhookEventFactory,
    monnify_transaction_payload,
    paystack_charge_payload,
    paystack_refund_payload,
    paystack_transfer_payload,
)
from payments.webhooks.handlers import (
    WEBHOOK_HANDLERS,
    dispatch_webhook,
    register_handler,
)


def charge_event(reference, amount, **kwargs):
    payload = paystack_charge_payload(reference, amount, **kwargs)
    return WebhookEventFactory(
        event_type=payload["event"],
        reference=reference,
        payload=payload,
    )


# =============================================================================
# Registry
# =============================================================================


class TestHandlerRegistry:
    """Tests for register_handler and dispatch_webhook."""

    def test_builtin_handlers_registered(self):
        """Charge and refund events of both providers have handlers."""
        for event_type in (
            "charge.success",
            "refund.processed",
            "refund.failed",
            "SUCCESSFUL_TRANSACTION",
            "FAILED_TRANSACTION",
            "transfer.failed",
            "transfer.reversed",
        ):
            assert event_type in WEBHOOK_HANDLERS

    def test_register_custom_handler(self, db, mocker):
        """Custom handlers receive the event."""
        mocker.patch.dict(WEBHOOK_HANDLERS)
        seen = []

        @register_handler("transfer.success")
        def handle_transfer(webhook_event):
            seen.append(webhook_event.event_id)
            return ServiceResult.success("done")

        event = WebhookEventFactory(event_type="transfer.success", event_id="transfer.success:1")
        result = dispatch_webhook(event)

        assert result.success is True
        assert result.data == "done"
        assert seen == ["transfer.success:1"]

    def test_unknown_event_type_is_acknowledged(self, db):
        """Events nobody handles succeed with no data."""
        event = WebhookEventFactory(event_type="subscription.create")

        result = dispatch_webhook(event)

        assert result.success is True
        assert result.data is None


# =============================================================================
# Charge Handlers
# =============================================================================


class TestChargeHandler:
    """Tests for settling orders from charge webhooks."""

    def test_paystack_charge_success_settles(self, db, pending_order, merchant_id, fee_settings):
        """charge.success for 5000 at 2% credits 4900."""
        event = charge_event(pending_order.order_reference, 5000)

        result = dispatch_webhook(event)

        assert result.success is True
        assert result.data.settlement.amount == 4900
        assert WalletLedger.get_balance(merchant_id).available == 4900
        assert Order.objects.get(id=pending_order.id).status == OrderStatus.CONFIRMED

    def test_paystack_split_charge(self, db, pending_order, merchant_id):
        """A charge routed to a subaccount records a split only."""
        event = charge_event(
            pending_order.order_reference,
            5000,
            subaccount_code="ACCT_merchant",
            split_share=4750,
        )

        result = dispatch_webhook(event)

        assert result.success is True
        assert result.data.mode == SettlementMode.SUBACCOUNT
        assert result.data.transaction.is_split is True
        assert WalletLedger.get_balance(merchant_id).available == 0

    def test_monnify_successful_transaction(self, db, pending_order, merchant_id):
        """Monnify amounts in naira are settled in kobo."""
        payload = monnify_transaction_payload(pending_order.order_reference, "50.00")
        event = WebhookEventFactory(
            provider=Provider.MONNIFY,
            event_id="SUCCESSFUL_TRANSACTION:MNFY|20|20260101|000123",
            event_type="SUCCESSFUL_TRANSACTION",
            reference=pending_order.order_reference,
            payload=payload,
        )

        result = dispatch_webhook(event)

        assert result.success is True
        assert WalletLedger.get_balance(merchant_id).available == 5000

    def test_monnify_failed_transaction_cancels(self, db, pending_order):
        """FAILED_TRANSACTION applies the failure policy."""
        payload = monnify_transaction_payload(
            pending_order.order_reference,
            "50.00",
            payment_status="FAILED",
            event_type="FAILED_TRANSACTION",
        )
        event = WebhookEventFactory(
            provider=Provider.MONNIFY,
            event_id="FAILED_TRANSACTION:MNFY|20|20260101|000123",
            event_type="FAILED_TRANSACTION",
            payload=payload,
        )

        result = dispatch_webhook(event)

        assert result.success is True
        assert Order.objects.get(id=pending_order.id).status == OrderStatus.CANCELLED

    def test_unknown_order_is_permanent_failure(self, db):
        """A reference matching no order closes the event as failed."""
        event = charge_event("QKY-ORD-0-MISSING", 5000)

        result = dispatch_webhook(event)

        assert result.success is False
        assert result.error_code == "ORDER_NOT_FOUND"

    def test_short_payment_is_permanent_failure(self, db, pending_order, merchant_id):
        """PaymentMismatch is not retried and nothing is settled."""
        event = charge_event(pending_order.order_reference, 100)

        result = dispatch_webhook(event)

        assert result.success is False
        assert result.error_code == "PAYMENT_MISMATCH"
        assert not WalletLedger.history(merchant_id)

    def test_unrecognized_status_is_held_for_review(self, db, pending_order, merchant_id):
        """An unknown provider status keeps the order pending and fails the event."""
        event = charge_event(pending_order.order_reference, 5000, status="weird_new_status")

        result = dispatch_webhook(event)

        assert result.success is False
        assert result.error_code == "UNKNOWN_PAYMENT_STATUS"
        assert "weird_new_status" in result.error
        payment = OrderPayment.objects.get(order=pending_order)
        assert payment.status == PaymentAttemptStatus.PENDING
        assert payment.provider_response["provider_status"] == "weird_new_status"
        assert Order.objects.get(id=pending_order.id).status == OrderStatus.PENDING
        assert not WalletLedger.history(merchant_id)

    def test_replayed_charge_is_harmless(self, db, pending_order, merchant_id):
        """Handling the same charge twice settles once."""
        event = charge_event(pending_order.order_reference, 5000)

        dispatch_webhook(event)
        result = dispatch_webhook(event)

        assert result.success is True
        assert result.data.already_settled is True
        assert WalletLedger.get_balance(merchant_id).available == 5000

    def test_transient_error_propagates(self, db, pending_order, mocker):
        """Retryable errors escape so the task can schedule a retry."""
        mocker.patch(
            "payments.webhooks.handlers.SettlementService.settle",
            side_effect=ConcurrentSettlementConflict("busy"),
        )
        event = charge_event(pending_order.order_reference, 5000)

        with pytest.raises(ConcurrentSettlementConflict):
            dispatch_webhook(event)


# =============================================================================
# Refund Handlers
# =============================================================================


class TestRefundHandler:
    """Tests for closing external refunds from Paystack refund events."""

    @pytest.fixture
    def external_refund(self, settled_order):
        return RefundService.refund(
            settled_order.id, amount=400, refund_method=RefundMethod.ORIGINAL_PAYMENT
        ).refund

    def refund_event(self, payload, reference):
        return WebhookEventFactory(
            event_id=f"{payload['event']}:{payload['data']['id']}",
            event_type=payload["event"],
            reference=reference,
            payload=payload,
        )

    def test_refund_processed_completes(self, db, settled_order, external_refund):
        """refund.processed completes the matching refund."""
        payload = paystack_refund_payload(settled_order.order_reference, external_refund.refund_reference)

        result = dispatch_webhook(self.refund_event(payload, settled_order.order_reference))

        assert result.success is True
        refund = Refund.objects.get(id=external_refund.id)
        assert refund.status == RefundStatus.COMPLETED
        assert refund.provider_metadata["provider_refund_id"] == 1000123
        assert Order.objects.get(id=settled_order.id).refunded_amount == 400

    def test_refund_failed(self, db, settled_order, external_refund):
        """refund.failed fails the refund."""
        payload = paystack_refund_payload(
            settled_order.order_reference,
            external_refund.refund_reference,
            event="refund.failed",
        )

        dispatch_webhook(self.refund_event(payload, settled_order.order_reference))

        refund = Refund.objects.get(id=external_refund.id)
        assert refund.status == RefundStatus.FAILED
        assert refund.failure_reason == "failed"

    def test_matches_by_payment_reference(self, db, settled_order, external_refund):
        """Without an echoed refund reference the order's payment reference is used."""
        payload = paystack_refund_payload(settled_order.order_reference, "")

        dispatch_webhook(self.refund_event(payload, settled_order.order_reference))

        assert Refund.objects.get(id=external_refund.id).status == RefundStatus.COMPLETED

    def test_unmatched_refund_is_acknowledged(self, db):
        """Refunds issued outside this system are acknowledged."""
        payload = paystack_refund_payload("QKY-ORD-0-ELSEWHERE", "")

        result = dispatch_webhook(self.refund_event(payload, "QKY-ORD-0-ELSEWHERE"))

        assert result.success is True
        assert result.data is None


# =============================================================================
# Transfer Handlers
# =============================================================================


class TestTransferHandler:
    """Tests for crediting back failed wallet withdrawals."""

    @staticmethod
    def transfer_event(payload):
        return WebhookEventFactory(
            event_type=payload["event"],
            event_id=f"{payload['event']}:{payload['data']['id']}",
            reference=payload["data"]["reference"],
            payload=payload,
        )

    @pytest.fixture
    def withdrawal(self, db, merchant_id, merchant_wallet):
        WalletLedger.credit(merchant_id, 5000, "STL-FUNDING")
        return PayoutService.request_payout(merchant_id, 3000)

    @pytest.mark.parametrize("event", ["transfer.failed", "transfer.reversed"])
    def test_failed_transfer_credits_back(self, db, merchant_id, withdrawal, event):
        """A failed or reversed transfer restores the withdrawn amount."""
        payload = paystack_transfer_payload(withdrawal.reference, 3000, event=event)

        result = dispatch_webhook(self.transfer_event(payload))

        assert result.success is True
        assert result.data.related_transaction_id == withdrawal.id
        assert result.data.metadata["reason"] == "Could not resolve account"
        assert Transaction.objects.get(id=withdrawal.id).status == TransactionStatus.FAILED
        assert WalletLedger.get_balance(merchant_id).available == 5000

    def test_unmatched_transfer_is_acknowledged(self, db):
        """Transfers started outside this system are acknowledged."""
        payload = paystack_transfer_payload("TRF-DASHBOARD-1", 3000)

        result = dispatch_webhook(self.transfer_event(payload))

        assert result.success is True
        assert result.data is None
