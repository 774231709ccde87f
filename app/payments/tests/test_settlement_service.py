"""
Tests for SettlementService and the settlement fee math.

Tests cover:
- compute_breakdown rounding, caps and holdback
- MAIN_BALANCE settlement crediting the merchant wallet
- SUBACCOUNT settlement recording a balance-neutral split row
- Amount and currency mismatches rolling back every step
- Failed payments under the cancel and grace policies
- Replays returning the existing settlement
- Signals sent after commit
"""

import uuid

import pytest

from payments.adapters import PaymentOutcome, SplitInfo
from payments.exceptions import OrderNotFound, PaymentMismatch, SettlementError
from payments.ledger import Transaction, WalletLedger
from payments.models import Order, OrderPayment, Settlement
from payments.services import SettlementService, compute_breakdown
from payments.signals import settlement_completed, settlement_failed
from payments.state_machines import (
    OrderPaymentStatus,
    OrderStatus,
    PaymentAttemptStatus,
    PaymentStatus,
    Provider,
    SettlementMode,
    SettlementStatus,
    TransactionCategory,
    TransactionType,
)
from payments.tests.factories import OrderFactory, OrderPaymentFactory


def make_outcome(reference, amount=5000, status=PaymentStatus.SUCCESS, **kwargs):
    """Build a PaymentOutcome as an adapter would."""
    defaults = {
        "currency": "NGN",
        "provider_status": "success" if status == PaymentStatus.SUCCESS else "failed",
        "provider": Provider.PAYSTACK,
    }
    defaults.update(kwargs)
    return PaymentOutcome(reference=reference, amount_paid=amount, status=status, **defaults)


@pytest.fixture
def captured_signal():
    """Connect a collecting receiver to a signal for the duration of a test."""
    connected = []

    def connect(signal):
        calls = []

        def receiver(sender, **kwargs):
            calls.append(kwargs)

        signal.connect(receiver, weak=False)
        connected.append((signal, receiver))
        return calls

    yield connect

    for signal, receiver in connected:
        signal.disconnect(receiver)


# =============================================================================
# Fee Math
# =============================================================================


class TestComputeBreakdown:
    """Tests for compute_breakdown."""

    def test_two_percent_fee(self):
        """5000 at 2% leaves 4900 for the merchant."""
        breakdown = compute_breakdown(5000, fee_percentage=2, settlement_percentage=100)

        assert breakdown.platform_fee == 100
        assert breakdown.net_amount == 4900
        assert breakdown.settled_amount == 4900
        assert breakdown.holdback_amount == 0

    def test_fee_rounds_down(self):
        """Fractional minor units are truncated in the merchant's favour."""
        breakdown = compute_breakdown(1001, fee_percentage="1.5", settlement_percentage=100)

        assert breakdown.platform_fee == 15
        assert breakdown.net_amount == 986

    def test_fee_cap(self):
        """The fee never exceeds PLATFORM_FEE_MAX."""
        breakdown = compute_breakdown(
            1_000_000, fee_percentage=2, fee_max=5000, settlement_percentage=100
        )

        assert breakdown.platform_fee == 5000
        assert breakdown.settled_amount == 995_000

    def test_settlement_percentage_holdback(self):
        """Part of the net can be held back."""
        breakdown = compute_breakdown(5000, fee_percentage=2, settlement_percentage=90)

        assert breakdown.settled_amount == 4410
        assert breakdown.holdback_amount == 490
        assert breakdown.settled_amount + breakdown.holdback_amount == breakdown.net_amount

    def test_defaults_come_from_settings(self, settings):
        """Omitted arguments are read from settings."""
        settings.PLATFORM_FEE_PERCENTAGE = 10
        settings.PLATFORM_FEE_MAX = 300
        settings.SETTLEMENT_PERCENTAGE = 100

        breakdown = compute_breakdown(5000)

        assert breakdown.platform_fee == 300
        assert breakdown.net_amount == 4700

    def test_zero_fee(self):
        """With no fee the whole gross is settled."""
        breakdown = compute_breakdown(5000, fee_percentage=0, settlement_percentage=100)

        assert breakdown.platform_fee == 0
        assert breakdown.settled_amount == 5000


# =============================================================================
# Order Resolution
# =============================================================================


class TestResolveOrder:
    """Tests for SettlementService.resolve_order."""

    def test_by_payment_reference(self, db):
        """A payment attempt reference resolves to its order."""
        payment = OrderPaymentFactory(payment_reference="PSK-ATTEMPT-1")

        assert SettlementService.resolve_order("PSK-ATTEMPT-1") == payment.order

    def test_by_transaction_reference(self, db):
        """The order's provider reference is accepted."""
        order = OrderFactory(transaction_reference="MNFY|20|20260101|000123")

        assert SettlementService.resolve_order("MNFY|20|20260101|000123") == order

    def test_by_order_reference(self, db):
        """The order's own reference is accepted."""
        order = OrderFactory()

        assert SettlementService.resolve_order(order.order_reference) == order

    def test_unknown_reference(self, db):
        """Unknown references raise OrderNotFound."""
        with pytest.raises(OrderNotFound) as exc_info:
            SettlementService.resolve_order("QKY-ORD-0-NOPE")

        assert exc_info.value.details == {"reference": "QKY-ORD-0-NOPE"}
        assert exc_info.value.http_status == 404


# =============================================================================
# MAIN_BALANCE Settlement
# =============================================================================


class TestSettleMainBalance:
    """Tests for settling into the merchant wallet."""

    def test_successful_payment_credits_wallet(self, db, pending_order, merchant_id, fee_settings):
        """A 5000 payment at 2% credits 4900 and confirms the order."""
        result = SettlementService.settle(
            pending_order.id, make_outcome(pending_order.order_reference, 5000)
        )

        assert result.status == PaymentStatus.SUCCESS
        assert result.mode == SettlementMode.MAIN_BALANCE
        assert result.skipped is False

        settlement = Settlement.objects.get(order=pending_order)
        assert settlement.gross_amount == 5000
        assert settlement.platform_fee == 100
        assert settlement.amount == 4900
        assert settlement.status == SettlementStatus.COMPLETED
        assert settlement.settled_at is not None

        balance = WalletLedger.get_balance(merchant_id)
        assert balance.available == 4900
        assert balance.ledger == 4900

        txn = Transaction.objects.get(reference=settlement.settlement_reference)
        assert txn.type == TransactionType.CREDIT
        assert txn.category == TransactionCategory.SETTLEMENT
        assert (txn.balance_before, txn.balance_after) == (0, 4900)
        assert txn.order_id == pending_order.id
        assert txn.settlement_id == settlement.id
        assert txn.metadata["platformFee"] == 100
        assert result.transaction == txn

        order = Order.objects.get(id=pending_order.id)
        assert order.status == OrderStatus.CONFIRMED
        assert order.payment_status == OrderPaymentStatus.PAID

        payment = OrderPayment.objects.get(order=pending_order)
        assert payment.status == PaymentAttemptStatus.SUCCESS
        assert payment.paid_at is not None

    def test_creates_missing_wallet(self, db, pending_order, merchant_id):
        """The merchant wallet is created on first settlement."""
        SettlementService.settle(pending_order.id, make_outcome(pending_order.order_reference))

        assert WalletLedger.get_balance(merchant_id).available == 5000

    def test_overpayment_settles_amount_paid(self, db, pending_order, merchant_id):
        """Paying more than due settles everything paid and records the excess."""
        result = SettlementService.settle(
            pending_order.id, make_outcome(pending_order.order_reference, 6000)
        )

        settlement = Settlement.objects.get(order=pending_order)
        assert settlement.gross_amount == 6000
        assert settlement.amount == 6000
        assert settlement.get_meta("overpaidAmount") == 1000
        assert result.transaction.amount == 6000
        assert result.transaction.metadata["overpaidAmount"] == 1000
        assert WalletLedger.get_balance(merchant_id).available == 6000

    def test_overpayment_fee_uses_amount_paid(self, db, pending_order, merchant_id, fee_settings):
        """The platform fee is taken from the amount actually paid."""
        SettlementService.settle(pending_order.id, make_outcome(pending_order.order_reference, 6000))

        settlement = Settlement.objects.get(order=pending_order)
        assert settlement.platform_fee == 120
        assert settlement.amount == 5880
        assert WalletLedger.get_balance(merchant_id).available == 5880

    def test_exact_payment_records_no_overpayment(self, db, pending_order, merchant_id):
        """A payment of exactly the amount due carries no overpayment marker."""
        SettlementService.settle(pending_order.id, make_outcome(pending_order.order_reference, 5000))

        assert Settlement.objects.get(order=pending_order).get_meta("overpaidAmount") is None

    def test_holdback(self, db, pending_order, merchant_id, settings):
        """SETTLEMENT_PERCENTAGE withholds part of the net amount."""
        settings.PLATFORM_FEE_PERCENTAGE = 2
        settings.SETTLEMENT_PERCENTAGE = 90

        SettlementService.settle(pending_order.id, make_outcome(pending_order.order_reference))

        settlement = Settlement.objects.get(order=pending_order)
        assert settlement.amount == 4410
        assert settlement.holdback_amount == 490
        assert WalletLedger.get_balance(merchant_id).available == 4410

    def test_settles_order_checked_out_by_transaction_reference(self, db, merchant_id):
        """An attempt row is created when checkout used the order's provider reference."""
        order = OrderFactory(merchant_id=merchant_id, transaction_reference="PSK-TXN-77")

        result = SettlementService.settle(order.id, make_outcome("PSK-TXN-77"))

        assert result.payment.payment_reference == "PSK-TXN-77"
        assert result.payment.status == PaymentAttemptStatus.SUCCESS
        assert WalletLedger.get_balance(merchant_id).available == 5000

    def test_replay_returns_existing_settlement(self, db, pending_order, merchant_id):
        """A second delivery of the same outcome has no further effect."""
        outcome = make_outcome(pending_order.order_reference)
        first = SettlementService.settle(pending_order.id, outcome)

        second = SettlementService.settle(pending_order.id, outcome)

        assert second.already_settled is True
        assert second.settlement == first.settlement
        assert second.transaction == first.transaction
        assert Settlement.objects.filter(order=pending_order).count() == 1
        assert Transaction.objects.filter(user_id=merchant_id).count() == 1
        assert WalletLedger.get_balance(merchant_id).available == 5000


# =============================================================================
# SUBACCOUNT Settlement
# =============================================================================


class TestSettleSubaccount:
    """Tests for split payments routed by the provider."""

    def test_split_records_balance_neutral_row(self, db, pending_order, merchant_id):
        """Split settlements never move the wallet balance."""
        split = SplitInfo(subaccount_code="ACCT_merchant", subaccount_share=4500, platform_share=500)

        result = SettlementService.settle(
            pending_order.id,
            make_outcome(pending_order.order_reference, split_info=split),
        )

        assert result.mode == SettlementMode.SUBACCOUNT
        assert result.skipped is True

        settlement = Settlement.objects.get(order=pending_order)
        assert settlement.status == SettlementStatus.SKIPPED
        assert settlement.amount == 4500
        assert settlement.platform_fee == 500
        assert settlement.subaccount_code == "ACCT_merchant"

        txn = result.transaction
        assert txn.is_split is True
        assert txn.balance_before == txn.balance_after == 0
        assert txn.amount == 4500
        assert txn.metadata["subaccountCode"] == "ACCT_merchant"

        assert WalletLedger.get_balance(merchant_id).available == 0
        assert Order.objects.get(id=pending_order.id).status == OrderStatus.CONFIRMED

    def test_split_without_share_uses_net_amount(self, db, pending_order, fee_settings):
        """When the provider omits the share, the computed net is recorded."""
        split = SplitInfo(subaccount_code="ACCT_merchant")

        result = SettlementService.settle(
            pending_order.id,
            make_outcome(pending_order.order_reference, split_info=split),
        )

        assert result.settlement.amount == 4900
        assert result.transaction.amount == 4900

    def test_configured_subaccount_mode_without_split_info(self, db, pending_order, merchant_id, settings):
        """SETTLEMENT_MODE=SUBACCOUNT records a split even without provider split data."""
        settings.SETTLEMENT_MODE = SettlementMode.SUBACCOUNT

        result = SettlementService.settle(pending_order.id, make_outcome(pending_order.order_reference))

        assert result.mode == SettlementMode.SUBACCOUNT
        assert result.transaction.is_split is True
        assert WalletLedger.get_balance(merchant_id).available == 0


# =============================================================================
# Mismatches and Invalid States
# =============================================================================


class TestSettleRejections:
    """Outcomes that must not settle leave no trace."""

    def test_short_payment_rolls_back(self, db, pending_order, merchant_id):
        """Paying less than due raises PaymentMismatch and persists nothing."""
        with pytest.raises(PaymentMismatch) as exc_info:
            SettlementService.settle(pending_order.id, make_outcome(pending_order.order_reference, 4000))

        assert exc_info.value.details == {"expected": 5000, "received": 4000}
        assert not Settlement.objects.filter(order=pending_order).exists()
        assert OrderPayment.objects.get(order=pending_order).status == PaymentAttemptStatus.PENDING
        assert Order.objects.get(id=pending_order.id).status == OrderStatus.PENDING
        assert not Transaction.objects.filter(user_id=merchant_id).exists()

    def test_currency_mismatch(self, db, pending_order):
        """A payment in another currency is rejected."""
        with pytest.raises(PaymentMismatch):
            SettlementService.settle(
                pending_order.id,
                make_outcome(pending_order.order_reference, currency="USD"),
            )

        assert not Settlement.objects.filter(order=pending_order).exists()

    def test_cancelled_order_cannot_settle(self, db, merchant_id):
        """Success for an order no longer awaiting payment is an error."""
        order = OrderFactory(merchant_id=merchant_id, status=OrderStatus.CANCELLED)
        OrderPaymentFactory(order=order)

        with pytest.raises(SettlementError):
            SettlementService.settle(order.id, make_outcome(order.order_reference))

        assert not Settlement.objects.filter(order=order).exists()

    def test_unknown_order(self, db):
        """Settling a missing order raises OrderNotFound."""
        with pytest.raises(OrderNotFound):
            SettlementService.settle(uuid.uuid4(), make_outcome("QKY-ORD-0-NOPE"))

    def test_reference_not_on_order(self, db, pending_order):
        """An outcome whose reference belongs to no attempt on the order is refused."""
        with pytest.raises(OrderNotFound):
            SettlementService.settle(pending_order.id, make_outcome("SOMEONE-ELSES-REF"))


# =============================================================================
# Failed and Pending Payments
# =============================================================================


class TestSettleFailures:
    """Tests for failed and pending outcomes."""

    def test_failure_cancels_order(self, db, pending_order, merchant_id):
        """Under the cancel policy a failed payment cancels the order."""
        result = SettlementService.settle(
            pending_order.id,
            make_outcome(pending_order.order_reference, status=PaymentStatus.FAILED),
        )

        assert result.status == PaymentStatus.FAILED
        assert result.settlement is None

        order = Order.objects.get(id=pending_order.id)
        assert order.status == OrderStatus.CANCELLED
        assert order.payment_status == OrderPaymentStatus.FAILED

        payment = OrderPayment.objects.get(order=pending_order)
        assert payment.status == PaymentAttemptStatus.FAILED
        assert payment.failure_reason == "failed"
        assert not Settlement.objects.exists()
        assert not Transaction.objects.filter(user_id=merchant_id).exists()

    def test_failure_under_grace_policy_keeps_order_open(self, db, pending_order, settings):
        """Under the grace policy the order waits for another attempt."""
        settings.PAYMENT_FAILURE_POLICY = "grace"

        SettlementService.settle(
            pending_order.id,
            make_outcome(pending_order.order_reference, status=PaymentStatus.FAILED),
        )

        order = Order.objects.get(id=pending_order.id)
        assert order.status == OrderStatus.PENDING
        assert order.payment_status == OrderPaymentStatus.FAILED

    def test_retry_after_grace_failure_settles(self, db, merchant_id, settings):
        """A later successful attempt settles an order whose first attempt failed."""
        settings.PAYMENT_FAILURE_POLICY = "grace"
        order = OrderFactory(merchant_id=merchant_id)
        OrderPaymentFactory(order=order, payment_reference="ATTEMPT-1")
        OrderPaymentFactory(order=order, payment_reference="ATTEMPT-2")

        SettlementService.settle(order.id, make_outcome("ATTEMPT-1", status=PaymentStatus.FAILED))
        result = SettlementService.settle(order.id, make_outcome("ATTEMPT-2"))

        assert result.status == PaymentStatus.SUCCESS
        assert WalletLedger.get_balance(merchant_id).available == 5000

    def test_pending_outcome_changes_nothing(self, db, pending_order):
        """Pending and unrecognized outcomes only record the provider response."""
        result = SettlementService.settle(
            pending_order.id,
            make_outcome(
                pending_order.order_reference,
                status=PaymentStatus.PENDING,
                provider_status="reversed_by_bank",
                is_unrecognized=True,
            ),
        )

        assert result.status == PaymentStatus.PENDING
        payment = OrderPayment.objects.get(order=pending_order)
        assert payment.status == PaymentAttemptStatus.PENDING
        assert payment.provider_response["provider_status"] == "reversed_by_bank"
        assert Order.objects.get(id=pending_order.id).status == OrderStatus.PENDING
        assert not Settlement.objects.exists()


# =============================================================================
# Signals
# =============================================================================


class TestSettlementSignals:
    """Signals are sent only after the transaction commits."""

    def test_settlement_completed_sent_on_commit(
        self, db, pending_order, captured_signal, django_capture_on_commit_callbacks
    ):
        """settlement_completed carries the settlement and mode."""
        calls = captured_signal(settlement_completed)

        with django_capture_on_commit_callbacks(execute=True):
            result = SettlementService.settle(
                pending_order.id, make_outcome(pending_order.order_reference)
            )

        assert len(calls) == 1
        assert calls[0]["settlement"] == result.settlement
        assert calls[0]["mode"] == SettlementMode.MAIN_BALANCE

    def test_no_signal_before_commit(self, db, pending_order, captured_signal, django_capture_on_commit_callbacks):
        """Nothing is sent while the transaction is still open."""
        calls = captured_signal(settlement_completed)

        with django_capture_on_commit_callbacks(execute=False) as callbacks:
            SettlementService.settle(pending_order.id, make_outcome(pending_order.order_reference))

        assert calls == []
        assert len(callbacks) == 1

    def test_settlement_failed_sent(self, db, pending_order, captured_signal, django_capture_on_commit_callbacks):
        """settlement_failed carries the provider status as reason."""
        calls = captured_signal(settlement_failed)

        with django_capture_on_commit_callbacks(execute=True):
            SettlementService.settle(
                pending_order.id,
                make_outcome(pending_order.order_reference, status=PaymentStatus.FAILED),
            )

        assert len(calls) == 1
        assert calls[0]["reason"] == "failed"
        assert calls[0]["order"].id == pending_order.id

    def test_failing_receiver_does_not_break_settlement(
        self, db, pending_order, merchant_id, django_capture_on_commit_callbacks
    ):
        """Receiver errors are logged and swallowed by send_robust."""

        def broken(sender, **kwargs):
            raise RuntimeError("notification service down")

        settlement_completed.connect(broken, weak=False)
        try:
            with django_capture_on_commit_callbacks(execute=True):
                SettlementService.settle(pending_order.id, make_outcome(pending_order.order_reference))
        finally:
            settlement_completed.disconnect(broken)

        assert WalletLedger.get_balance(merchant_id).available == 5000
