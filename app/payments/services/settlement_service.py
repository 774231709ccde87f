"""
Settlement orchestration for paid orders.

Settling an order moves it from "customer paid" to "merchant has the money":

    OrderPayment -> success
    Settlement   -> completed (MAIN_BALANCE) or skipped (SUBACCOUNT)
    Wallet       -> credited (MAIN_BALANCE) or split row only (SUBACCOUNT)
    Order        -> CONFIRMED, payment_status PAID

All of the above is one database transaction; any failure rolls back every
step. A settled order is never settled twice.

Fee math (MAIN_BALANCE, integers in minor units):
    fee      = floor(gross * PLATFORM_FEE_PERCENTAGE / 100), capped at PLATFORM_FEE_MAX
    net      = gross - fee
    settled  = floor(net * SETTLEMENT_PERCENTAGE / 100)
    holdback = net - settled

Usage:
    from payments.services import SettlementService

    order = SettlementService.resolve_order(outcome.reference)
    result = SettlementService.settle(order.id, outcome)
    if result.settlement:
        print(result.settlement.amount)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from core.services import BaseService
from payments.exceptions import (
    OrderNotFound,
    PaymentMismatch,
    SettlementError,
)
from payments.ledger import wallet_ledger
from payments.models import Order, OrderPayment, Settlement
from payments.services.order_state import OrderStateMachine
from payments.signals import send_on_commit, settlement_completed, settlement_failed
from payments.state_machines import (
    OrderPaymentStatus,
    PaymentAttemptStatus,
    PaymentStatus,
    Provider,
    SettlementMode,
    SettlementStatus,
    TransactionCategory,
    TriggeredBy,
)

if TYPE_CHECKING:
    import uuid

    from payments.adapters import PaymentOutcome
    from payments.models import Transaction

FAILURE_POLICY_CANCEL = "cancel"
FAILURE_POLICY_GRACE = "grace"

HUNDRED = Decimal(100)


# =============================================================================
# Data Types
# =============================================================================


@dataclass(frozen=True)
class SettlementBreakdown:
    """
    How a gross payment divides between platform, holdback and merchant.

    Attributes:
        gross_amount: Amount the customer paid
        platform_fee: Fee kept by the platform
        net_amount: gross_amount - platform_fee
        settled_amount: Part of net_amount credited to the merchant
        holdback_amount: net_amount - settled_amount
    """

    gross_amount: int
    platform_fee: int
    net_amount: int
    settled_amount: int
    holdback_amount: int


@dataclass
class SettlementResult:
    """
    Result of applying a payment outcome to an order.

    Attributes:
        order: The order after the outcome was applied
        payment: The OrderPayment the outcome matched
        status: PaymentStatus applied (SUCCESS, FAILED or PENDING)
        settlement: Created or existing Settlement (None unless SUCCESS)
        transaction: Ledger row written for the settlement
        mode: Settlement mode used
        skipped: True when the wallet credit was skipped for a split
        already_settled: True when an earlier delivery settled the order
    """

    order: Order
    payment: OrderPayment | None
    status: str
    settlement: Settlement | None = None
    transaction: Transaction | None = None
    mode: str | None = None
    skipped: bool = False
    already_settled: bool = False


# =============================================================================
# Fee Calculation
# =============================================================================


def _percentage_of(amount: int, percentage: Decimal) -> int:
    return int((Decimal(amount) * percentage / HUNDRED).to_integral_value(rounding=ROUND_DOWN))


def compute_breakdown(
    gross_amount: int,
    fee_percentage: Decimal | str | int | None = None,
    fee_max: int | None = None,
    settlement_percentage: Decimal | str | int | None = None,
) -> SettlementBreakdown:
    """
    Split a gross amount into fee, settled amount and holdback.

    Args:
        gross_amount: Amount paid (minor units)
        fee_percentage: Platform fee percent (default: PLATFORM_FEE_PERCENTAGE)
        fee_max: Upper bound on the fee (default: PLATFORM_FEE_MAX, None = no cap)
        settlement_percentage: Percent of net settled (default: SETTLEMENT_PERCENTAGE)

    Returns:
        SettlementBreakdown

    Example:
        compute_breakdown(5000, fee_percentage=2)
        # SettlementBreakdown(5000, 100, 4900, 4900, 0)
    """
    if fee_percentage is None:
        fee_percentage = getattr(settings, "PLATFORM_FEE_PERCENTAGE", 0)
    if fee_max is None:
        fee_max = getattr(settings, "PLATFORM_FEE_MAX", None)
    if settlement_percentage is None:
        settlement_percentage = getattr(settings, "SETTLEMENT_PERCENTAGE", 100)

    fee = _percentage_of(gross_amount, Decimal(str(fee_percentage)))
    if fee_max is not None:
        fee = min(fee, int(fee_max))
    fee = min(max(fee, 0), gross_amount)

    net = gross_amount - fee
    settled = min(_percentage_of(net, Decimal(str(settlement_percentage))), net)

    return SettlementBreakdown(
        gross_amount=gross_amount,
        platform_fee=fee,
        net_amount=net,
        settled_amount=settled,
        holdback_amount=net - settled,
    )


# =============================================================================
# Settlement Service
# =============================================================================


class SettlementService(BaseService):
    """
    Applies verified payment outcomes to orders.

    All methods are classmethods - no instance state is maintained.
    """

    @classmethod
    def resolve_order(cls, reference: str) -> Order:
        """
        Find the order a payment reference belongs to.

        Looks up OrderPayment.payment_reference first, then
        Order.transaction_reference, then Order.order_reference.

        Raises:
            OrderNotFound: If nothing matches
        """
        payment = (
            OrderPayment.objects.select_related("order")
            .filter(payment_reference=reference)
            .first()
        )
        if payment is not None:
            return payment.order

        order = Order.objects.filter(transaction_reference=reference).first()
        if order is None:
            order = Order.objects.filter(order_reference=reference).first()
        if order is None:
            raise OrderNotFound(
                f"No order matches payment reference {reference}",
                details={"reference": reference},
            )
        return order

    @classmethod
    def settle(cls, order_id: uuid.UUID, outcome: PaymentOutcome) -> SettlementResult:
        """
        Apply a payment outcome to an order and settle it on success.

        Steps (one transaction):
        1. Lock the order; return the existing settlement if already settled
        2. Update the matching OrderPayment from the outcome
        3. FAILED: cancel the order (PAYMENT_FAILURE_POLICY=cancel) or leave
           it for another attempt (grace); no settlement
        4. PENDING: record the provider response only
        5. SUCCESS: create the Settlement, credit the merchant wallet
           (MAIN_BALANCE) or record the split (SUBACCOUNT), confirm the order

        Args:
            order_id: Order to settle
            outcome: Decoded provider outcome

        Returns:
            SettlementResult

        Raises:
            OrderNotFound: If the order or a matching payment does not exist
            PaymentMismatch: If currency differs or amount paid is short
            SettlementError: If the order is no longer awaiting payment
            LedgerError: If the merchant wallet cannot be credited
        """
        log = cls.get_logger()

        with cls.atomic():
            order = Order.objects.select_for_update().filter(id=order_id).first()
            if order is None:
                raise OrderNotFound(
                    f"Order {order_id} not found",
                    details={"order_id": str(order_id)},
                )

            existing = (
                Settlement.objects.select_related("order")
                .filter(order=order)
                .first()
            )
            if existing is not None:
                log.info(
                    "Order already settled",
                    extra={
                        "order_id": str(order.id),
                        "settlement_reference": existing.settlement_reference,
                    },
                )
                return SettlementResult(
                    order=order,
                    payment=order.payments.filter(status=PaymentAttemptStatus.SUCCESS).first(),
                    status=PaymentStatus.SUCCESS,
                    settlement=existing,
                    transaction=existing.transactions.order_by("created_at").first(),
                    mode=existing.mode,
                    skipped=existing.status == SettlementStatus.SKIPPED,
                    already_settled=True,
                )

            payment = cls._get_payment(order, outcome)
            if payment.is_successful:
                raise SettlementError(
                    f"Payment {payment.payment_reference} is already successful",
                    details={"order_id": str(order.id)},
                )

            payment.provider_response = {
                "provider_status": outcome.provider_status,
                "amount_paid": outcome.amount_paid,
                "currency": outcome.currency,
            }

            if outcome.status == PaymentStatus.PENDING:
                payment.save(update_fields=["provider_response", "updated_at"])
                log.info(
                    "Payment still pending",
                    extra={
                        "order_id": str(order.id),
                        "payment_reference": payment.payment_reference,
                        "provider_status": outcome.provider_status,
                        "is_unrecognized": outcome.is_unrecognized,
                    },
                )
                return SettlementResult(order=order, payment=payment, status=PaymentStatus.PENDING)

            if outcome.status == PaymentStatus.FAILED:
                return cls._apply_failure(order, payment, outcome)

            return cls._apply_success(order, payment, outcome)

    # =========================================================================
    # Internals
    # =========================================================================

    @classmethod
    def _get_payment(cls, order: Order, outcome: PaymentOutcome) -> OrderPayment:
        payment = (
            OrderPayment.objects.select_for_update()
            .filter(order=order, payment_reference=outcome.reference)
            .first()
        )
        if payment is not None:
            return payment

        # Checkout may have used the order's own reference without an attempt row
        if outcome.reference in (order.transaction_reference, order.order_reference):
            return OrderPayment.objects.create(
                order=order,
                payment_reference=outcome.reference,
                provider=outcome.provider or Provider.PAYSTACK,
                amount=order.total,
                currency=order.currency,
            )

        raise OrderNotFound(
            f"No payment {outcome.reference} on order {order.order_reference}",
            details={"order_id": str(order.id), "reference": outcome.reference},
        )

    @classmethod
    def _apply_failure(
        cls,
        order: Order,
        payment: OrderPayment,
        outcome: PaymentOutcome,
    ) -> SettlementResult:
        payment.status = PaymentAttemptStatus.FAILED
        payment.failure_reason = outcome.provider_status
        payment.save(update_fields=["status", "failure_reason", "provider_response", "updated_at"])

        policy = getattr(settings, "PAYMENT_FAILURE_POLICY", FAILURE_POLICY_CANCEL)
        order.payment_status = OrderPaymentStatus.FAILED
        if policy == FAILURE_POLICY_CANCEL and order.is_awaiting_payment:
            OrderStateMachine.apply(
                order,
                "cancel",
                triggered_by=TriggeredBy.SYSTEM,
                notes=f"Payment {payment.payment_reference} failed: {outcome.provider_status}",
            )
        else:
            order.save(update_fields=["payment_status", "updated_at"])

        cls.get_logger().warning(
            "Payment failed",
            extra={
                "order_id": str(order.id),
                "payment_reference": payment.payment_reference,
                "provider_status": outcome.provider_status,
                "policy": policy,
                "order_status": order.status,
            },
        )
        send_on_commit(
            settlement_failed,
            sender=Order,
            order=order,
            payment=payment,
            reason=outcome.provider_status,
        )
        return SettlementResult(order=order, payment=payment, status=PaymentStatus.FAILED)

    @classmethod
    def _apply_success(
        cls,
        order: Order,
        payment: OrderPayment,
        outcome: PaymentOutcome,
    ) -> SettlementResult:
        if not order.is_awaiting_payment:
            raise SettlementError(
                f"Order {order.order_reference} is {order.status}, not awaiting payment",
                details={"order_id": str(order.id), "status": order.status},
            )
        if outcome.currency != payment.currency:
            raise PaymentMismatch(
                f"Paid in {outcome.currency}, expected {payment.currency}",
                details={"expected": payment.currency, "received": outcome.currency},
            )
        if outcome.amount_paid < payment.amount:
            raise PaymentMismatch(
                "Amount paid is less than the payment amount",
                details={"expected": payment.amount, "received": outcome.amount_paid},
            )

        now = timezone.now()
        payment.status = PaymentAttemptStatus.SUCCESS
        payment.paid_at = now
        payment.save(update_fields=["status", "paid_at", "provider_response", "updated_at"])

        split = outcome.split_info
        mode = SettlementMode.SUBACCOUNT if split else getattr(
            settings, "SETTLEMENT_MODE", SettlementMode.MAIN_BALANCE
        )
        # Overpayments settle in full; the excess is refundable like the rest
        gross_amount = outcome.amount_paid
        overpaid = gross_amount - payment.amount
        breakdown = compute_breakdown(gross_amount)
        wallet_ledger.get_or_create_wallet(order.merchant_id, currency=order.currency)

        metadata = {
            "orderReference": order.order_reference,
            "paymentReference": payment.payment_reference,
            "provider": payment.provider,
            "grossAmount": gross_amount,
        }
        if overpaid:
            metadata["overpaidAmount"] = overpaid
            cls.get_logger().warning(
                "Payment exceeds the amount due",
                extra={
                    "order_id": str(order.id),
                    "payment_reference": payment.payment_reference,
                    "expected": payment.amount,
                    "received": gross_amount,
                },
            )

        if mode == SettlementMode.SUBACCOUNT:
            split_amount = (
                split.subaccount_share
                if split and split.subaccount_share > 0
                else breakdown.net_amount
            )
            settlement = Settlement.objects.create(
                order=order,
                merchant_id=order.merchant_id,
                gross_amount=gross_amount,
                platform_fee=split.platform_share if split else breakdown.platform_fee,
                amount=split_amount,
                currency=payment.currency,
                status=SettlementStatus.SKIPPED,
                mode=mode,
                subaccount_code=split.subaccount_code if split else "",
                settled_at=now,
                metadata=metadata,
            )
            txn = None
            if split_amount > 0:
                txn = wallet_ledger.record_split(
                    order.merchant_id,
                    split_amount,
                    settlement.settlement_reference,
                    {**metadata, "subaccountCode": settlement.subaccount_code},
                    order_id=order.id,
                    settlement_id=settlement.id,
                )
        else:
            settlement = Settlement.objects.create(
                order=order,
                merchant_id=order.merchant_id,
                gross_amount=gross_amount,
                platform_fee=breakdown.platform_fee,
                holdback_amount=breakdown.holdback_amount,
                amount=breakdown.settled_amount,
                currency=payment.currency,
                status=SettlementStatus.COMPLETED,
                mode=mode,
                settled_at=now,
                metadata=metadata,
            )
            txn = None
            if breakdown.settled_amount > 0:
                txn = wallet_ledger.credit(
                    order.merchant_id,
                    breakdown.settled_amount,
                    settlement.settlement_reference,
                    {**metadata, "platformFee": breakdown.platform_fee},
                    category=TransactionCategory.SETTLEMENT,
                    description=f"Settlement for order {order.order_reference}",
                    order_id=order.id,
                    settlement_id=settlement.id,
                )

        if not OrderStateMachine.apply(
            order,
            "confirm",
            triggered_by=TriggeredBy.SYSTEM,
            notes=f"Payment {payment.payment_reference} verified",
        ):
            raise SettlementError(
                f"Order {order.order_reference} could not be confirmed",
                details={"order_id": str(order.id), "status": order.status},
            )

        cls.get_logger().info(
            "Order settled",
            extra={
                "order_id": str(order.id),
                "settlement_reference": settlement.settlement_reference,
                "mode": mode,
                "gross_amount": settlement.gross_amount,
                "platform_fee": settlement.platform_fee,
                "settled_amount": settlement.amount,
            },
        )
        send_on_commit(
            settlement_completed,
            sender=Settlement,
            settlement=settlement,
            order=order,
            mode=mode,
        )
        return SettlementResult(
            order=order,
            payment=payment,
            status=PaymentStatus.SUCCESS,
            settlement=settlement,
            transaction=txn,
            mode=mode,
            skipped=mode == SettlementMode.SUBACCOUNT,
        )
