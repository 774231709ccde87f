"""
Refund service for returning money against a settled order.

A refund reverses part or all of a prior Settlement:

    WALLET            -> debit the merchant wallet with a REVERSAL row linked
                         to the settlement credit; Refund completes at once
    ORIGINAL_PAYMENT  -> Refund stays PROCESSING; refund_requested is sent
    BANK_ACCOUNT         for the payout collaborator and the provider's
                         refund webhook later completes or fails it

Validation, the ledger debit, the Refund row and the order update are one
database transaction. If the merchant wallet cannot cover the refund,
InsufficientFunds reaches the caller and nothing is persisted.

Usage:
    from payments.services import RefundService
    from payments.state_machines import RefundReason

    # Partial refund to the merchant wallet
    result = RefundService.refund(order.id, amount=2500, reason=RefundReason.DAMAGED_PRODUCT)
    result.refund.status        # "completed"
    result.transaction.type     # "reversal"

    # Full refund of whatever is still refundable
    result = RefundService.refund(order.id)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from django.db.models import Sum

from core.services import BaseService
from payments.exceptions import OrderNotFound, RefundError, RefundNotAllowed
from payments.ledger import wallet_ledger
from payments.models import Order, Refund, Settlement
from payments.references import reversal_reference
from payments.services.order_state import OrderStateMachine
from payments.signals import refund_completed, refund_requested, send_on_commit
from payments.state_machines import (
    OrderPaymentStatus,
    RefundMethod,
    RefundReason,
    RefundStatus,
    RefundType,
    TransactionCategory,
    TransactionType,
    TriggeredBy,
)

if TYPE_CHECKING:
    import uuid

    from payments.models import Transaction


# Order payment statuses from which a refund may be requested
REFUNDABLE_PAYMENT_STATUSES = frozenset(
    [
        OrderPaymentStatus.PAID,
        OrderPaymentStatus.PARTIALLY_REFUNDED,
    ]
)

# Refunds that have reserved part of the settlement but not yet completed
OPEN_REFUND_STATUSES = (RefundStatus.REQUESTED, RefundStatus.PROCESSING)


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RefundResult:
    """
    Result of a refund request.

    Attributes:
        refund: The Refund record
        transaction: Ledger reversal for wallet refunds, None otherwise
        order: The order after refunded_amount and payment_status were updated
    """

    refund: Refund
    transaction: Transaction | None
    order: Order


# =============================================================================
# Refund Service
# =============================================================================


class RefundService(BaseService):
    """
    Creates and completes refunds.

    All methods are classmethods - no instance state is maintained.
    """

    @classmethod
    def refundable_amount(cls, order: Order, settlement: Settlement | None = None) -> int:
        """
        Amount still refundable on an order.

        settled amount - refunded_amount - open external refunds

        Returns:
            Remaining refundable amount (0 when the order has no settlement)
        """
        if settlement is None:
            settlement = Settlement.objects.filter(order=order).first()
            if settlement is None:
                return 0

        reserved = (
            Refund.objects.filter(order=order, status__in=OPEN_REFUND_STATUSES)
            .aggregate(total=Sum("amount"))["total"]
            or 0
        )
        return max(settlement.amount - order.refunded_amount - reserved, 0)

    @classmethod
    def refund(
        cls,
        order_id: uuid.UUID,
        amount: int | None = None,
        reason: str = RefundReason.OTHER,
        refund_type: str | None = None,
        refund_method: str = RefundMethod.WALLET,
        reason_notes: str = "",
        requested_by: uuid.UUID | None = None,
    ) -> RefundResult:
        """
        Refund an order against its settlement.

        Args:
            order_id: Order to refund
            amount: Amount in minor units; None refunds everything remaining
            reason: RefundReason value
            refund_type: FULL or PARTIAL; inferred from amount when None
            refund_method: WALLET, ORIGINAL_PAYMENT or BANK_ACCOUNT
            reason_notes: Free-text explanation
            requested_by: User requesting the refund

        Returns:
            RefundResult

        Raises:
            OrderNotFound: If the order does not exist
            RefundNotAllowed: If the order was never paid, has no settlement,
                or the amount is not within (0, remaining]
            InsufficientFunds: If the merchant wallet cannot cover a wallet
                refund; nothing is persisted
        """
        log = cls.get_logger()

        with cls.atomic():
            order = Order.objects.select_for_update().filter(id=order_id).first()
            if order is None:
                raise OrderNotFound(
                    f"Order {order_id} not found",
                    details={"order_id": str(order_id)},
                )

            if order.payment_status not in REFUNDABLE_PAYMENT_STATUSES:
                raise RefundNotAllowed(
                    f"Order {order.order_reference} has not been paid",
                    error_code="ORDER_NOT_PAID",
                    details={"order_id": str(order.id), "payment_status": order.payment_status},
                )

            settlement = Settlement.objects.filter(order=order).first()
            if settlement is None:
                raise RefundNotAllowed(
                    f"Order {order.order_reference} has no settlement",
                    error_code="SETTLEMENT_NOT_FOUND",
                    details={"order_id": str(order.id)},
                )

            remaining = cls.refundable_amount(order, settlement)
            amount, refund_type = cls._resolve_amount(amount, refund_type, remaining)

            refund = Refund.objects.create(
                order=order,
                settlement=settlement,
                refund_type=refund_type,
                refund_method=refund_method,
                reason=reason,
                reason_notes=reason_notes,
                amount=amount,
                currency=settlement.currency,
                requested_by=requested_by,
            )
            refund.process()

            if refund_method != RefundMethod.WALLET:
                refund.save()
                log.info(
                    "External refund requested",
                    extra={
                        "refund_reference": refund.refund_reference,
                        "order_id": str(order.id),
                        "amount": amount,
                        "refund_method": refund_method,
                    },
                )
                send_on_commit(refund_requested, sender=Refund, refund=refund, order=order)
                return RefundResult(refund=refund, transaction=None, order=order)

            txn = cls._reverse_settlement(order, settlement, refund)
            refund.reversal_transaction = txn
            refund.complete()
            refund.save()

            cls._apply_to_order(order, settlement, refund, requested_by)

        log.info(
            "Refund completed",
            extra={
                "refund_reference": refund.refund_reference,
                "order_id": str(order.id),
                "amount": amount,
                "refund_type": refund_type,
                "reversal_reference": txn.reference,
                "refunded_amount": order.refunded_amount,
            },
        )
        send_on_commit(refund_completed, sender=Refund, refund=refund, order=order)
        return RefundResult(refund=refund, transaction=txn, order=order)

    @classmethod
    def complete_external_refund(
        cls,
        refund_id: uuid.UUID,
        success: bool,
        provider_metadata: dict[str, Any] | None = None,
        failure_reason: str = "",
    ) -> Refund:
        """
        Close an external refund from the provider's report.

        Args:
            refund_id: Refund to close
            success: Whether the provider paid the refund out
            provider_metadata: Provider data stored on the refund
            failure_reason: Provider reason for a failed refund

        Returns:
            The updated Refund (unchanged if it was already closed)

        Raises:
            RefundError: If the refund does not exist
        """
        with cls.atomic():
            refund = Refund.objects.select_for_update().filter(id=refund_id).first()
            if refund is None:
                raise RefundError(
                    f"Refund {refund_id} not found",
                    error_code="REFUND_NOT_FOUND",
                    details={"refund_id": str(refund_id)},
                )
            if refund.status != RefundStatus.PROCESSING:
                cls.get_logger().info(
                    "Refund already closed",
                    extra={"refund_reference": refund.refund_reference, "status": refund.status},
                )
                return refund

            refund.provider_metadata = dict(provider_metadata or {})
            if not success:
                refund.fail(failure_reason or "Provider reported refund failure")
                refund.save()
                cls.get_logger().warning(
                    "External refund failed",
                    extra={
                        "refund_reference": refund.refund_reference,
                        "reason": refund.failure_reason,
                    },
                )
                return refund

            refund.complete()
            refund.save()
            order = Order.objects.select_for_update().get(id=refund.order_id)
            cls._apply_to_order(order, refund.settlement, refund, refund.requested_by)

        cls.get_logger().info(
            "External refund completed",
            extra={"refund_reference": refund.refund_reference, "amount": refund.amount},
        )
        send_on_commit(refund_completed, sender=Refund, refund=refund, order=order)
        return refund

    @classmethod
    def find_open_external_refund(cls, payment_reference: str, refund_reference: str = "") -> Refund | None:
        """
        Find the processing external refund a provider webhook refers to.

        Matches the refund reference when the provider echoes it, otherwise
        the oldest processing external refund on the order that was paid
        with payment_reference.
        """
        open_refunds = Refund.objects.filter(status=RefundStatus.PROCESSING).exclude(
            refund_method=RefundMethod.WALLET
        )
        if refund_reference:
            refund = open_refunds.filter(refund_reference=refund_reference).first()
            if refund is not None:
                return refund
        if not payment_reference:
            return None
        return (
            open_refunds.filter(order__payments__payment_reference=payment_reference)
            .order_by("created_at")
            .first()
        )

    # =========================================================================
    # Internals
    # =========================================================================

    @classmethod
    def _resolve_amount(
        cls,
        amount: int | None,
        refund_type: str | None,
        remaining: int,
    ) -> tuple[int, str]:
        if remaining <= 0:
            raise RefundNotAllowed(
                "Nothing left to refund on this order",
                error_code="NOTHING_TO_REFUND",
                details={"remaining": remaining},
            )

        if refund_type == RefundType.FULL or (refund_type is None and amount is None):
            if amount is not None and amount != remaining:
                raise RefundNotAllowed(
                    "A full refund must cover the remaining amount",
                    error_code="INVALID_REFUND_AMOUNT",
                    details={"amount": amount, "remaining": remaining},
                )
            return remaining, RefundType.FULL

        if amount is None:
            raise RefundNotAllowed(
                "A partial refund needs an amount",
                error_code="INVALID_REFUND_AMOUNT",
                details={"remaining": remaining},
            )
        if amount <= 0 or amount > remaining:
            raise RefundNotAllowed(
                f"Refund amount must be between 1 and {remaining}",
                error_code="INVALID_REFUND_AMOUNT",
                details={"amount": amount, "remaining": remaining},
            )
        return amount, RefundType.FULL if amount == remaining else RefundType.PARTIAL

    @classmethod
    def _reverse_settlement(cls, order: Order, settlement: Settlement, refund: Refund) -> Transaction:
        original = (
            settlement.transactions.filter(type=TransactionType.CREDIT)
            .order_by("created_at")
            .first()
        )
        return wallet_ledger.debit(
            order.merchant_id,
            refund.amount,
            reversal_reference(order.order_reference),
            {
                "settlementReference": settlement.settlement_reference,
                "refundReference": refund.refund_reference,
                "originalTransactionReference": original.reference if original else None,
                "reason": refund.reason,
            },
            transaction_type=TransactionType.REVERSAL,
            category=TransactionCategory.REFUND,
            description=f"Refund for order {order.order_reference}",
            order_id=order.id,
            settlement_id=settlement.id,
            related_transaction_id=original.id if original else None,
        )

    @classmethod
    def _apply_to_order(
        cls,
        order: Order,
        settlement: Settlement,
        refund: Refund,
        user_id: uuid.UUID | None,
    ) -> None:
        order.refunded_amount += refund.amount
        if order.refunded_amount >= settlement.amount:
            applied = OrderStateMachine.apply(
                order,
                "refund",
                triggered_by=TriggeredBy.USER if user_id else TriggeredBy.SYSTEM,
                user_id=user_id,
                notes=f"Refund {refund.refund_reference}",
            )
            if applied:
                return
            # Past delivery the order keeps its status; only the payment side changes
            order.payment_status = OrderPaymentStatus.REFUNDED
        else:
            order.payment_status = OrderPaymentStatus.PARTIALLY_REFUNDED
        order.save(update_fields=["refunded_amount", "payment_status", "updated_at"])
