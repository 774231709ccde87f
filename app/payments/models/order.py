"""
Order and OrderStatusHistory models.

Order is the purchase intent whose payment drives settlement. Its status
is a forward-only django-fsm state machine; every applied transition is
recorded in OrderStatusHistory.

Usage:
    from payments.models import Order
    from payments.services import OrderStateMachine
    from payments.state_machines import OrderStatus, TriggeredBy

    order = Order.objects.create(
        business_id=business.id,
        merchant_id=merchant.id,
        subtotal=4500,
        shipping_fee=500,
    )
    order.total  # 5000, computed on save

    # Transitions go through the state machine helper so history is kept
    OrderStateMachine.apply(order, "confirm", triggered_by=TriggeredBy.SYSTEM)
"""

from __future__ import annotations

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.references import order_reference
from payments.state_machines import (
    AWAITING_PAYMENT_STATES,
    PRE_DELIVERY_STATES,
    OrderPaymentStatus,
    OrderStatus,
    TriggeredBy,
)


class Order(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    A purchase intent settled to a merchant wallet once paid.

    State Flow:
        PENDING -> PAYMENT_INITIATED -> CONFIRMED -> PROCESSING -> SHIPPED
            -> DELIVERED -> COMPLETED

    Terminal Branches (from any pre-DELIVERED state):
        -> CANCELLED / RETURNED / REFUNDED

    Fields:
        order_reference: Unique QKY-ORD reference
        transaction_reference: Provider payment reference, when known
        business_id: Business the order was placed with
        merchant_id: User whose wallet receives the settlement
        customer_id: Buyer (null for guest checkout)
        subtotal/shipping_fee/tax/discount/total: Amounts in minor units
        status: Fulfilment lifecycle (FSM, protected)
        payment_status: Payment summary (paid, refunded, ...)
        refunded_amount: Sum of completed refunds

    Invariant:
        total = subtotal + shipping_fee + tax - discount
    """

    # ==========================================================================
    # References
    # ==========================================================================

    order_reference = models.CharField(
        max_length=64,
        unique=True,
        default=order_reference,
        help_text="Unique order reference (QKY-ORD-...)",
    )
    transaction_reference = models.CharField(
        max_length=100,
        unique=True,
        null=True,
        blank=True,
        help_text="Payment provider reference correlated with webhooks",
    )

    # ==========================================================================
    # Parties
    # ==========================================================================

    business_id = models.UUIDField(
        db_index=True,
        help_text="Business the order was placed with",
    )
    merchant_id = models.UUIDField(
        db_index=True,
        help_text="User whose wallet is credited on settlement",
    )
    customer_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Buyer; null for guest orders",
    )

    # ==========================================================================
    # Amounts (minor units)
    # ==========================================================================

    subtotal = models.PositiveBigIntegerField(
        default=0,
        help_text="Sum of item prices",
    )
    shipping_fee = models.PositiveBigIntegerField(
        default=0,
        help_text="Delivery charge",
    )
    tax = models.PositiveBigIntegerField(
        default=0,
        help_text="Tax charged on the order",
    )
    discount = models.PositiveBigIntegerField(
        default=0,
        help_text="Discount applied to the order",
    )
    total = models.PositiveBigIntegerField(
        blank=True,
        help_text="subtotal + shipping_fee + tax - discount (computed when omitted)",
    )
    currency = models.CharField(
        max_length=3,
        default="NGN",
        help_text="ISO 4217 currency code",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=OrderStatus.PENDING,
        choices=OrderStatus.choices,
        db_index=True,
        protected=True,  # Prevent direct assignment outside transitions
        help_text="Current fulfilment state (managed by FSM)",
    )
    payment_status = models.CharField(
        max_length=30,
        choices=OrderPaymentStatus.choices,
        default=OrderPaymentStatus.PENDING,
        db_index=True,
        help_text="Payment summary for the order",
    )
    refunded_amount = models.PositiveBigIntegerField(
        default=0,
        help_text="Total amount refunded so far",
    )
    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When payment was confirmed",
    )
    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the order was cancelled",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["merchant_id", "status"]),
            models.Index(fields=["business_id", "created_at"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(
                    total=F("subtotal") + F("shipping_fee") + F("tax") - F("discount")
                ),
                name="order_total_matches_components",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with reference, status, and total."""
        return f"Order({self.order_reference}, {self.status}, {self.total} {self.currency})"

    def compute_total(self) -> int:
        return self.subtotal + self.shipping_fee + self.tax - self.discount

    def clean(self) -> None:
        """Validate the amount invariant."""
        super().clean()
        gross = self.subtotal + self.shipping_fee + self.tax
        if self.discount > gross:
            raise ValidationError({"discount": "Discount cannot exceed order amount."})
        if self.total is not None and self.total != self.compute_total():
            raise ValidationError(
                {"total": "Total must equal subtotal + shipping_fee + tax - discount."}
            )

    def save(self, *args, **kwargs):
        if self.total is None:
            self.total = self.compute_total()
        super().save(*args, **kwargs)

    @property
    def is_awaiting_payment(self) -> bool:
        return self.status in AWAITING_PAYMENT_STATES

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=OrderStatus.PENDING,
        target=OrderStatus.PAYMENT_INITIATED,
    )
    def initiate_payment(self):
        """
        Customer started checkout with a provider.

        Transition: PENDING -> PAYMENT_INITIATED
        """
        self.payment_status = OrderPaymentStatus.INITIATED

    @transition(
        field=status,
        source=AWAITING_PAYMENT_STATES,
        target=OrderStatus.CONFIRMED,
    )
    def confirm(self):
        """
        Payment verified and settled.

        Transition: PENDING/PAYMENT_INITIATED -> CONFIRMED
        """
        self.payment_status = OrderPaymentStatus.PAID
        self.paid_at = timezone.now()

    @transition(
        field=status,
        source=OrderStatus.CONFIRMED,
        target=OrderStatus.PROCESSING,
    )
    def start_processing(self):
        """
        Merchant began preparing the order.

        Transition: CONFIRMED -> PROCESSING
        """

    @transition(
        field=status,
        source=OrderStatus.PROCESSING,
        target=OrderStatus.SHIPPED,
    )
    def ship(self):
        """
        Transition: PROCESSING -> SHIPPED
        """

    @transition(
        field=status,
        source=OrderStatus.SHIPPED,
        target=OrderStatus.DELIVERED,
    )
    def deliver(self):
        """
        Transition: SHIPPED -> DELIVERED
        """

    @transition(
        field=status,
        source=OrderStatus.DELIVERED,
        target=OrderStatus.COMPLETED,
    )
    def complete(self):
        """
        Transition: DELIVERED -> COMPLETED
        """

    @transition(
        field=status,
        source=PRE_DELIVERY_STATES,
        target=OrderStatus.CANCELLED,
    )
    def cancel(self):
        """
        Cancel the order.

        Transition: any pre-DELIVERED state -> CANCELLED

        Called by the settlement flow when payment fails under the
        ``cancel`` failure policy.
        """
        self.cancelled_at = timezone.now()

    @transition(
        field=status,
        source=PRE_DELIVERY_STATES,
        target=OrderStatus.RETURNED,
    )
    def mark_returned(self):
        """
        Transition: any pre-DELIVERED state -> RETURNED
        """

    @transition(
        field=status,
        source=PRE_DELIVERY_STATES,
        target=OrderStatus.REFUNDED,
    )
    def refund(self):
        """
        Order fully refunded.

        Transition: any pre-DELIVERED state -> REFUNDED
        """
        self.payment_status = OrderPaymentStatus.REFUNDED


class OrderStatusHistory(UUIDPrimaryKeyMixin, models.Model):
    """
    Append-only log of order status transitions.

    One row per applied transition, written by OrderStateMachine in the same
    database transaction as the status change.
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="status_history",
        help_text="Order whose status changed",
    )
    status = models.CharField(
        max_length=30,
        choices=OrderStatus.choices,
        help_text="Status after the transition",
    )
    previous_status = models.CharField(
        max_length=30,
        choices=OrderStatus.choices,
        help_text="Status before the transition",
    )
    triggered_by = models.CharField(
        max_length=20,
        choices=TriggeredBy.choices,
        default=TriggeredBy.SYSTEM,
        help_text="Kind of actor that caused the transition",
    )
    triggered_by_user_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="User who caused the transition, when any",
    )
    notes = models.TextField(
        blank=True,
        default="",
        help_text="Free-form context for the transition",
    )
    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When the transition was applied",
    )

    class Meta:
        ordering = ["created_at"]
        verbose_name_plural = "Order status history"

    def __str__(self) -> str:
        return f"{self.previous_status} -> {self.status} ({self.triggered_by})"
