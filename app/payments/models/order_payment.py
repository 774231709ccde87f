"""
OrderPayment model for individual payment attempts.

An Order may have several attempts (retries after failure), but at most one
attempt reaches ``success``. The payment_reference is what the provider
echoes back in its webhook ``reference`` field.
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import PaymentAttemptStatus, PaymentMethod, Provider


class OrderPayment(UUIDPrimaryKeyMixin, BaseModel):
    """
    One payment attempt against an Order.

    Fields:
        order: Order being paid (cascade)
        payment_reference: Unique provider reference
        amount: Amount charged in minor units
        net_amount: amount - provider_fee
        provider_fee: Fee kept by the provider
        provider: PAYSTACK or MONNIFY
        payment_method: card, bank_transfer, ...
        status: pending / success / failed
        provider_response: Last verified provider payload
        paid_at: When the provider confirmed success

    Constraints:
        - At most one success attempt per order (partial unique)
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.ForeignKey(
        "payments.Order",
        on_delete=models.CASCADE,
        related_name="payments",
        help_text="Order this attempt pays for",
    )

    # ==========================================================================
    # Provider Correlation
    # ==========================================================================

    payment_reference = models.CharField(
        max_length=100,
        unique=True,
        help_text="Provider reference echoed in webhooks",
    )
    provider = models.CharField(
        max_length=20,
        choices=Provider.choices,
        default=Provider.PAYSTACK,
        help_text="Payment provider handling this attempt",
    )
    payment_method = models.CharField(
        max_length=30,
        choices=PaymentMethod.choices,
        blank=True,
        default="",
        help_text="Channel used by the customer",
    )

    # ==========================================================================
    # Amounts (minor units)
    # ==========================================================================

    amount = models.PositiveBigIntegerField(
        help_text="Amount charged",
    )
    provider_fee = models.PositiveBigIntegerField(
        default=0,
        help_text="Fee retained by the provider",
    )
    net_amount = models.PositiveBigIntegerField(
        blank=True,
        help_text="amount - provider_fee (computed when omitted)",
    )
    currency = models.CharField(
        max_length=3,
        default="NGN",
        help_text="ISO 4217 currency code",
    )

    # ==========================================================================
    # Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=PaymentAttemptStatus.choices,
        default=PaymentAttemptStatus.PENDING,
        db_index=True,
        help_text="Outcome of this attempt",
    )
    provider_response = models.JSONField(
        default=dict,
        blank=True,
        help_text="Verified provider payload for this attempt",
    )
    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the provider confirmed payment",
    )
    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Provider status or error when the attempt failed",
    )

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=Q(status=PaymentAttemptStatus.SUCCESS),
                name="one_successful_payment_per_order",
            ),
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="order_payment_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"OrderPayment({self.payment_reference}, {self.status})"

    def save(self, *args, **kwargs):
        if self.net_amount is None:
            self.net_amount = max(self.amount - self.provider_fee, 0)
        super().save(*args, **kwargs)

    @property
    def is_successful(self) -> bool:
        return self.status == PaymentAttemptStatus.SUCCESS
