"""
Refund model for money returned against a settled order.

Wallet refunds complete immediately by debiting the merchant wallet with a
reversal Transaction. Refunds to the original payment method or a bank
account stay ``processing`` until the provider reports the outcome.

Usage:
    from payments.models import Refund
    from payments.services import RefundService

    result = RefundService.refund(order.id, amount=2500, reason="damaged_product")
    result.refund.status  # "completed" for wallet refunds
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.references import refund_reference
from payments.state_machines import (
    RefundMethod,
    RefundReason,
    RefundStatus,
    RefundType,
)


class Refund(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    Money returned against a settled order.

    State Flow:
        REQUESTED -> PROCESSING -> COMPLETED
        REQUESTED -> PROCESSING -> FAILED

    Fields:
        order: Order being refunded
        refund_reference: Unique QKY-REF reference
        refund_type: full / partial
        refund_method: wallet / original_payment / bank_account
        reason: Categorized reason; reason_notes holds free text
        amount: Refund amount in minor units
        status: Current FSM state
        settlement: Settlement being reversed
        reversal_transaction: Ledger reversal for wallet refunds
        requested_by: User who requested the refund
        provider_metadata: Data reported by the provider refund webhook
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.ForeignKey(
        "payments.Order",
        on_delete=models.CASCADE,
        related_name="refunds",
        help_text="Order being refunded",
    )
    settlement = models.ForeignKey(
        "payments.Settlement",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Settlement being reversed",
    )
    reversal_transaction = models.OneToOneField(
        "payments.Transaction",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="refund",
        help_text="Ledger reversal written for wallet refunds",
    )

    # ==========================================================================
    # Refund Details
    # ==========================================================================

    refund_reference = models.CharField(
        max_length=64,
        unique=True,
        default=refund_reference,
        help_text="Unique refund reference (QKY-REF-...)",
    )
    refund_type = models.CharField(
        max_length=20,
        choices=RefundType.choices,
        help_text="Full or partial refund",
    )
    refund_method = models.CharField(
        max_length=30,
        choices=RefundMethod.choices,
        default=RefundMethod.WALLET,
        help_text="Where the refunded money goes",
    )
    reason = models.CharField(
        max_length=30,
        choices=RefundReason.choices,
        default=RefundReason.OTHER,
        help_text="Categorized refund reason",
    )
    reason_notes = models.TextField(
        blank=True,
        default="",
        help_text="Free-text explanation",
    )
    amount = models.PositiveBigIntegerField(
        help_text="Refund amount in minor units",
    )
    currency = models.CharField(
        max_length=3,
        default="NGN",
        help_text="ISO 4217 currency code",
    )
    requested_by = models.UUIDField(
        null=True,
        blank=True,
        help_text="User who requested the refund",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RefundStatus.REQUESTED,
        choices=RefundStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the refund (managed by FSM)",
    )
    provider_metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Data reported by the provider for external refunds",
    )
    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When refund was completed",
    )
    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Detailed reason if refund failed",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["order", "status"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="refund_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Refund({self.refund_reference}, {self.status}, {self.amount} {self.currency})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=RefundStatus.REQUESTED,
        target=RefundStatus.PROCESSING,
    )
    def process(self):
        """
        Begin processing the refund.

        Transition: REQUESTED -> PROCESSING
        """

    @transition(
        field=status,
        source=RefundStatus.PROCESSING,
        target=RefundStatus.COMPLETED,
    )
    def complete(self):
        """
        Mark refund as completed.

        Transition: PROCESSING -> COMPLETED

        Wallet refunds complete right after the ledger reversal; external
        refunds complete when the provider reports success.
        """
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=RefundStatus.PROCESSING,
        target=RefundStatus.FAILED,
    )
    def fail(self, reason: str = ""):
        """
        Mark refund as failed.

        Transition: PROCESSING -> FAILED
        """
        self.failure_reason = reason
