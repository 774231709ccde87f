"""
Settlement model recording how a paid order's funds reached the merchant.

MAIN_BALANCE settlements are ``completed`` once the merchant wallet is
credited. SUBACCOUNT settlements are ``skipped`` for wallet purposes: the
provider already routed the funds to the merchant's subaccount.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.references import settlement_reference
from payments.state_machines import SettlementMode, SettlementStatus


class Settlement(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    The distribution of a paid order's funds to its merchant.

    Exactly one Settlement exists per successfully paid order.

    Fields:
        order: Settled order (one-to-one, cascade)
        settlement_reference: STL-<hex>, also the ledger credit reference
        gross_amount: Amount the customer paid
        platform_fee: Fee kept by the platform
        holdback_amount: Net amount withheld by SETTLEMENT_PERCENTAGE
        amount: Net amount settled to the merchant
        status: pending / completed / skipped / failed
        mode: MAIN_BALANCE or SUBACCOUNT
        subaccount_code: Provider subaccount for split payments
        settled_at: When the settlement finished
    """

    order = models.OneToOneField(
        "payments.Order",
        on_delete=models.CASCADE,
        related_name="settlement",
        help_text="Order being settled",
    )
    settlement_reference = models.CharField(
        max_length=64,
        unique=True,
        default=settlement_reference,
        help_text="Unique settlement reference (STL-...)",
    )
    merchant_id = models.UUIDField(
        db_index=True,
        help_text="Merchant receiving the funds",
    )

    # ==========================================================================
    # Amounts (minor units)
    # ==========================================================================

    gross_amount = models.PositiveBigIntegerField(
        help_text="Amount paid by the customer",
    )
    platform_fee = models.PositiveBigIntegerField(
        default=0,
        help_text="Platform fee deducted before settlement",
    )
    holdback_amount = models.PositiveBigIntegerField(
        default=0,
        help_text="Net amount withheld by the settlement percentage",
    )
    amount = models.PositiveBigIntegerField(
        help_text="Amount settled to the merchant",
    )
    currency = models.CharField(
        max_length=3,
        default="NGN",
        help_text="ISO 4217 currency code",
    )

    # ==========================================================================
    # Routing & Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=SettlementStatus.choices,
        default=SettlementStatus.PENDING,
        db_index=True,
        help_text="Settlement outcome",
    )
    mode = models.CharField(
        max_length=20,
        choices=SettlementMode.choices,
        help_text="How funds reached the merchant",
    )
    subaccount_code = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="Provider subaccount for split payments",
    )
    settled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the settlement finished",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["merchant_id", "status"]),
        ]

    def __str__(self) -> str:
        return f"Settlement({self.settlement_reference}, {self.mode}, {self.status})"

    @property
    def is_split(self) -> bool:
        return self.mode == SettlementMode.SUBACCOUNT
