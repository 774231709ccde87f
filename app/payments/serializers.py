"""
DRF serializers for payments app.

This module provides serializers for:
- Refund requests and refund display
- Wallet balances and transaction history

Related files:
    - models/: Refund, Settlement
    - ledger/models.py: Wallet, Transaction
    - views.py: Payment API views

Usage:
    serializer = RefundRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    RefundService.refund(order_id, **serializer.validated_data)
"""

from __future__ import annotations

from rest_framework import serializers

from payments.ledger.models import Transaction
from payments.models import Refund
from payments.state_machines import RefundMethod, RefundReason, RefundType


class RefundRequestSerializer(serializers.Serializer):
    """
    Serializer for refund creation.

    Fields:
        amount: Amount in minor units; omit for a full refund
        refund_type: full / partial (inferred from amount when omitted)
        refund_method: wallet / original_payment / bank_account
        reason: Categorized refund reason
        reason_notes: Free-text explanation

    Usage:
        serializer = RefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
    """

    amount = serializers.IntegerField(
        required=False,
        allow_null=True,
        min_value=1,
        help_text="Refund amount in minor units (omit for full refund)",
    )
    refund_type = serializers.ChoiceField(
        choices=RefundType.choices,
        required=False,
        allow_null=True,
        help_text="Full or partial refund",
    )
    refund_method = serializers.ChoiceField(
        choices=RefundMethod.choices,
        default=RefundMethod.WALLET,
        help_text="Where the refunded money goes",
    )
    reason = serializers.ChoiceField(
        choices=RefundReason.choices,
        default=RefundReason.OTHER,
        help_text="Categorized refund reason",
    )
    reason_notes = serializers.CharField(
        required=False,
        allow_blank=True,
        default="",
        max_length=2000,
        help_text="Free-text explanation",
    )

    def validate(self, attrs):
        """A partial refund must name its amount."""
        if attrs.get("refund_type") == RefundType.PARTIAL and not attrs.get("amount"):
            raise serializers.ValidationError(
                {"amount": "Partial refunds require an amount."}
            )
        return attrs


class RefundSerializer(serializers.ModelSerializer):
    """Refund serializer for API responses."""

    order_id = serializers.UUIDField(read_only=True)
    settlement_reference = serializers.CharField(
        source="settlement.settlement_reference",
        read_only=True,
    )
    reversal_reference = serializers.SerializerMethodField()

    class Meta:
        model = Refund
        fields = [
            "id",
            "order_id",
            "refund_reference",
            "settlement_reference",
            "reversal_reference",
            "refund_type",
            "refund_method",
            "reason",
            "reason_notes",
            "amount",
            "currency",
            "status",
            "completed_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_reversal_reference(self, obj) -> str | None:
        if obj.reversal_transaction_id is None:
            return None
        return obj.reversal_transaction.reference


class TransactionSerializer(serializers.ModelSerializer):
    """
    Transaction serializer for wallet history.

    Usage:
        transactions = WalletLedger.history(user_id, limit=20)
        serializer = TransactionSerializer(transactions, many=True)
    """

    is_split = serializers.BooleanField(read_only=True)

    class Meta:
        model = Transaction
        fields = [
            "id",
            "reference",
            "type",
            "category",
            "status",
            "amount",
            "currency",
            "balance_before",
            "balance_after",
            "description",
            "order_id",
            "is_split",
            "metadata",
            "created_at",
        ]
        read_only_fields = fields


class WalletBalanceSerializer(serializers.Serializer):
    """Balance snapshot plus recent transactions."""

    user_id = serializers.UUIDField(read_only=True)
    available = serializers.IntegerField(read_only=True)
    ledger = serializers.IntegerField(read_only=True)
    pending = serializers.IntegerField(read_only=True)
    currency = serializers.CharField(read_only=True)
    history = TransactionSerializer(many=True, read_only=True)
