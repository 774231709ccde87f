"""
DRF views for payments app.

This module provides API views for:
- Refund creation against a settled order
- Wallet balance and history lookup

Related files:
    - services/refund_service.py: RefundService
    - ledger/services.py: WalletLedger
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Endpoints:
    POST /api/v1/payments/orders/{order_id}/refunds/ - Create a refund
    GET /api/v1/payments/wallets/{user_id}/ - Wallet balances and history
    POST /api/v1/payments/webhooks/{provider}/ - Provider webhooks (webhooks/views.py)

Security:
    - Refund and wallet endpoints require authentication and capabilities
    - Webhooks verify the provider signature instead
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.decorators import idempotent_request
from core.exceptions import BaseApplicationError
from core.permissions import HasCapabilities
from payments.ledger import WalletLedger
from payments.services import RefundService

from .serializers import (
    RefundRequestSerializer,
    RefundSerializer,
    TransactionSerializer,
    WalletBalanceSerializer,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20
MAX_HISTORY_LIMIT = 100


class RefundCreateView(APIView):
    """
    Refund a settled order.

    POST /api/v1/payments/orders/{order_id}/refunds/

    Request body:
        {
            "amount": 2500,
            "refund_method": "wallet",
            "reason": "damaged_product",
            "reason_notes": "Screen cracked on arrival"
        }

    Headers:
        Idempotency-Key: Optional; repeated keys replay the first response

    Returns:
        201 with the refund, or the domain error as JSON (4xx)
    """

    permission_classes = [IsAuthenticated, HasCapabilities]
    required_capabilities = ["payments.add_refund"]

    @extend_schema(
        request=RefundRequestSerializer,
        responses={201: RefundSerializer},
        parameters=[
            OpenApiParameter(
                name="Idempotency-Key",
                location=OpenApiParameter.HEADER,
                required=False,
                description="Replays the first response for repeated keys",
            ),
        ],
        tags=["Payments - Refunds"],
    )
    @idempotent_request()
    def post(self, request, order_id):
        """Create a refund."""
        serializer = RefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = RefundService.refund(
                order_id,
                requested_by=getattr(request.user, "pk", None),
                **serializer.validated_data,
            )
        except BaseApplicationError as e:
            logger.info(
                "Refund request rejected",
                extra={"order_id": str(order_id), "error_code": e.error_code},
            )
            return Response(e.to_dict(), status=e.http_status)

        return Response(
            RefundSerializer(result.refund).data,
            status=status.HTTP_201_CREATED,
        )


class WalletDetailView(APIView):
    """
    Get a wallet's balances and recent transactions.

    GET /api/v1/payments/wallets/{user_id}/?limit=20&offset=0

    Returns:
        Balances with ``history`` newest first, or 404 if no wallet exists
    """

    permission_classes = [IsAuthenticated, HasCapabilities]
    required_capabilities = ["payments.view_wallet"]

    @extend_schema(
        responses={200: WalletBalanceSerializer},
        parameters=[
            OpenApiParameter(name="limit", type=int, required=False),
            OpenApiParameter(name="offset", type=int, required=False),
        ],
        tags=["Payments - Wallets"],
    )
    def get(self, request, user_id):
        """Get wallet balances and history."""
        limit = _int_param(request, "limit", DEFAULT_HISTORY_LIMIT)
        offset = _int_param(request, "offset", 0)
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))

        try:
            balance = WalletLedger.get_balance(user_id)
        except BaseApplicationError as e:
            return Response(e.to_dict(), status=e.http_status)

        history = WalletLedger.history(user_id, limit=limit, offset=max(offset, 0))
        return Response(
            {
                "user_id": str(balance.user_id),
                "available": balance.available,
                "ledger": balance.ledger,
                "pending": balance.pending,
                "currency": balance.currency,
                "history": TransactionSerializer(history, many=True).data,
            }
        )


def _int_param(request, name: str, default: int) -> int:
    try:
        return int(request.query_params.get(name, default))
    except (TypeError, ValueError):
        return default
