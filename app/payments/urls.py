"""
URL configuration for the payments app.

Routes:
    - POST /webhooks/{provider}/ - Paystack / Monnify webhook endpoint
    - POST /orders/{order_id}/refunds/ - Refund a settled order
    - GET /wallets/{user_id}/ - Wallet balances and history

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("payments/", include("payments.urls")),
    ]
"""

from django.urls import path

from payments.views import RefundCreateView, WalletDetailView
from payments.webhooks.views import provider_webhook

app_name = "payments"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/<str:provider>/", provider_webhook, name="provider_webhook"),
    # Refunds
    path(
        "orders/<uuid:order_id>/refunds/",
        RefundCreateView.as_view(),
        name="order_refunds",
    ),
    # Wallets
    path("wallets/<uuid:user_id>/", WalletDetailView.as_view(), name="wallet_detail"),
]
