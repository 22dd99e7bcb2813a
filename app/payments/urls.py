"""
URL configuration for the payments app.

Routes:
    - POST /webhooks/<provider>/ - Provider webhook endpoint
    - POST /checkout/ - Start checkout
    - /payments/, /payouts/ - Router viewsets
    - /earnings/, /payables/, /payout-profile/, /payout-profiles/<id>/verify/

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("payments/", include("payments.urls")),
    ]
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from payments.views import (
    CheckoutView,
    EarningListView,
    PayableProsView,
    PaymentViewSet,
    PayoutProfileVerifyView,
    PayoutViewSet,
    ProPayoutProfileView,
)
from payments.webhooks.views import provider_webhook

app_name = "payments"

router = DefaultRouter()
router.register("payments", PaymentViewSet, basename="payment")
router.register("payouts", PayoutViewSet, basename="payout")

urlpatterns = [
    # Webhook endpoints
    path("webhooks/<str:provider>/", provider_webhook, name="provider-webhook"),
    path("checkout/", CheckoutView.as_view(), name="checkout"),
    path("earnings/", EarningListView.as_view(), name="earning-list"),
    path("payables/", PayableProsView.as_view(), name="payable-pros"),
    path("payout-profile/", ProPayoutProfileView.as_view(), name="payout-profile"),
    path(
        "payout-profiles/<int:pro_profile_id>/verify/",
        PayoutProfileVerifyView.as_view(),
        name="payout-profile-verify",
    ),
    path("", include(router.urls)),
]
