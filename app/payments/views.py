"""
DRF views for payments app.

This module provides API views for:
- Checkout for orders and bookings
- Payment listing and provider sync
- Earnings listing
- Admin payables list, payout creation and sending
- Pro payout profile read/update and admin verification

Related files:
    - services/: PaymentService, PayoutService, PayoutProfileService
    - serializers.py: Request/response serializers
    - webhooks/views.py: Provider webhook endpoint
    - urls.py: URL routing

Endpoints:
    POST /api/v1/payments/checkout/ - Start checkout
    GET /api/v1/payments/payments/ - List payments
    POST /api/v1/payments/payments/{id}/sync/ - Pull status from provider (admin)
    GET /api/v1/payments/earnings/ - List earnings
    GET /api/v1/payments/payables/ - Pros with PAYABLE earnings (admin)
    GET, POST /api/v1/payments/payouts/ - List / create payouts
    POST /api/v1/payments/payouts/{id}/send/ - Send a payout (admin)
    GET, PATCH /api/v1/payments/payout-profile/ - Own payout profile (pro)
    POST /api/v1/payments/payout-profiles/{pro_profile_id}/verify/ - Verify (admin)

Security:
    - All endpoints require authentication except webhooks
    - Service-layer errors render through core.views.application_exception_handler
"""

from __future__ import annotations

import logging

from django.db.models import Q
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema, extend_schema_view
from rest_framework import generics, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.models import ProProfile
from authentication.permissions import IsClient, IsMarketplaceAdmin, IsPro
from lifecycle import ActorRole
from orders.models import Booking, Order
from payments.models import Earning, Payment, Payout, ProPayoutProfile
from payments.serializers import (
    CheckoutRequestSerializer,
    CheckoutResponseSerializer,
    EarningSerializer,
    PayableProSerializer,
    PaymentSerializer,
    PayoutCreateSerializer,
    PayoutSerializer,
    ProPayoutProfileSerializer,
)
from payments.services import (
    PaymentService,
    PayoutProfileService,
    PayoutService,
    ReconciliationService,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Checkout & Payments
# =============================================================================


class CheckoutView(APIView):
    """
    Start (or resume) payment for an order or booking.

    POST /api/v1/payments/checkout/

    Request body:
        {"order_id": "<uuid>", "provider": "mercado_pago"}
        or
        {"booking_id": "<uuid>"}

    Returns:
        {"payment": {...}, "checkout_url": "...", "client_secret": null}
    """

    permission_classes = [IsAuthenticated, IsClient]

    @extend_schema(
        operation_id="create_checkout",
        summary="Start checkout",
        tags=["Payments"],
        request=CheckoutRequestSerializer,
        responses={201: CheckoutResponseSerializer},
    )
    def post(self, request):
        serializer = CheckoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        owner_filter = {} if request.user.is_marketplace_admin else {"client": request.user}
        if data.get("order_id"):
            subject = get_object_or_404(Order, id=data["order_id"], **owner_filter)
        else:
            subject = get_object_or_404(Booking, id=data["booking_id"], **owner_filter)

        session = PaymentService.create_checkout(subject, provider=data.get("provider"))
        response = CheckoutResponseSerializer(
            {
                "payment": session.payment,
                "checkout_url": session.checkout_url,
                "client_secret": session.client_secret,
            }
        )
        return Response(response.data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    list=extend_schema(operation_id="list_payments", summary="List payments", tags=["Payments"]),
    retrieve=extend_schema(operation_id="get_payment", summary="Get payment", tags=["Payments"]),
)
class PaymentViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Payments visible to the caller.

    Clients see payments for their own orders and bookings, pros see
    payments for jobs assigned to them, admins see everything.
    """

    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        user = self.request.user
        queryset = Payment.objects.all().order_by("-created_at")
        if user.is_marketplace_admin:
            return queryset
        if user.actor_role == ActorRole.PRO:
            return queryset.filter(Q(order__pro_profile__user=user) | Q(booking__pro_profile__user=user))
        return queryset.filter(Q(order__client=user) | Q(booking__client=user))

    @extend_schema(
        operation_id="sync_payment",
        summary="Sync payment status from provider",
        tags=["Payments"],
        request=None,
        responses={200: PaymentSerializer},
    )
    @action(detail=True, methods=["post"], permission_classes=[IsAuthenticated, IsMarketplaceAdmin])
    def sync(self, request, pk=None):
        """Pull the provider's current status and reconcile it."""
        payment = self.get_object()
        result = ReconciliationService.sync_payment(payment)
        if not result.success:
            return Response(
                {"error": result.error, "error_code": result.error_code},
                status=status.HTTP_409_CONFLICT,
            )
        payment = Payment.objects.get(id=payment.id)
        return Response({"result": result.data, "payment": PaymentSerializer(payment).data})


class EarningListView(generics.ListAPIView):
    """
    GET /api/v1/payments/earnings/

    Pros see their own earnings; admins see all.
    """

    serializer_class = EarningSerializer
    permission_classes = [IsAuthenticated, IsPro]

    def get_queryset(self):
        queryset = Earning.objects.select_related("order").order_by("-created_at")
        if self.request.user.is_marketplace_admin:
            return queryset
        return queryset.filter(pro_profile__user=self.request.user)


# =============================================================================
# Payouts (admin)
# =============================================================================


class PayableProsView(APIView):
    """
    Pros with PAYABLE earnings, with their payout profile completeness.

    GET /api/v1/payments/payables/
    """

    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]

    @extend_schema(
        operation_id="list_payable_pros",
        summary="List pros with payable earnings",
        tags=["Payouts"],
        responses={200: PayableProSerializer(many=True)},
    )
    def get(self, request):
        summaries = PayoutService.list_payable_pros()
        return Response(PayableProSerializer(summaries, many=True).data)


@extend_schema_view(
    list=extend_schema(operation_id="list_payouts", summary="List payouts", tags=["Payouts"]),
    retrieve=extend_schema(operation_id="get_payout", summary="Get payout", tags=["Payouts"]),
)
class PayoutViewSet(viewsets.ReadOnlyModelViewSet):
    """
    list/retrieve:
        Admins see every payout, pros their own.

    create:
        Admin reserves a pro's PAYABLE earnings into a new payout.

    send:
        Admin sends a CREATED payout, or re-sends a FAILED one.
    """

    serializer_class = PayoutSerializer
    permission_classes = [IsAuthenticated, IsPro]

    def get_queryset(self):
        queryset = Payout.objects.prefetch_related("items").order_by("-created_at")
        if self.request.user.is_marketplace_admin:
            return queryset
        return queryset.filter(pro_profile__user=self.request.user)

    @extend_schema(
        operation_id="create_payout",
        summary="Create payout for a pro",
        tags=["Payouts"],
        request=PayoutCreateSerializer,
        responses={201: PayoutSerializer},
    )
    def create(self, request):
        if not request.user.is_marketplace_admin:
            self.permission_denied(request, message=IsMarketplaceAdmin.message)

        serializer = PayoutCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        get_object_or_404(ProProfile, id=data["pro_profile_id"])

        payout = PayoutService.create_for_pro(
            data["pro_profile_id"],
            provider=data.get("provider"),
            currency=data.get("currency"),
        )
        return Response(PayoutSerializer(payout).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="send_payout",
        summary="Send payout",
        description="Queues the provider call. The payout moves to SENT or FAILED once the provider answers.",
        tags=["Payouts"],
        request=None,
        responses={202: PayoutSerializer},
    )
    @action(detail=True, methods=["post"], permission_classes=[IsAuthenticated, IsMarketplaceAdmin])
    def send(self, request, pk=None):
        payout = self.get_object()
        payout = PayoutService.send(payout.id, actor_role=request.user.actor_role)
        return Response(PayoutSerializer(payout).data, status=status.HTTP_202_ACCEPTED)


# =============================================================================
# Payout Profiles
# =============================================================================


class ProPayoutProfileView(APIView):
    """
    The calling pro's payout destination.

    GET /api/v1/payments/payout-profile/
    PATCH /api/v1/payments/payout-profile/
    """

    permission_classes = [IsAuthenticated, IsPro]

    def _pro_profile(self, request) -> ProProfile:
        return get_object_or_404(ProProfile, user=request.user)

    @extend_schema(
        operation_id="get_payout_profile",
        summary="Get own payout profile",
        tags=["Payouts"],
        responses={200: ProPayoutProfileSerializer},
    )
    def get(self, request):
        profile = PayoutProfileService.get_or_create_for_pro(self._pro_profile(request))
        return Response(ProPayoutProfileSerializer(profile).data)

    @extend_schema(
        operation_id="update_payout_profile",
        summary="Update own payout profile",
        tags=["Payouts"],
        request=ProPayoutProfileSerializer,
        responses={200: ProPayoutProfileSerializer},
    )
    def patch(self, request):
        pro_profile = self._pro_profile(request)
        profile = PayoutProfileService.get_or_create_for_pro(pro_profile)
        serializer = ProPayoutProfileSerializer(profile, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        profile = PayoutProfileService.update_for_pro(pro_profile, serializer.validated_data)
        return Response(ProPayoutProfileSerializer(profile).data)


class PayoutProfileVerifyView(APIView):
    """
    Admin confirms a pro's payout destination.

    POST /api/v1/payments/payout-profiles/{pro_profile_id}/verify/
    """

    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]

    @extend_schema(
        operation_id="verify_payout_profile",
        summary="Verify a pro's payout profile",
        tags=["Payouts"],
        request=None,
        responses={200: ProPayoutProfileSerializer},
    )
    def post(self, request, pro_profile_id: int):
        profile = get_object_or_404(ProPayoutProfile, pro_profile_id=pro_profile_id)
        profile = PayoutProfileService.verify(profile, request.user)
        return Response(ProPayoutProfileSerializer(profile).data)
