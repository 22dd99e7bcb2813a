"""
DRF views for orders and bookings.

Endpoints (prefixed with /api/v1/):
    GET, POST orders/ - List own orders / create (client, rate limited)
    GET orders/{id}/ - Order detail
    POST orders/{id}/submit|accept|reject|confirm|start|arrive|complete|approve|dispute|resolve|cancel/

    GET, POST bookings/ - List own bookings / create (client)
    GET bookings/{id}/ - Booking detail
    POST bookings/{id}/accept|reject|on-my-way|arrive|complete|cancel/

Who may take each action is decided by OrderOrchestrator/BookingOrchestrator
(party check + lifecycle role tables); views only authenticate and parse.
Service errors render through core.views.application_exception_handler.
"""

from __future__ import annotations

from drf_spectacular.utils import extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from authentication.permissions import IsClient
from core.throttling import OrderCreateRateThrottle
from lifecycle import ActorRole
from orders.models import Booking, Order
from orders.serializers import (
    BookingCreateSerializer,
    BookingSerializer,
    OrderAcceptSerializer,
    OrderCompleteSerializer,
    OrderCreateSerializer,
    OrderDisputeSerializer,
    OrderResolveSerializer,
    OrderSerializer,
    ReasonSerializer,
)
from orders.services import BookingOrchestrator, OrderOrchestrator


def _visible_to(queryset, user):
    """Restrict a job queryset to what `user` is a party to."""
    if user.is_marketplace_admin:
        return queryset
    if user.actor_role == ActorRole.PRO:
        return queryset.filter(pro_profile__user=user)
    return queryset.filter(client=user)


def _parse(serializer_class, request) -> dict:
    serializer = serializer_class(data=request.data)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


# =============================================================================
# Orders
# =============================================================================


@extend_schema_view(
    list=extend_schema(operation_id="list_orders", summary="List orders", tags=["Orders"]),
    retrieve=extend_schema(operation_id="get_order", summary="Get order", tags=["Orders"]),
)
class OrderViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Orders the caller is a party to.

    Clients see orders they placed, pros orders assigned to them,
    admins everything.
    """

    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = Order.objects.select_related("pro_profile", "receipt").order_by("-created_at")
        status_filter = self.request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return _visible_to(queryset, self.request.user)

    def get_throttles(self):
        throttles = super().get_throttles()
        if self.action == "create":
            throttles.append(OrderCreateRateThrottle())
        return throttles

    def _respond(self, order: Order) -> Response:
        order = Order.objects.select_related("pro_profile", "receipt").get(id=order.id)
        return Response(OrderSerializer(order).data)

    @extend_schema(
        operation_id="create_order",
        summary="Create order",
        tags=["Orders"],
        request=OrderCreateSerializer,
        responses={201: OrderSerializer},
    )
    def create(self, request):
        if not IsClient().has_permission(request, self):
            self.permission_denied(request, message=IsClient.message)
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = OrderOrchestrator.create_order(request.user, serializer.to_params())
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    @extend_schema(operation_id="submit_order", summary="Send order to the pro", tags=["Orders"], request=None)
    @action(detail=True, methods=["post"])
    def submit(self, request, pk=None):
        return self._respond(OrderOrchestrator.submit(self.get_object().id, request.user))

    @extend_schema(operation_id="accept_order", summary="Pro accepts order", tags=["Orders"], request=OrderAcceptSerializer)
    @action(detail=True, methods=["post"])
    def accept(self, request, pk=None):
        data = _parse(OrderAcceptSerializer, request)
        order = OrderOrchestrator.accept(self.get_object().id, request.user, data.get("quoted_amount"))
        return self._respond(order)

    @extend_schema(operation_id="reject_order", summary="Pro rejects order", tags=["Orders"], request=ReasonSerializer)
    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):
        data = _parse(ReasonSerializer, request)
        return self._respond(OrderOrchestrator.reject(self.get_object().id, request.user, data["reason"]))

    @extend_schema(operation_id="confirm_order", summary="Confirm paid order", tags=["Orders"], request=None)
    @action(detail=True, methods=["post"])
    def confirm(self, request, pk=None):
        return self._respond(OrderOrchestrator.confirm(self.get_object().id, request.user))

    @extend_schema(operation_id="start_order", summary="Pro starts work", tags=["Orders"], request=None)
    @action(detail=True, methods=["post"])
    def start(self, request, pk=None):
        return self._respond(OrderOrchestrator.start(self.get_object().id, request.user))

    @extend_schema(operation_id="arrive_order", summary="Pro arrived on site", tags=["Orders"], request=None)
    @action(detail=True, methods=["post"])
    def arrive(self, request, pk=None):
        return self._respond(OrderOrchestrator.mark_arrived(self.get_object().id, request.user))

    @extend_schema(
        operation_id="complete_order",
        summary="Pro submits completion",
        tags=["Orders"],
        request=OrderCompleteSerializer,
    )
    @action(detail=True, methods=["post"])
    def complete(self, request, pk=None):
        data = _parse(OrderCompleteSerializer, request)
        order = OrderOrchestrator.submit_completion(self.get_object().id, request.user, data.get("final_hours"))
        return self._respond(order)

    @extend_schema(operation_id="approve_order", summary="Client approves work", tags=["Orders"], request=None)
    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):
        return self._respond(OrderOrchestrator.approve(self.get_object().id, request.user))

    @extend_schema(operation_id="dispute_order", summary="Client disputes work", tags=["Orders"], request=OrderDisputeSerializer)
    @action(detail=True, methods=["post"])
    def dispute(self, request, pk=None):
        data = _parse(OrderDisputeSerializer, request)
        return self._respond(OrderOrchestrator.dispute(self.get_object().id, request.user, data["reason"]))

    @extend_schema(operation_id="resolve_order", summary="Admin resolves dispute", tags=["Orders"], request=OrderResolveSerializer)
    @action(detail=True, methods=["post"])
    def resolve(self, request, pk=None):
        data = _parse(OrderResolveSerializer, request)
        order = OrderOrchestrator.resolve_dispute(
            self.get_object().id, request.user, data["outcome"], data["reason"]
        )
        return self._respond(order)

    @extend_schema(operation_id="cancel_order", summary="Cancel order", tags=["Orders"], request=ReasonSerializer)
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        data = _parse(ReasonSerializer, request)
        return self._respond(OrderOrchestrator.cancel(self.get_object().id, request.user, data["reason"]))


# =============================================================================
# Bookings
# =============================================================================


@extend_schema_view(
    list=extend_schema(operation_id="list_bookings", summary="List bookings", tags=["Bookings"]),
    retrieve=extend_schema(operation_id="get_booking", summary="Get booking", tags=["Bookings"]),
)
class BookingViewSet(viewsets.ReadOnlyModelViewSet):
    """Bookings the caller is a party to."""

    serializer_class = BookingSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = Booking.objects.select_related("pro_profile").order_by("-created_at")
        return _visible_to(queryset, self.request.user)

    def _respond(self, booking: Booking) -> Response:
        booking = Booking.objects.select_related("pro_profile").get(id=booking.id)
        return Response(BookingSerializer(booking).data)

    @extend_schema(
        operation_id="create_booking",
        summary="Create booking",
        tags=["Bookings"],
        request=BookingCreateSerializer,
        responses={201: BookingSerializer},
    )
    def create(self, request):
        if not IsClient().has_permission(request, self):
            self.permission_denied(request, message=IsClient.message)
        data = _parse(BookingCreateSerializer, request)
        booking = BookingOrchestrator.create_booking(
            request.user,
            data["pro_profile_id"],
            data["estimated_amount"],
            scheduled_at=data.get("scheduled_at"),
            notes=data["notes"],
        )
        return Response(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)

    @extend_schema(operation_id="accept_booking", summary="Pro accepts booking", tags=["Bookings"], request=None)
    @action(detail=True, methods=["post"])
    def accept(self, request, pk=None):
        return self._respond(BookingOrchestrator.accept(self.get_object().id, request.user))

    @extend_schema(operation_id="reject_booking", summary="Pro rejects booking", tags=["Bookings"], request=ReasonSerializer)
    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):
        data = _parse(ReasonSerializer, request)
        return self._respond(BookingOrchestrator.reject(self.get_object().id, request.user, data["reason"]))

    @extend_schema(operation_id="on_my_way_booking", summary="Pro is on the way", tags=["Bookings"], request=None)
    @action(detail=True, methods=["post"], url_path="on-my-way")
    def on_my_way(self, request, pk=None):
        return self._respond(BookingOrchestrator.on_my_way(self.get_object().id, request.user))

    @extend_schema(operation_id="arrive_booking", summary="Pro arrived", tags=["Bookings"], request=None)
    @action(detail=True, methods=["post"])
    def arrive(self, request, pk=None):
        return self._respond(BookingOrchestrator.arrive(self.get_object().id, request.user))

    @extend_schema(operation_id="complete_booking", summary="Pro completes booking", tags=["Bookings"], request=None)
    @action(detail=True, methods=["post"])
    def complete(self, request, pk=None):
        return self._respond(BookingOrchestrator.complete(self.get_object().id, request.user))

    @extend_schema(operation_id="cancel_booking", summary="Cancel booking", tags=["Bookings"], request=ReasonSerializer)
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        data = _parse(ReasonSerializer, request)
        return self._respond(BookingOrchestrator.cancel(self.get_object().id, request.user, data["reason"]))
