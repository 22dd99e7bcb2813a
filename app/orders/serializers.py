"""
Serializers for orders API.

This module provides serializers for:
- Orders (read) with their completion receipt, and order creation
- Order actions (accept, complete, dispute, resolve, cancel)
- Bookings (read) and booking creation

Design Decisions:
    - Status is read-only everywhere; it changes only through the orchestrators
    - Amounts are integer minor units next to their currency
"""

from __future__ import annotations

from drf_spectacular.utils import extend_schema_field
from rest_framework import serializers

from authentication.serializers import ProProfileSerializer
from orders.models import Booking, Order, OrderReceipt, PricingMode
from orders.services import CreateOrderParams, DisputeOutcome


# =============================================================================
# Orders
# =============================================================================


class OrderReceiptSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderReceipt
        fields = [
            "line_items",
            "labor_amount",
            "platform_fee_amount",
            "platform_fee_rate",
            "tax_amount",
            "tax_rate",
            "subtotal_amount",
            "total_amount",
            "pro_net_amount",
            "currency",
            "approved_hours",
            "finalized_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Order with pricing, timestamps, the assigned pro and, once completed, its receipt."""

    pro = ProProfileSerializer(source="pro_profile", read_only=True)
    estimated_amount = serializers.IntegerField(read_only=True, allow_null=True)
    receipt = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "client",
            "pro",
            "status",
            "category_id",
            "subcategory_id",
            "description",
            "address_text",
            "scheduled_window_start",
            "scheduled_window_end",
            "pricing_mode",
            "hourly_rate_snapshot",
            "estimated_hours",
            "final_hours",
            "quoted_amount",
            "quote_accepted_at",
            "estimated_amount",
            "total_amount",
            "currency",
            "submitted_at",
            "accepted_at",
            "confirmed_at",
            "started_at",
            "arrived_at",
            "completion_submitted_at",
            "completed_at",
            "disputed_at",
            "paid_at",
            "canceled_at",
            "cancel_reason",
            "canceled_by_role",
            "dispute_reason",
            "receipt",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    @extend_schema_field(OrderReceiptSerializer(allow_null=True))
    def get_receipt(self, obj: Order) -> dict | None:
        receipt = getattr(obj, "receipt", None)
        return OrderReceiptSerializer(receipt).data if receipt is not None else None


class OrderCreateSerializer(serializers.Serializer):
    """
    Client request for a new order.

    Hourly orders need estimated_hours; fixed orders are quoted by the pro.
    """

    pro_profile_id = serializers.IntegerField()
    category_id = serializers.CharField(max_length=64)
    subcategory_id = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    description = serializers.CharField(required=False, allow_blank=True, default="")
    address_text = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    pricing_mode = serializers.ChoiceField(choices=PricingMode.choices, default=PricingMode.HOURLY)
    estimated_hours = serializers.DecimalField(
        max_digits=6,
        decimal_places=2,
        min_value=0,
        required=False,
        allow_null=True,
    )
    scheduled_window_start = serializers.DateTimeField(required=False, allow_null=True)
    scheduled_window_end = serializers.DateTimeField(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs.get("pricing_mode") == PricingMode.HOURLY and not attrs.get("estimated_hours"):
            raise serializers.ValidationError({"estimated_hours": "Required for hourly orders."})
        return attrs

    def to_params(self) -> CreateOrderParams:
        return CreateOrderParams(**self.validated_data)


class OrderAcceptSerializer(serializers.Serializer):
    quoted_amount = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class OrderCompleteSerializer(serializers.Serializer):
    final_hours = serializers.DecimalField(
        max_digits=6,
        decimal_places=2,
        min_value=0,
        required=False,
        allow_null=True,
    )


class OrderDisputeSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=2000)


class OrderResolveSerializer(serializers.Serializer):
    outcome = serializers.ChoiceField(choices=DisputeOutcome.choices)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class ReasonSerializer(serializers.Serializer):
    """Optional free-text reason for reject/cancel actions."""

    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


# =============================================================================
# Bookings
# =============================================================================


class BookingSerializer(serializers.ModelSerializer):
    pro = ProProfileSerializer(source="pro_profile", read_only=True)

    class Meta:
        model = Booking
        fields = [
            "id",
            "client",
            "pro",
            "status",
            "estimated_amount",
            "currency",
            "scheduled_at",
            "notes",
            "payment_received_at",
            "accepted_at",
            "on_my_way_at",
            "arrived_at",
            "completed_at",
            "rejected_at",
            "cancelled_at",
            "reason",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BookingCreateSerializer(serializers.Serializer):
    pro_profile_id = serializers.IntegerField()
    estimated_amount = serializers.IntegerField(min_value=1)
    scheduled_at = serializers.DateTimeField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
