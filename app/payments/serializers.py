"""
Serializers for payments API.

This module provides serializers for:
- Payments and checkout
- Earnings
- Payouts and the admin payables list
- Pro payout profiles

Design Decisions:
    - Read and write serializers are separate for clarity
    - Money is always an integer amount in minor units plus a currency
    - Status fields are read-only; they only change through services
"""

from __future__ import annotations

from rest_framework import serializers

from payments.models import Earning, Payment, Payout, PayoutItem, ProPayoutProfile
from payments.providers import ProviderName


# =============================================================================
# Payments
# =============================================================================


class PaymentSerializer(serializers.ModelSerializer):
    """Payment with its provider state and amounts (minor units)."""

    class Meta:
        model = Payment
        fields = [
            "id",
            "order",
            "booking",
            "provider",
            "provider_reference",
            "status",
            "amount_estimated",
            "amount_authorized",
            "amount_captured",
            "amount_refunded",
            "currency",
            "checkout_url",
            "is_inconsistent",
            "authorized_at",
            "captured_at",
            "failed_at",
            "refunded_at",
            "cancelled_at",
            "failure_reason",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CheckoutRequestSerializer(serializers.Serializer):
    """
    Start checkout for exactly one order or booking.

    provider defaults to DEFAULT_PAYMENT_PROVIDER.
    """

    order_id = serializers.UUIDField(required=False)
    booking_id = serializers.UUIDField(required=False)
    provider = serializers.ChoiceField(
        choices=[ProviderName.STRIPE, ProviderName.MERCADO_PAGO],
        required=False,
    )

    def validate(self, attrs):
        if bool(attrs.get("order_id")) == bool(attrs.get("booking_id")):
            raise serializers.ValidationError("Provide exactly one of order_id or booking_id.")
        return attrs


class CheckoutResponseSerializer(serializers.Serializer):
    payment = PaymentSerializer()
    checkout_url = serializers.CharField(allow_blank=True)
    client_secret = serializers.CharField(allow_null=True)


# =============================================================================
# Earnings
# =============================================================================


class EarningSerializer(serializers.ModelSerializer):
    """Money owed to a pro for one paid order."""

    class Meta:
        model = Earning
        fields = [
            "id",
            "order",
            "pro_profile",
            "gross_amount",
            "platform_fee_amount",
            "net_amount",
            "currency",
            "status",
            "available_at",
            "payout",
            "paid_at",
            "reversed_at",
            "reversal_reason",
            "created_at",
        ]
        read_only_fields = fields


# =============================================================================
# Payouts
# =============================================================================


class PayoutItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = PayoutItem
        fields = ["id", "earning", "amount"]
        read_only_fields = fields


class PayoutSerializer(serializers.ModelSerializer):
    """Payout with the earnings it was built from."""

    items = PayoutItemSerializer(many=True, read_only=True)

    class Meta:
        model = Payout
        fields = [
            "id",
            "pro_profile",
            "provider",
            "status",
            "amount",
            "currency",
            "provider_reference",
            "attempt_count",
            "sent_at",
            "settled_at",
            "failed_at",
            "failure_reason",
            "items",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PayoutCreateSerializer(serializers.Serializer):
    """Admin request to pay out a pro's PAYABLE earnings."""

    pro_profile_id = serializers.IntegerField()
    provider = serializers.ChoiceField(choices=ProviderName.choices, required=False)
    currency = serializers.CharField(max_length=3, required=False)


class PayableProSerializer(serializers.Serializer):
    """Row of the admin payables list (PayableProSummary)."""

    pro_profile_id = serializers.IntegerField()
    display_name = serializers.CharField()
    currency = serializers.CharField()
    total_net = serializers.IntegerField()
    earnings_count = serializers.IntegerField()
    payout_profile_complete = serializers.BooleanField()
    missing_fields = serializers.ListField(child=serializers.CharField())


# =============================================================================
# Payout Profiles
# =============================================================================


class ProPayoutProfileSerializer(serializers.ModelSerializer):
    """
    Pro's payout destination.

    Pros edit the destination fields; verification is set by an admin
    and cleared whenever the destination changes.
    """

    is_complete = serializers.BooleanField(read_only=True)
    missing_fields = serializers.SerializerMethodField()

    class Meta:
        model = ProPayoutProfile
        fields = [
            "id",
            "pro_profile",
            "full_name",
            "document_id",
            "bank_name",
            "bank_account_number",
            "provider_destination",
            "currency",
            "verified_at",
            "is_complete",
            "missing_fields",
            "updated_at",
        ]
        read_only_fields = ["id", "pro_profile", "verified_at", "updated_at"]

    def get_missing_fields(self, obj: ProPayoutProfile) -> list[str]:
        return obj.missing_fields()

    def validate_currency(self, value: str) -> str:
        if len(value) != 3 or not value.isalpha():
            raise serializers.ValidationError("Currency must be a 3-letter ISO code.")
        return value.upper()
