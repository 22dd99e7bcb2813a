"""
Payment admin configuration.

Registers payment domain models with the Django admin. Rows whose status
is managed by the lifecycle tables are read-only here: status changes go
through the services so the role tables and side effects apply.
"""

from django.contrib import admin

from core.money import Money
from payments.models import (
    Earning,
    OrphanedPaymentEvent,
    Payment,
    PaymentEvent,
    Payout,
    PayoutAttempt,
    PayoutItem,
    ProPayoutProfile,
)

__all__ = [
    "PaymentAdmin",
    "PaymentEventAdmin",
    "OrphanedPaymentEventAdmin",
    "EarningAdmin",
    "PayoutAdmin",
    "ProPayoutProfileAdmin",
]


def format_minor(amount: int, currency: str) -> str:
    return str(Money(amount, currency))


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payment.

    Inconsistent rows (captured > authorized or authorized > estimated)
    can be filtered for manual review.
    """

    list_display = [
        "id",
        "provider",
        "provider_reference",
        "status",
        "amount_display",
        "is_inconsistent",
        "created_at",
    ]
    list_filter = ["status", "provider", "is_inconsistent", "currency"]
    search_fields = ["id", "provider_reference", "order__id", "booking__id"]
    readonly_fields = [field.name for field in Payment._meta.fields]
    ordering = ["-created_at"]

    def amount_display(self, obj: Payment) -> str:
        """Display the estimated amount formatted as currency."""
        return format_minor(obj.amount_estimated, obj.currency)

    amount_display.short_description = "Amount"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payments (audit trail)."""
        return False


@admin.register(PaymentEvent)
class PaymentEventAdmin(admin.ModelAdmin):
    """Provider event ledger. Insert-only, so nothing is editable."""

    list_display = [
        "id",
        "provider",
        "provider_reference",
        "event_type",
        "processed_at",
        "created_at",
    ]
    list_filter = ["provider", "event_type"]
    search_fields = ["provider_reference", "fingerprint", "external_reference"]
    readonly_fields = [field.name for field in PaymentEvent._meta.fields]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(OrphanedPaymentEvent)
class OrphanedPaymentEventAdmin(admin.ModelAdmin):
    list_display = ["id", "event", "attempts", "last_attempt_at", "resolved_at"]
    list_filter = ["resolved_at"]
    readonly_fields = ["id", "event", "attempts", "last_attempt_at", "resolved_at", "created_at"]


@admin.register(Earning)
class EarningAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "order",
        "pro_profile",
        "status",
        "gross_amount",
        "platform_fee_amount",
        "net_amount",
        "currency",
        "available_at",
    ]
    list_filter = ["status", "currency"]
    search_fields = ["id", "order__id", "pro_profile__display_name"]
    readonly_fields = [field.name for field in Earning._meta.fields]
    ordering = ["-created_at"]


class PayoutItemInline(admin.TabularInline):
    """Inline display of the earnings a payout was built from."""

    model = PayoutItem
    extra = 0
    readonly_fields = ["id", "earning", "amount"]
    can_delete = False

    def has_add_permission(self, request, obj=None) -> bool:
        return False


class PayoutAttemptInline(admin.TabularInline):
    model = PayoutAttempt
    extra = 0
    readonly_fields = ["attempt_number", "idempotency_key", "outcome", "provider_reference", "error"]
    can_delete = False

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payout.

    Payouts are created and sent from the payables API so the
    reservation and idempotency rules apply.
    """

    list_display = [
        "id",
        "pro_profile",
        "provider",
        "status",
        "amount_display",
        "attempt_count",
        "created_at",
    ]
    list_filter = ["status", "provider", "currency"]
    search_fields = ["id", "provider_reference", "pro_profile__display_name"]
    readonly_fields = [field.name for field in Payout._meta.fields]
    inlines = [PayoutItemInline, PayoutAttemptInline]
    ordering = ["-created_at"]

    def amount_display(self, obj: Payout) -> str:
        return format_minor(obj.amount, obj.currency)

    amount_display.short_description = "Amount"

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(ProPayoutProfile)
class ProPayoutProfileAdmin(admin.ModelAdmin):
    list_display = ["pro_profile", "full_name", "bank_name", "currency", "verified_at"]
    list_filter = ["currency"]
    search_fields = ["full_name", "document_id", "pro_profile__display_name"]
    readonly_fields = ["id", "verified_at", "verified_by", "created_at", "updated_at"]
