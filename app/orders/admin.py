"""
Order admin configuration.

Orders and bookings are read-only in the admin: status changes go
through OrderOrchestrator/BookingOrchestrator (or the API as an admin
user) so the role tables and payment side effects apply.
"""

from django.contrib import admin

from orders.models import Booking, Order, OrderLineItem, OrderReceipt
from payments.admin import format_minor


class OrderLineItemInline(admin.TabularInline):
    model = OrderLineItem
    extra = 0
    readonly_fields = ["kind", "description", "quantity", "unit_amount", "amount", "currency", "rate_percent"]
    fields = readonly_fields
    can_delete = False

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "client",
        "pro_profile",
        "status",
        "pricing_mode",
        "total_display",
        "created_at",
    ]
    list_filter = ["status", "pricing_mode", "category_id", "currency"]
    search_fields = ["id", "client__email", "pro_profile__display_name"]
    readonly_fields = [field.name for field in Order._meta.fields]
    inlines = [OrderLineItemInline]
    ordering = ["-created_at"]

    def total_display(self, obj: Order) -> str:
        amount = obj.total_amount if obj.total_amount is not None else obj.estimated_amount
        if amount is None:
            return "-"
        return format_minor(amount, obj.currency)

    total_display.short_description = "Amount"

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ["id", "client", "pro_profile", "status", "estimated_amount", "currency", "created_at"]
    list_filter = ["status", "currency"]
    search_fields = ["id", "client__email", "pro_profile__display_name"]
    readonly_fields = [field.name for field in Booking._meta.fields]
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(OrderReceipt)
class OrderReceiptAdmin(admin.ModelAdmin):
    list_display = ["order", "total_display", "tax_amount", "platform_fee_amount", "finalized_at"]
    list_filter = ["currency"]
    search_fields = ["order__id"]
    readonly_fields = [field.name for field in OrderReceipt._meta.fields]
    ordering = ["-finalized_at"]

    def total_display(self, obj: OrderReceipt) -> str:
        return format_minor(obj.total_amount, obj.currency)

    total_display.short_description = "Total"

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
