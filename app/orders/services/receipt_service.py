"""
Completion breakdown: line items and the receipt snapshot.

When an order is COMPLETED its total_amount is final. This service
breaks that total down for the client and the pro without changing it:

    labor         total_amount (hours x rate, or the fixed quote)
    platform_fee  the fee schedule's cut of the total, withheld from the pro
    tax           the IVA contained in the total at ORDER_TAX_RATE_PERCENT

The platform fee comes from the same fee schedule the earning uses, so
receipt.pro_net_amount matches the earning's net amount.

Usage:
    from orders.services import ReceiptService

    receipt = ReceiptService.finalize(order)
    receipt.tax_amount      # 1803 for a 10000 UYU total at 22%
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.utils import timezone

from core.money import Money
from core.services import BaseService
from orders.models import LineItemKind, Order, OrderLineItem, OrderReceipt
from payments.services import EarningService

RATE_QUANTUM = Decimal("0.001")


def _format_rate(rate: Decimal) -> str:
    return f"{rate.normalize():f}"


class ReceiptService(BaseService):
    """Writes an order's line items and receipt when it is completed."""

    @classmethod
    def get_tax_rate(cls) -> Decimal:
        return Decimal(str(settings.ORDER_TAX_RATE_PERCENT))

    @classmethod
    def build_line_items(cls, order: Order) -> list[OrderLineItem]:
        """Unsaved line items for an order whose total_amount is set."""
        total = order.total
        tax_rate = cls.get_tax_rate()

        fee = EarningService.get_fee_schedule().fee_for(total, order.category_id, order.subcategory_id)
        fee_rate = (Decimal(fee.amount) * 100 / Decimal(total.amount)).quantize(RATE_QUANTUM)

        # The total includes IVA: subtotal = total / (1 + rate)
        subtotal = total.multiply(Decimal(100) / (Decimal(100) + tax_rate))
        tax = total - subtotal

        if order.is_hourly and order.final_hours:
            labor = OrderLineItem(
                kind=LineItemKind.LABOR,
                description=(
                    f"Labor ({order.final_hours.normalize():f} h x "
                    f"{Money(order.hourly_rate_snapshot, order.currency)}/h)"
                ),
                quantity=order.final_hours,
                unit_amount=order.hourly_rate_snapshot,
            )
        else:
            labor = OrderLineItem(
                kind=LineItemKind.LABOR,
                description="Labor (fixed quote)",
                quantity=Decimal("1"),
                unit_amount=total.amount,
            )
        labor.amount = total.amount

        items = [
            labor,
            OrderLineItem(
                kind=LineItemKind.PLATFORM_FEE,
                description=f"Platform fee ({_format_rate(fee_rate)}%)",
                unit_amount=fee.amount,
                amount=fee.amount,
                rate_percent=fee_rate,
            ),
            OrderLineItem(
                kind=LineItemKind.TAX,
                description=f"IVA included ({_format_rate(tax_rate)}%)",
                unit_amount=tax.amount,
                amount=tax.amount,
                rate_percent=tax_rate,
            ),
        ]
        for position, item in enumerate(items):
            item.order = order
            item.position = position
            item.currency = order.currency
        return items

    @classmethod
    def finalize(cls, order: Order) -> OrderReceipt:
        """
        Replace the order's line items and write its receipt.

        Completing an order again (after a dispute) replaces both.
        Must run inside the transaction that completed the order.
        """
        items = cls.build_line_items(order)
        by_kind = {item.kind: item for item in items}
        labor = by_kind[LineItemKind.LABOR]
        fee = by_kind[LineItemKind.PLATFORM_FEE]
        tax = by_kind[LineItemKind.TAX]

        with cls.atomic():
            OrderLineItem.objects.filter(order=order).delete()
            OrderLineItem.objects.bulk_create(items)

            receipt, _ = OrderReceipt.objects.update_or_create(
                order=order,
                defaults={
                    "line_items": [
                        {
                            "kind": item.kind,
                            "description": item.description,
                            "quantity": str(item.quantity),
                            "unit_amount": item.unit_amount,
                            "amount": item.amount,
                            "rate_percent": str(item.rate_percent) if item.rate_percent is not None else None,
                        }
                        for item in items
                    ],
                    "labor_amount": labor.amount,
                    "platform_fee_amount": fee.amount,
                    "platform_fee_rate": fee.rate_percent,
                    "tax_amount": tax.amount,
                    "tax_rate": tax.rate_percent,
                    "subtotal_amount": order.total_amount - tax.amount,
                    "total_amount": order.total_amount,
                    "pro_net_amount": order.total_amount - fee.amount,
                    "currency": order.currency,
                    "approved_hours": order.final_hours if order.is_hourly else None,
                    "finalized_at": order.completed_at or timezone.now(),
                },
            )

        cls.get_logger().info(
            "Order receipt written",
            extra={
                "order_id": str(order.id),
                "total_amount": order.total_amount,
                "platform_fee_amount": fee.amount,
                "tax_amount": tax.amount,
                "currency": order.currency,
            },
        )
        return receipt
