"""
Orders services package.

Exports:
    OrderOrchestrator: Role-gated order lifecycle operations
    BookingOrchestrator: Role-gated booking lifecycle operations
    CreateOrderParams: Input for OrderOrchestrator.create_order
    DisputeOutcome: Outcomes accepted by OrderOrchestrator.resolve_dispute
    ReceiptService: Line items and receipt written when an order completes
"""

from orders.services.booking_orchestrator import BookingOrchestrator
from orders.services.order_orchestrator import CreateOrderParams, DisputeOutcome, OrderOrchestrator
from orders.services.receipt_service import ReceiptService

__all__ = [
    "BookingOrchestrator",
    "CreateOrderParams",
    "DisputeOutcome",
    "OrderOrchestrator",
    "ReceiptService",
]
