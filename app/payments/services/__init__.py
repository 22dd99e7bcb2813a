"""
Payment services for coordinating payment, earning and payout operations.

This module provides:
- PaymentService: Checkout, capture and release of client payments
- ReconciliationService: Applies provider events idempotently
- EarningService: Creates, promotes and reverses pro earnings
- PayoutService: Aggregates earnings into payouts and sends them
- PayoutProfileService: Pro payout destinations and verification

Usage:
    from payments.services import PaymentService, ReconciliationService

    session = PaymentService.create_checkout(order)

    result = ReconciliationService.handle_provider_webhook(event)

    from payments.services import PayoutService

    payout = PayoutService.create_for_pro(pro_profile.id)
    PayoutService.send(payout.id)  # provider call runs in send_payout
"""

from payments.services.earning_service import EarningService
from payments.services.payment_service import CheckoutSession, PaymentService
from payments.services.payout_profile_service import PayoutProfileService
from payments.services.payout_service import PayableProSummary, PayoutService
from payments.services.reconciliation_service import ReconciliationService

__all__ = [
    "CheckoutSession",
    "EarningService",
    "PayableProSummary",
    "PaymentService",
    "PayoutProfileService",
    "PayoutService",
    "ReconciliationService",
]
