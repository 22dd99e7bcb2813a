"""
Payment domain models.

This module contains all payment-related models:
- Payment: Money collected from a client for one Order or Booking
- PaymentEvent: Insert-only ledger of provider events (idempotency gate)
- OrphanedPaymentEvent: Events that arrived before their payment existed
- Earning: Net amount owed to a pro for one paid order
- Payout: Aggregated transfer of earnings to a pro
- PayoutItem: Earnings a payout was built from
- PayoutAttempt: Provider calls made to send a payout
- ProPayoutProfile: Pro's payout destination and verification
"""

from payments.models.earning import Earning
from payments.models.payment import OrphanedPaymentEvent, Payment, PaymentEvent
from payments.models.payout import Payout, PayoutAttempt, PayoutAttemptOutcome, PayoutItem
from payments.models.payout_profile import ProPayoutProfile

__all__ = [
    "Earning",
    "OrphanedPaymentEvent",
    "Payment",
    "PaymentEvent",
    "Payout",
    "PayoutAttempt",
    "PayoutAttemptOutcome",
    "PayoutItem",
    "ProPayoutProfile",
]
