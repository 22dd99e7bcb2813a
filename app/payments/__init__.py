"""
Payments app for the marketplace's money flows.

This app handles:
- Checkout through provider adapters (Mercado Pago, Stripe, manual)
- Capture, cancellation and refund of client payments
- Idempotent reconciliation of provider webhooks (PaymentEvent ledger)
- Earnings owed to pros and the payouts that settle them

Related apps:
    - orders: Orders and bookings the payments belong to
    - authentication: Pro profiles that receive payouts

Usage:
    from payments.services import PaymentService, ReconciliationService

    session = PaymentService.create_checkout(order)
    ReconciliationService.handle_provider_webhook(parsed_event)
"""
