"""
Payment provider adapters.

Modules:
    base: PaymentProvider interface and provider-neutral data types
    stripe_provider: Stripe PaymentIntents and Connect transfers
    mercadopago_provider: Mercado Pago checkout preferences and payments
    manual_provider: Manual bank-transfer payouts
    registry: get_provider()/set_provider()
    utils: Idempotency keys and retry backoff
"""

from payments.providers.base import (
    ParsedProviderEvent,
    PaymentProvider,
    ProviderEventType,
    ProviderHandle,
    ProviderName,
    ProviderPaymentStatus,
    ProviderResult,
)
from payments.providers.registry import get_provider, set_provider
from payments.providers.utils import IdempotencyKeyGenerator, backoff_delay

__all__ = [
    "IdempotencyKeyGenerator",
    "ParsedProviderEvent",
    "PaymentProvider",
    "ProviderEventType",
    "ProviderHandle",
    "ProviderName",
    "ProviderPaymentStatus",
    "ProviderResult",
    "backoff_delay",
    "get_provider",
    "set_provider",
]
