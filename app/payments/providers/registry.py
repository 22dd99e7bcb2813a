"""
Provider lookup by name.

Services never instantiate adapters directly; they call get_provider()
so tests can swap in a fake with set_provider().

Usage:
    from payments.providers import get_provider, set_provider

    provider = get_provider("stripe")

    # In tests
    set_provider("stripe", mock_provider)
    ...
    set_provider("stripe", None)  # back to the real adapter
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings

from core.exceptions import ValidationError
from payments.providers.base import ProviderName
from payments.providers.manual_provider import ManualProvider
from payments.providers.mercadopago_provider import MercadoPagoProvider
from payments.providers.stripe_provider import StripeProvider

if TYPE_CHECKING:
    from payments.providers.base import PaymentProvider


_FACTORIES = {
    ProviderName.STRIPE: StripeProvider,
    ProviderName.MERCADO_PAGO: MercadoPagoProvider,
    ProviderName.MANUAL: ManualProvider,
}

_overrides: dict[str, PaymentProvider] = {}


def get_provider(name: str | None = None) -> PaymentProvider:
    """
    Adapter for `name` (DEFAULT_PAYMENT_PROVIDER when None).

    Raises:
        ValidationError: Unknown provider name
    """
    name = str(name or settings.DEFAULT_PAYMENT_PROVIDER)
    if name in _overrides:
        return _overrides[name]
    try:
        factory = _FACTORIES[name]
    except KeyError:
        raise ValidationError(
            f"Unknown payment provider: {name}",
            error_code="UNKNOWN_PROVIDER",
            details={"provider": name},
        ) from None
    return factory()


def set_provider(name: str, provider: PaymentProvider | None) -> None:
    """Override the adapter returned for `name`; None removes the override."""
    if provider is None:
        _overrides.pop(str(name), None)
    else:
        _overrides[str(name)] = provider
