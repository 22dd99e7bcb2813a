"""
Payment provider interface and the provider-neutral data types.

Every provider (Stripe, Mercado Pago, manual bank transfer) implements
PaymentProvider. The rest of the payments app only sees the types in
this module: a webhook becomes a ParsedProviderEvent with a canonical
event type, and provider calls return ProviderHandle/ProviderResult.

Canonical event types:
    payment.requires_action, payment.authorized, payment.captured,
    payment.failed, payment.refunded, payment.cancelled,
    payout.settled, payout.failed

    payment.updated is used by providers whose webhook only carries a
    payment id; the reconciliation task resolves it to one of the types
    above with fetch_payment_status() before recording it.

Amounts are always integer minor units wrapped in core.money.Money.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from django.db import models
from django.utils.dateparse import parse_datetime

if TYPE_CHECKING:
    from typing import Any

    from django.http import HttpRequest

    from core.money import Money


class ProviderName(models.TextChoices):
    """Payment providers the platform can route money through."""

    STRIPE = "stripe", "Stripe"
    MERCADO_PAGO = "mercado_pago", "Mercado Pago"
    MANUAL = "manual", "Manual bank transfer"


class ProviderEventType(models.TextChoices):
    """Canonical event types produced by parse_webhook()."""

    PAYMENT_REQUIRES_ACTION = "payment.requires_action", "Payment requires action"
    PAYMENT_AUTHORIZED = "payment.authorized", "Payment authorized"
    PAYMENT_CAPTURED = "payment.captured", "Payment captured"
    PAYMENT_FAILED = "payment.failed", "Payment failed"
    PAYMENT_REFUNDED = "payment.refunded", "Payment refunded"
    PAYMENT_CANCELLED = "payment.cancelled", "Payment cancelled"
    PAYMENT_UPDATED = "payment.updated", "Payment updated (status lookup needed)"
    PAYOUT_SETTLED = "payout.settled", "Payout settled"
    PAYOUT_FAILED = "payout.failed", "Payout failed"


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class ParsedProviderEvent:
    """
    A verified provider webhook in provider-neutral form.

    Attributes:
        provider: ProviderName value
        provider_reference: Provider's id for the payment or payout
        event_type: ProviderEventType value
        payload: Original provider payload (hashed for the event fingerprint)
        occurred_at: When the provider says the event happened
        amount: Amount the event reports, in minor units (if any)
        currency: Currency of `amount`
        external_reference: Our own reference echoed back by the provider
            (Payment id), used when provider_reference is not yet known
    """

    provider: str
    provider_reference: str
    event_type: str
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime | None = None
    amount: int | None = None
    currency: str | None = None
    external_reference: str | None = None

    @property
    def is_payout_event(self) -> bool:
        return self.event_type.startswith("payout.")

    @property
    def needs_status_lookup(self) -> bool:
        return self.event_type == ProviderEventType.PAYMENT_UPDATED

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form for passing the event to a Celery task."""
        data = asdict(self)
        data["occurred_at"] = self.occurred_at.isoformat() if self.occurred_at else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParsedProviderEvent:
        occurred_at = data.get("occurred_at")
        return cls(
            provider=data["provider"],
            provider_reference=data["provider_reference"],
            event_type=data["event_type"],
            payload=data.get("payload") or {},
            occurred_at=parse_datetime(occurred_at) if occurred_at else None,
            amount=data.get("amount"),
            currency=data.get("currency"),
            external_reference=data.get("external_reference"),
        )


@dataclass
class ProviderHandle:
    """
    Result of creating a payment with a provider.

    Attributes:
        provider_reference: Provider id (PaymentIntent id, preference id)
        checkout_url: Redirect URL for hosted checkouts
        client_secret: Secret for client-side confirmation (Stripe)
        raw: Full provider response for debugging
    """

    provider_reference: str
    checkout_url: str = ""
    client_secret: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderResult:
    """
    Result of a capture, refund, cancel or payout send.

    Attributes:
        provider_reference: Provider id of the affected object
        status: Provider status string, as reported
        amount: Amount the provider confirmed, in minor units
        raw: Full provider response for debugging
        payment_status: PaymentStatus the response confirms. None while the
            provider is still processing; the webhook settles it then.
    """

    provider_reference: str
    status: str = ""
    amount: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)
    payment_status: str | None = None


@dataclass
class ProviderPaymentStatus:
    """
    Current state of a payment at the provider.

    status is a PaymentStatus value, or None when the provider status
    has no equivalent.
    """

    provider_reference: str
    status: str | None
    amount_authorized: int | None = None
    amount_captured: int | None = None
    amount_refunded: int | None = None
    currency: str | None = None
    external_reference: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Provider Interface
# =============================================================================


class PaymentProvider(ABC):
    """
    Interface every payment provider adapter implements.

    Adapters translate provider SDK/HTTP errors into
    payments.exceptions.ProviderError subclasses:
        - ProviderUnavailable: transient, retry with backoff
        - ProviderTimeout: transient, outcome unknown
        - ProviderRejected: permanent
    """

    name: str = ""

    @abstractmethod
    def parse_webhook(self, request: HttpRequest) -> ParsedProviderEvent | None:
        """
        Verify and normalize an incoming webhook.

        Returns:
            The parsed event, or None for event types the platform ignores

        Raises:
            WebhookVerificationError: Bad signature or unparseable payload
        """

    @abstractmethod
    def create_payment_intent(
        self,
        order_id: str,
        amount: Money,
        idempotency_key: str,
        payment_id: str | None = None,
    ) -> ProviderHandle:
        """Start a payment for `amount`, authorized but not captured."""

    @abstractmethod
    def capture(
        self,
        provider_reference: str,
        amount: Money | None = None,
        idempotency_key: str | None = None,
    ) -> ProviderResult:
        """Capture an authorized payment (all of it when `amount` is None)."""

    @abstractmethod
    def refund(
        self,
        provider_reference: str,
        amount: Money | None = None,
        idempotency_key: str | None = None,
    ) -> ProviderResult:
        """Refund a captured payment (all of it when `amount` is None)."""

    @abstractmethod
    def cancel_authorization(
        self,
        provider_reference: str,
        idempotency_key: str | None = None,
    ) -> ProviderResult:
        """Release an authorization that will not be captured."""

    @abstractmethod
    def send(
        self,
        payout_id: str,
        destination: dict[str, Any],
        amount: Money,
        idempotency_key: str,
    ) -> ProviderResult:
        """Send a payout to a pro's destination account."""

    @abstractmethod
    def fetch_payment_status(self, provider_reference: str) -> ProviderPaymentStatus:
        """Look up the provider's current view of a payment."""
