"""
Stripe payment provider.

Payments are manual-capture PaymentIntents: checkout authorizes the
estimated amount and the platform captures the final total once the
client approves the job. Payouts are Connect transfers to the pro's
connected account (ProPayoutProfile.provider_destination).

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (defaults to
  PAYMENT_PROVIDER_TIMEOUT_SECONDS)

Webhook mapping:
    payment_intent.requires_action           -> payment.requires_action
    payment_intent.amount_capturable_updated -> payment.authorized
    payment_intent.succeeded                 -> payment.captured
    payment_intent.payment_failed            -> payment.failed
    payment_intent.canceled                  -> payment.cancelled
    charge.refunded                          -> payment.refunded
    transfer.paid                            -> payout.settled
    transfer.failed / transfer.reversed      -> payout.failed
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import stripe
from django.conf import settings

from lifecycle import PaymentStatus
from payments.exceptions import (
    ProviderRejected,
    ProviderTimeout,
    ProviderUnavailable,
    WebhookVerificationError,
)
from payments.providers.base import (
    ParsedProviderEvent,
    PaymentProvider,
    ProviderEventType,
    ProviderHandle,
    ProviderName,
    ProviderPaymentStatus,
    ProviderResult,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

    from django.http import HttpRequest

    from core.money import Money


STRIPE_EVENT_TYPES = {
    "payment_intent.requires_action": ProviderEventType.PAYMENT_REQUIRES_ACTION,
    "payment_intent.amount_capturable_updated": ProviderEventType.PAYMENT_AUTHORIZED,
    "payment_intent.succeeded": ProviderEventType.PAYMENT_CAPTURED,
    "payment_intent.payment_failed": ProviderEventType.PAYMENT_FAILED,
    "payment_intent.canceled": ProviderEventType.PAYMENT_CANCELLED,
    "charge.refunded": ProviderEventType.PAYMENT_REFUNDED,
    "transfer.paid": ProviderEventType.PAYOUT_SETTLED,
    "transfer.failed": ProviderEventType.PAYOUT_FAILED,
    "transfer.reversed": ProviderEventType.PAYOUT_FAILED,
}

STRIPE_INTENT_STATUSES = {
    "requires_payment_method": PaymentStatus.REQUIRES_ACTION,
    "requires_confirmation": PaymentStatus.REQUIRES_ACTION,
    "requires_action": PaymentStatus.REQUIRES_ACTION,
    "processing": PaymentStatus.REQUIRES_ACTION,
    "requires_capture": PaymentStatus.AUTHORIZED,
    "succeeded": PaymentStatus.CAPTURED,
    "canceled": PaymentStatus.CANCELLED,
}

# pending and requires_action refunds are settled by the charge.refunded webhook
STRIPE_REFUND_STATUSES = {
    "succeeded": PaymentStatus.REFUNDED,
}
STRIPE_REFUND_FAILURES = ("failed", "canceled")


class StripeProvider(PaymentProvider):
    """
    Adapter for Stripe API operations.

    Thread-safe for use from Celery workers: no instance state beyond
    configuration read from settings on every call.

    Features:
    - Configurable timeouts on all API calls
    - Automatic error translation to provider exceptions
    - Structured logging with timing metrics
    - Idempotency keys on every write
    """

    name = ProviderName.STRIPE

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key and timeout."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(
            settings,
            "STRIPE_API_TIMEOUT_SECONDS",
            settings.PAYMENT_PROVIDER_TIMEOUT_SECONDS,
        )
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    def _call(self, log_context: dict[str, Any], operation: Callable[[], Any]) -> Any:
        """Run one Stripe API call with timing logs and error translation."""
        self._configure_stripe()
        logger = self.get_logger()

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)
        try:
            result = operation()
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self._handle_stripe_error(e, log_context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "stripe_id": getattr(result, "id", None),
                "status": getattr(result, "status", None),
                "duration_ms": duration_ms,
            },
        )
        return result

    # =========================================================================
    # Payments
    # =========================================================================

    def create_payment_intent(
        self,
        order_id: str,
        amount: Money,
        idempotency_key: str,
        payment_id: str | None = None,
    ) -> ProviderHandle:
        metadata = {"order_id": str(order_id)}
        if payment_id:
            metadata["payment_id"] = str(payment_id)

        intent = self._call(
            {
                "operation": "create_payment_intent",
                "order_id": str(order_id),
                "amount": amount.amount,
                "currency": amount.currency,
                "idempotency_key": idempotency_key,
            },
            lambda: stripe.PaymentIntent.create(
                amount=amount.amount,
                currency=amount.currency.lower(),
                capture_method="manual",
                payment_method_types=["card"],
                metadata=metadata,
                idempotency_key=idempotency_key,
            ),
        )
        return ProviderHandle(
            provider_reference=intent.id,
            client_secret=intent.client_secret,
            raw=intent.to_dict(),
        )

    def capture(
        self,
        provider_reference: str,
        amount: Money | None = None,
        idempotency_key: str | None = None,
    ) -> ProviderResult:
        params: dict[str, Any] = {}
        if amount is not None:
            params["amount_to_capture"] = amount.amount
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        intent = self._call(
            {
                "operation": "capture_payment_intent",
                "payment_intent_id": provider_reference,
                "amount_to_capture": amount.amount if amount else None,
                "idempotency_key": idempotency_key,
            },
            lambda: stripe.PaymentIntent.capture(provider_reference, **params),
        )
        return ProviderResult(
            provider_reference=intent.id,
            status=intent.status,
            amount=intent.amount_received,
            raw=intent.to_dict(),
            payment_status=STRIPE_INTENT_STATUSES.get(intent.status),
        )

    def refund(
        self,
        provider_reference: str,
        amount: Money | None = None,
        idempotency_key: str | None = None,
    ) -> ProviderResult:
        params: dict[str, Any] = {"payment_intent": provider_reference}
        if amount is not None:
            params["amount"] = amount.amount
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        refund = self._call(
            {
                "operation": "create_refund",
                "payment_intent_id": provider_reference,
                "amount": amount.amount if amount else None,
                "idempotency_key": idempotency_key,
            },
            lambda: stripe.Refund.create(**params),
        )
        if refund.status in STRIPE_REFUND_FAILURES:
            raise ProviderRejected(
                f"Refund {refund.status} at Stripe",
                error_code="REFUND_FAILED",
                provider=self.name,
                provider_code=getattr(refund, "failure_reason", None) or refund.status,
                details={"refund_id": refund.id},
            )
        return ProviderResult(
            provider_reference=provider_reference,
            status=refund.status,
            amount=refund.amount,
            raw=refund.to_dict(),
            payment_status=STRIPE_REFUND_STATUSES.get(refund.status),
        )

    def cancel_authorization(
        self,
        provider_reference: str,
        idempotency_key: str | None = None,
    ) -> ProviderResult:
        params: dict[str, Any] = {}
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        intent = self._call(
            {
                "operation": "cancel_payment_intent",
                "payment_intent_id": provider_reference,
                "idempotency_key": idempotency_key,
            },
            lambda: stripe.PaymentIntent.cancel(provider_reference, **params),
        )
        return ProviderResult(
            provider_reference=intent.id,
            status=intent.status,
            raw=intent.to_dict(),
            payment_status=STRIPE_INTENT_STATUSES.get(intent.status),
        )

    def fetch_payment_status(self, provider_reference: str) -> ProviderPaymentStatus:
        intent = self._call(
            {"operation": "retrieve_payment_intent", "payment_intent_id": provider_reference},
            lambda: stripe.PaymentIntent.retrieve(provider_reference),
        )
        status = STRIPE_INTENT_STATUSES.get(intent.status)
        return ProviderPaymentStatus(
            provider_reference=intent.id,
            status=status,
            amount_authorized=intent.amount if status != PaymentStatus.REQUIRES_ACTION else None,
            amount_captured=intent.amount_received or None,
            currency=intent.currency.upper(),
            external_reference=(intent.metadata or {}).get("payment_id"),
            raw=intent.to_dict(),
        )

    # =========================================================================
    # Payouts
    # =========================================================================

    def send(
        self,
        payout_id: str,
        destination: dict[str, Any],
        amount: Money,
        idempotency_key: str,
    ) -> ProviderResult:
        account = destination.get("provider_destination")
        if not account:
            raise ProviderRejected(
                "Payout destination has no Stripe connected account",
                provider=self.name,
                provider_code="missing_destination",
            )

        transfer = self._call(
            {
                "operation": "create_transfer",
                "payout_id": str(payout_id),
                "destination_account": account,
                "amount": amount.amount,
                "idempotency_key": idempotency_key,
            },
            lambda: stripe.Transfer.create(
                amount=amount.amount,
                currency=amount.currency.lower(),
                destination=account,
                metadata={"payout_id": str(payout_id)},
                idempotency_key=idempotency_key,
            ),
        )
        return ProviderResult(
            provider_reference=transfer.id,
            status="created",
            amount=transfer.amount,
            raw=transfer.to_dict(),
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def parse_webhook(self, request: HttpRequest) -> ParsedProviderEvent | None:
        signature = request.headers.get("Stripe-Signature", "")
        if not signature:
            raise WebhookVerificationError("Missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(
                request.body,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            ).to_dict()
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError(
                "Invalid webhook signature",
                details={"error": str(e)},
            ) from e
        except ValueError as e:
            raise WebhookVerificationError("Invalid webhook payload") from e

        event_type = STRIPE_EVENT_TYPES.get(event.get("type", ""))
        if event_type is None:
            return None

        obj = event.get("data", {}).get("object", {})
        if obj.get("object") == "charge":
            reference = obj.get("payment_intent") or ""
            amount = obj.get("amount_refunded")
        elif event_type == ProviderEventType.PAYMENT_CAPTURED:
            reference = obj.get("id", "")
            amount = obj.get("amount_received")
        elif event_type == ProviderEventType.PAYMENT_AUTHORIZED:
            reference = obj.get("id", "")
            amount = obj.get("amount_capturable")
        else:
            reference = obj.get("id", "")
            amount = obj.get("amount")

        if not reference:
            raise WebhookVerificationError(
                "Stripe event has no object reference",
                details={"event_id": event.get("id")},
            )

        metadata = obj.get("metadata") or {}
        created = event.get("created")
        return ParsedProviderEvent(
            provider=self.name,
            provider_reference=reference,
            event_type=event_type,
            payload=event,
            occurred_at=datetime.fromtimestamp(created, tz=timezone.utc) if created else None,
            amount=amount,
            currency=(obj.get("currency") or "").upper() or None,
            external_reference=metadata.get("payout_id" if obj.get("object") == "transfer" else "payment_id"),
        )

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to provider exceptions.

        Raises:
            ProviderRejected: Card declined, invalid request, bad credentials
            ProviderUnavailable: Rate limited, connection or server error
            ProviderTimeout: Request timed out
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": getattr(error, "decline_code", None)},
            )
            raise ProviderRejected(
                str(error.user_message or error),
                provider=ProviderName.STRIPE,
                provider_code=error.code,
            ) from error

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise ProviderRejected(
                str(error),
                provider=ProviderName.STRIPE,
                provider_code=error.code,
            ) from error

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise ProviderUnavailable(
                "Stripe rate limit exceeded. Please retry.",
                provider=ProviderName.STRIPE,
                provider_code="rate_limit",
            ) from error

        elif isinstance(error, stripe.APIConnectionError):
            if "timed out" in str(error).lower() or "timeout" in str(error).lower():
                logger.warning("Stripe request timed out", extra=log_context)
                raise ProviderTimeout(
                    "Stripe request timed out. Outcome unknown.",
                    provider=ProviderName.STRIPE,
                    provider_code="timeout",
                ) from error
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise ProviderUnavailable(
                "Could not connect to Stripe. Please retry.",
                provider=ProviderName.STRIPE,
                provider_code="api_connection_error",
            ) from error

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical("Stripe authentication failed - check API key", extra=log_context)
            raise ProviderRejected(
                "Stripe authentication failed",
                provider=ProviderName.STRIPE,
                provider_code="authentication_error",
            ) from error

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise ProviderUnavailable(
                "Stripe service error. Please retry.",
                provider=ProviderName.STRIPE,
                provider_code="api_error",
            ) from error

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise ProviderUnavailable(
                f"Unexpected Stripe error: {error}",
                provider=ProviderName.STRIPE,
                provider_code="unknown_error",
            ) from error
