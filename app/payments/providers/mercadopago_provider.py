"""
Mercado Pago payment provider.

Checkout is a hosted preference: create_payment_intent returns the
preference id and its init_point URL, and the Payment id is sent as the
preference's external_reference. Webhooks then arrive for the Mercado
Pago *payment* id, which reconciliation binds to the Payment through
that external_reference.

Mercado Pago amounts are decimal major units; everything crossing this
adapter's boundary is converted to integer minor units with Money.

Configuration (via settings):
- MERCADOPAGO_ACCESS_TOKEN: API access token
- MERCADOPAGO_WEBHOOK_SECRET: Secret for x-signature verification
- MERCADOPAGO_API_BASE_URL: API root (https://api.mercadopago.com)
- MERCADOPAGO_NOTIFICATION_URL: Webhook URL given to preferences
- PAYMENT_PROVIDER_TIMEOUT_SECONDS: Timeout for every API call

Status mapping:
    pending / in_process / in_mediation -> REQUIRES_ACTION
    authorized, approved (not captured) -> AUTHORIZED
    approved (captured)                 -> CAPTURED
    rejected                            -> FAILED
    cancelled                           -> CANCELLED
    refunded / charged_back             -> REFUNDED
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import re
import time
from typing import TYPE_CHECKING

import requests
from django.conf import settings

from core.money import Money
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
    from typing import Any

    from django.http import HttpRequest

logger = logging.getLogger(__name__)

MERCADOPAGO_STATUSES = {
    "pending": PaymentStatus.REQUIRES_ACTION,
    "in_process": PaymentStatus.REQUIRES_ACTION,
    "in_mediation": PaymentStatus.REQUIRES_ACTION,
    "authorized": PaymentStatus.AUTHORIZED,
    "approved": PaymentStatus.AUTHORIZED,
    "rejected": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.CANCELLED,
    "refunded": PaymentStatus.REFUNDED,
    "charged_back": PaymentStatus.REFUNDED,
}

# Refund statuses; in_process refunds are settled by the payment webhook
MERCADOPAGO_REFUND_STATUSES = {
    "approved": PaymentStatus.REFUNDED,
}
MERCADOPAGO_REFUND_FAILURES = ("rejected", "cancelled")

_ALPHANUMERIC = re.compile(r"^[a-zA-Z0-9]+$")


def map_mercadopago_status(status: str, captured: bool = False) -> str | None:
    """PaymentStatus for a Mercado Pago payment status, None if unknown."""
    if status == "approved" and captured:
        return PaymentStatus.CAPTURED
    return MERCADOPAGO_STATUSES.get(status)


def build_signature_manifest(data_id: str, request_id: str, ts: str) -> str:
    """
    Signed manifest: "id:{data.id};request-id:{x-request-id};ts:{ts};".

    Alphanumeric data ids are signed lower-cased.
    """
    if _ALPHANUMERIC.match(data_id):
        data_id = data_id.lower()
    return f"id:{data_id};request-id:{request_id};ts:{ts};"


def sign_manifest(manifest: str, secret: str) -> str:
    return hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()


class MercadoPagoProvider(PaymentProvider):
    """
    Adapter for the Mercado Pago REST API.

    Payouts are not supported through Mercado Pago; send() is rejected
    so payouts go through the manual or Stripe provider instead.
    """

    name = ProviderName.MERCADO_PAGO

    # =========================================================================
    # HTTP
    # =========================================================================

    @staticmethod
    def _headers(idempotency_key: str | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {settings.MERCADOPAGO_ACCESS_TOKEN}",
            "Content-Type": "application/json",
        }
        if idempotency_key:
            headers["X-Idempotency-Key"] = idempotency_key
        return headers

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        body: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        """
        Make one API call and return the decoded JSON body.

        Raises:
            ProviderTimeout: No response within the timeout
            ProviderUnavailable: Connection error, 429 or 5xx
            ProviderRejected: Any other 4xx
        """
        url = f"{settings.MERCADOPAGO_API_BASE_URL.rstrip('/')}{path}"
        log_context = {
            "operation": operation,
            "method": method,
            "path": path,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Mercado Pago operation", extra=log_context)
        try:
            response = requests.request(
                method,
                url,
                headers=self._headers(idempotency_key),
                json=body,
                timeout=settings.PAYMENT_PROVIDER_TIMEOUT_SECONDS,
            )
        except requests.Timeout as e:
            logger.warning(
                "Mercado Pago request timed out",
                extra={**log_context, "duration_ms": (time.time() - start_time) * 1000},
            )
            raise ProviderTimeout(
                "Mercado Pago request timed out. Outcome unknown.",
                provider=self.name,
                provider_code="timeout",
            ) from e
        except requests.RequestException as e:
            logger.error(
                "Connection error to Mercado Pago",
                extra={**log_context, "duration_ms": (time.time() - start_time) * 1000},
                exc_info=True,
            )
            raise ProviderUnavailable(
                "Could not connect to Mercado Pago. Please retry.",
                provider=self.name,
                provider_code="connection_error",
            ) from e

        duration_ms = (time.time() - start_time) * 1000
        log_context = {**log_context, "status_code": response.status_code, "duration_ms": duration_ms}

        if response.status_code == 429 or response.status_code >= 500:
            logger.warning("Mercado Pago unavailable", extra=log_context)
            raise ProviderUnavailable(
                f"Mercado Pago returned {response.status_code}. Please retry.",
                provider=self.name,
                provider_code=str(response.status_code),
            )
        if response.status_code >= 400:
            logger.error(
                "Mercado Pago rejected request",
                extra={**log_context, "response": response.text[:500]},
            )
            raise ProviderRejected(
                f"Mercado Pago rejected {operation}",
                provider=self.name,
                provider_code=str(response.status_code),
                details={"response": response.text[:500]},
            )

        logger.info("Mercado Pago operation completed", extra=log_context)
        return response.json() if response.content else {}

    @staticmethod
    def _minor(value, currency: str) -> int | None:
        if value is None:
            return None
        return Money.from_major(str(value), currency).amount

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
        body: dict[str, Any] = {
            "items": [
                {
                    "id": str(order_id),
                    "title": f"Order {order_id}",
                    "quantity": 1,
                    "unit_price": float(amount.to_major()),
                    "currency_id": amount.currency,
                }
            ],
            "external_reference": str(payment_id or order_id),
            "metadata": {"order_id": str(order_id), "idempotency_key": idempotency_key},
        }
        if settings.MERCADOPAGO_NOTIFICATION_URL:
            body["notification_url"] = settings.MERCADOPAGO_NOTIFICATION_URL

        preference = self._request(
            "POST",
            "/checkout/preferences",
            "create_preference",
            body=body,
            idempotency_key=idempotency_key,
        )
        if not preference.get("id"):
            raise ProviderRejected(
                "Mercado Pago preference created without an id",
                provider=self.name,
            )
        return ProviderHandle(
            provider_reference=str(preference["id"]),
            checkout_url=preference.get("init_point") or preference.get("sandbox_init_point") or "",
            raw=preference,
        )

    def capture(
        self,
        provider_reference: str,
        amount: Money | None = None,
        idempotency_key: str | None = None,
    ) -> ProviderResult:
        body: dict[str, Any] = {"capture": True}
        if amount is not None:
            body["transaction_amount"] = float(amount.to_major())

        payment = self._request(
            "PUT",
            f"/v1/payments/{provider_reference}",
            "capture_payment",
            body=body,
            idempotency_key=idempotency_key,
        )
        currency = payment.get("currency_id") or (amount.currency if amount else settings.DEFAULT_CURRENCY)
        return ProviderResult(
            provider_reference=str(payment.get("id", provider_reference)),
            status=payment.get("status", ""),
            amount=self._minor(payment.get("transaction_amount"), currency),
            raw=payment,
            payment_status=map_mercadopago_status(payment.get("status", ""), bool(payment.get("captured"))),
        )

    def refund(
        self,
        provider_reference: str,
        amount: Money | None = None,
        idempotency_key: str | None = None,
    ) -> ProviderResult:
        body: dict[str, Any] = {}
        if amount is not None:
            body["amount"] = float(amount.to_major())

        refund = self._request(
            "POST",
            f"/v1/payments/{provider_reference}/refunds",
            "refund_payment",
            body=body,
            idempotency_key=idempotency_key,
        )
        if refund.get("status") in MERCADOPAGO_REFUND_FAILURES:
            raise ProviderRejected(
                f"Refund {refund.get('status')} at Mercado Pago",
                error_code="REFUND_FAILED",
                provider=self.name,
                provider_code=refund.get("status"),
                details={"refund_id": refund.get("id")},
            )
        currency = amount.currency if amount else settings.DEFAULT_CURRENCY
        return ProviderResult(
            provider_reference=provider_reference,
            status=refund.get("status", ""),
            amount=self._minor(refund.get("amount"), currency),
            raw=refund,
            payment_status=MERCADOPAGO_REFUND_STATUSES.get(refund.get("status", "")),
        )

    def cancel_authorization(
        self,
        provider_reference: str,
        idempotency_key: str | None = None,
    ) -> ProviderResult:
        payment = self._request(
            "PUT",
            f"/v1/payments/{provider_reference}",
            "cancel_payment",
            body={"status": "cancelled"},
            idempotency_key=idempotency_key,
        )
        return ProviderResult(
            provider_reference=str(payment.get("id", provider_reference)),
            status=payment.get("status", ""),
            raw=payment,
            payment_status=map_mercadopago_status(payment.get("status", "")),
        )

    def fetch_payment_status(self, provider_reference: str) -> ProviderPaymentStatus:
        payment = self._request("GET", f"/v1/payments/{provider_reference}", "get_payment")
        currency = payment.get("currency_id") or settings.DEFAULT_CURRENCY
        status = map_mercadopago_status(payment.get("status", ""), bool(payment.get("captured")))
        amount = self._minor(payment.get("transaction_amount"), currency)

        return ProviderPaymentStatus(
            provider_reference=str(payment.get("id", provider_reference)),
            status=status,
            amount_authorized=amount if status in (PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED) else None,
            amount_captured=amount if status == PaymentStatus.CAPTURED else None,
            amount_refunded=self._minor(payment.get("transaction_amount_refunded"), currency) or None,
            currency=currency,
            external_reference=payment.get("external_reference") or None,
            raw=payment,
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
        raise ProviderRejected(
            "Mercado Pago payouts are not supported",
            error_code="UNSUPPORTED_OPERATION",
            provider=self.name,
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_signature(self, data_id: str, request_id: str, signature_header: str) -> None:
        """
        Check the x-signature header ("ts=...,v1=...") against the manifest.

        Raises:
            WebhookVerificationError: Missing secret, header or mismatch
        """
        secret = settings.MERCADOPAGO_WEBHOOK_SECRET
        if not secret:
            raise WebhookVerificationError("MERCADOPAGO_WEBHOOK_SECRET is not configured")
        if not signature_header:
            raise WebhookVerificationError("Missing x-signature header")

        parts = {}
        for part in signature_header.split(","):
            key, _, value = part.partition("=")
            if key and value:
                parts[key.strip()] = value.strip()

        ts, received = parts.get("ts"), parts.get("v1")
        if not ts or not received:
            raise WebhookVerificationError("Malformed x-signature header")

        expected = sign_manifest(build_signature_manifest(data_id, request_id, ts), secret)
        if not hmac.compare_digest(received, expected):
            raise WebhookVerificationError("Invalid webhook signature")

    def parse_webhook(self, request: HttpRequest) -> ParsedProviderEvent | None:
        """
        Verify a Mercado Pago notification.

        Only "payment" notifications are handled. The body carries just the
        payment id, so the event is returned as payment.updated and the
        status is looked up by the reconciliation task, not here.
        """
        try:
            body = json.loads(request.body) if request.body else {}
        except ValueError as e:
            raise WebhookVerificationError("Invalid webhook payload") from e
        if not isinstance(body, dict):
            raise WebhookVerificationError("Invalid webhook payload")

        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        data_id = request.GET.get("data.id") or (str(data["id"]) if data.get("id") else "")
        event_type = request.GET.get("type") or body.get("type")

        if event_type != "payment" or not data_id:
            return None

        self.verify_signature(
            data_id,
            request.headers.get("x-request-id", ""),
            request.headers.get("x-signature", ""),
        )

        return ParsedProviderEvent(
            provider=self.name,
            provider_reference=data_id,
            event_type=ProviderEventType.PAYMENT_UPDATED,
            payload=body,
        )
