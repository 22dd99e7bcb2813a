"""
Tests for payment provider adapters.

HTTP and SDK calls are mocked; these tests check request building,
webhook verification, status mapping and error translation.
"""

from __future__ import annotations

import json

import pytest
import requests
import stripe
from django.test import RequestFactory, override_settings

from core.exceptions import ValidationError
from core.money import Money
from lifecycle import PaymentStatus
from payments.exceptions import (
    ProviderRejected,
    ProviderTimeout,
    ProviderUnavailable,
    WebhookVerificationError,
)
from payments.providers import (
    IdempotencyKeyGenerator,
    ParsedProviderEvent,
    ProviderEventType,
    ProviderName,
    backoff_delay,
    get_provider,
    set_provider,
)
from payments.providers.manual_provider import ManualProvider
from payments.providers.mercadopago_provider import (
    MercadoPagoProvider,
    build_signature_manifest,
    map_mercadopago_status,
    sign_manifest,
)
from payments.providers.stripe_provider import StripeProvider

WEBHOOK_SECRET = "mp-test-secret"


def mp_response(mocker, status_code=200, body=None):
    response = mocker.MagicMock()
    response.status_code = status_code
    response.json.return_value = body or {}
    response.content = json.dumps(body or {}).encode()
    response.text = json.dumps(body or {})
    return response


# =============================================================================
# Mercado Pago
# =============================================================================


class TestMercadoPagoStatusMapping:
    @pytest.mark.parametrize(
        ("status", "captured", "expected"),
        [
            ("pending", False, PaymentStatus.REQUIRES_ACTION),
            ("authorized", False, PaymentStatus.AUTHORIZED),
            ("approved", False, PaymentStatus.AUTHORIZED),
            ("approved", True, PaymentStatus.CAPTURED),
            ("rejected", False, PaymentStatus.FAILED),
            ("charged_back", True, PaymentStatus.REFUNDED),
            ("something_new", False, None),
        ],
    )
    def test_map_status(self, status, captured, expected):
        assert map_mercadopago_status(status, captured) == expected


class TestMercadoPagoWebhook:
    @pytest.fixture(autouse=True)
    def webhook_secret(self, settings):
        settings.MERCADOPAGO_WEBHOOK_SECRET = WEBHOOK_SECRET

    def build_request(self, data_id="123456", ts="1700000000", signature=None, topic="payment"):
        manifest = build_signature_manifest(data_id, "req-1", ts)
        signature = signature or f"ts={ts},v1={sign_manifest(manifest, WEBHOOK_SECRET)}"
        return RequestFactory().post(
            f"/api/v1/payments/webhooks/mercado_pago/?type={topic}&data.id={data_id}",
            data=json.dumps({"type": topic, "data": {"id": data_id}}),
            content_type="application/json",
            HTTP_X_SIGNATURE=signature,
            HTTP_X_REQUEST_ID="req-1",
        )

    def test_manifest_lowercases_alphanumeric_ids(self):
        assert build_signature_manifest("ABC123", "r", "1") == "id:abc123;request-id:r;ts:1;"

    def test_valid_notification_needs_status_lookup(self):
        event = MercadoPagoProvider().parse_webhook(self.build_request())

        assert event.provider == ProviderName.MERCADO_PAGO
        assert event.provider_reference == "123456"
        assert event.event_type == ProviderEventType.PAYMENT_UPDATED
        assert event.needs_status_lookup

    def test_bad_signature_is_rejected(self):
        request = self.build_request(signature="ts=1700000000,v1=deadbeef")

        with pytest.raises(WebhookVerificationError):
            MercadoPagoProvider().parse_webhook(request)

    def test_malformed_signature_header(self):
        with pytest.raises(WebhookVerificationError):
            MercadoPagoProvider().parse_webhook(self.build_request(signature="garbage"))

    def test_other_topics_are_ignored(self):
        assert MercadoPagoProvider().parse_webhook(self.build_request(topic="merchant_order")) is None

    def test_missing_secret_refuses_everything(self, settings):
        settings.MERCADOPAGO_WEBHOOK_SECRET = ""

        with pytest.raises(WebhookVerificationError):
            MercadoPagoProvider().parse_webhook(self.build_request())


class TestMercadoPagoApi:
    def test_create_preference(self, mocker):
        request = mocker.patch(
            "payments.providers.mercadopago_provider.requests.request",
            return_value=mp_response(
                mocker, 201, {"id": "pref_1", "init_point": "https://mp.example.com/pref_1"}
            ),
        )

        handle = MercadoPagoProvider().create_payment_intent(
            "order-1", Money(10050, "UYU"), "checkout:order-1:1:abc", payment_id="pay-1"
        )

        body = request.call_args.kwargs["json"]
        headers = request.call_args.kwargs["headers"]
        assert handle.provider_reference == "pref_1"
        assert handle.checkout_url == "https://mp.example.com/pref_1"
        assert body["external_reference"] == "pay-1"
        assert body["items"][0]["unit_price"] == 100.5
        assert headers["X-Idempotency-Key"] == "checkout:order-1:1:abc"

    def test_fetch_status_converts_to_minor_units(self, mocker):
        mocker.patch(
            "payments.providers.mercadopago_provider.requests.request",
            return_value=mp_response(
                mocker,
                200,
                {
                    "id": 555,
                    "status": "approved",
                    "captured": True,
                    "transaction_amount": 100.5,
                    "currency_id": "UYU",
                    "external_reference": "pay-1",
                },
            ),
        )

        status = MercadoPagoProvider().fetch_payment_status("555")

        assert status.status == PaymentStatus.CAPTURED
        assert status.amount_captured == 10050
        assert status.provider_reference == "555"
        assert status.external_reference == "pay-1"

    @pytest.mark.parametrize(
        ("status_code", "error"),
        [(500, ProviderUnavailable), (429, ProviderUnavailable), (400, ProviderRejected)],
    )
    def test_http_errors_are_translated(self, mocker, status_code, error):
        mocker.patch(
            "payments.providers.mercadopago_provider.requests.request",
            return_value=mp_response(mocker, status_code, {"message": "nope"}),
        )

        with pytest.raises(error):
            MercadoPagoProvider().fetch_payment_status("555")

    def test_timeout_is_translated(self, mocker):
        mocker.patch(
            "payments.providers.mercadopago_provider.requests.request",
            side_effect=requests.Timeout("read timed out"),
        )

        with pytest.raises(ProviderTimeout):
            MercadoPagoProvider().capture("555", idempotency_key="capture:x:1:abc")

    def test_payouts_are_not_supported(self):
        with pytest.raises(ProviderRejected) as exc_info:
            MercadoPagoProvider().send("p1", {}, Money(100, "UYU"), "payout:p1:1:abc")

        assert exc_info.value.error_code == "UNSUPPORTED_OPERATION"

    def test_capture_still_processing_is_not_confirmed(self, mocker):
        mocker.patch(
            "payments.providers.mercadopago_provider.requests.request",
            return_value=mp_response(
                mocker, 200, {"id": 555, "status": "in_process", "captured": False, "transaction_amount": 100}
            ),
        )

        result = MercadoPagoProvider().capture("555", idempotency_key="capture:x:1:abc")

        assert result.status == "in_process"
        assert result.payment_status == PaymentStatus.REQUIRES_ACTION

    def test_approved_capture_is_confirmed(self, mocker):
        mocker.patch(
            "payments.providers.mercadopago_provider.requests.request",
            return_value=mp_response(
                mocker, 200, {"id": 555, "status": "approved", "captured": True, "transaction_amount": 100}
            ),
        )

        result = MercadoPagoProvider().capture("555", idempotency_key="capture:x:1:abc")

        assert result.payment_status == PaymentStatus.CAPTURED
        assert result.amount == 10000

    def test_approved_refund_is_confirmed(self, mocker):
        mocker.patch(
            "payments.providers.mercadopago_provider.requests.request",
            return_value=mp_response(mocker, 201, {"id": 77, "status": "approved", "amount": 100}),
        )

        result = MercadoPagoProvider().refund("555", idempotency_key="refund:x:1:abc")

        assert result.payment_status == PaymentStatus.REFUNDED

    def test_rejected_refund_raises(self, mocker):
        mocker.patch(
            "payments.providers.mercadopago_provider.requests.request",
            return_value=mp_response(mocker, 201, {"id": 77, "status": "rejected", "amount": 100}),
        )

        with pytest.raises(ProviderRejected) as exc_info:
            MercadoPagoProvider().refund("555", idempotency_key="refund:x:1:abc")

        assert exc_info.value.error_code == "REFUND_FAILED"


# =============================================================================
# Stripe
# =============================================================================


class TestStripeWebhook:
    def build_request(self, signature="t=1,v1=abc"):
        headers = {"HTTP_STRIPE_SIGNATURE": signature} if signature else {}
        return RequestFactory().post(
            "/api/v1/payments/webhooks/stripe/",
            data="{}",
            content_type="application/json",
            **headers,
        )

    def stub_event(self, mocker, event: dict):
        constructed = mocker.MagicMock()
        constructed.to_dict.return_value = event
        return mocker.patch(
            "payments.providers.stripe_provider.stripe.Webhook.construct_event",
            return_value=constructed,
        )

    def test_capturable_update_is_authorization(self, mocker):
        self.stub_event(
            mocker,
            {
                "id": "evt_1",
                "type": "payment_intent.amount_capturable_updated",
                "created": 1700000000,
                "data": {
                    "object": {
                        "id": "pi_1",
                        "object": "payment_intent",
                        "amount_capturable": 10000,
                        "currency": "uyu",
                        "metadata": {"payment_id": "pay-1"},
                    }
                },
            },
        )

        event = StripeProvider().parse_webhook(self.build_request())

        assert event.event_type == ProviderEventType.PAYMENT_AUTHORIZED
        assert event.provider_reference == "pi_1"
        assert event.amount == 10000
        assert event.currency == "UYU"
        assert event.external_reference == "pay-1"
        assert event.occurred_at is not None

    def test_charge_refund_points_at_payment_intent(self, mocker):
        self.stub_event(
            mocker,
            {
                "type": "charge.refunded",
                "data": {"object": {"id": "ch_1", "object": "charge", "payment_intent": "pi_1", "amount_refunded": 500}},
            },
        )

        event = StripeProvider().parse_webhook(self.build_request())

        assert event.event_type == ProviderEventType.PAYMENT_REFUNDED
        assert event.provider_reference == "pi_1"
        assert event.amount == 500

    def test_unhandled_event_type(self, mocker):
        self.stub_event(mocker, {"type": "customer.created", "data": {"object": {"id": "cus_1"}}})

        assert StripeProvider().parse_webhook(self.build_request()) is None

    def test_missing_signature(self):
        with pytest.raises(WebhookVerificationError):
            StripeProvider().parse_webhook(self.build_request(signature=None))

    def test_invalid_signature(self, mocker):
        mocker.patch(
            "payments.providers.stripe_provider.stripe.Webhook.construct_event",
            side_effect=stripe.SignatureVerificationError("bad", "t=1,v1=abc"),
        )

        with pytest.raises(WebhookVerificationError):
            StripeProvider().parse_webhook(self.build_request())

    def test_transfer_carries_payout_id(self, mocker):
        self.stub_event(
            mocker,
            {
                "type": "transfer.paid",
                "data": {
                    "object": {
                        "id": "tr_1",
                        "object": "transfer",
                        "amount": 18000,
                        "currency": "uyu",
                        "metadata": {"payout_id": "payout-1"},
                    }
                },
            },
        )

        event = StripeProvider().parse_webhook(self.build_request())

        assert event.event_type == ProviderEventType.PAYOUT_SETTLED
        assert event.provider_reference == "tr_1"
        assert event.external_reference == "payout-1"


class TestStripeResponses:
    def stub_refund(self, mocker, status, failure_reason=None):
        refund = mocker.MagicMock(id="re_1", status=status, amount=10000, failure_reason=failure_reason)
        refund.to_dict.return_value = {"id": "re_1", "status": status}
        return mocker.patch("payments.providers.stripe_provider.stripe.Refund.create", return_value=refund)

    def test_capture_confirms_succeeded_intent(self, mocker):
        intent = mocker.MagicMock(id="pi_1", status="succeeded", amount_received=10000)
        mocker.patch("payments.providers.stripe_provider.stripe.PaymentIntent.capture", return_value=intent)

        result = StripeProvider().capture("pi_1", Money(10000, "UYU"), "capture:x:1:abc")

        assert result.payment_status == PaymentStatus.CAPTURED

    def test_processing_capture_is_not_confirmed(self, mocker):
        intent = mocker.MagicMock(id="pi_1", status="processing", amount_received=0)
        mocker.patch("payments.providers.stripe_provider.stripe.PaymentIntent.capture", return_value=intent)

        result = StripeProvider().capture("pi_1", Money(10000, "UYU"), "capture:x:1:abc")

        assert result.payment_status == PaymentStatus.REQUIRES_ACTION

    def test_pending_refund_is_not_confirmed(self, mocker):
        self.stub_refund(mocker, "pending")

        result = StripeProvider().refund("pi_1", idempotency_key="refund:x:1:abc")

        assert result.status == "pending"
        assert result.payment_status is None

    def test_succeeded_refund_is_confirmed(self, mocker):
        self.stub_refund(mocker, "succeeded")

        assert StripeProvider().refund("pi_1").payment_status == PaymentStatus.REFUNDED

    def test_failed_refund_raises(self, mocker):
        self.stub_refund(mocker, "failed", failure_reason="expired_or_canceled_card")

        with pytest.raises(ProviderRejected) as exc_info:
            StripeProvider().refund("pi_1", idempotency_key="refund:x:1:abc")

        assert exc_info.value.error_code == "REFUND_FAILED"
        assert exc_info.value.provider_code == "expired_or_canceled_card"


class TestStripeErrors:
    def test_card_error_is_rejection(self, mocker):
        mocker.patch(
            "payments.providers.stripe_provider.stripe.PaymentIntent.capture",
            side_effect=stripe.CardError("Your card was declined.", None, "card_declined"),
        )

        with pytest.raises(ProviderRejected) as exc_info:
            StripeProvider().capture("pi_1", Money(100, "UYU"), "capture:x:1:abc")

        assert exc_info.value.provider_code == "card_declined"

    def test_connection_timeout_is_unknown_outcome(self, mocker):
        mocker.patch(
            "payments.providers.stripe_provider.stripe.PaymentIntent.capture",
            side_effect=stripe.APIConnectionError("Request timed out"),
        )

        with pytest.raises(ProviderTimeout):
            StripeProvider().capture("pi_1", Money(100, "UYU"), "capture:x:1:abc")

    def test_rate_limit_is_transient(self, mocker):
        mocker.patch(
            "payments.providers.stripe_provider.stripe.PaymentIntent.retrieve",
            side_effect=stripe.RateLimitError("slow down"),
        )

        with pytest.raises(ProviderUnavailable):
            StripeProvider().fetch_payment_status("pi_1")

    def test_send_needs_connected_account(self):
        with pytest.raises(ProviderRejected):
            StripeProvider().send("p1", {"provider_destination": ""}, Money(100, "UYU"), "payout:p1:1:abc")


# =============================================================================
# Manual
# =============================================================================


class TestManualProvider:
    def test_send_queues_bank_transfer(self):
        result = ManualProvider().send(
            "p1", {"bank_name": "BROU", "bank_account_number": "001"}, Money(9000, "UYU"), "payout:p1:1:abc"
        )

        assert result.provider_reference == "manual-p1"
        assert result.status == "queued"
        assert result.amount == 9000

    def test_send_without_destination(self):
        with pytest.raises(ProviderRejected):
            ManualProvider().send("p1", {}, Money(9000, "UYU"), "payout:p1:1:abc")

    def test_client_payments_are_unsupported(self):
        with pytest.raises(ProviderRejected):
            ManualProvider().create_payment_intent("o1", Money(100, "UYU"), "checkout:o1:1:abc")


# =============================================================================
# Registry & helpers
# =============================================================================


class TestRegistry:
    def test_get_provider_by_name(self):
        assert isinstance(get_provider(ProviderName.STRIPE), StripeProvider)
        assert isinstance(get_provider("manual"), ManualProvider)

    @override_settings(DEFAULT_PAYMENT_PROVIDER="mercado_pago")
    def test_default_provider(self):
        assert isinstance(get_provider(), MercadoPagoProvider)

    def test_unknown_provider(self):
        with pytest.raises(ValidationError) as exc_info:
            get_provider("paypal")

        assert exc_info.value.error_code == "UNKNOWN_PROVIDER"

    def test_override_and_reset(self, mocker):
        fake = mocker.MagicMock()
        set_provider("stripe", fake)
        try:
            assert get_provider("stripe") is fake
        finally:
            set_provider("stripe", None)

        assert isinstance(get_provider("stripe"), StripeProvider)


def test_idempotency_keys_are_deterministic():
    first = IdempotencyKeyGenerator.generate("payout", "abc", 2)

    assert first == IdempotencyKeyGenerator.generate("payout", "abc", 2)
    assert first != IdempotencyKeyGenerator.generate("payout", "abc", 3)
    assert first.startswith("payout:abc:2:")


def test_backoff_grows_and_is_capped():
    assert 1.0 <= backoff_delay(0) <= 1.25
    assert 4.0 <= backoff_delay(2) <= 5.0
    assert backoff_delay(20, max_delay=60.0) <= 75.0


def test_parsed_event_survives_task_serialization():
    event = ParsedProviderEvent(
        provider=ProviderName.STRIPE,
        provider_reference="pi_1",
        event_type=ProviderEventType.PAYMENT_CAPTURED,
        payload={"id": "evt_1"},
        amount=100,
        currency="UYU",
    )

    restored = ParsedProviderEvent.from_dict(json.loads(json.dumps(event.to_dict())))

    assert restored == event
