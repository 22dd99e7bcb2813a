"""
Tests for the provider webhook endpoint.

The endpoint only verifies and queues; reconciliation itself is covered
in test_reconciliation_service.py and test_tasks.py.
"""

from __future__ import annotations

import pytest
from django.urls import reverse

from payments.providers import ParsedProviderEvent, ProviderEventType, ProviderName


def webhook_url(provider: str) -> str:
    return reverse("payments:provider-webhook", kwargs={"provider": provider})


@pytest.fixture
def queue(mocker):
    return mocker.patch("payments.tasks.reconcile_provider_event.delay")


@pytest.mark.django_db
class TestProviderWebhook:
    def test_verified_event_is_queued(self, client, fake_provider, queue):
        event = ParsedProviderEvent(
            provider=ProviderName.MERCADO_PAGO,
            provider_reference="555",
            event_type=ProviderEventType.PAYMENT_UPDATED,
            payload={"data": {"id": "555"}},
        )
        fake_provider.parse_webhook.return_value = event

        response = client.post(webhook_url("mercado_pago"), data="{}", content_type="application/json")

        assert response.status_code == 200
        queue.assert_called_once_with(event.to_dict())

    def test_ignored_event_type(self, client, fake_provider, queue):
        fake_provider.parse_webhook.return_value = None

        response = client.post(webhook_url("stripe"), data="{}", content_type="application/json")

        assert response.status_code == 200
        queue.assert_not_called()

    def test_unverifiable_request_is_rejected(self, client, queue):
        response = client.post(webhook_url("stripe"), data="{}", content_type="application/json")

        assert response.status_code == 400
        queue.assert_not_called()

    def test_unknown_provider(self, client, queue):
        response = client.post(webhook_url("paypal"), data="{}", content_type="application/json")

        assert response.status_code == 404

    def test_only_post_is_allowed(self, client):
        assert client.get(webhook_url("stripe")).status_code == 405

    def test_queue_failure_still_acknowledges(self, client, fake_provider, queue):
        fake_provider.parse_webhook.return_value = ParsedProviderEvent(
            provider=ProviderName.STRIPE,
            provider_reference="pi_1",
            event_type=ProviderEventType.PAYMENT_AUTHORIZED,
        )
        queue.side_effect = ConnectionError("broker down")

        response = client.post(webhook_url("stripe"), data="{}", content_type="application/json")

        assert response.status_code == 200

    def test_stripe_event_end_to_end(self, client, mocker, queue):
        constructed = mocker.MagicMock()
        constructed.to_dict.return_value = {
            "id": "evt_1",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_9", "object": "payment_intent", "amount_received": 10000, "currency": "uyu"}},
        }
        mocker.patch(
            "payments.providers.stripe_provider.stripe.Webhook.construct_event",
            return_value=constructed,
        )

        response = client.post(
            webhook_url("stripe"),
            data="{}",
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="t=1,v1=abc",
        )

        queued = queue.call_args.args[0]
        assert response.status_code == 200
        assert queued["provider_reference"] == "pi_9"
        assert queued["event_type"] == ProviderEventType.PAYMENT_CAPTURED
        assert queued["amount"] == 10000
