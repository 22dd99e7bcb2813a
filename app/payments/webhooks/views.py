"""
Webhook endpoint for payment providers.

The view:
1. Lets the provider adapter verify and parse the request
2. Queues the parsed event for async reconciliation
3. Returns immediately

Providers get 200 for everything they can be told "received": new,
duplicate, ignored and orphaned events, and even a failure to queue.
Only an unverifiable or unparseable request gets 400, so providers never
retry-storm us over internal problems.

Usage:
    # In urls.py
    from payments.webhooks.views import provider_webhook

    urlpatterns = [
        path("webhooks/<str:provider>/", provider_webhook, name="provider-webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from core.exceptions import ValidationError
from payments.exceptions import WebhookVerificationError
from payments.providers import get_provider

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def provider_webhook(request: HttpRequest, provider: str) -> HttpResponse:
    """
    Receive and queue a provider webhook.

    Returns:
        HttpResponse with status:
        - 200: Event accepted (or deliberately ignored)
        - 400: Invalid signature or payload
        - 404: Unknown provider
    """
    try:
        adapter = get_provider(provider)
    except ValidationError:
        logger.warning("Webhook for unknown provider", extra={"provider": provider})
        return HttpResponse("Unknown provider", status=404)

    try:
        event = adapter.parse_webhook(request)
    except WebhookVerificationError as e:
        logger.warning(
            "Webhook verification failed",
            extra={"provider": provider, "error_code": e.error_code, "error": e.message},
        )
        return HttpResponse("Invalid webhook", status=400)

    if event is None:
        logger.info("Webhook event type ignored", extra={"provider": provider})
        return HttpResponse("Ignored", status=200)

    log_context = {
        "provider": event.provider,
        "provider_reference": event.provider_reference,
        "event_type": event.event_type,
    }
    logger.info(f"Received {provider} webhook: {event.event_type}", extra=log_context)

    try:
        from payments.tasks import reconcile_provider_event

        reconcile_provider_event.delay(event.to_dict())
    except Exception:
        # The provider retries deliveries it did not get; this one it did
        logger.exception("Failed to queue webhook for reconciliation", extra=log_context)

    return HttpResponse("Accepted", status=200)
