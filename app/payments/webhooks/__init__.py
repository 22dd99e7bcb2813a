"""
Webhook handling for payment provider events.

Webhooks are verified by the provider adapter, queued, and applied
asynchronously by ReconciliationService.

Usage:
    # In urls.py
    from payments.webhooks.views import provider_webhook

    urlpatterns = [
        path("webhooks/<str:provider>/", provider_webhook, name="provider-webhook"),
    ]
"""

from payments.webhooks.views import provider_webhook

__all__ = [
    "provider_webhook",
]
