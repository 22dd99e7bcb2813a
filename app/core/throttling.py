"""
DRF throttles whose rates come from plain integer settings.

DRF's built-in throttles read "<n>/<period>" strings from
REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"], captured once at import. These
read a request count and a window length in seconds from two settings on
every instantiation, so deployments tune them through the environment and
tests override them with the `settings` fixture.

Counters live in `cache` (django-redis in deployment), shared by every
process. Assign a different cache to the class to swap the store.

Usage:
    class OrderCreateRateThrottle(SettingsRateThrottle):
        scope = "order-create"
        limit_setting = "ORDER_CREATE_RATE_LIMIT"
        window_setting = "ORDER_CREATE_RATE_WINDOW_SECONDS"

    class OrderViewSet(viewsets.ModelViewSet):
        def get_throttles(self):
            if self.action == "create":
                return [OrderCreateRateThrottle()]
            return super().get_throttles()
"""

from __future__ import annotations

import logging

from django.conf import settings
from rest_framework.throttling import SimpleRateThrottle

logger = logging.getLogger(__name__)


class SettingsRateThrottle(SimpleRateThrottle):
    """
    Fixed-window throttle keyed on the user id, or the client IP when anonymous.

    Subclasses set scope, limit_setting and window_setting.
    """

    limit_setting: str = ""
    window_setting: str = ""

    def get_rate(self) -> str:
        return f"{getattr(settings, self.limit_setting)}/{getattr(settings, self.window_setting)}"

    def parse_rate(self, rate):
        if rate is None:
            return (None, None)
        num, window = rate.split("/")
        return (int(num), int(window))

    def get_cache_key(self, request, view):
        if request.user and request.user.is_authenticated:
            ident = f"user:{request.user.pk}"
        else:
            ident = f"ip:{self.get_ident(request)}"
        return self.cache_format % {"scope": self.scope, "ident": ident}

    def throttle_failure(self):
        logger.warning(
            f"Rate limit exceeded: {self.scope}",
            extra={"scope": self.scope, "key": self.key, "limit": self.num_requests},
        )
        return False


class OrderCreateRateThrottle(SettingsRateThrottle):
    scope = "order-create"
    limit_setting = "ORDER_CREATE_RATE_LIMIT"
    window_setting = "ORDER_CREATE_RATE_WINDOW_SECONDS"
