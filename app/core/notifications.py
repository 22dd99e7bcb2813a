"""
Notifier resolution and the default logging implementation.

settings.NOTIFIER_CLASS names the Notifier used by the orchestrators and
payout service. The default only logs, which keeps the core usable
without a delivery backend.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils.module_loading import import_string

if TYPE_CHECKING:
    from typing import Any

    from core.protocols import Notifier

logger = logging.getLogger(__name__)


class LoggingNotifier:
    """Notifier that records notifications in the application log."""

    def notify(self, user_id: Any, event: str, payload: dict[str, Any]) -> None:
        logger.info(
            f"Notification: {event}",
            extra={"user_id": str(user_id), "event": event, "payload": payload},
        )


@lru_cache(maxsize=None)
def _load_notifier(path: str) -> Notifier:
    return import_string(path)()


def get_notifier() -> Notifier:
    """Return the configured Notifier instance."""
    return _load_notifier(
        getattr(settings, "NOTIFIER_CLASS", "core.notifications.LoggingNotifier")
    )
