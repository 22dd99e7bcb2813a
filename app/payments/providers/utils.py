"""
Idempotency keys and retry backoff for provider calls.
"""

from __future__ import annotations

import hashlib
import random
from typing import TYPE_CHECKING

from django.conf import settings

if TYPE_CHECKING:
    import uuid


class IdempotencyKeyGenerator:
    """
    Keys of the form "{operation}:{entity_id}:{attempt}:{digest}".

    The same operation, entity and attempt number always give the same key,
    so repeating a call whose outcome is unknown (timeout, 5xx) reaches the
    provider as the original request. A new attempt number is a new request.

        IdempotencyKeyGenerator.generate("payout", payout.id, attempt.number)
        # "payout:9b2f...:2:3c1e07aa"
    """

    @staticmethod
    def generate(operation: str, entity_id: uuid.UUID | str, attempt: int = 1) -> str:
        prefix = f"{operation}:{entity_id}:{attempt}"
        # Salted so keys are not guessable from public ids
        digest = hashlib.sha256(f"{prefix}:{settings.SECRET_KEY}".encode()).hexdigest()
        return f"{prefix}:{digest[:8]}"


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """Seconds to wait before retry `attempt` (0-based): base * 2**attempt, capped, plus up to 25% jitter."""
    capped = min(base * 2**attempt, max_delay)
    return capped * (1 + random.uniform(0, 0.25))
