"""
Payment-specific exceptions for payment, earning and payout operations.

Exception Hierarchy:
    ProviderError (ExternalServiceError) - Base for all provider failures
    ├── ProviderUnavailable - Provider down or erroring (transient, retry)
    ├── ProviderTimeout - No response in time; outcome unknown (transient, retry)
    └── ProviderRejected - Provider refused the operation (permanent)

    WebhookVerificationError (ValidationError) - Bad signature or payload
    OrphanedWebhookEvent (NotFoundError) - Event for an unknown payment/payout

    DuplicateEarning (ConflictError) - Order already has an earning
    NoPayableEarnings (ConflictError) - Nothing to pay out
    PayoutRetryConflict (ConflictError) - Earnings claimed by another payout
    StaleRecordError (ConflictError) - Conditional update lost a race
    IncompletePayoutProfile (ValidationError) - Destination missing/unverified

Usage:
    from payments.exceptions import ProviderTimeout, ProviderUnavailable

    try:
        provider.send(payout_id, destination, amount, idempotency_key)
    except (ProviderUnavailable, ProviderTimeout):
        # Never assume the transfer did not happen: retry with the same key
        ...

Note:
    A timeout means the operation may have succeeded on the provider's
    side. Always retry with the same idempotency key.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Provider Exceptions
# =============================================================================


class ProviderError(ExternalServiceError):
    """
    Base exception for all payment provider errors.

    Attributes:
        provider: Provider name (stripe, mercado_pago, manual)
        provider_code: Provider's own error code, when it sent one
        is_retryable: Whether the operation can be retried with backoff
    """

    default_error_code: str = "PROVIDER_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider: str | None = None,
        provider_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider:
            details["provider"] = provider
        if provider_code:
            details["provider_code"] = provider_code
        super().__init__(message, error_code=error_code, details=details)
        self.provider = provider
        self.provider_code = provider_code


class ProviderUnavailable(ProviderError):
    """
    Provider API is temporarily unavailable.

    Covers connection errors, 5xx responses and rate limiting.
    Retry with exponential backoff.
    """

    default_error_code: str = "PROVIDER_UNAVAILABLE"
    is_retryable: bool = True


class ProviderTimeout(ProviderError):
    """
    Provider call timed out (PAYMENT_PROVIDER_TIMEOUT_SECONDS).

    IMPORTANT: The operation may have succeeded on the provider's side.
    Retry with the same idempotency key so the provider returns the
    original result instead of repeating the operation.
    """

    default_error_code: str = "PROVIDER_TIMEOUT"
    is_retryable: bool = True


class ProviderRejected(ProviderError):
    """
    Provider definitively refused the operation.

    Card declined, invalid destination account, amount above the
    authorization, unsupported operation. Do not retry.
    """

    default_error_code: str = "PROVIDER_REJECTED"
    is_retryable: bool = False


def is_retryable_provider_error(error: Exception) -> bool:
    """True for transient provider errors that are safe to retry."""
    if isinstance(error, ProviderError):
        return getattr(error, "is_retryable", False)
    return False


# =============================================================================
# Webhook Exceptions
# =============================================================================


class WebhookVerificationError(ValidationError):
    """
    Raised when a webhook cannot be verified or parsed.

    The webhook endpoint answers 400 for this error only.
    """

    default_error_code: str = "INVALID_WEBHOOK"


class OrphanedWebhookEvent(NotFoundError):
    """
    Raised when a webhook references a payment or payout we do not know.

    Recoverable: the event is recorded and retried by the background
    reconciler once the payment row exists.
    """

    default_error_code: str = "ORPHANED_WEBHOOK_EVENT"


# =============================================================================
# Earning & Payout Exceptions
# =============================================================================


class DuplicateEarning(ConflictError):
    """
    Raised when an earning already exists for an order.

    Enforced by the unique order column on Earning, so two concurrent
    reconciliations of the same capture cannot both create one.
    """

    default_error_code: str = "DUPLICATE_EARNING"


class NoPayableEarnings(ConflictError):
    """Raised when a payout is requested for a pro with nothing PAYABLE."""

    default_error_code: str = "NO_PAYABLE_EARNINGS"


class IncompletePayoutProfile(ValidationError):
    """
    Raised when a pro's payout destination is missing or unverified.

    Details carry the list of missing fields.
    """

    default_error_code: str = "INCOMPLETE_PAYOUT_PROFILE"


class PayoutRetryConflict(ConflictError):
    """
    Raised when re-sending a FAILED payout finds one of its earnings
    already claimed by another payout.
    """

    default_error_code: str = "PAYOUT_RETRY_CONFLICT"


class StaleRecordError(ConflictError):
    """
    Raised when a conditional update matches fewer rows than expected.

    The rows were modified by another process between read and update.
    The transaction is rolled back; the caller may retry with fresh data.

    Example:
        updated = Earning.objects.filter(id__in=ids, status=PAYABLE).update(...)
        if updated != len(ids):
            raise StaleRecordError(
                "Earnings changed while reserving them",
                details={"expected": len(ids), "updated": updated},
            )
    """

    default_error_code: str = "STALE_RECORD"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Provider
    "ProviderError",
    "ProviderUnavailable",
    "ProviderTimeout",
    "ProviderRejected",
    "is_retryable_provider_error",
    # Webhooks
    "WebhookVerificationError",
    "OrphanedWebhookEvent",
    # Earnings & payouts
    "DuplicateEarning",
    "NoPayableEarnings",
    "IncompletePayoutProfile",
    "PayoutRetryConflict",
    "StaleRecordError",
]
