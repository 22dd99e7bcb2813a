"""
Celery tasks for payment processing.

This module provides async tasks for:
- Reconciling provider webhook events
- Retrying orphaned provider events
- Syncing stale payments with their provider
- Promoting earnings past their cooling-off period
- Capturing and releasing client payments
- Sending payouts to pros

Usage:
    from payments.tasks import reconcile_provider_event

    # Queue a parsed webhook for reconciliation
    reconcile_provider_event.delay(event.to_dict())

    # Capture an order's payment after client approval
    from payments.tasks import capture_payment
    capture_payment.delay(str(payment.id), order.total_amount)

    # Payout sends are queued by PayoutService.send once its attempt commits
    send_payout.delay(str(payout.id))
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db import OperationalError
from django.db.models import Q
from django.utils import timezone

from core.exceptions import BaseApplicationError
from lifecycle import ActorRole, BookingStatus, OrderStatus, PaymentStatus
from payments.exceptions import ProviderError, ProviderTimeout, ProviderUnavailable
from payments.models import Payment
from payments.providers import ParsedProviderEvent, backoff_delay
from payments.services import EarningService, PaymentService, PayoutService, ReconciliationService

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_PROVIDER_RETRIES = 5
STALE_PAYMENT_MINUTES = 30
SYNC_BATCH_SIZE = 100

TRANSIENT_ERRORS = (ProviderUnavailable, ProviderTimeout, OperationalError)


# =============================================================================
# Webhook Reconciliation Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=TRANSIENT_ERRORS,
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_PROVIDER_RETRIES},
    acks_late=True,
)
def reconcile_provider_event(self, event_data: dict) -> dict:
    """
    Apply a parsed provider event.

    payment.updated events are first resolved against the provider's
    current status; a transient provider failure there retries the task.

    Args:
        event_data: ParsedProviderEvent.to_dict() output

    Returns:
        Dict with the reconciliation outcome
    """
    event = ParsedProviderEvent.from_dict(event_data)
    log_context = {
        "provider": event.provider,
        "provider_reference": event.provider_reference,
        "event_type": event.event_type,
        "retry_count": self.request.retries,
    }

    try:
        resolved = ReconciliationService.resolve_event(event)
    except ProviderError as e:
        if e.is_retryable:
            raise
        logger.error(
            "Provider refused status lookup for webhook",
            extra={**log_context, "error_code": e.error_code},
        )
        return {"status": "failed", "error_code": e.error_code}

    if resolved is None:
        return {"status": "ignored"}

    result = ReconciliationService.handle_provider_webhook(resolved)
    if not result.success:
        logger.warning(
            f"Provider event not applied: {result.error}",
            extra={**log_context, "error_code": result.error_code},
        )
        return {"status": "failed", "error_code": result.error_code}

    return {"status": result.data}


@shared_task
def retry_orphaned_payment_events() -> dict:
    """
    Periodic task re-applying events that arrived before their payment.

    Returns:
        Dict with count of orphaned events resolved
    """
    resolved = ReconciliationService.retry_orphaned_events()
    return {"resolved_count": resolved}


@shared_task
def sync_stale_payments() -> dict:
    """
    Periodic task pulling the provider status of payments stuck mid-flow.

    Catches webhooks the provider never delivered, including refunds of
    cancelled jobs the provider had not finished when we asked. A payment
    whose sync fails is logged and picked up again on the next run.

    Returns:
        Dict with counts of synced and failed payments
    """
    threshold = timezone.now() - timedelta(minutes=STALE_PAYMENT_MINUTES)
    stale = (
        Payment.objects.filter(
            Q(status__in=[PaymentStatus.REQUIRES_ACTION, PaymentStatus.AUTHORIZED])
            | Q(status=PaymentStatus.CAPTURED, order__status=OrderStatus.CANCELED)
            | Q(status=PaymentStatus.CAPTURED, booking__status=BookingStatus.CANCELLED),
            updated_at__lt=threshold,
        )
        .exclude(provider_reference="")
        .order_by("updated_at")[:SYNC_BATCH_SIZE]
    )

    synced_count = 0
    failed_count = 0
    for payment in stale:
        try:
            ReconciliationService.sync_payment(payment)
            synced_count += 1
        except ProviderError as e:
            failed_count += 1
            logger.warning(
                "Payment sync failed",
                extra={
                    "payment_id": str(payment.id),
                    "provider": payment.provider,
                    "error_code": e.error_code,
                },
            )

    if synced_count or failed_count:
        logger.info(
            f"Synced {synced_count} stale payments",
            extra={"synced_count": synced_count, "failed_count": failed_count},
        )
    return {"synced_count": synced_count, "failed_count": failed_count}


# =============================================================================
# Earning Tasks
# =============================================================================


@shared_task
def mark_earnings_payable() -> dict:
    """Periodic task promoting earnings whose cooling-off has ended."""
    promoted = EarningService.mark_payable_if_due()
    return {"promoted_count": promoted}


# =============================================================================
# Payment Capture & Release Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=TRANSIENT_ERRORS,
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_PROVIDER_RETRIES},
    acks_late=True,
)
def capture_payment(self, payment_id: str, amount: int | None = None) -> dict:
    """
    Capture an authorized payment.

    Retries reuse the payment's capture idempotency key, so a capture
    that timed out is never repeated at the provider.
    """
    try:
        result = PaymentService.capture(payment_id, amount=amount)
    except TRANSIENT_ERRORS:
        raise
    except BaseApplicationError as e:
        result = PaymentService.handle_exception(
            e, "Payment capture failed", extra={"payment_id": payment_id, "amount": amount}
        )

    return {"status": result.data if result.success else "failed", "error_code": result.error_code}


@shared_task(
    bind=True,
    autoretry_for=TRANSIENT_ERRORS,
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_PROVIDER_RETRIES},
    acks_late=True,
)
def release_payment(self, payment_id: str, reason: str = "") -> dict:
    """Cancel or refund a payment after its order or booking was cancelled."""
    try:
        result = PaymentService.release(payment_id, reason=reason)
    except TRANSIENT_ERRORS:
        raise
    except BaseApplicationError as e:
        result = PaymentService.handle_exception(
            e, "Payment release failed", extra={"payment_id": payment_id, "reason": reason}
        )

    return {"status": result.data if result.success else "failed", "error_code": result.error_code}


# =============================================================================
# Payout Tasks
# =============================================================================


@shared_task(bind=True, acks_late=True)
def send_payout(
    self,
    payout_id: str,
    actor_role: str = ActorRole.ADMIN,
    resend: bool = False,
) -> dict:
    """
    Make the provider call for a payout's open send attempt.

    Transient provider errors are retried with exponential backoff, each
    retry carrying the attempt's idempotency key. Once the attempts run out
    the outcome is recorded as unknown and left to the provider's webhook
    or an admin re-send.

    Args:
        payout_id: Payout to send
        actor_role: Who asked for the send (ADMIN, or SYSTEM for batch runs)
        resend: True when an admin is re-sending a FAILED payout

    Returns:
        Dict with the payout's status after this run
    """
    max_attempts = settings.PAYOUT_SEND_MAX_ATTEMPTS
    try:
        payout = PayoutService.deliver(payout_id, actor_role=actor_role, resend=resend)
    except (ProviderUnavailable, ProviderTimeout) as e:
        if self.request.retries + 1 < max_attempts:
            raise self.retry(
                exc=e,
                countdown=backoff_delay(
                    self.request.retries, base=settings.PAYOUT_SEND_BACKOFF_BASE_SECONDS
                ),
                max_retries=max_attempts - 1,
            ) from e
        payout = PayoutService.record_unknown_outcome(payout_id, e)
        return {"status": "unknown", "payout_id": payout_id, "payout_status": payout.status}
    except BaseApplicationError as e:
        result = PayoutService.handle_exception(
            e, "Payout send failed", extra={"payout_id": payout_id, "actor_role": actor_role}
        )
        return {"status": "failed", "payout_id": payout_id, "error_code": result.error_code}

    return {"status": payout.status, "payout_id": payout_id}
