"""
Reconciliation service: applies provider events to payments and payouts.

Every provider event, whether from a webhook, a status sync or our own
capture/release calls, goes through handle_provider_webhook():

1. Fingerprint the event:
       sha256("{provider}:{provider_reference}:{event_type}:{payload_hash}")
2. Insert a PaymentEvent in its own transaction. The unique fingerprint
   is the idempotency gate: a replay fails the insert and is reported as
   "duplicate" without touching anything else.
3. Dispatch to the handler registered for the event type.
4. Payment handlers lock the Payment, walk forward_path() to the reported
   status and apply the dependent Order/Booking moves, all in one
   transaction. A failure rolls that back; the PaymentEvent row stays.

Results:
    success("applied")    event changed state
    success("duplicate")  replay of an event already recorded
    success("ignored")    stale or no-op event (no legal edge)
    failure(ORPHANED_WEBHOOK_EVENT)  payment/payout not found yet;
                          retried by retry_orphaned_events()

Usage:
    from payments.services import ReconciliationService

    result = ReconciliationService.handle_provider_webhook(event)
    if not result.success:
        ...  # orphaned, retried later
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Callable

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from core.helpers import canonical_json, sha256_hex
from core.notifications import get_notifier
from core.services import BaseService, ServiceResult
from lifecycle import (
    ActorRole,
    BookingStatus,
    IllegalTransition,
    LifecycleEntity,
    OrderStatus,
    PaymentStatus,
    apply_transition,
    forward_path,
)
from orders.models import Booking, Order
from payments.exceptions import DuplicateEarning, OrphanedWebhookEvent
from payments.models import OrphanedPaymentEvent, Payment, PaymentEvent, Payout
from payments.providers import ParsedProviderEvent, ProviderEventType, get_provider
from payments.services.earning_service import EarningService
from payments.services.payout_service import PayoutService

if TYPE_CHECKING:
    from payments.providers.base import ProviderPaymentStatus


logger = logging.getLogger(__name__)


PAYMENT_EVENT_TARGETS: dict[str, str] = {
    ProviderEventType.PAYMENT_REQUIRES_ACTION: PaymentStatus.REQUIRES_ACTION,
    ProviderEventType.PAYMENT_AUTHORIZED: PaymentStatus.AUTHORIZED,
    ProviderEventType.PAYMENT_CAPTURED: PaymentStatus.CAPTURED,
    ProviderEventType.PAYMENT_FAILED: PaymentStatus.FAILED,
    ProviderEventType.PAYMENT_REFUNDED: PaymentStatus.REFUNDED,
    ProviderEventType.PAYMENT_CANCELLED: PaymentStatus.CANCELLED,
}

STATUS_EVENT_TYPES: dict[str, str] = {
    status: event_type for event_type, status in PAYMENT_EVENT_TARGETS.items()
}


def compute_fingerprint(event: ParsedProviderEvent) -> tuple[str, str]:
    """Return (payload_hash, fingerprint) for an event."""
    payload_hash = sha256_hex(canonical_json(event.payload))
    fingerprint = sha256_hex(
        f"{event.provider}:{event.provider_reference}:{event.event_type}:{payload_hash}"
    )
    return payload_hash, fingerprint


# =============================================================================
# Handler Registry
# =============================================================================


EventHandler = Callable[[PaymentEvent, ParsedProviderEvent], ServiceResult]

EVENT_HANDLERS: dict[str, EventHandler] = {}


def register_handler(*event_types: str) -> Callable:
    """
    Decorator to register a handler for one or more canonical event types.

    Usage:
        @register_handler("payout.settled")
        def handle_payout_settled(record, event) -> ServiceResult:
            ...
    """

    def decorator(func: EventHandler) -> EventHandler:
        for event_type in event_types:
            EVENT_HANDLERS[str(event_type)] = func
        return func

    return decorator


def dispatch(record: PaymentEvent, event: ParsedProviderEvent) -> ServiceResult:
    """
    Run the handler registered for the event type.

    Unknown event types are marked processed and ignored.
    """
    handler = EVENT_HANDLERS.get(event.event_type)
    if handler is None:
        logger.info(
            f"No handler registered for event type: {event.event_type}",
            extra={"fingerprint": record.fingerprint},
        )
        record.mark_processed()
        return ServiceResult.success("ignored")
    return handler(record, event)


# =============================================================================
# Reconciliation Service
# =============================================================================


class ReconciliationService(BaseService):
    """
    Applies provider events idempotently and recovers missed ones.

    Entry points:
        handle_provider_webhook: every provider event
        resolve_event: turn payment.updated into a concrete event type
        retry_orphaned_events: re-apply events that arrived too early
        sync_payment: pull a payment's status from the provider
    """

    @classmethod
    def handle_provider_webhook(cls, event: ParsedProviderEvent) -> ServiceResult[str]:
        payload_hash, fingerprint = compute_fingerprint(event)
        log_context = {
            "provider": event.provider,
            "provider_reference": event.provider_reference,
            "event_type": event.event_type,
            "fingerprint": fingerprint,
        }

        try:
            with cls.atomic():
                record = PaymentEvent.objects.create(
                    provider=event.provider,
                    provider_reference=event.provider_reference,
                    event_type=event.event_type,
                    payload_hash=payload_hash,
                    fingerprint=fingerprint,
                    payload=event.payload,
                    occurred_at=event.occurred_at,
                    amount=event.amount,
                    currency=event.currency or "",
                    external_reference=event.external_reference or "",
                )
        except IntegrityError:
            cls.get_logger().info("Duplicate provider event, skipping", extra=log_context)
            return ServiceResult.success("duplicate")

        try:
            return dispatch(record, event)
        except OrphanedWebhookEvent as e:
            OrphanedPaymentEvent.objects.get_or_create(event=record)
            cls.get_logger().warning(
                "Provider event references an unknown payment or payout",
                extra=log_context,
            )
            return ServiceResult.failure(e.message, error_code=e.error_code)

    @classmethod
    def resolve_event(cls, event: ParsedProviderEvent) -> ParsedProviderEvent | None:
        """
        Replace a payment.updated event with the provider's current status.

        Returns the event unchanged when no lookup is needed, or None when
        the provider status has no PaymentStatus equivalent.
        """
        if not event.needs_status_lookup:
            return event

        status = get_provider(event.provider).fetch_payment_status(event.provider_reference)
        resolved = cls._event_from_status(event.provider, status, event.payload)
        if resolved is None:
            cls.get_logger().info(
                "Provider status has no payment equivalent, ignoring",
                extra={
                    "provider": event.provider,
                    "provider_reference": event.provider_reference,
                    "raw_status": status.raw.get("status"),
                },
            )
            return None
        resolved.occurred_at = event.occurred_at
        return resolved

    @classmethod
    def sync_payment(cls, payment: Payment) -> ServiceResult[str]:
        """
        Fetch a payment's status from its provider and apply it.

        The synthetic event carries a payload derived only from the status
        and amounts, so syncing twice without a change is a duplicate.
        """
        if not payment.provider_reference:
            return ServiceResult.failure(
                "Payment has no provider reference yet",
                error_code="PAYMENT_NOT_SUBMITTED",
            )

        status = get_provider(payment.provider).fetch_payment_status(payment.provider_reference)
        payload = {
            "source": "sync",
            "status": status.status,
            "amount_authorized": status.amount_authorized,
            "amount_captured": status.amount_captured,
            "amount_refunded": status.amount_refunded,
        }
        event = cls._event_from_status(payment.provider, status, payload)
        if event is None:
            return ServiceResult.success("ignored")
        if not event.external_reference:
            event.external_reference = str(payment.id)
        return cls.handle_provider_webhook(event)

    @classmethod
    def retry_orphaned_events(cls, limit: int = 100) -> int:
        """Re-apply unresolved orphaned events. Returns how many were resolved."""
        resolved = 0
        orphans = (
            OrphanedPaymentEvent.objects.filter(resolved_at__isnull=True)
            .select_related("event")
            .order_by("created_at")[:limit]
        )
        for orphan in orphans:
            now = timezone.now()
            event = cls._event_from_record(orphan.event)
            try:
                dispatch(orphan.event, event)
            except OrphanedWebhookEvent:
                OrphanedPaymentEvent.objects.filter(id=orphan.id).update(
                    attempts=F("attempts") + 1,
                    last_attempt_at=now,
                )
                continue

            OrphanedPaymentEvent.objects.filter(id=orphan.id).update(
                attempts=F("attempts") + 1,
                last_attempt_at=now,
                resolved_at=now,
            )
            resolved += 1

        if resolved:
            cls.get_logger().info(f"Resolved {resolved} orphaned provider events")
        return resolved

    # =========================================================================
    # Event construction
    # =========================================================================

    @staticmethod
    def _event_from_status(
        provider: str,
        status: ProviderPaymentStatus,
        payload: dict,
    ) -> ParsedProviderEvent | None:
        event_type = STATUS_EVENT_TYPES.get(status.status) if status.status else None
        if event_type is None:
            return None

        amount = {
            PaymentStatus.AUTHORIZED: status.amount_authorized,
            PaymentStatus.CAPTURED: status.amount_captured,
            PaymentStatus.REFUNDED: status.amount_refunded,
        }.get(status.status)

        return ParsedProviderEvent(
            provider=provider,
            provider_reference=status.provider_reference,
            event_type=event_type,
            payload=payload,
            amount=amount,
            currency=status.currency,
            external_reference=status.external_reference,
        )

    @staticmethod
    def _event_from_record(record: PaymentEvent) -> ParsedProviderEvent:
        return ParsedProviderEvent(
            provider=record.provider,
            provider_reference=record.provider_reference,
            event_type=record.event_type,
            payload=record.payload,
            occurred_at=record.occurred_at,
            amount=record.amount,
            currency=record.currency or None,
            external_reference=record.external_reference or None,
        )

    # =========================================================================
    # Payment events
    # =========================================================================

    @classmethod
    def _locate_payment(cls, event: ParsedProviderEvent) -> Payment:
        """
        Lock the payment an event refers to.

        Falls back to the external reference (our Payment id) for providers
        whose webhooks carry a different id than checkout returned, and
        rebinds provider_reference to the id the provider now uses.

        Raises:
            OrphanedWebhookEvent: No matching payment
        """
        payment = (
            Payment.objects.select_for_update()
            .filter(provider=event.provider, provider_reference=event.provider_reference)
            .first()
        )
        if payment is None and event.external_reference:
            try:
                payment_id = uuid.UUID(str(event.external_reference))
            except ValueError:
                payment_id = None
            if payment_id is not None:
                payment = (
                    Payment.objects.select_for_update()
                    .filter(id=payment_id, provider=event.provider)
                    .first()
                )
            if payment is not None and payment.provider_reference != event.provider_reference:
                Payment.objects.filter(id=payment.id).update(
                    provider_reference=event.provider_reference
                )
                payment.provider_reference = event.provider_reference

        if payment is None:
            raise OrphanedWebhookEvent(
                f"No payment for {event.provider} reference {event.provider_reference}",
                details={
                    "provider": event.provider,
                    "provider_reference": event.provider_reference,
                    "event_type": event.event_type,
                },
            )
        return payment

    @staticmethod
    def _step_context(step: str, event: ParsedProviderEvent) -> dict:
        if step in (PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED, PaymentStatus.REFUNDED):
            return {"amount": event.amount}
        if step in (PaymentStatus.FAILED, PaymentStatus.CANCELLED):
            return {"reason": str(event.payload.get("reason") or event.event_type)}
        return {}

    @classmethod
    def apply_payment_event(cls, record: PaymentEvent, event: ParsedProviderEvent) -> ServiceResult[str]:
        target = PAYMENT_EVENT_TARGETS[event.event_type]
        log_context = {
            "provider": event.provider,
            "provider_reference": event.provider_reference,
            "event_type": event.event_type,
            "fingerprint": record.fingerprint,
        }

        try:
            with cls.atomic():
                payment = cls._locate_payment(event)
                log_context["payment_id"] = str(payment.id)
                from_status = str(payment.status)

                path = forward_path(LifecycleEntity.PAYMENT, from_status, target, ActorRole.SYSTEM)
                if path is None:
                    raise IllegalTransition(
                        LifecycleEntity.PAYMENT, from_status, target, ActorRole.SYSTEM
                    )
                if not path:
                    record.mark_processed()
                    return ServiceResult.success("ignored")

                for step in path:
                    apply_transition(payment, step, ActorRole.SYSTEM, cls._step_context(step, event))
                payment.save()

                cls._apply_dependents(payment, path)
                record.mark_processed()
        except IllegalTransition as e:
            cls.get_logger().warning(
                f"Stale provider event ignored: {e.message}",
                extra={**log_context, **e.details},
            )
            record.mark_processed()
            return ServiceResult.success("ignored")

        cls.get_logger().info(
            f"Payment {from_status} -> {target}",
            extra={**log_context, "path": path},
        )
        return ServiceResult.success("applied")

    @classmethod
    def _apply_dependents(cls, payment: Payment, path: list[str]) -> None:
        """Move the payment's order or booking after the payment moved along `path`."""
        if payment.booking_id:
            if PaymentStatus.AUTHORIZED in path or PaymentStatus.CAPTURED in path:
                booking = Booking.objects.select_for_update().get(id=payment.booking_id)
                if booking.status == BookingStatus.PENDING_PAYMENT:
                    apply_transition(booking, BookingStatus.PENDING, ActorRole.SYSTEM)
                    booking.save()
                    cls._notify(booking.pro_profile.user_id, "booking.paid", {"booking_id": str(booking.id)})
            return

        order = Order.objects.select_for_update().get(id=payment.order_id)

        if PaymentStatus.AUTHORIZED in path or PaymentStatus.CAPTURED in path:
            if order.status == OrderStatus.ACCEPTED and (order.is_hourly or order.quote_accepted):
                apply_transition(order, OrderStatus.CONFIRMED, ActorRole.SYSTEM)
                order.save()
                cls._notify(order.pro_profile.user_id, "order.confirmed", {"order_id": str(order.id)})

        if PaymentStatus.CAPTURED in path and order.status == OrderStatus.COMPLETED:
            cls.mark_order_paid(order)

        if PaymentStatus.REFUNDED in path:
            EarningService.reverse_for_order(order, "payment_refunded")

    @classmethod
    def mark_order_paid(cls, order: Order) -> Order:
        """
        Move a COMPLETED order with a captured payment to PAID and create its earning.

        Must run inside a transaction holding the order's row lock.
        """
        apply_transition(order, OrderStatus.PAID, ActorRole.SYSTEM)
        order.save()
        try:
            EarningService.create_payable_earning(order)
        except DuplicateEarning as e:
            cls.get_logger().info(
                "Earning already exists for order",
                extra={"order_id": str(order.id), "error_code": e.error_code},
            )
        cls._notify(order.client_id, "order.paid", {"order_id": str(order.id)})
        cls._notify(order.pro_profile.user_id, "order.paid", {"order_id": str(order.id)})
        return order

    @staticmethod
    def _notify(user_id, event: str, payload: dict) -> None:
        transaction.on_commit(lambda: get_notifier().notify(user_id, event, payload))

    # =========================================================================
    # Payout events
    # =========================================================================

    @classmethod
    def _locate_payout(cls, event: ParsedProviderEvent) -> Payout:
        """
        Find the payout an event refers to.

        A send that timed out leaves the payout without a provider reference,
        so the external reference (our Payout id, sent as transfer metadata)
        is tried next and provider_reference is bound to the provider's id.

        Raises:
            OrphanedWebhookEvent: No matching payout
        """
        payout = Payout.objects.filter(
            provider=event.provider,
            provider_reference=event.provider_reference,
        ).first()
        if payout is None and event.external_reference:
            try:
                payout_id = uuid.UUID(str(event.external_reference))
            except ValueError:
                payout_id = None
            if payout_id is not None:
                payout = Payout.objects.filter(id=payout_id, provider=event.provider).first()
            if payout is not None and not payout.provider_reference:
                Payout.objects.filter(id=payout.id).update(provider_reference=event.provider_reference)
                payout.provider_reference = event.provider_reference

        if payout is None:
            raise OrphanedWebhookEvent(
                f"No payout for {event.provider} reference {event.provider_reference}",
                details={"provider": event.provider, "provider_reference": event.provider_reference},
            )
        return payout

    @classmethod
    def apply_payout_event(cls, record: PaymentEvent, event: ParsedProviderEvent) -> ServiceResult[str]:
        payout = cls._locate_payout(event)

        try:
            if event.event_type == ProviderEventType.PAYOUT_SETTLED:
                PayoutService.mark_settled(payout, event.provider_reference)
            else:
                reason = str(event.payload.get("reason") or event.event_type)
                PayoutService.mark_failed_after_send(payout, reason)
        except IllegalTransition as e:
            cls.get_logger().warning(
                f"Stale payout event ignored: {e.message}",
                extra={"payout_id": str(payout.id), "fingerprint": record.fingerprint, **e.details},
            )
            record.mark_processed()
            return ServiceResult.success("ignored")

        record.mark_processed()
        return ServiceResult.success("applied")


@register_handler(*PAYMENT_EVENT_TARGETS)
def handle_payment_event(record: PaymentEvent, event: ParsedProviderEvent) -> ServiceResult:
    return ReconciliationService.apply_payment_event(record, event)


@register_handler(ProviderEventType.PAYOUT_SETTLED, ProviderEventType.PAYOUT_FAILED)
def handle_payout_event(record: PaymentEvent, event: ParsedProviderEvent) -> ServiceResult:
    return ReconciliationService.apply_payout_event(record, event)
