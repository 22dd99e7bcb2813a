"""
Payment service: starts checkouts and asks providers to move money.

This service never changes a payment's status by itself. Capture and
release call the provider, then push the provider's answer through
ReconciliationService as a synthetic event, so the ledger and the
order/booking effects are the same as for a webhook. Only an answer that
confirms the outcome is recorded; a provider still processing (Mercado
Pago in_process, a pending Stripe refund) leaves the payment untouched
until the webhook or sync_payment() reports the final status.

Checkout follows the two-phase pattern:
1. Phase 1: create the Payment (CREATED) with its idempotency key, commit
2. Phase 2: call the provider OUTSIDE any transaction
3. Phase 3: store the provider reference and checkout URL (REQUIRES_ACTION)

Usage:
    from payments.services import PaymentService

    session = PaymentService.create_checkout(order)
    redirect(session.checkout_url)

    PaymentService.capture(payment.id, amount=order.total_amount)
    PaymentService.release(payment.id, reason="order_canceled")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.utils import timezone

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.money import Money
from core.services import BaseService, ServiceResult
from lifecycle import (
    ActorRole,
    BookingStatus,
    IllegalTransition,
    OrderStatus,
    PaymentStatus,
    apply_transition,
)
from orders.models import Booking, Order
from payments.exceptions import ProviderError
from payments.models import Payment
from payments.providers import IdempotencyKeyGenerator, ParsedProviderEvent, ProviderEventType, get_provider
from payments.services.reconciliation_service import PAYMENT_EVENT_TARGETS, ReconciliationService

if TYPE_CHECKING:
    from payments.providers.base import ProviderResult

OPEN_PAYMENT_STATUSES = (PaymentStatus.CREATED, PaymentStatus.REQUIRES_ACTION)
SECURED_PAYMENT_STATUSES = (PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED)

# Statuses in which a client may start (or resume) checkout
CHECKOUT_ORDER_STATUSES = (OrderStatus.ACCEPTED,)
CHECKOUT_BOOKING_STATUSES = (BookingStatus.PENDING_PAYMENT,)


@dataclass
class CheckoutSession:
    """
    What the client needs to complete payment.

    Attributes:
        payment: The Payment row
        checkout_url: Hosted checkout redirect (Mercado Pago)
        client_secret: Client-side confirmation secret (Stripe)
    """

    payment: Payment
    checkout_url: str = ""
    client_secret: str | None = None


class PaymentService(BaseService):
    """Checkout, capture and release of client payments."""

    # =========================================================================
    # Lookups
    # =========================================================================

    @classmethod
    def get_payment(cls, payment_id) -> Payment:
        try:
            return Payment.objects.get(id=payment_id)
        except Payment.DoesNotExist:
            raise NotFoundError(
                f"Payment {payment_id} not found",
                error_code="PAYMENT_NOT_FOUND",
                details={"payment_id": str(payment_id)},
            ) from None

    @staticmethod
    def payments_for(subject: Order | Booking):
        if isinstance(subject, Booking):
            return Payment.objects.filter(booking=subject)
        return Payment.objects.filter(order=subject)

    @classmethod
    def secured_payment_for(cls, subject: Order | Booking) -> Payment | None:
        """Most recent AUTHORIZED or CAPTURED payment, if any."""
        return (
            cls.payments_for(subject)
            .filter(status__in=SECURED_PAYMENT_STATUSES)
            .order_by("-created_at")
            .first()
        )

    @classmethod
    def has_secured_payment(cls, subject: Order | Booking) -> bool:
        return cls.secured_payment_for(subject) is not None

    # =========================================================================
    # Checkout
    # =========================================================================

    @classmethod
    def create_checkout(cls, subject: Order | Booking, provider: str | None = None) -> CheckoutSession:
        """
        Start (or resume) payment for an order or booking.

        An order pays its estimate: hours x rate for hourly jobs, the quote
        for fixed ones. Checking out a fixed order accepts the pro's quote.

        Raises:
            ConflictError: Wrong status, or a payment is already secured
            ValidationError: Nothing to charge
            ProviderError: The provider could not create the payment
        """
        provider_name = str(provider or get_provider().name)
        amount = cls._checkout_amount(subject)

        with cls.atomic():
            subject = type(subject).objects.select_for_update().get(id=subject.id)
            cls._check_checkout_status(subject)

            if cls.secured_payment_for(subject) is not None:
                raise ConflictError(
                    "A payment is already secured for this job",
                    error_code="PAYMENT_ALREADY_SECURED",
                    details={"subject_id": str(subject.id)},
                )

            open_payment = (
                cls.payments_for(subject)
                .filter(status=PaymentStatus.REQUIRES_ACTION, provider=provider_name)
                .order_by("-created_at")
                .first()
            )
            if open_payment is not None and open_payment.amount_estimated == amount.amount:
                return CheckoutSession(payment=open_payment, checkout_url=open_payment.checkout_url)

            if isinstance(subject, Order) and not subject.is_hourly and not subject.quote_accepted:
                Order.objects.filter(id=subject.id).update(quote_accepted_at=timezone.now())

            attempt = cls.payments_for(subject).count() + 1
            payment = Payment.objects.create(
                order=subject if isinstance(subject, Order) else None,
                booking=subject if isinstance(subject, Booking) else None,
                provider=provider_name,
                idempotency_key=IdempotencyKeyGenerator.generate("checkout", subject.id, attempt),
                amount_estimated=amount.amount,
                currency=amount.currency,
            )

        log_context = {
            "payment_id": str(payment.id),
            "subject_id": str(subject.id),
            "provider": provider_name,
            "amount": amount.amount,
            "currency": amount.currency,
        }

        try:
            handle = get_provider(provider_name).create_payment_intent(
                order_id=str(subject.id),
                amount=amount,
                idempotency_key=payment.idempotency_key,
                payment_id=str(payment.id),
            )
        except ProviderError as e:
            with cls.atomic():
                payment = Payment.objects.select_for_update().get(id=payment.id)
                if payment.status == PaymentStatus.CREATED:
                    apply_transition(payment, PaymentStatus.FAILED, ActorRole.SYSTEM, {"reason": e.message})
                    payment.save()
            cls.get_logger().error(
                "Checkout failed at provider",
                extra={**log_context, "error_code": e.error_code},
            )
            raise

        with cls.atomic():
            payment = Payment.objects.select_for_update().get(id=payment.id)
            if payment.status == PaymentStatus.CREATED:
                apply_transition(
                    payment,
                    PaymentStatus.REQUIRES_ACTION,
                    ActorRole.SYSTEM,
                    {
                        "provider_reference": handle.provider_reference,
                        "checkout_url": handle.checkout_url,
                    },
                )
                payment.save()
            elif not payment.provider_reference:
                # A webhook got here first and already moved the payment
                payment.provider_reference = handle.provider_reference
                payment.checkout_url = handle.checkout_url
                payment.save(update_fields=["provider_reference", "checkout_url", "updated_at"])

        cls.get_logger().info(
            "Checkout started",
            extra={**log_context, "provider_reference": handle.provider_reference},
        )
        return CheckoutSession(
            payment=payment,
            checkout_url=handle.checkout_url,
            client_secret=handle.client_secret,
        )

    @staticmethod
    def _checkout_amount(subject: Order | Booking) -> Money:
        if isinstance(subject, Booking):
            return subject.estimated

        amount = subject.estimated_amount
        if not amount:
            raise ValidationError(
                "Order has no amount to charge yet",
                error_code="AMOUNT_REQUIRED",
                details={"order_id": str(subject.id), "pricing_mode": subject.pricing_mode},
            )
        return Money(amount, subject.currency)

    @staticmethod
    def _check_checkout_status(subject: Order | Booking) -> None:
        allowed = CHECKOUT_BOOKING_STATUSES if isinstance(subject, Booking) else CHECKOUT_ORDER_STATUSES
        if subject.status not in allowed:
            raise ConflictError(
                f"Cannot check out while {subject.status}",
                error_code="CHECKOUT_NOT_ALLOWED",
                details={"subject_id": str(subject.id), "status": subject.status},
            )

    # =========================================================================
    # Capture & release
    # =========================================================================

    @classmethod
    def capture(cls, payment_id, amount: int | None = None) -> ServiceResult[str]:
        """
        Capture an authorized payment (the whole authorization when `amount` is None).

        The idempotency key is fixed per payment, so a retried capture after
        a timeout cannot charge twice. Returns success("pending") while the
        provider has not confirmed the capture.

        Raises:
            IllegalTransition: Payment is not AUTHORIZED
            ValidationError: `amount` exceeds the authorization
            ProviderError: Provider call failed
        """
        payment = cls.get_payment(payment_id)
        if payment.status == PaymentStatus.CAPTURED:
            return ServiceResult.success("ignored")
        if payment.status != PaymentStatus.AUTHORIZED:
            raise IllegalTransition(
                payment.lifecycle_entity, payment.status, PaymentStatus.CAPTURED, ActorRole.SYSTEM
            )

        amount = payment.amount_authorized if amount is None else amount
        if amount > payment.amount_authorized:
            raise ValidationError(
                "Capture amount exceeds the authorized amount",
                error_code="CAPTURE_EXCEEDS_AUTHORIZATION",
                details={
                    "payment_id": str(payment.id),
                    "amount": amount,
                    "amount_authorized": payment.amount_authorized,
                },
            )

        result = get_provider(payment.provider).capture(
            payment.provider_reference,
            amount=Money(amount, payment.currency),
            idempotency_key=IdempotencyKeyGenerator.generate("capture", payment.id),
        )
        return cls._reconcile(payment, ProviderEventType.PAYMENT_CAPTURED, result, amount)

    @classmethod
    def release(cls, payment_id, reason: str = "") -> ServiceResult[str]:
        """
        Give the client's money back after a cancellation.

        AUTHORIZED: the authorization is cancelled.
        CAPTURED: the payment is refunded in full.
        CREATED/REQUIRES_ACTION: the payment is failed locally.
        Anything else is already final and is ignored.

        A refund the provider is still processing returns success("pending");
        sync_stale_payments picks it up if the webhook never comes.
        """
        payment = cls.get_payment(payment_id)
        provider = get_provider(payment.provider)

        if payment.status in OPEN_PAYMENT_STATUSES:
            with cls.atomic():
                payment = Payment.objects.select_for_update().get(id=payment.id)
                if payment.status not in OPEN_PAYMENT_STATUSES:
                    return ServiceResult.success("ignored")
                apply_transition(payment, PaymentStatus.FAILED, ActorRole.SYSTEM, {"reason": reason})
                payment.save()
            cls.get_logger().info(
                "Unfinished payment abandoned",
                extra={"payment_id": str(payment.id), "reason": reason},
            )
            return ServiceResult.success("applied")

        if payment.status == PaymentStatus.AUTHORIZED:
            result = provider.cancel_authorization(
                payment.provider_reference,
                idempotency_key=IdempotencyKeyGenerator.generate("cancel", payment.id),
            )
            return cls._reconcile(payment, ProviderEventType.PAYMENT_CANCELLED, result, None, reason)

        if payment.status == PaymentStatus.CAPTURED:
            result = provider.refund(
                payment.provider_reference,
                idempotency_key=IdempotencyKeyGenerator.generate("refund", payment.id),
            )
            amount = result.amount if result.amount is not None else payment.amount_captured
            return cls._reconcile(payment, ProviderEventType.PAYMENT_REFUNDED, result, amount, reason)

        return ServiceResult.success("ignored")

    @classmethod
    def _reconcile(
        cls,
        payment: Payment,
        event_type: str,
        result: ProviderResult,
        amount: int | None,
        reason: str = "",
    ) -> ServiceResult[str]:
        expected = PAYMENT_EVENT_TARGETS[event_type]
        if result.payment_status != expected:
            cls.get_logger().info(
                "Provider has not confirmed the outcome yet, waiting for webhook",
                extra={
                    "payment_id": str(payment.id),
                    "provider": payment.provider,
                    "provider_status": result.status,
                    "expected_status": expected,
                },
            )
            return ServiceResult.success("pending")

        if result.amount is not None:
            amount = result.amount
        payload = {
            "source": event_type,
            "payment_id": str(payment.id),
            "provider_status": result.status,
            "amount": amount,
        }
        if reason:
            payload["reason"] = reason

        event = ParsedProviderEvent(
            provider=payment.provider,
            provider_reference=payment.provider_reference,
            event_type=event_type,
            payload=payload,
            amount=amount,
            currency=payment.currency,
            external_reference=str(payment.id),
        )
        return ReconciliationService.handle_provider_webhook(event)
