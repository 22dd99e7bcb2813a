"""
Payment and the provider event ledger.

A Payment is money coming in from a client for exactly one Order or
Booking. Its status is driven only by provider events (webhooks, sync)
applied by ReconciliationService, or by an admin.

PaymentEvent is the insert-only ledger of provider events. The unique
fingerprint column is the single idempotency gate: a replayed webhook
fails the insert and is dropped before it can touch any other row.

Usage:
    from payments.models import Payment, PaymentEvent

    payment = Payment.objects.select_for_update().get(
        provider=event.provider,
        provider_reference=event.provider_reference,
    )
    apply_transition(payment, PaymentStatus.AUTHORIZED, ActorRole.SYSTEM,
                     {"amount": event.amount})
    payment.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from core.money import Money
from lifecycle import LifecycleEntity, PaymentStatus
from payments.providers.base import ProviderName


class Payment(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Money collected from a client through a payment provider.

    State Flow:
        CREATED -> REQUIRES_ACTION -> AUTHORIZED -> CAPTURED
        CREATED/REQUIRES_ACTION/AUTHORIZED -> FAILED
        AUTHORIZED/CAPTURED -> REFUNDED/CANCELLED

    Amounts:
        amount_estimated: What checkout asked the provider to authorize
        amount_authorized: What the provider reports as authorized
        amount_captured: What was actually charged
        amount_refunded: What was given back

    A row whose amounts break captured <= authorized <= estimated is
    kept but flagged is_inconsistent for manual review.
    """

    lifecycle_entity = LifecycleEntity.PAYMENT

    TRANSITION_METHODS = {
        PaymentStatus.REQUIRES_ACTION: "require_action",
        PaymentStatus.AUTHORIZED: "authorize",
        PaymentStatus.CAPTURED: "capture",
        PaymentStatus.FAILED: "fail",
        PaymentStatus.REFUNDED: "refund",
        PaymentStatus.CANCELLED: "cancel",
    }

    # ==========================================================================
    # What is being paid for (exactly one)
    # ==========================================================================

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payments",
        null=True,
        blank=True,
    )
    booking = models.ForeignKey(
        "orders.Booking",
        on_delete=models.PROTECT,
        related_name="payments",
        null=True,
        blank=True,
    )

    # ==========================================================================
    # Provider
    # ==========================================================================

    provider = models.CharField(max_length=32, choices=ProviderName.choices)
    provider_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Provider id (PaymentIntent id, Mercado Pago preference/payment id)",
    )
    checkout_url = models.URLField(max_length=2048, blank=True, default="")
    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Key used when creating the payment at the provider",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.CREATED,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current status of the payment (managed by FSM)",
    )

    # ==========================================================================
    # Amounts (minor units)
    # ==========================================================================

    amount_estimated = models.PositiveBigIntegerField()
    amount_authorized = models.PositiveBigIntegerField(default=0)
    amount_captured = models.PositiveBigIntegerField(default=0)
    amount_refunded = models.PositiveBigIntegerField(default=0)
    currency = models.CharField(max_length=3)
    is_inconsistent = models.BooleanField(
        default=False,
        help_text="Amounts break captured <= authorized <= estimated",
    )

    # ==========================================================================
    # Timestamps & errors
    # ==========================================================================

    authorized_at = models.DateTimeField(null=True, blank=True)
    captured_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["status", "updated_at"], name="payment_status_updated_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(order__isnull=False, booking__isnull=True)
                    | models.Q(order__isnull=True, booking__isnull=False)
                ),
                name="payment_order_xor_booking",
            ),
            models.UniqueConstraint(
                fields=["provider", "provider_reference"],
                condition=~models.Q(provider_reference=""),
                name="payment_unique_provider_reference",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.id}, {self.status})"

    @property
    def estimated(self) -> Money:
        return Money(self.amount_estimated, self.currency)

    @property
    def subject(self):
        """The Order or Booking this payment is for."""
        return self.order if self.order_id else self.booking

    def amounts_consistent(self) -> bool:
        return self.amount_captured <= self.amount_authorized <= self.amount_estimated

    def save(self, *args, **kwargs):
        self.is_inconsistent = not self.amounts_consistent()
        update_fields = kwargs.get("update_fields")
        if update_fields is not None:
            kwargs["update_fields"] = list({*update_fields, "is_inconsistent"})
        super().save(*args, **kwargs)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=PaymentStatus.CREATED, target=PaymentStatus.REQUIRES_ACTION)
    def require_action(self, provider_reference: str = "", checkout_url: str = ""):
        """Provider has the payment; the client must complete checkout."""
        if provider_reference:
            self.provider_reference = provider_reference
        if checkout_url:
            self.checkout_url = checkout_url

    @transition(
        field=status,
        source=PaymentStatus.REQUIRES_ACTION,
        target=PaymentStatus.AUTHORIZED,
    )
    def authorize(self, amount: int | None = None):
        self.authorized_at = timezone.now()
        self.amount_authorized = self.amount_estimated if amount is None else amount

    @transition(field=status, source=PaymentStatus.AUTHORIZED, target=PaymentStatus.CAPTURED)
    def capture(self, amount: int | None = None):
        self.captured_at = timezone.now()
        self.amount_captured = self.amount_authorized if amount is None else amount

    @transition(
        field=status,
        source=[PaymentStatus.CREATED, PaymentStatus.REQUIRES_ACTION, PaymentStatus.AUTHORIZED],
        target=PaymentStatus.FAILED,
    )
    def fail(self, reason: str = ""):
        self.failed_at = timezone.now()
        self.failure_reason = reason

    @transition(
        field=status,
        source=[PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED],
        target=PaymentStatus.REFUNDED,
    )
    def refund(self, amount: int | None = None):
        self.refunded_at = timezone.now()
        self.amount_refunded = self.amount_captured if amount is None else amount

    @transition(
        field=status,
        source=[PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED],
        target=PaymentStatus.CANCELLED,
    )
    def cancel(self, reason: str = ""):
        self.cancelled_at = timezone.now()
        if reason:
            self.failure_reason = reason


class PaymentEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Insert-only record of a provider event.

    Fingerprint:
        sha256("{provider}:{provider_reference}:{event_type}:{payload_hash}")
        where payload_hash is the sha256 of the canonical JSON payload.

    The row is written in its own transaction before the event is applied,
    so it survives a failed reconciliation; processed_at is stamped once
    the event has been applied (or ignored as stale).

    amount/currency/external_reference are kept so an orphaned event can
    be rebuilt and re-applied later.
    """

    provider = models.CharField(max_length=32, choices=ProviderName.choices)
    provider_reference = models.CharField(max_length=255, db_index=True)
    event_type = models.CharField(max_length=64)
    payload_hash = models.CharField(max_length=64)
    fingerprint = models.CharField(max_length=64, unique=True)
    payload = models.JSONField(default=dict, blank=True)
    occurred_at = models.DateTimeField(null=True, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    amount = models.BigIntegerField(null=True, blank=True)
    currency = models.CharField(max_length=3, blank=True, default="")
    external_reference = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment event"
        verbose_name_plural = "Payment events"
        indexes = [
            models.Index(fields=["provider", "provider_reference"], name="paymentevent_ref_idx"),
        ]

    def __str__(self) -> str:
        return f"PaymentEvent({self.event_type}, {self.provider_reference})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("PaymentEvent rows are insert-only")
        super().save(*args, **kwargs)

    def mark_processed(self) -> None:
        """Stamp processed_at without going through save()."""
        self.processed_at = timezone.now()
        PaymentEvent.objects.filter(pk=self.pk).update(processed_at=self.processed_at)


class OrphanedPaymentEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    A provider event whose payment or payout was not found on arrival.

    Retried by the retry_orphaned_payment_events beat task until the
    row it references exists.
    """

    event = models.OneToOneField(
        PaymentEvent,
        on_delete=models.CASCADE,
        related_name="orphan",
    )
    attempts = models.PositiveIntegerField(default=0)
    last_attempt_at = models.DateTimeField(null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True, db_index=True)

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Orphaned payment event"
        verbose_name_plural = "Orphaned payment events"

    def __str__(self) -> str:
        return f"OrphanedPaymentEvent({self.event_id}, attempts={self.attempts})"
