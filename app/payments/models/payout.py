"""
Payout models for money sent to pros.

A Payout aggregates a pro's PAYABLE earnings into one transfer. The
earnings are linked twice: PayoutItem rows are the permanent record of
what the payout was built from, while Earning.payout points at the
open payout currently holding the earning (cleared when the payout is
rejected or fails after sending).

Every send attempt is recorded as a PayoutAttempt before the provider
is called. An attempt whose outcome stays UNKNOWN (timeout, provider
down) keeps its idempotency key so the next send repeats it instead of
risking a second transfer.

Usage:
    from payments.models import Payout

    payout = PayoutService.create_for_pro(pro_profile.id)
    PayoutService.send(payout.id)  # provider call runs in send_payout
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from core.money import Money
from lifecycle import LifecycleEntity, PayoutStatus
from payments.providers.base import ProviderName


class Payout(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Money transfer from the platform to one pro.

    State Flow:
        CREATED -> SENT -> SETTLED
        CREATED/SENT -> FAILED
        FAILED -> SENT (admin re-send of the same row)

    Fields:
        pro_profile: Recipient
        provider: Provider the transfer goes through
        amount: Sum of the net amounts of its earnings at creation
        provider_reference: Provider transfer id once accepted
        attempt_count: Number of provider calls made so far
    """

    lifecycle_entity = LifecycleEntity.PAYOUT

    TRANSITION_METHODS = {
        PayoutStatus.SENT: "mark_sent",
        PayoutStatus.SETTLED: "settle",
        PayoutStatus.FAILED: "fail",
    }

    pro_profile = models.ForeignKey(
        "authentication.ProProfile",
        on_delete=models.PROTECT,
        related_name="payouts",
    )
    provider = models.CharField(max_length=32, choices=ProviderName.choices)

    status = FSMField(
        default=PayoutStatus.CREATED,
        choices=PayoutStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current status of the payout (managed by FSM)",
    )

    amount = models.PositiveBigIntegerField(help_text="Amount in minor units")
    currency = models.CharField(max_length=3)
    provider_reference = models.CharField(max_length=255, blank=True, default="", db_index=True)

    sent_at = models.DateTimeField(null=True, blank=True)
    settled_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True, default="")
    attempt_count = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout"
        verbose_name_plural = "Payouts"
        indexes = [
            models.Index(fields=["pro_profile", "status"], name="payout_pro_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payout_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Payout({self.id}, {self.amount} {self.currency}, {self.status})"

    @property
    def total(self) -> Money:
        return Money(self.amount, self.currency)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[PayoutStatus.CREATED, PayoutStatus.FAILED],
        target=PayoutStatus.SENT,
    )
    def mark_sent(self, provider_reference: str = ""):
        self.sent_at = timezone.now()
        self.provider_reference = provider_reference
        self.failure_reason = ""

    @transition(field=status, source=PayoutStatus.SENT, target=PayoutStatus.SETTLED)
    def settle(self):
        self.settled_at = timezone.now()

    @transition(
        field=status,
        source=[PayoutStatus.CREATED, PayoutStatus.SENT],
        target=PayoutStatus.FAILED,
    )
    def fail(self, reason: str = ""):
        self.failed_at = timezone.now()
        self.failure_reason = reason


class PayoutItem(UUIDPrimaryKeyMixin, BaseModel):
    """One earning included in a payout, with its net amount at creation."""

    payout = models.ForeignKey(Payout, on_delete=models.CASCADE, related_name="items")
    earning = models.ForeignKey(
        "payments.Earning",
        on_delete=models.PROTECT,
        related_name="payout_items",
    )
    amount = models.PositiveBigIntegerField()

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["payout", "earning"],
                name="payoutitem_unique_payout_earning",
            ),
        ]

    def __str__(self) -> str:
        return f"PayoutItem({self.payout_id}, {self.earning_id})"


class PayoutAttemptOutcome(models.TextChoices):
    ACCEPTED = "accepted", "Accepted"
    REJECTED = "rejected", "Rejected"
    UNKNOWN = "unknown", "Unknown"


class PayoutAttempt(UUIDPrimaryKeyMixin, BaseModel):
    """
    One provider call made to send a payout.

    Created UNKNOWN before the call and updated with the outcome after.
    Retries of a transient failure inside one send() reuse the row.
    """

    payout = models.ForeignKey(Payout, on_delete=models.CASCADE, related_name="attempts")
    attempt_number = models.PositiveIntegerField()
    idempotency_key = models.CharField(max_length=255)
    outcome = models.CharField(
        max_length=16,
        choices=PayoutAttemptOutcome.choices,
        default=PayoutAttemptOutcome.UNKNOWN,
    )
    provider_reference = models.CharField(max_length=255, blank=True, default="")
    error = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["attempt_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["payout", "attempt_number"],
                name="payoutattempt_unique_number",
            ),
        ]

    def __str__(self) -> str:
        return f"PayoutAttempt({self.payout_id}#{self.attempt_number}, {self.outcome})"
