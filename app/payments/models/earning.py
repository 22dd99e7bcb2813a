"""
Earning model: money owed to a pro for one paid order.

Created exactly once, when the order lands on PAID. The unique order
column makes a second creation fail with IntegrityError, which the
earning service surfaces as DuplicateEarning.

Usage:
    from payments.models import Earning

    Earning.objects.filter(pro_profile=pro, status=EarningStatus.PAYABLE)
"""

from __future__ import annotations

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from core.money import Money
from lifecycle import EarningStatus, LifecycleEntity


class Earning(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Net amount a pro earned from one order.

    State Flow:
        PENDING -> PAYABLE -> RESERVED -> PAID
        RESERVED -> PAYABLE (payout rejected)
        PAID -> PAYABLE (payout failed after it was sent)
        PENDING/PAYABLE -> REVERSED (refund or dispute cancellation)

    net_amount = gross_amount - platform_fee_amount always holds
    (database check constraint).
    """

    lifecycle_entity = LifecycleEntity.EARNING

    TRANSITION_METHODS = {
        EarningStatus.PAYABLE: "make_payable",
        EarningStatus.RESERVED: "reserve",
        EarningStatus.PAID: "mark_paid",
        EarningStatus.REVERSED: "reverse",
    }

    order = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="earning",
    )
    pro_profile = models.ForeignKey(
        "authentication.ProProfile",
        on_delete=models.PROTECT,
        related_name="earnings",
    )

    # ==========================================================================
    # Amounts (minor units)
    # ==========================================================================

    gross_amount = models.PositiveBigIntegerField(help_text="Order total")
    platform_fee_amount = models.PositiveBigIntegerField()
    net_amount = models.PositiveBigIntegerField(help_text="gross - platform fee")
    currency = models.CharField(max_length=3)

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=EarningStatus.PENDING,
        choices=EarningStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current status of the earning (managed by FSM)",
    )
    available_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When a PENDING earning becomes payable (cooling-off)",
    )
    payout = models.ForeignKey(
        "payments.Payout",
        on_delete=models.SET_NULL,
        related_name="earnings",
        null=True,
        blank=True,
        help_text="Open payout currently holding this earning",
    )
    paid_at = models.DateTimeField(null=True, blank=True)
    reversed_at = models.DateTimeField(null=True, blank=True)
    reversal_reason = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Earning"
        verbose_name_plural = "Earnings"
        indexes = [
            models.Index(fields=["pro_profile", "status"], name="earning_pro_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(
                    net_amount=models.F("gross_amount") - models.F("platform_fee_amount")
                ),
                name="earning_net_equals_gross_minus_fee",
            ),
        ]

    def __str__(self) -> str:
        return f"Earning({self.id}, {self.net_amount} {self.currency}, {self.status})"

    def clean(self):
        super().clean()
        if self.net_amount != self.gross_amount - self.platform_fee_amount:
            raise DjangoValidationError(
                {"net_amount": "Net amount must equal gross amount minus platform fee."}
            )

    @property
    def net(self) -> Money:
        return Money(self.net_amount, self.currency)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[EarningStatus.PENDING, EarningStatus.RESERVED, EarningStatus.PAID],
        target=EarningStatus.PAYABLE,
    )
    def make_payable(self):
        self.payout = None
        self.paid_at = None

    @transition(field=status, source=EarningStatus.PAYABLE, target=EarningStatus.RESERVED)
    def reserve(self, payout=None):
        self.payout = payout

    @transition(field=status, source=EarningStatus.RESERVED, target=EarningStatus.PAID)
    def mark_paid(self):
        self.paid_at = timezone.now()

    @transition(
        field=status,
        source=[EarningStatus.PENDING, EarningStatus.PAYABLE],
        target=EarningStatus.REVERSED,
    )
    def reverse(self, reason: str = ""):
        self.reversed_at = timezone.now()
        self.reversal_reason = reason
