"""
Order and Booking models.

An Order is a unit of work a client books with a professional: it is
created DRAFT, moves through the lifecycle graph in lifecycle.transitions
and is never deleted, only left in a terminal status (PAID or CANCELED).
A Booking is the simpler scheduling flow (on-my-way, arrived) that
mirrors a subset of the Order lifecycle.

Status fields are django-fsm protected: change them only through
lifecycle.apply_transition (or the @transition methods it calls), and
re-fetch a row with objects.get() instead of refresh_from_db().

Usage:
    from lifecycle import ActorRole, OrderStatus, apply_transition
    from orders.models import Order

    order = Order.objects.get(id=order_id)
    apply_transition(order, OrderStatus.ACCEPTED, ActorRole.PRO)
    order.save()
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from core.money import Money
from lifecycle import BookingStatus, LifecycleEntity, OrderStatus


class PricingMode(models.TextChoices):
    """How the final amount of an order is determined."""

    HOURLY = "hourly", "Hourly"
    FIXED = "fixed", "Fixed quote"


_ORDER_OPEN = [
    OrderStatus.DRAFT,
    OrderStatus.PENDING_PRO_CONFIRMATION,
    OrderStatus.ACCEPTED,
    OrderStatus.CONFIRMED,
    OrderStatus.IN_PROGRESS,
    OrderStatus.AWAITING_CLIENT_APPROVAL,
    OrderStatus.COMPLETED,
    OrderStatus.DISPUTED,
]


class Order(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A job booked by a client with a professional.

    State Flow:
        DRAFT -> PENDING_PRO_CONFIRMATION -> ACCEPTED -> CONFIRMED
            -> IN_PROGRESS -> AWAITING_CLIENT_APPROVAL -> COMPLETED -> PAID
        AWAITING_CLIENT_APPROVAL/COMPLETED -> DISPUTED -> COMPLETED/CANCELED
        any open status -> CANCELED

    Amounts are integer minor units in `currency`.
    """

    lifecycle_entity = LifecycleEntity.ORDER

    TRANSITION_METHODS = {
        OrderStatus.PENDING_PRO_CONFIRMATION: "submit",
        OrderStatus.ACCEPTED: "accept",
        OrderStatus.CONFIRMED: "confirm",
        OrderStatus.IN_PROGRESS: "start",
        OrderStatus.AWAITING_CLIENT_APPROVAL: "submit_completion",
        OrderStatus.COMPLETED: "complete",
        OrderStatus.DISPUTED: "dispute",
        OrderStatus.PAID: "mark_paid",
        OrderStatus.CANCELED: "cancel",
    }

    # ==========================================================================
    # Parties
    # ==========================================================================

    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="Client who booked the job",
    )
    pro_profile = models.ForeignKey(
        "authentication.ProProfile",
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="Professional doing the job",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=OrderStatus.DRAFT,
        choices=OrderStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current status of the order (managed by FSM)",
    )

    # ==========================================================================
    # Job description
    # ==========================================================================

    category_id = models.CharField(max_length=64, db_index=True)
    subcategory_id = models.CharField(max_length=64, blank=True, default="")
    description = models.TextField(blank=True, default="")
    address_text = models.CharField(max_length=255, blank=True, default="")

    scheduled_window_start = models.DateTimeField(null=True, blank=True)
    scheduled_window_end = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Pricing (minor units)
    # ==========================================================================

    pricing_mode = models.CharField(
        max_length=10,
        choices=PricingMode.choices,
        default=PricingMode.HOURLY,
    )
    hourly_rate_snapshot = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Pro hourly rate at creation time, in minor units",
    )
    estimated_hours = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    final_hours = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    quoted_amount = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Fixed quote from the pro, in minor units",
    )
    quote_accepted_at = models.DateTimeField(null=True, blank=True)
    total_amount = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Final amount charged, set on client approval",
    )
    currency = models.CharField(max_length=3, default="UYU")

    # ==========================================================================
    # Transition timestamps
    # ==========================================================================

    submitted_at = models.DateTimeField(null=True, blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    arrived_at = models.DateTimeField(null=True, blank=True)
    completion_submitted_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    disputed_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    canceled_at = models.DateTimeField(null=True, blank=True)

    cancel_reason = models.CharField(max_length=255, blank=True, default="")
    canceled_by_role = models.CharField(max_length=16, blank=True, default="")
    dispute_reason = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(fields=["client", "status"], name="orders_orde_client__f1a2b3_idx"),
            models.Index(fields=["pro_profile", "status"], name="orders_orde_pro_pro_c4d5e6_idx"),
            models.Index(fields=["status", "completion_submitted_at"], name="orders_orde_status_a7b8c9_idx"),
        ]

    def __str__(self) -> str:
        return f"Order({self.id}, {self.status})"

    # ==========================================================================
    # Amounts
    # ==========================================================================

    @property
    def is_hourly(self) -> bool:
        return self.pricing_mode == PricingMode.HOURLY

    @property
    def quote_accepted(self) -> bool:
        return self.quote_accepted_at is not None

    def _hours_amount(self, hours) -> int | None:
        if self.hourly_rate_snapshot is None or hours is None:
            return None
        amount = Decimal(self.hourly_rate_snapshot) * Decimal(hours)
        return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))

    @property
    def estimated_amount(self) -> int | None:
        """Amount to authorize at checkout, in minor units."""
        if self.is_hourly:
            return self._hours_amount(self.estimated_hours)
        return self.quoted_amount

    def compute_total_amount(self) -> int | None:
        """
        Final amount on client approval.

        Hourly: final_hours x hourly_rate_snapshot, rounded half-up.
        Fixed: the quoted amount.
        """
        if self.is_hourly:
            return self._hours_amount(self.final_hours)
        return self.quoted_amount

    @property
    def total(self) -> Money | None:
        if self.total_amount is None:
            return None
        return Money(self.total_amount, self.currency)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=OrderStatus.DRAFT, target=OrderStatus.PENDING_PRO_CONFIRMATION)
    def submit(self):
        """Client sends the request to the pro."""
        self.submitted_at = timezone.now()

    @transition(
        field=status,
        source=OrderStatus.PENDING_PRO_CONFIRMATION,
        target=OrderStatus.ACCEPTED,
    )
    def accept(self, quoted_amount: int | None = None):
        """Pro takes the job, optionally with a fixed quote."""
        self.accepted_at = timezone.now()
        if quoted_amount is not None:
            self.quoted_amount = quoted_amount

    @transition(field=status, source=OrderStatus.ACCEPTED, target=OrderStatus.CONFIRMED)
    def confirm(self):
        """Payment is secured and the job is booked."""
        self.confirmed_at = timezone.now()

    @transition(field=status, source=OrderStatus.CONFIRMED, target=OrderStatus.IN_PROGRESS)
    def start(self):
        self.started_at = timezone.now()

    @transition(
        field=status,
        source=OrderStatus.IN_PROGRESS,
        target=OrderStatus.AWAITING_CLIENT_APPROVAL,
    )
    def submit_completion(self, final_hours: Decimal | None = None):
        """Pro reports the work as done (with hours worked for hourly jobs)."""
        self.completion_submitted_at = timezone.now()
        if final_hours is not None:
            self.final_hours = final_hours

    @transition(
        field=status,
        source=[OrderStatus.AWAITING_CLIENT_APPROVAL, OrderStatus.DISPUTED],
        target=OrderStatus.COMPLETED,
    )
    def complete(self, total_amount: int | None = None):
        """Client approval, auto-approval or dispute resolution in the pro's favour."""
        self.completed_at = timezone.now()
        if total_amount is not None:
            self.total_amount = total_amount

    @transition(
        field=status,
        source=[OrderStatus.AWAITING_CLIENT_APPROVAL, OrderStatus.COMPLETED],
        target=OrderStatus.DISPUTED,
    )
    def dispute(self, reason: str = ""):
        self.disputed_at = timezone.now()
        self.dispute_reason = reason

    @transition(field=status, source=OrderStatus.COMPLETED, target=OrderStatus.PAID)
    def mark_paid(self):
        """Captured payment reconciled."""
        self.paid_at = timezone.now()

    @transition(field=status, source=_ORDER_OPEN, target=OrderStatus.CANCELED)
    def cancel(self, reason: str = "", canceled_by_role: str = ""):
        self.canceled_at = timezone.now()
        self.cancel_reason = reason
        self.canceled_by_role = canceled_by_role


_BOOKING_OPEN = [
    BookingStatus.PENDING_PAYMENT,
    BookingStatus.PENDING,
    BookingStatus.ACCEPTED,
    BookingStatus.ON_MY_WAY,
    BookingStatus.ARRIVED,
]


class Booking(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Scheduling-oriented job request with arrival tracking.

    State Flow:
        PENDING_PAYMENT -> PENDING -> ACCEPTED -> ON_MY_WAY -> ARRIVED -> COMPLETED
        any open status -> REJECTED/CANCELLED
    """

    lifecycle_entity = LifecycleEntity.BOOKING

    TRANSITION_METHODS = {
        BookingStatus.PENDING: "mark_payment_received",
        BookingStatus.ACCEPTED: "accept",
        BookingStatus.ON_MY_WAY: "start_trip",
        BookingStatus.ARRIVED: "arrive",
        BookingStatus.COMPLETED: "complete",
        BookingStatus.REJECTED: "reject",
        BookingStatus.CANCELLED: "cancel",
    }

    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    pro_profile = models.ForeignKey(
        "authentication.ProProfile",
        on_delete=models.PROTECT,
        related_name="bookings",
    )

    status = FSMField(
        default=BookingStatus.PENDING_PAYMENT,
        choices=BookingStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current status of the booking (managed by FSM)",
    )

    estimated_amount = models.PositiveBigIntegerField(help_text="Amount in minor units")
    currency = models.CharField(max_length=3, default="UYU")
    scheduled_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")

    payment_received_at = models.DateTimeField(null=True, blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    on_my_way_at = models.DateTimeField(null=True, blank=True)
    arrived_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    reason = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Booking"
        verbose_name_plural = "Bookings"
        indexes = [
            models.Index(fields=["status", "created_at"], name="orders_book_status_d1e2f3_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(estimated_amount__gt=0),
                name="booking_estimated_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Booking({self.id}, {self.status})"

    @property
    def estimated(self) -> Money:
        return Money(self.estimated_amount, self.currency)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=BookingStatus.PENDING_PAYMENT, target=BookingStatus.PENDING)
    def mark_payment_received(self):
        self.payment_received_at = timezone.now()

    @transition(field=status, source=BookingStatus.PENDING, target=BookingStatus.ACCEPTED)
    def accept(self):
        self.accepted_at = timezone.now()

    @transition(field=status, source=BookingStatus.ACCEPTED, target=BookingStatus.ON_MY_WAY)
    def start_trip(self):
        self.on_my_way_at = timezone.now()

    @transition(field=status, source=BookingStatus.ON_MY_WAY, target=BookingStatus.ARRIVED)
    def arrive(self):
        self.arrived_at = timezone.now()

    @transition(field=status, source=BookingStatus.ARRIVED, target=BookingStatus.COMPLETED)
    def complete(self):
        self.completed_at = timezone.now()

    @transition(field=status, source=_BOOKING_OPEN, target=BookingStatus.REJECTED)
    def reject(self, reason: str = ""):
        self.rejected_at = timezone.now()
        self.reason = reason

    @transition(field=status, source=_BOOKING_OPEN, target=BookingStatus.CANCELLED)
    def cancel(self, reason: str = ""):
        self.cancelled_at = timezone.now()
        self.reason = reason


# =============================================================================
# Completion breakdown
# =============================================================================


class LineItemKind(models.TextChoices):
    LABOR = "labor", "Labor"
    PLATFORM_FEE = "platform_fee", "Platform fee"
    TAX = "tax", "Tax"


class OrderLineItem(UUIDPrimaryKeyMixin, BaseModel):
    """
    One line of a completed order's breakdown.

    The LABOR line is the order's total_amount. The TAX line is the IVA
    contained in that total and the PLATFORM_FEE line is the commission
    withheld from the pro's share, so neither changes what the client pays.
    Replaced as a set each time the order is completed.
    """

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="line_items")
    kind = models.CharField(max_length=16, choices=LineItemKind.choices)
    position = models.PositiveSmallIntegerField(default=0)
    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal("1"))
    unit_amount = models.PositiveBigIntegerField(help_text="Amount per unit, in minor units")
    amount = models.PositiveBigIntegerField(help_text="Line amount, in minor units")
    currency = models.CharField(max_length=3)
    rate_percent = models.DecimalField(
        max_digits=6,
        decimal_places=3,
        null=True,
        blank=True,
        help_text="Percentage applied, for percent fees and tax",
    )

    class Meta:
        ordering = ["order", "position"]
        verbose_name = "Order line item"
        verbose_name_plural = "Order line items"
        constraints = [
            models.UniqueConstraint(fields=["order", "kind"], name="orders_line_item_one_per_kind"),
        ]

    def __str__(self) -> str:
        return f"{self.get_kind_display()} {self.amount} {self.currency}"

    @property
    def total(self) -> Money:
        return Money(self.amount, self.currency)


class OrderReceipt(UUIDPrimaryKeyMixin, BaseModel):
    """
    Snapshot of an order's totals at completion.

    line_items keeps a copy of the OrderLineItem rows, so the receipt
    reads the same after the fee schedule or tax rate changes.
    """

    order = models.OneToOneField(Order, on_delete=models.CASCADE, related_name="receipt")
    line_items = models.JSONField(default=list)
    labor_amount = models.PositiveBigIntegerField()
    platform_fee_amount = models.PositiveBigIntegerField()
    platform_fee_rate = models.DecimalField(max_digits=6, decimal_places=3, null=True, blank=True)
    tax_amount = models.PositiveBigIntegerField()
    tax_rate = models.DecimalField(max_digits=6, decimal_places=3)
    subtotal_amount = models.PositiveBigIntegerField(help_text="Total without the IVA it contains")
    total_amount = models.PositiveBigIntegerField(help_text="Amount charged to the client")
    pro_net_amount = models.PositiveBigIntegerField(help_text="Total minus the platform fee")
    currency = models.CharField(max_length=3)
    approved_hours = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    finalized_at = models.DateTimeField()

    class Meta:
        verbose_name = "Order receipt"
        verbose_name_plural = "Order receipts"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(tax_amount__lte=models.F("total_amount")),
                name="orders_receipt_tax_within_total",
            ),
        ]

    def __str__(self) -> str:
        return f"Receipt {self.order_id}: {self.total_amount} {self.currency}"
