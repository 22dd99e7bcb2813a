"""
Status enums for every entity with a lifecycle.

These are Django TextChoices for database storage and admin integration.
The transition graphs themselves live in lifecycle.transitions.

State Machines Overview:

Order:
    draft → pending_pro_confirmation → accepted → confirmed → in_progress
        → awaiting_client_approval → completed → paid
    awaiting_client_approval/completed → disputed → completed/canceled
    any non-terminal → canceled

Booking:
    pending_payment → pending → accepted → on_my_way → arrived → completed
    any pre-completed → rejected/cancelled

Payment:
    created → requires_action → authorized → captured
    created/requires_action/authorized → failed
    authorized/captured → refunded/cancelled

Payout:
    created → sent → settled
    created/sent → failed → sent (admin re-send)

Earning:
    pending → payable → reserved → paid
    reserved → payable (send rejected), paid → payable (settlement failed)
    pending/payable → reversed
"""

from django.db import models


class LifecycleEntity(models.TextChoices):
    """Entity types understood by the transition tables."""

    ORDER = "order", "Order"
    BOOKING = "booking", "Booking"
    PAYMENT = "payment", "Payment"
    PAYOUT = "payout", "Payout"
    EARNING = "earning", "Earning"


class ActorRole(models.TextChoices):
    """
    Who is asking for a transition.

    SYSTEM covers provider webhooks and scheduled jobs.
    """

    CLIENT = "client", "Client"
    PRO = "pro", "Professional"
    ADMIN = "admin", "Admin"
    SYSTEM = "system", "System"


class OrderStatus(models.TextChoices):
    """
    States for the Order model lifecycle.

    Terminal states: PAID, CANCELED
    """

    DRAFT = "draft", "Draft"
    PENDING_PRO_CONFIRMATION = "pending_pro_confirmation", "Pending Pro Confirmation"
    ACCEPTED = "accepted", "Accepted"
    CONFIRMED = "confirmed", "Confirmed"
    IN_PROGRESS = "in_progress", "In Progress"
    AWAITING_CLIENT_APPROVAL = "awaiting_client_approval", "Awaiting Client Approval"
    COMPLETED = "completed", "Completed"
    PAID = "paid", "Paid"
    DISPUTED = "disputed", "Disputed"
    CANCELED = "canceled", "Canceled"


class BookingStatus(models.TextChoices):
    """
    States for the Booking model lifecycle.

    Terminal states: COMPLETED, REJECTED, CANCELLED
    """

    PENDING_PAYMENT = "pending_payment", "Pending Payment"
    PENDING = "pending", "Pending"
    ACCEPTED = "accepted", "Accepted"
    ON_MY_WAY = "on_my_way", "On My Way"
    ARRIVED = "arrived", "Arrived"
    COMPLETED = "completed", "Completed"
    REJECTED = "rejected", "Rejected"
    CANCELLED = "cancelled", "Cancelled"


class PaymentStatus(models.TextChoices):
    """
    States for the Payment model lifecycle.

    Terminal states: FAILED, REFUNDED, CANCELLED
    CAPTURED is not terminal because of the refund path.
    """

    CREATED = "created", "Created"
    REQUIRES_ACTION = "requires_action", "Requires Action"
    AUTHORIZED = "authorized", "Authorized"
    CAPTURED = "captured", "Captured"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"
    CANCELLED = "cancelled", "Cancelled"


class PayoutStatus(models.TextChoices):
    """
    States for the Payout model lifecycle.

    Terminal states: SETTLED
    FAILED payouts can be re-sent by an admin.
    """

    CREATED = "created", "Created"
    SENT = "sent", "Sent"
    SETTLED = "settled", "Settled"
    FAILED = "failed", "Failed"


class EarningStatus(models.TextChoices):
    """
    States for the Earning model lifecycle.

    RESERVED marks an earning claimed by an open payout so a concurrent
    payout creation cannot include it twice.

    Terminal states: REVERSED
    """

    PENDING = "pending", "Pending"
    PAYABLE = "payable", "Payable"
    RESERVED = "reserved", "Reserved"
    PAID = "paid", "Paid"
    REVERSED = "reversed", "Reversed"
