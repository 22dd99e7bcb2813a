"""
Order orchestrator: every user-initiated move of an Order.

The orchestrator is the only entry point views and scheduled tasks use
to change an order. Each operation:
1. Locks the order row (select_for_update)
2. Resolves the caller's role for this order (client, assigned pro, admin)
3. Checks the operation's own preconditions (quote, hours, secured payment)
4. Applies the transition through lifecycle.apply_transition
5. Queues payment capture/release and notifications on commit

Payments never move here; they move through the provider and come back
through ReconciliationService, which confirms and pays orders as SYSTEM.

Usage:
    from orders.services import CreateOrderParams, OrderOrchestrator

    order = OrderOrchestrator.create_order(
        client,
        CreateOrderParams(pro_profile_id=pro.id, category_id="plumbing", estimated_hours=Decimal("2")),
    )
    OrderOrchestrator.submit(order.id, client)
    OrderOrchestrator.accept(order.id, pro.user)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from django.utils import timezone

from authentication.models import ProProfile
from core.exceptions import ConflictError, NotFoundError, ValidationError
from lifecycle import ActorRole, OrderStatus, PaymentStatus, apply_transition
from orders.models import Order, PricingMode
from orders.services.base import JobOrchestrator
from orders.services.receipt_service import ReceiptService
from payments.services import EarningService, PaymentService, ReconciliationService

if TYPE_CHECKING:
    from datetime import datetime

    from authentication.models import User


# Statuses in which the pro may report arriving on site
ARRIVAL_STATUSES = (OrderStatus.CONFIRMED, OrderStatus.IN_PROGRESS)


class DisputeOutcome:
    COMPLETE = "complete"
    CANCEL = "cancel"

    choices = (COMPLETE, CANCEL)


@dataclass
class CreateOrderParams:
    """
    What a client asks for when booking a pro.

    Attributes:
        pro_profile_id: The professional to book
        category_id: Service category (drives the platform fee)
        pricing_mode: "hourly" (rate x hours) or "fixed" (pro quotes on accept)
        estimated_hours: Required for hourly orders; sizes the authorization
    """

    pro_profile_id: int
    category_id: str
    subcategory_id: str = ""
    description: str = ""
    address_text: str = ""
    pricing_mode: str = PricingMode.HOURLY
    estimated_hours: Decimal | None = None
    scheduled_window_start: datetime | None = None
    scheduled_window_end: datetime | None = None


class OrderOrchestrator(JobOrchestrator):
    """
    Role-gated operations on orders.

    All methods are class methods and raise on failure:
        NotFoundError: Unknown order (ORDER_NOT_FOUND)
        PermissionDeniedError: Caller is not a party, or the wrong party
        IllegalTransition: The move is not allowed from the current status
        ValidationError / ConflictError: Operation-specific preconditions
    """

    model = Order
    not_found_code = "ORDER_NOT_FOUND"

    # =========================================================================
    # Creation
    # =========================================================================

    @classmethod
    def create_order(cls, client: User, params: CreateOrderParams) -> Order:
        """Create a DRAFT order, snapshotting the pro's current hourly rate."""
        if client.actor_role != ActorRole.CLIENT:
            raise ValidationError("Only clients can create orders", error_code="CLIENT_REQUIRED")

        pro_profile = ProProfile.objects.filter(id=params.pro_profile_id, is_active=True).first()
        if pro_profile is None:
            raise NotFoundError(
                f"Professional {params.pro_profile_id} not found",
                error_code="PRO_NOT_FOUND",
                details={"pro_profile_id": params.pro_profile_id},
            )

        if params.pricing_mode == PricingMode.HOURLY:
            if params.estimated_hours is None or params.estimated_hours <= 0:
                raise ValidationError(
                    "Hourly orders need positive estimated hours",
                    error_code="ESTIMATED_HOURS_REQUIRED",
                    details={"field": "estimated_hours"},
                )
            if pro_profile.hourly_rate <= 0:
                raise ValidationError(
                    "This professional has no hourly rate",
                    error_code="HOURLY_RATE_MISSING",
                    details={"pro_profile_id": pro_profile.id},
                )

        if (
            params.scheduled_window_start
            and params.scheduled_window_end
            and params.scheduled_window_end < params.scheduled_window_start
        ):
            raise ValidationError(
                "Scheduled window ends before it starts",
                error_code="INVALID_SCHEDULE_WINDOW",
            )

        order = Order.objects.create(
            client=client,
            pro_profile=pro_profile,
            category_id=params.category_id,
            subcategory_id=params.subcategory_id,
            description=params.description,
            address_text=params.address_text,
            pricing_mode=params.pricing_mode,
            hourly_rate_snapshot=pro_profile.hourly_rate,
            estimated_hours=params.estimated_hours,
            scheduled_window_start=params.scheduled_window_start,
            scheduled_window_end=params.scheduled_window_end,
            currency=pro_profile.currency,
        )

        cls.get_logger().info(
            "Order created",
            extra={
                "order_id": str(order.id),
                "client_id": str(client.pk),
                "pro_profile_id": pro_profile.id,
                "pricing_mode": order.pricing_mode,
            },
        )
        return order

    # =========================================================================
    # Booking the pro
    # =========================================================================

    @classmethod
    def submit(cls, order_id, user: User) -> Order:
        """Client sends the DRAFT to the pro."""
        with cls.atomic():
            order = cls._lock(order_id)
            role = cls.actor_role_for(order, user)
            cls._move(order, OrderStatus.PENDING_PRO_CONFIRMATION, role)
            cls.notify(order.pro_profile.user_id, "order.submitted", {"order_id": str(order.id)})
        return order

    @classmethod
    def accept(cls, order_id, user: User, quoted_amount: int | None = None) -> Order:
        """
        Pro takes the job.

        Fixed-price orders need the pro's quote (minor units); hourly
        orders are priced by the rate snapshot and take no quote.
        """
        with cls.atomic():
            order = cls._lock(order_id)
            role = cls.actor_role_for(order, user)

            context = {}
            if order.is_hourly:
                if quoted_amount is not None:
                    raise ValidationError(
                        "Hourly orders are not quoted",
                        error_code="QUOTE_NOT_ALLOWED",
                        details={"order_id": str(order.id)},
                    )
            else:
                if quoted_amount is None or quoted_amount <= 0:
                    raise ValidationError(
                        "Fixed-price orders need a positive quote",
                        error_code="QUOTE_REQUIRED",
                        details={"order_id": str(order.id)},
                    )
                context["quoted_amount"] = quoted_amount

            cls._move(order, OrderStatus.ACCEPTED, role, context)
            cls.notify(order.client_id, "order.accepted", {"order_id": str(order.id)})
        return order

    @classmethod
    def reject(cls, order_id, user: User, reason: str = "") -> Order:
        """Pro declines the request; the order is canceled."""
        with cls.atomic():
            order = cls._lock(order_id)
            role = cls.actor_role_for(order, user)
            cls.require_role(role, (ActorRole.PRO, ActorRole.ADMIN), order)
            if order.status != OrderStatus.PENDING_PRO_CONFIRMATION:
                raise ConflictError(
                    f"Cannot reject an order that is {order.status}",
                    error_code="ORDER_NOT_PENDING",
                    details={"order_id": str(order.id), "status": order.status},
                )
            cls._cancel(order, role, reason or "rejected_by_pro")
        return order

    @classmethod
    def confirm(cls, order_id, user: User) -> Order:
        """
        Confirm an ACCEPTED order whose payment is secured.

        Normally done by reconciliation when the provider authorizes the
        payment; this covers clients and admins confirming by hand.
        """
        with cls.atomic():
            order = cls._lock(order_id)
            role = cls.actor_role_for(order, user)
            if not PaymentService.has_secured_payment(order):
                raise ConflictError(
                    "Order cannot be confirmed before its payment is authorized",
                    error_code="PAYMENT_NOT_SECURED",
                    details={"order_id": str(order.id)},
                )
            cls._move(order, OrderStatus.CONFIRMED, role)
            cls.notify(order.pro_profile.user_id, "order.confirmed", {"order_id": str(order.id)})
        return order

    # =========================================================================
    # Doing the job
    # =========================================================================

    @classmethod
    def start(cls, order_id, user: User) -> Order:
        with cls.atomic():
            order = cls._lock(order_id)
            role = cls.actor_role_for(order, user)
            cls._move(order, OrderStatus.IN_PROGRESS, role)
            cls.notify(order.client_id, "order.started", {"order_id": str(order.id)})
        return order

    @classmethod
    def mark_arrived(cls, order_id, user: User) -> Order:
        """Pro reports being on site. A marker only; the status does not change."""
        with cls.atomic():
            order = cls._lock(order_id)
            role = cls.actor_role_for(order, user)
            cls.require_role(role, (ActorRole.PRO, ActorRole.ADMIN), order)
            if order.status not in ARRIVAL_STATUSES:
                raise ConflictError(
                    f"Cannot mark arrival while {order.status}",
                    error_code="ARRIVAL_NOT_ALLOWED",
                    details={"order_id": str(order.id), "status": order.status},
                )
            if order.arrived_at is None:
                Order.objects.filter(id=order.id).update(arrived_at=timezone.now())
                order = Order.objects.select_related("pro_profile").get(id=order.id)
                cls.notify(order.client_id, "order.pro_arrived", {"order_id": str(order.id)})
        return order

    @classmethod
    def submit_completion(cls, order_id, user: User, final_hours: Decimal | None = None) -> Order:
        """Pro reports the work done; hourly orders report the hours worked."""
        with cls.atomic():
            order = cls._lock(order_id)
            role = cls.actor_role_for(order, user)

            context = {}
            if order.is_hourly:
                if final_hours is None or final_hours <= 0:
                    raise ValidationError(
                        "Hourly orders need positive final hours",
                        error_code="FINAL_HOURS_REQUIRED",
                        details={"order_id": str(order.id), "field": "final_hours"},
                    )
                context["final_hours"] = final_hours

            cls._move(order, OrderStatus.AWAITING_CLIENT_APPROVAL, role, context)
            cls.notify(order.client_id, "order.completion_submitted", {"order_id": str(order.id)})
        return order

    @classmethod
    def approve(cls, order_id, user: User) -> Order:
        """
        Client accepts the work: the order is COMPLETED with its final total,
        line items and receipt, and the authorized payment is captured for
        that total.
        """
        with cls.atomic():
            order = cls._lock(order_id)
            role = cls.actor_role_for(order, user)
            cls._complete(order, role)
        return order

    @classmethod
    def auto_approve(cls, order_id) -> Order | None:
        """Approve on the client's behalf once the approval window has passed."""
        with cls.atomic():
            order = cls._lock(order_id)
            if order.status != OrderStatus.AWAITING_CLIENT_APPROVAL:
                return None
            cls._complete(order, ActorRole.SYSTEM)
        return order

    @classmethod
    def _complete(cls, order: Order, role: str) -> None:
        total = order.total_amount or order.compute_total_amount()
        if not total:
            raise ValidationError(
                "Order has no final amount",
                error_code="TOTAL_AMOUNT_REQUIRED",
                details={"order_id": str(order.id), "pricing_mode": order.pricing_mode},
            )

        cls._move(order, OrderStatus.COMPLETED, role, {"total_amount": total})
        ReceiptService.finalize(order)

        payment = PaymentService.secured_payment_for(order)
        if payment is not None and payment.status == PaymentStatus.CAPTURED:
            # Captured up front (fixed quote): nothing left to capture
            ReconciliationService.mark_order_paid(order)
        else:
            cls.capture_on_commit(order, total)
        cls.notify(order.pro_profile.user_id, "order.completed", {"order_id": str(order.id)})

    # =========================================================================
    # Disputes & cancellation
    # =========================================================================

    @classmethod
    def dispute(cls, order_id, user: User, reason: str) -> Order:
        if not reason or not reason.strip():
            raise ValidationError(
                "A dispute needs a reason",
                error_code="DISPUTE_REASON_REQUIRED",
                details={"field": "reason"},
            )
        with cls.atomic():
            order = cls._lock(order_id)
            role = cls.actor_role_for(order, user)
            cls._move(order, OrderStatus.DISPUTED, role, {"reason": reason.strip()})
            cls.notify(order.pro_profile.user_id, "order.disputed", {"order_id": str(order.id)})
        return order

    @classmethod
    def resolve_dispute(cls, order_id, user: User, outcome: str, reason: str = "") -> Order:
        """
        Admin closes a dispute.

        complete: the order goes back to COMPLETED and the payment is captured
        cancel: the order is CANCELED and the client's money is released
        """
        if outcome not in DisputeOutcome.choices:
            raise ValidationError(
                f"Unknown dispute outcome {outcome!r}",
                error_code="INVALID_DISPUTE_OUTCOME",
                details={"outcome": outcome, "allowed": list(DisputeOutcome.choices)},
            )

        with cls.atomic():
            order = cls._lock(order_id)
            role = cls.actor_role_for(order, user)
            cls.require_role(role, (ActorRole.ADMIN,), order)
            if order.status != OrderStatus.DISPUTED:
                raise ConflictError(
                    f"Order is not disputed ({order.status})",
                    error_code="ORDER_NOT_DISPUTED",
                    details={"order_id": str(order.id), "status": order.status},
                )

            if outcome == DisputeOutcome.COMPLETE:
                cls._complete(order, role)
            else:
                cls._cancel(order, role, reason or "dispute_resolved_for_client")
                EarningService.reverse_for_order(order, "dispute_canceled")

        cls.get_logger().info(
            "Dispute resolved",
            extra={"order_id": str(order.id), "outcome": outcome, "admin_id": str(user.pk)},
        )
        return order

    @classmethod
    def cancel(cls, order_id, user: User, reason: str = "") -> Order:
        """Cancel on behalf of a party; any payment still holding money is released."""
        with cls.atomic():
            order = cls._lock(order_id)
            role = cls.actor_role_for(order, user)
            cls._cancel(order, role, reason)
        return order

    @classmethod
    def system_cancel(cls, order_id, reason: str) -> Order | None:
        """Cancel from a scheduled timeout. Returns None when the order moved on meanwhile."""
        with cls.atomic():
            order = cls._lock(order_id)
            if order.status not in (OrderStatus.DRAFT, OrderStatus.PENDING_PRO_CONFIRMATION, OrderStatus.ACCEPTED):
                return None
            cls._cancel(order, ActorRole.SYSTEM, reason)
        return order

    @classmethod
    def _cancel(cls, order: Order, role: str, reason: str) -> None:
        cls._move(order, OrderStatus.CANCELED, role, {"reason": reason, "canceled_by_role": str(role)})
        cls.release_on_commit(order, reason or "order_canceled")
        payload = {"order_id": str(order.id), "reason": reason, "canceled_by_role": str(role)}
        cls.notify(order.client_id, "order.canceled", payload)
        cls.notify(order.pro_profile.user_id, "order.canceled", payload)

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _move(cls, order: Order, to_state: str, role: str, context: dict | None = None) -> None:
        from_state = str(order.status)
        apply_transition(order, to_state, role, context)
        order.save()
        cls.get_logger().info(
            f"Order {from_state} -> {to_state}",
            extra={
                "order_id": str(order.id),
                "from_state": from_state,
                "to_state": str(to_state),
                "actor_role": str(role),
            },
        )
