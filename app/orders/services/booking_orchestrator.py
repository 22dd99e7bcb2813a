"""
Booking orchestrator: role-gated moves of a Booking.

A booking is paid before the pro sees it: it is created PENDING_PAYMENT
and reconciliation moves it to PENDING once the provider authorizes the
checkout. Completing the booking captures the payment; cancelling or
rejecting it releases the money.

Usage:
    from orders.services import BookingOrchestrator

    booking = BookingOrchestrator.create_booking(client, pro.id, estimated_amount=150000)
    BookingOrchestrator.accept(booking.id, pro.user)
    BookingOrchestrator.on_my_way(booking.id, pro.user)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from authentication.models import ProProfile
from core.exceptions import NotFoundError, ValidationError
from lifecycle import ActorRole, BookingStatus, apply_transition
from orders.models import Booking
from orders.services.base import JobOrchestrator

if TYPE_CHECKING:
    from datetime import datetime

    from authentication.models import User


class BookingOrchestrator(JobOrchestrator):
    """Role-gated operations on bookings."""

    model = Booking
    not_found_code = "BOOKING_NOT_FOUND"

    @classmethod
    def create_booking(
        cls,
        client: User,
        pro_profile_id: int,
        estimated_amount: int,
        scheduled_at: datetime | None = None,
        notes: str = "",
    ) -> Booking:
        """Create a PENDING_PAYMENT booking priced in the pro's currency."""
        if client.actor_role != ActorRole.CLIENT:
            raise ValidationError("Only clients can create bookings", error_code="CLIENT_REQUIRED")
        if estimated_amount is None or estimated_amount <= 0:
            raise ValidationError(
                "Estimated amount must be positive",
                error_code="INVALID_AMOUNT",
                details={"estimated_amount": estimated_amount},
            )

        pro_profile = ProProfile.objects.filter(id=pro_profile_id, is_active=True).first()
        if pro_profile is None:
            raise NotFoundError(
                f"Professional {pro_profile_id} not found",
                error_code="PRO_NOT_FOUND",
                details={"pro_profile_id": pro_profile_id},
            )

        booking = Booking.objects.create(
            client=client,
            pro_profile=pro_profile,
            estimated_amount=estimated_amount,
            currency=pro_profile.currency,
            scheduled_at=scheduled_at,
            notes=notes,
        )
        cls.get_logger().info(
            "Booking created",
            extra={
                "booking_id": str(booking.id),
                "client_id": str(client.pk),
                "pro_profile_id": pro_profile.id,
                "estimated_amount": estimated_amount,
            },
        )
        return booking

    @classmethod
    def accept(cls, booking_id, user: User) -> Booking:
        return cls._step(booking_id, user, BookingStatus.ACCEPTED, "booking.accepted")

    @classmethod
    def on_my_way(cls, booking_id, user: User) -> Booking:
        return cls._step(booking_id, user, BookingStatus.ON_MY_WAY, "booking.on_my_way")

    @classmethod
    def arrive(cls, booking_id, user: User) -> Booking:
        return cls._step(booking_id, user, BookingStatus.ARRIVED, "booking.arrived")

    @classmethod
    def complete(cls, booking_id, user: User) -> Booking:
        """Pro finishes the job; the authorized payment is captured."""
        with cls.atomic():
            booking = cls._lock(booking_id)
            role = cls.actor_role_for(booking, user)
            cls._move(booking, BookingStatus.COMPLETED, role)
            cls.capture_on_commit(booking)
            cls.notify(booking.client_id, "booking.completed", {"booking_id": str(booking.id)})
        return booking

    @classmethod
    def reject(cls, booking_id, user: User, reason: str = "") -> Booking:
        return cls._close(booking_id, user, BookingStatus.REJECTED, reason or "rejected_by_pro")

    @classmethod
    def cancel(cls, booking_id, user: User, reason: str = "") -> Booking:
        return cls._close(booking_id, user, BookingStatus.CANCELLED, reason)

    @classmethod
    def system_cancel(cls, booking_id, reason: str) -> Booking | None:
        """Cancel an unpaid booking from a scheduled timeout."""
        with cls.atomic():
            booking = cls._lock(booking_id)
            if booking.status != BookingStatus.PENDING_PAYMENT:
                return None
            cls._move(booking, BookingStatus.CANCELLED, ActorRole.SYSTEM, {"reason": reason})
            cls.release_on_commit(booking, reason)
            cls.notify(booking.client_id, "booking.cancelled", {"booking_id": str(booking.id), "reason": reason})
        return booking

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _step(cls, booking_id, user: User, to_state: str, event: str) -> Booking:
        with cls.atomic():
            booking = cls._lock(booking_id)
            role = cls.actor_role_for(booking, user)
            cls._move(booking, to_state, role)
            cls.notify(booking.client_id, event, {"booking_id": str(booking.id)})
        return booking

    @classmethod
    def _close(cls, booking_id, user: User, to_state: str, reason: str) -> Booking:
        with cls.atomic():
            booking = cls._lock(booking_id)
            role = cls.actor_role_for(booking, user)
            cls._move(booking, to_state, role, {"reason": reason})
            cls.release_on_commit(booking, reason or f"booking_{to_state}")

            payload = {"booking_id": str(booking.id), "reason": reason, "actor_role": str(role)}
            other_party = booking.client_id if role == ActorRole.PRO else booking.pro_profile.user_id
            cls.notify(other_party, f"booking.{to_state}", payload)
        return booking

    @classmethod
    def _move(cls, booking: Booking, to_state: str, role: str, context: dict | None = None) -> None:
        from_state = str(booking.status)
        apply_transition(booking, to_state, role, context)
        booking.save()
        cls.get_logger().info(
            f"Booking {from_state} -> {to_state}",
            extra={
                "booking_id": str(booking.id),
                "from_state": from_state,
                "to_state": str(to_state),
                "actor_role": str(role),
            },
        )
