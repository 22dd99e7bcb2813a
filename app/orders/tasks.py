"""
Celery tasks for time-based order and booking transitions.

Each task selects candidates by timestamp and hands every one to the
orchestrator, which re-checks the status under a row lock. An order that
moved on between the query and the lock is skipped.

Usage:
    # Scheduled through CELERY_BEAT_SCHEDULE in config/settings.py
    from orders.tasks import auto_cancel_unconfirmed_orders
    auto_cancel_unconfirmed_orders.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from core.exceptions import BaseApplicationError
from lifecycle import BookingStatus, OrderStatus
from orders.models import Booking, Order
from orders.services import BookingOrchestrator, OrderOrchestrator

logger = logging.getLogger(__name__)

BATCH_SIZE = 200


@shared_task
def auto_cancel_unconfirmed_orders() -> dict:
    """
    Cancel orders the pro never answered.

    Orders PENDING_PRO_CONFIRMATION for longer than
    ORDER_PRO_CONFIRMATION_TIMEOUT_HOURS after submission are canceled.
    """
    threshold = timezone.now() - timedelta(hours=settings.ORDER_PRO_CONFIRMATION_TIMEOUT_HOURS)
    order_ids = list(
        Order.objects.filter(
            status=OrderStatus.PENDING_PRO_CONFIRMATION,
            submitted_at__lt=threshold,
        )
        .order_by("submitted_at")
        .values_list("id", flat=True)[:BATCH_SIZE]
    )

    canceled = 0
    for order_id in order_ids:
        try:
            if OrderOrchestrator.system_cancel(order_id, "pro_confirmation_timeout"):
                canceled += 1
        except BaseApplicationError as e:
            logger.error(
                f"Auto-cancel failed: {e.message}",
                extra={"order_id": str(order_id), "error_code": e.error_code},
            )

    if canceled:
        logger.info(f"Auto-canceled {canceled} unconfirmed orders", extra={"count": canceled})
    return {"canceled_count": canceled}


@shared_task
def auto_cancel_unpaid_bookings() -> dict:
    """Cancel bookings still PENDING_PAYMENT after BOOKING_PAYMENT_TIMEOUT_MINUTES."""
    threshold = timezone.now() - timedelta(minutes=settings.BOOKING_PAYMENT_TIMEOUT_MINUTES)
    booking_ids = list(
        Booking.objects.filter(
            status=BookingStatus.PENDING_PAYMENT,
            created_at__lt=threshold,
        )
        .order_by("created_at")
        .values_list("id", flat=True)[:BATCH_SIZE]
    )

    canceled = 0
    for booking_id in booking_ids:
        try:
            if BookingOrchestrator.system_cancel(booking_id, "payment_timeout"):
                canceled += 1
        except BaseApplicationError as e:
            logger.error(
                f"Auto-cancel failed: {e.message}",
                extra={"booking_id": str(booking_id), "error_code": e.error_code},
            )

    if canceled:
        logger.info(f"Auto-canceled {canceled} unpaid bookings", extra={"count": canceled})
    return {"canceled_count": canceled}


@shared_task
def auto_approve_completed_orders() -> dict:
    """
    Approve orders the client left unanswered.

    Orders AWAITING_CLIENT_APPROVAL for longer than ORDER_AUTO_APPROVE_HOURS
    are completed by the system and their payment is captured.
    """
    threshold = timezone.now() - timedelta(hours=settings.ORDER_AUTO_APPROVE_HOURS)
    order_ids = list(
        Order.objects.filter(
            status=OrderStatus.AWAITING_CLIENT_APPROVAL,
            completion_submitted_at__lt=threshold,
        )
        .order_by("completion_submitted_at")
        .values_list("id", flat=True)[:BATCH_SIZE]
    )

    approved = 0
    for order_id in order_ids:
        try:
            if OrderOrchestrator.auto_approve(order_id):
                approved += 1
        except BaseApplicationError as e:
            logger.error(
                f"Auto-approve failed: {e.message}",
                extra={"order_id": str(order_id), "error_code": e.error_code},
            )

    if approved:
        logger.info(f"Auto-approved {approved} orders", extra={"count": approved})
    return {"approved_count": approved}
