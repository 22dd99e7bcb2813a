"""
Earning service: turns paid orders into money owed to pros.

Usage:
    from payments.services import EarningService

    earning = EarningService.create_payable_earning(order)
    EarningService.mark_payable_if_due()
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError
from django.utils import timezone

from core.money import Money
from core.services import BaseService
from lifecycle import ActorRole, EarningStatus, apply_transition
from payments.exceptions import DuplicateEarning
from payments.fees import SettingsFeeSchedule
from payments.models import Earning

if TYPE_CHECKING:
    from datetime import datetime

    from orders.models import Order
    from payments.fees import FeeSchedule


class EarningService(BaseService):
    """
    Creates, promotes and reverses earnings.

    Exactly-once creation per order is enforced by the unique order
    column on Earning, not by locking: the second of two concurrent
    inserts fails and is reported as DuplicateEarning.
    """

    _fee_schedule: FeeSchedule | None = None

    @classmethod
    def get_fee_schedule(cls) -> FeeSchedule:
        return cls._fee_schedule or SettingsFeeSchedule()

    @classmethod
    def set_fee_schedule(cls, schedule: FeeSchedule | None) -> None:
        """Set the fee schedule (for testing)."""
        cls._fee_schedule = schedule

    @classmethod
    def create_payable_earning(cls, order: Order) -> Earning:
        """
        Create the earning for an order that just became PAID.

        gross = order.total_amount, fee from the fee schedule,
        net = gross - fee. PAYABLE immediately without a cooling-off
        period, otherwise PENDING until available_at.

        Raises:
            DuplicateEarning: The order already has an earning
        """
        gross = Money(order.total_amount or 0, order.currency)
        fee = cls.get_fee_schedule().fee_for(gross, order.category_id, order.subcategory_id)
        net = gross - fee

        cooling_off = timedelta(hours=settings.EARNINGS_COOLING_OFF_HOURS)
        now = timezone.now()
        immediate = cooling_off <= timedelta(0)

        try:
            with cls.atomic():
                earning = Earning.objects.create(
                    order=order,
                    pro_profile_id=order.pro_profile_id,
                    gross_amount=gross.amount,
                    platform_fee_amount=fee.amount,
                    net_amount=net.amount,
                    currency=gross.currency,
                    status=EarningStatus.PAYABLE if immediate else EarningStatus.PENDING,
                    available_at=now if immediate else now + cooling_off,
                )
        except IntegrityError as e:
            raise DuplicateEarning(
                f"Order {order.id} already has an earning",
                details={"order_id": str(order.id)},
            ) from e

        cls.get_logger().info(
            "Earning created",
            extra={
                "earning_id": str(earning.id),
                "order_id": str(order.id),
                "gross_amount": gross.amount,
                "platform_fee_amount": fee.amount,
                "net_amount": net.amount,
                "status": earning.status,
            },
        )
        return earning

    @classmethod
    def mark_payable_if_due(cls, now: datetime | None = None) -> int:
        """Promote PENDING earnings whose cooling-off has ended. Returns the count."""
        now = now or timezone.now()
        due_ids = list(
            Earning.objects.filter(
                status=EarningStatus.PENDING,
                available_at__lte=now,
            ).values_list("id", flat=True)
        )

        promoted = 0
        for earning_id in due_ids:
            with cls.atomic():
                earning = Earning.objects.select_for_update().get(id=earning_id)
                if earning.status != EarningStatus.PENDING:
                    continue
                apply_transition(earning, EarningStatus.PAYABLE, ActorRole.SYSTEM)
                earning.save()
                promoted += 1

        if promoted:
            cls.get_logger().info(
                f"Marked {promoted} earnings payable",
                extra={"count": promoted},
            )
        return promoted

    @classmethod
    def reverse_for_order(cls, order: Order, reason: str) -> Earning | None:
        """
        Reverse the order's earning after a refund or dispute cancellation.

        Only PENDING/PAYABLE earnings can be reversed; an earning already
        reserved or paid out is left alone and logged for manual recovery.
        """
        with cls.atomic():
            earning = Earning.objects.select_for_update().filter(order=order).first()
            if earning is None:
                return None
            if earning.status not in (EarningStatus.PENDING, EarningStatus.PAYABLE):
                cls.get_logger().warning(
                    "Earning already in a payout, not reversed",
                    extra={
                        "earning_id": str(earning.id),
                        "order_id": str(order.id),
                        "status": earning.status,
                        "reason": reason,
                    },
                )
                return earning
            apply_transition(earning, EarningStatus.REVERSED, ActorRole.SYSTEM, {"reason": reason})
            earning.save()

        cls.get_logger().info(
            "Earning reversed",
            extra={"earning_id": str(earning.id), "order_id": str(order.id), "reason": reason},
        )
        return earning
