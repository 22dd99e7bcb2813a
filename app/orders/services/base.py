"""
Shared plumbing for the order and booking orchestrators.

Both orchestrators resolve who the caller is for a given job, move the
job through lifecycle.apply_transition under a row lock, and hand money
movements to Celery once the transaction commits.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import transaction

from core.exceptions import NotFoundError, PermissionDeniedError
from core.notifications import get_notifier
from core.services import BaseService
from lifecycle import ActorRole, PaymentStatus
from payments.services import PaymentService
from payments.tasks import capture_payment, release_payment

if TYPE_CHECKING:
    from typing import Any

    from authentication.models import User
    from orders.models import Booking, Order

# Payments that may still hold or owe client money
RELEASABLE_PAYMENT_STATUSES = (
    PaymentStatus.CREATED,
    PaymentStatus.REQUIRES_ACTION,
    PaymentStatus.AUTHORIZED,
    PaymentStatus.CAPTURED,
)


class JobOrchestrator(BaseService):
    """
    Base for services that drive an Order or Booking on behalf of a user.

    Subclasses set `model` and `not_found_code`.
    """

    model: type[Order] | type[Booking]
    not_found_code = "NOT_FOUND"

    @classmethod
    def get(cls, job_id) -> Order | Booking:
        try:
            return cls.model.objects.select_related("pro_profile").get(id=job_id)
        except cls.model.DoesNotExist:
            raise NotFoundError(
                f"{cls.model.__name__} {job_id} not found",
                error_code=cls.not_found_code,
                details={"id": str(job_id)},
            ) from None

    @classmethod
    def _lock(cls, job_id) -> Order | Booking:
        """Re-read the job with a row lock. Call inside cls.atomic()."""
        try:
            return cls.model.objects.select_for_update().select_related("pro_profile").get(id=job_id)
        except cls.model.DoesNotExist:
            raise NotFoundError(
                f"{cls.model.__name__} {job_id} not found",
                error_code=cls.not_found_code,
                details={"id": str(job_id)},
            ) from None

    @staticmethod
    def actor_role_for(job: Order | Booking, user: User) -> str:
        """
        The role `user` acts in for this job.

        Raises:
            PermissionDeniedError: The user is neither party nor an admin
        """
        if user.is_marketplace_admin:
            return ActorRole.ADMIN
        if user.actor_role == ActorRole.CLIENT and job.client_id == user.pk:
            return ActorRole.CLIENT
        if user.actor_role == ActorRole.PRO and job.pro_profile.user_id == user.pk:
            return ActorRole.PRO
        raise PermissionDeniedError(
            "You are not a party to this job",
            error_code="NOT_JOB_PARTY",
            details={"job_id": str(job.id)},
        )

    @staticmethod
    def require_role(role: str, allowed: tuple[str, ...], job: Order | Booking) -> None:
        if role not in allowed:
            raise PermissionDeniedError(
                f"A {role} cannot perform this action",
                error_code="ROLE_NOT_ALLOWED",
                details={"job_id": str(job.id), "actor_role": str(role)},
            )

    # =========================================================================
    # After-commit effects
    # =========================================================================

    @staticmethod
    def notify(user_id, event: str, payload: dict[str, Any]) -> None:
        transaction.on_commit(lambda: get_notifier().notify(user_id, event, payload))

    @staticmethod
    def capture_on_commit(job: Order | Booking, amount: int | None = None) -> None:
        """Queue capture of the job's authorized payment once the transaction commits."""
        payment = PaymentService.secured_payment_for(job)
        if payment is None or payment.status != PaymentStatus.AUTHORIZED:
            return
        payment_id = str(payment.id)
        transaction.on_commit(lambda: capture_payment.delay(payment_id, amount))

    @classmethod
    def release_on_commit(cls, job: Order | Booking, reason: str) -> int:
        """Queue release of every payment still holding client money. Returns the count."""
        payment_ids = [
            str(payment_id)
            for payment_id in PaymentService.payments_for(job)
            .filter(status__in=RELEASABLE_PAYMENT_STATUSES)
            .values_list("id", flat=True)
        ]
        for payment_id in payment_ids:
            transaction.on_commit(lambda pid=payment_id: release_payment.delay(pid, reason))
        return len(payment_ids)
