"""
Payout service for aggregating earnings and sending them to pros.

This module provides the PayoutService class which handles the critical path
for money leaving the platform.

Creating a payout reserves earnings in one transaction:
1. select_for_update the pro's PAYABLE earnings
2. create the Payout with their summed net amount
3. conditionally flip them to RESERVED (guarded by status=PAYABLE) and
   compare the row count, so no earning can land in two payouts
4. write the PayoutItem rows

Sending follows a two-phase pattern:
1. Phase 1 (send): record a PayoutAttempt (outcome UNKNOWN), commit, and
   queue the send_payout Celery task
2. Phase 2 (deliver): call the provider OUTSIDE any transaction, once per
   task run; transient errors are retried by the task with exponential
   backoff and the same idempotency key
3. Phase 3: store the outcome under select_for_update

Outcomes:
    accepted  -> Payout SENT, earnings PAID
    rejected  -> Payout FAILED, earnings back to PAYABLE
    unknown   -> Payout FAILED ("provider_unavailable"), earnings stay
                 RESERVED, the attempt stays UNKNOWN so the next send
                 reuses its idempotency key. A later payout.settled or
                 payout.failed webhook still resolves it.

Usage:
    from payments.services import PayoutService

    for summary in PayoutService.list_payable_pros():
        if summary.payout_profile_complete:
            payout = PayoutService.create_for_pro(summary.pro_profile_id)
            PayoutService.send(payout.id)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from django.conf import settings
from django.db import transaction
from django.db.models import Count, F, Sum

from authentication.models import ProProfile
from core.exceptions import NotFoundError
from core.money import Money
from core.notifications import get_notifier
from core.services import BaseService
from lifecycle import ActorRole, EarningStatus, PayoutStatus, apply_transition, can_transition
from lifecycle.exceptions import IllegalTransition
from payments.exceptions import (
    IncompletePayoutProfile,
    NoPayableEarnings,
    PayoutRetryConflict,
    ProviderRejected,
    ProviderTimeout,
    ProviderUnavailable,
    StaleRecordError,
)
from payments.models import (
    Earning,
    Payout,
    PayoutAttempt,
    PayoutAttemptOutcome,
    PayoutItem,
    ProPayoutProfile,
)
from payments.providers import IdempotencyKeyGenerator, get_provider


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class PayableProSummary:
    """
    A pro with PAYABLE earnings, as listed for the admin payout screen.

    Attributes:
        total_net: Sum of PAYABLE net amounts, in minor units
        payout_profile_complete: False means create_for_pro will refuse
        missing_fields: What the payout profile still lacks
    """

    pro_profile_id: uuid.UUID | int
    display_name: str
    currency: str
    total_net: int
    earnings_count: int
    payout_profile_complete: bool
    missing_fields: list[str] = field(default_factory=list)


# =============================================================================
# Payout Service
# =============================================================================


class PayoutService(BaseService):
    """
    Service for building and sending payouts.

    Safety Guarantees:
        - An earning is RESERVED by at most one open payout (conditional update)
        - Provider calls never run inside a transaction
        - Every provider call carries a per-attempt idempotency key
        - A FAILED payout is only re-sent by an admin, against the same row
    """

    @classmethod
    def list_payable_pros(cls) -> list[PayableProSummary]:
        """Group PAYABLE earnings by pro and currency."""
        rows = (
            Earning.objects.filter(status=EarningStatus.PAYABLE)
            .values("pro_profile_id", "currency")
            .annotate(total_net=Sum("net_amount"), earnings_count=Count("id"))
            .order_by("pro_profile_id", "currency")
        )

        pro_ids = {row["pro_profile_id"] for row in rows}
        pros = ProProfile.objects.in_bulk(pro_ids)
        profiles = {
            profile.pro_profile_id: profile
            for profile in ProPayoutProfile.objects.filter(pro_profile_id__in=pro_ids)
        }

        summaries = []
        for row in rows:
            profile = profiles.get(row["pro_profile_id"])
            missing = profile.missing_fields() if profile else ["payout_profile"]
            summaries.append(
                PayableProSummary(
                    pro_profile_id=row["pro_profile_id"],
                    display_name=pros[row["pro_profile_id"]].display_name,
                    currency=row["currency"],
                    total_net=row["total_net"],
                    earnings_count=row["earnings_count"],
                    payout_profile_complete=not missing,
                    missing_fields=missing,
                )
            )
        return summaries

    @classmethod
    def create_for_pro(
        cls,
        pro_profile_id,
        provider: str | None = None,
        currency: str | None = None,
    ) -> Payout:
        """
        Reserve all of a pro's PAYABLE earnings into a new payout.

        Raises:
            IncompletePayoutProfile: Destination missing or not verified
            NoPayableEarnings: Nothing PAYABLE at selection time
            StaleRecordError: Earnings changed while being reserved
        """
        provider = provider or settings.DEFAULT_PAYOUT_PROVIDER
        profile = ProPayoutProfile.objects.filter(pro_profile_id=pro_profile_id).first()
        missing = profile.missing_fields() if profile else ["payout_profile"]
        if missing:
            raise IncompletePayoutProfile(
                "Pro payout profile is incomplete or unverified",
                details={"pro_profile_id": str(pro_profile_id), "missing_fields": missing},
            )
        currency = currency or profile.currency

        with cls.atomic():
            earnings = list(
                Earning.objects.select_for_update()
                .filter(
                    pro_profile_id=pro_profile_id,
                    status=EarningStatus.PAYABLE,
                    currency=currency,
                )
                .order_by("created_at")
            )
            if not earnings:
                raise NoPayableEarnings(
                    "Pro has no payable earnings",
                    details={"pro_profile_id": str(pro_profile_id), "currency": currency},
                )

            total = sum((earning.net for earning in earnings), Money.zero(currency))
            payout = Payout.objects.create(
                pro_profile_id=pro_profile_id,
                provider=provider,
                amount=total.amount,
                currency=currency,
            )

            earning_ids = [earning.id for earning in earnings]
            reserved = Earning.objects.filter(
                id__in=earning_ids,
                status=EarningStatus.PAYABLE,
                payout__isnull=True,
            ).update(status=EarningStatus.RESERVED, payout=payout, version=F("version") + 1)
            if reserved != len(earning_ids):
                raise StaleRecordError(
                    "Earnings changed while reserving them",
                    details={"expected": len(earning_ids), "updated": reserved},
                )

            PayoutItem.objects.bulk_create(
                [
                    PayoutItem(payout=payout, earning=earning, amount=earning.net_amount)
                    for earning in earnings
                ]
            )

        cls.get_logger().info(
            "Payout created",
            extra={
                "payout_id": str(payout.id),
                "pro_profile_id": str(pro_profile_id),
                "amount": payout.amount,
                "currency": currency,
                "earnings_count": len(earnings),
            },
        )
        return payout


    @classmethod
    def send(cls, payout_id, actor_role: str = ActorRole.ADMIN) -> Payout:
        """
        Queue a payout for sending through its provider.

        Records the send attempt, then hands the provider call to the
        send_payout task once that is committed. Safe to call again:
        SENT/SETTLED payouts are returned as-is, and a FAILED payout is
        re-sent (admin only) reusing the idempotency key of an attempt whose
        outcome was never learned.

        Raises:
            NotFoundError: Unknown payout
            IllegalTransition: FAILED payout re-sent by a non-admin
            PayoutRetryConflict: A reverted earning was claimed elsewhere
        """
        from payments.tasks import send_payout

        payout = cls._get_payout(payout_id)
        if payout.status in (PayoutStatus.SENT, PayoutStatus.SETTLED):
            return payout

        # Phase 1: claim earnings and record the attempt
        with cls.atomic():
            payout = Payout.objects.select_for_update().get(id=payout_id)
            if payout.status in (PayoutStatus.SENT, PayoutStatus.SETTLED):
                return payout
            resend = payout.status == PayoutStatus.FAILED
            if resend:
                cls._prepare_resend(payout, actor_role)
            attempt = cls._next_attempt(payout)
            transaction.on_commit(
                lambda: send_payout.delay(str(payout.id), actor_role, resend)
            )

        cls.get_logger().info(
            "Payout send queued",
            extra={
                "payout_id": str(payout.id),
                "attempt_number": attempt.attempt_number,
                "resend": resend,
            },
        )
        return Payout.objects.get(id=payout.id)

    @classmethod
    def deliver(cls, payout_id, actor_role: str = ActorRole.ADMIN, resend: bool = False) -> Payout:
        """
        Make one provider call for the payout's open attempt and store the outcome.

        Does nothing when there is no open attempt, when the payout is already
        SENT/SETTLED, or when it is FAILED and this is not an admin re-send.

        Raises:
            ProviderUnavailable, ProviderTimeout: Outcome unknown; the caller
                retries with the same idempotency key
        """
        payout = cls._get_payout(payout_id)
        attempt = cls._open_attempt(payout)
        if attempt is None or payout.status in (PayoutStatus.SENT, PayoutStatus.SETTLED):
            return payout
        if payout.status == PayoutStatus.FAILED and not resend:
            return payout

        profile = ProPayoutProfile.objects.get(pro_profile_id=payout.pro_profile_id)
        destination = profile.destination_for(payout.provider)
        log_context = {
            "payout_id": str(payout.id),
            "provider": payout.provider,
            "amount": payout.amount,
            "attempt_number": attempt.attempt_number,
            "idempotency_key": attempt.idempotency_key,
        }

        # Phase 2: provider call, outside any transaction
        try:
            result = get_provider(payout.provider).send(
                str(payout.id), destination, payout.total, attempt.idempotency_key
            )
        except ProviderRejected as e:
            return cls._record_rejected(payout.id, attempt, e, log_context)
        except (ProviderUnavailable, ProviderTimeout) as e:
            PayoutAttempt.objects.filter(id=attempt.id).update(error=str(e))
            cls.get_logger().warning(
                f"Transient provider error sending payout: {type(e).__name__}",
                extra={**log_context, "error": str(e)},
            )
            raise

        # Phase 3: store the outcome
        return cls._record_accepted(payout.id, attempt, result, actor_role, log_context)

    @classmethod
    def record_unknown_outcome(cls, payout_id, error: Exception | None = None) -> Payout:
        """
        Give up on learning a send's outcome after the last retry.

        The payout is surfaced as FAILED for an admin; its earnings stay
        RESERVED until the provider's webhook or an admin re-send resolves it.
        """
        payout = cls._get_payout(payout_id)
        attempt = cls._open_attempt(payout)
        if attempt is None or payout.status in (PayoutStatus.SENT, PayoutStatus.SETTLED):
            return payout
        log_context = {
            "payout_id": str(payout.id),
            "provider": payout.provider,
            "attempt_number": attempt.attempt_number,
            "idempotency_key": attempt.idempotency_key,
        }
        return cls._record_unknown(payout.id, attempt, error, log_context)

    @classmethod
    def mark_settled(cls, payout: Payout, provider_reference: str = "") -> Payout:
        """
        Provider confirmed the money arrived (payout.settled).

        A payout whose send outcome was never learned (still CREATED, or
        surfaced as FAILED with its earnings RESERVED) is accepted first,
        since the provider evidently took the transfer.
        """
        with cls.atomic():
            payout = Payout.objects.select_for_update().get(id=payout.id)
            if payout.status in (PayoutStatus.CREATED, PayoutStatus.FAILED):
                attempt = cls._open_attempt(payout)
                if attempt is not None:
                    cls._accept(
                        payout,
                        attempt,
                        provider_reference or payout.provider_reference,
                        ActorRole.SYSTEM,
                    )
            apply_transition(payout, PayoutStatus.SETTLED, ActorRole.SYSTEM)
            payout.save()

        cls.get_logger().info("Payout settled", extra={"payout_id": str(payout.id)})
        return payout

    @classmethod
    def mark_failed_after_send(cls, payout: Payout, reason: str = "") -> Payout:
        """
        Provider reported a payout as failed (payout.failed).

        A SENT payout is failed and the earnings it paid become PAYABLE again.
        A payout whose send outcome was never learned has its open attempt
        rejected and its RESERVED earnings released the same way.
        """
        with cls.atomic():
            payout = Payout.objects.select_for_update().get(id=payout.id)
            attempt = None
            if payout.status in (PayoutStatus.CREATED, PayoutStatus.FAILED):
                attempt = cls._open_attempt(payout)

            if attempt is not None:
                attempt.outcome = PayoutAttemptOutcome.REJECTED
                attempt.error = reason
                attempt.save(update_fields=["outcome", "error", "updated_at"])
                cls._fail(payout, reason)
                cls._release_earnings(payout, from_status=EarningStatus.RESERVED)
            else:
                apply_transition(payout, PayoutStatus.FAILED, ActorRole.SYSTEM, {"reason": reason})
                payout.save()
                cls._release_earnings(payout, from_status=EarningStatus.PAID)

        cls.get_logger().warning(
            "Payout failed after it was sent",
            extra={"payout_id": str(payout.id), "reason": reason},
        )
        cls._notify_pro(payout, "payout.failed")
        return payout

    # =========================================================================
    # Internals
    # =========================================================================

    @classmethod
    def _get_payout(cls, payout_id) -> Payout:
        try:
            return Payout.objects.get(id=payout_id)
        except Payout.DoesNotExist:
            raise NotFoundError(
                f"Payout {payout_id} not found",
                error_code="PAYOUT_NOT_FOUND",
                details={"payout_id": str(payout_id)},
            ) from None

    @staticmethod
    def _open_attempt(payout: Payout) -> PayoutAttempt | None:
        """The latest attempt if its outcome is still UNKNOWN."""
        last = payout.attempts.order_by("-attempt_number").first()
        if last is not None and last.outcome == PayoutAttemptOutcome.UNKNOWN:
            return last
        return None

    @classmethod
    def _prepare_resend(cls, payout: Payout, actor_role: str) -> None:
        """
        Re-claim the earnings of a FAILED payout before sending it again.

        Only an admin re-sends. Earnings still RESERVED for it (unknown
        outcome) are kept; earnings released to PAYABLE are re-reserved with
        a guarded update.
        """
        if actor_role != ActorRole.ADMIN or not can_transition(
            payout.lifecycle_entity, payout.status, PayoutStatus.SENT, actor_role
        ):
            raise IllegalTransition(payout.lifecycle_entity, payout.status, PayoutStatus.SENT, actor_role)

        item_earning_ids = list(payout.items.values_list("earning_id", flat=True))
        held = Earning.objects.filter(
            id__in=item_earning_ids,
            status=EarningStatus.RESERVED,
            payout=payout,
        ).count()
        to_reclaim = len(item_earning_ids) - held
        if to_reclaim == 0:
            return

        reclaimed = Earning.objects.filter(
            id__in=item_earning_ids,
            status=EarningStatus.PAYABLE,
            payout__isnull=True,
        ).update(status=EarningStatus.RESERVED, payout=payout, version=F("version") + 1)
        if reclaimed != to_reclaim:
            raise PayoutRetryConflict(
                "Some earnings of this payout were claimed by another payout",
                details={
                    "payout_id": str(payout.id),
                    "expected": to_reclaim,
                    "reclaimed": reclaimed,
                },
            )

    @classmethod
    def _next_attempt(cls, payout: Payout) -> PayoutAttempt:
        """Reuse the last attempt if its outcome is unknown, else start a new one."""
        attempt = cls._open_attempt(payout)
        if attempt is None:
            last = payout.attempts.order_by("-attempt_number").first()
            number = (last.attempt_number + 1) if last else 1
            attempt = PayoutAttempt.objects.create(
                payout=payout,
                attempt_number=number,
                idempotency_key=IdempotencyKeyGenerator.generate("payout", payout.id, number),
            )

        Payout.objects.filter(id=payout.id).update(attempt_count=attempt.attempt_number)
        return attempt

    @classmethod
    def _accept(cls, payout: Payout, attempt: PayoutAttempt, provider_reference: str, actor_role: str) -> None:
        """Mark the attempt accepted, the payout SENT and its reserved earnings PAID."""
        attempt.outcome = PayoutAttemptOutcome.ACCEPTED
        attempt.provider_reference = provider_reference
        attempt.error = ""
        attempt.save(update_fields=["outcome", "provider_reference", "error", "updated_at"])

        if payout.status != PayoutStatus.SENT:
            apply_transition(
                payout,
                PayoutStatus.SENT,
                actor_role,
                {"provider_reference": provider_reference},
            )
            payout.save()

        for earning in Earning.objects.select_for_update().filter(
            payout=payout, status=EarningStatus.RESERVED
        ):
            apply_transition(earning, EarningStatus.PAID, ActorRole.SYSTEM)
            earning.save()

    @classmethod
    def _record_accepted(cls, payout_id, attempt, result, actor_role, log_context) -> Payout:
        with cls.atomic():
            payout = Payout.objects.select_for_update().get(id=payout_id)
            if payout.status in (PayoutStatus.SENT, PayoutStatus.SETTLED):
                # A webhook confirmed it while the provider call was in flight
                return payout
            cls._accept(payout, attempt, result.provider_reference, actor_role)

        cls.get_logger().info(
            "Payout sent",
            extra={**log_context, "provider_reference": result.provider_reference},
        )
        cls._notify_pro(payout, "payout.sent")
        return payout

    @classmethod
    def _record_rejected(cls, payout_id, attempt, error, log_context) -> Payout:
        with cls.atomic():
            payout = Payout.objects.select_for_update().get(id=payout_id)
            attempt.outcome = PayoutAttemptOutcome.REJECTED
            attempt.error = str(error)
            attempt.save(update_fields=["outcome", "error", "updated_at"])

            cls._fail(payout, str(error.message))
            cls._release_earnings(payout, from_status=EarningStatus.RESERVED)

        cls.get_logger().error(
            "Payout rejected by provider",
            extra={**log_context, "error": str(error)},
        )
        cls._notify_pro(payout, "payout.failed")
        return payout

    @classmethod
    def _record_unknown(cls, payout_id, attempt, error, log_context) -> Payout:
        with cls.atomic():
            payout = Payout.objects.select_for_update().get(id=payout_id)
            attempt.error = str(error) if error else ""
            attempt.save(update_fields=["error", "updated_at"])
            cls._fail(payout, "provider_unavailable")

        cls.get_logger().error(
            "Payout outcome unknown after retries, earnings stay reserved",
            extra={**log_context, "error": str(error)},
        )
        return payout

    @classmethod
    def _fail(cls, payout: Payout, reason: str) -> None:
        if payout.status == PayoutStatus.FAILED:
            Payout.objects.filter(id=payout.id).update(failure_reason=reason)
            payout.failure_reason = reason
            return
        apply_transition(payout, PayoutStatus.FAILED, ActorRole.SYSTEM, {"reason": reason})
        payout.save()

    @classmethod
    def _release_earnings(cls, payout: Payout, from_status: str) -> None:
        for earning in Earning.objects.select_for_update().filter(payout=payout, status=from_status):
            apply_transition(earning, EarningStatus.PAYABLE, ActorRole.SYSTEM)
            earning.save()

    @classmethod
    def _notify_pro(cls, payout: Payout, event: str) -> None:
        user_id = ProProfile.objects.values_list("user_id", flat=True).get(id=payout.pro_profile_id)
        payload = {
            "payout_id": str(payout.id),
            "amount": payout.amount,
            "currency": payout.currency,
            "status": payout.status,
        }
        transaction.on_commit(lambda: get_notifier().notify(user_id, event, payload))
