"""
Tests for OrderOrchestrator.

Payment capture and release are queued on commit; the `queued` fixture
replaces those tasks so tests can assert what would have been sent.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from django.utils import timezone

from authentication.tests.factories import ProProfileFactory, UserFactory
from core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from lifecycle import ActorRole, EarningStatus, IllegalTransition, OrderStatus, PaymentStatus
from orders.models import Order, PricingMode
from orders.services import CreateOrderParams, DisputeOutcome, OrderOrchestrator
from payments.models import Earning
from payments.tests.factories import EarningFactory


def reload(order) -> Order:
    return Order.objects.get(id=order.id)


# =============================================================================
# Creation
# =============================================================================


@pytest.mark.django_db
class TestCreateOrder:
    def test_snapshots_pro_rate(self, client_user, pro_profile):
        order = OrderOrchestrator.create_order(
            client_user,
            CreateOrderParams(
                pro_profile_id=pro_profile.id,
                category_id="plumbing",
                estimated_hours=Decimal("2"),
            ),
        )

        pro_profile.hourly_rate = 9000
        pro_profile.save()

        order = reload(order)
        assert order.status == OrderStatus.DRAFT
        assert order.hourly_rate_snapshot == 5000
        assert order.estimated_amount == 10000
        assert order.currency == "UYU"

    def test_fixed_order_needs_no_hours(self, client_user, pro_profile):
        order = OrderOrchestrator.create_order(
            client_user,
            CreateOrderParams(
                pro_profile_id=pro_profile.id,
                category_id="painting",
                pricing_mode=PricingMode.FIXED,
            ),
        )

        assert order.estimated_amount is None

    def test_only_clients_create(self, pro_user, pro_profile):
        with pytest.raises(ValidationError) as exc_info:
            OrderOrchestrator.create_order(
                pro_user,
                CreateOrderParams(pro_profile_id=pro_profile.id, category_id="plumbing", estimated_hours=Decimal("1")),
            )

        assert exc_info.value.error_code == "CLIENT_REQUIRED"

    def test_inactive_pro_is_not_found(self, client_user):
        pro = ProProfileFactory(is_active=False)

        with pytest.raises(NotFoundError) as exc_info:
            OrderOrchestrator.create_order(
                client_user,
                CreateOrderParams(pro_profile_id=pro.id, category_id="plumbing", estimated_hours=Decimal("1")),
            )

        assert exc_info.value.error_code == "PRO_NOT_FOUND"

    def test_hourly_order_needs_hours(self, client_user, pro_profile):
        with pytest.raises(ValidationError) as exc_info:
            OrderOrchestrator.create_order(
                client_user,
                CreateOrderParams(pro_profile_id=pro_profile.id, category_id="plumbing"),
            )

        assert exc_info.value.error_code == "ESTIMATED_HOURS_REQUIRED"

    def test_schedule_window_must_be_ordered(self, client_user, pro_profile):
        now = timezone.now()

        with pytest.raises(ValidationError) as exc_info:
            OrderOrchestrator.create_order(
                client_user,
                CreateOrderParams(
                    pro_profile_id=pro_profile.id,
                    category_id="plumbing",
                    estimated_hours=Decimal("1"),
                    scheduled_window_start=now,
                    scheduled_window_end=now.replace(year=now.year - 1),
                ),
            )

        assert exc_info.value.error_code == "INVALID_SCHEDULE_WINDOW"


# =============================================================================
# Booking the pro
# =============================================================================


@pytest.mark.django_db
class TestSubmitAndAccept:
    def test_client_submits(self, make_order, client_user):
        order = OrderOrchestrator.submit(make_order().id, client_user)

        assert order.status == OrderStatus.PENDING_PRO_CONFIRMATION
        assert reload(order).submitted_at is not None

    def test_stranger_is_refused(self, make_order):
        with pytest.raises(PermissionDeniedError) as exc_info:
            OrderOrchestrator.submit(make_order().id, UserFactory())

        assert exc_info.value.error_code == "NOT_JOB_PARTY"

    def test_pro_cannot_submit(self, make_order, pro_user):
        with pytest.raises(IllegalTransition):
            OrderOrchestrator.submit(make_order().id, pro_user)

    def test_unknown_order(self, client_user):
        with pytest.raises(NotFoundError) as exc_info:
            OrderOrchestrator.submit(uuid.uuid4(), client_user)

        assert exc_info.value.error_code == "ORDER_NOT_FOUND"

    def test_pro_accepts_hourly_order(self, make_order, pro_user):
        order = make_order(OrderStatus.PENDING_PRO_CONFIRMATION)

        order = OrderOrchestrator.accept(order.id, pro_user)

        assert reload(order).status == OrderStatus.ACCEPTED

    def test_hourly_order_takes_no_quote(self, make_order, pro_user):
        order = make_order(OrderStatus.PENDING_PRO_CONFIRMATION)

        with pytest.raises(ValidationError) as exc_info:
            OrderOrchestrator.accept(order.id, pro_user, quoted_amount=9000)

        assert exc_info.value.error_code == "QUOTE_NOT_ALLOWED"
        assert reload(order).status == OrderStatus.PENDING_PRO_CONFIRMATION

    def test_fixed_order_needs_quote(self, make_order, pro_user):
        order = make_order(OrderStatus.PENDING_PRO_CONFIRMATION, pricing_mode=PricingMode.FIXED)

        with pytest.raises(ValidationError) as exc_info:
            OrderOrchestrator.accept(order.id, pro_user)

        assert exc_info.value.error_code == "QUOTE_REQUIRED"

    def test_fixed_order_stores_quote(self, make_order, pro_user):
        order = make_order(OrderStatus.PENDING_PRO_CONFIRMATION, pricing_mode=PricingMode.FIXED)

        OrderOrchestrator.accept(order.id, pro_user, quoted_amount=8000)

        order = reload(order)
        assert order.quoted_amount == 8000
        assert order.estimated_amount == 8000

    def test_client_cannot_accept(self, make_order, client_user):
        order = make_order(OrderStatus.PENDING_PRO_CONFIRMATION)

        with pytest.raises(IllegalTransition):
            OrderOrchestrator.accept(order.id, client_user)


@pytest.mark.django_db
class TestReject:
    def test_pro_rejection_cancels(self, make_order, pro_user, queued, django_capture_on_commit_callbacks):
        order = make_order(OrderStatus.PENDING_PRO_CONFIRMATION)

        with django_capture_on_commit_callbacks(execute=True):
            OrderOrchestrator.reject(order.id, pro_user)

        order = reload(order)
        assert order.status == OrderStatus.CANCELED
        assert order.cancel_reason == "rejected_by_pro"
        assert order.canceled_by_role == ActorRole.PRO
        queued.release.delay.assert_not_called()

    def test_client_cannot_reject(self, make_order, client_user):
        order = make_order(OrderStatus.PENDING_PRO_CONFIRMATION)

        with pytest.raises(PermissionDeniedError) as exc_info:
            OrderOrchestrator.reject(order.id, client_user)

        assert exc_info.value.error_code == "ROLE_NOT_ALLOWED"

    def test_only_pending_orders_are_rejected(self, make_order, pro_user):
        order = make_order(OrderStatus.ACCEPTED)

        with pytest.raises(ConflictError) as exc_info:
            OrderOrchestrator.reject(order.id, pro_user)

        assert exc_info.value.error_code == "ORDER_NOT_PENDING"


@pytest.mark.django_db
class TestConfirm:
    def test_confirm_needs_secured_payment(self, make_order, client_user):
        order = make_order(OrderStatus.ACCEPTED)

        with pytest.raises(ConflictError) as exc_info:
            OrderOrchestrator.confirm(order.id, client_user)

        assert exc_info.value.error_code == "PAYMENT_NOT_SECURED"

    def test_confirm_with_authorized_payment(self, make_paid_order, client_user):
        order, _ = make_paid_order(OrderStatus.ACCEPTED)

        OrderOrchestrator.confirm(order.id, client_user)

        assert reload(order).status == OrderStatus.CONFIRMED


# =============================================================================
# Doing the job
# =============================================================================


@pytest.mark.django_db
class TestWork:
    def test_pro_starts(self, make_order, pro_user):
        order = OrderOrchestrator.start(make_order(OrderStatus.CONFIRMED).id, pro_user)

        assert reload(order).status == OrderStatus.IN_PROGRESS

    def test_client_cannot_start(self, make_order, client_user):
        with pytest.raises(IllegalTransition):
            OrderOrchestrator.start(make_order(OrderStatus.CONFIRMED).id, client_user)

    def test_arrival_is_a_marker(self, make_order, pro_user):
        order = make_order(OrderStatus.CONFIRMED)

        first = OrderOrchestrator.mark_arrived(order.id, pro_user)
        second = OrderOrchestrator.mark_arrived(order.id, pro_user)

        assert second.status == OrderStatus.CONFIRMED
        assert first.arrived_at is not None
        assert second.arrived_at == first.arrived_at

    def test_arrival_before_confirmation(self, make_order, pro_user):
        order = make_order(OrderStatus.ACCEPTED)

        with pytest.raises(ConflictError) as exc_info:
            OrderOrchestrator.mark_arrived(order.id, pro_user)

        assert exc_info.value.error_code == "ARRIVAL_NOT_ALLOWED"

    def test_client_cannot_mark_arrival(self, make_order, client_user):
        with pytest.raises(PermissionDeniedError):
            OrderOrchestrator.mark_arrived(make_order(OrderStatus.IN_PROGRESS).id, client_user)

    def test_hourly_completion_needs_hours(self, make_order, pro_user):
        order = make_order(OrderStatus.IN_PROGRESS)

        with pytest.raises(ValidationError) as exc_info:
            OrderOrchestrator.submit_completion(order.id, pro_user)

        assert exc_info.value.error_code == "FINAL_HOURS_REQUIRED"

    def test_completion_records_hours(self, make_order, pro_user):
        order = make_order(OrderStatus.IN_PROGRESS)

        OrderOrchestrator.submit_completion(order.id, pro_user, Decimal("3"))

        order = reload(order)
        assert order.status == OrderStatus.AWAITING_CLIENT_APPROVAL
        assert order.final_hours == Decimal("3")
        assert order.completion_submitted_at is not None


# =============================================================================
# Approval
# =============================================================================


@pytest.mark.django_db
class TestApprove:
    def test_approve_queues_capture_of_total(
        self, make_paid_order, client_user, queued, django_capture_on_commit_callbacks
    ):
        order, payment = make_paid_order(OrderStatus.AWAITING_CLIENT_APPROVAL, final_hours=Decimal("1.5"))

        with django_capture_on_commit_callbacks(execute=True):
            OrderOrchestrator.approve(order.id, client_user)

        order = reload(order)
        assert order.status == OrderStatus.COMPLETED
        assert order.total_amount == 7500
        queued.capture.delay.assert_called_once_with(str(payment.id), 7500)

    def test_upfront_capture_pays_immediately(
        self, make_paid_order, client_user, queued, django_capture_on_commit_callbacks
    ):
        order, _ = make_paid_order(
            OrderStatus.AWAITING_CLIENT_APPROVAL,
            payment_status=PaymentStatus.CAPTURED,
            pricing_mode=PricingMode.FIXED,
            estimated_hours=None,
            quoted_amount=10000,
        )

        with django_capture_on_commit_callbacks(execute=True):
            OrderOrchestrator.approve(order.id, client_user)

        earning = Earning.objects.get(order=order)
        assert reload(order).status == OrderStatus.PAID
        assert earning.net_amount == 9000
        queued.capture.delay.assert_not_called()

    def test_pro_cannot_approve(self, make_paid_order, pro_user):
        order, _ = make_paid_order(OrderStatus.AWAITING_CLIENT_APPROVAL, final_hours=Decimal("2"))

        with pytest.raises(IllegalTransition):
            OrderOrchestrator.approve(order.id, pro_user)

    def test_auto_approve(self, make_paid_order, queued, django_capture_on_commit_callbacks):
        order, payment = make_paid_order(OrderStatus.AWAITING_CLIENT_APPROVAL, final_hours=Decimal("2"))

        with django_capture_on_commit_callbacks(execute=True):
            approved = OrderOrchestrator.auto_approve(order.id)

        assert approved.status == OrderStatus.COMPLETED
        queued.capture.delay.assert_called_once_with(str(payment.id), 10000)

    def test_auto_approve_skips_moved_orders(self, make_order):
        order = make_order(OrderStatus.DISPUTED)

        assert OrderOrchestrator.auto_approve(order.id) is None
        assert reload(order).status == OrderStatus.DISPUTED


# =============================================================================
# Disputes & cancellation
# =============================================================================


@pytest.mark.django_db
class TestDisputes:
    def test_dispute_needs_reason(self, make_order, client_user):
        order = make_order(OrderStatus.AWAITING_CLIENT_APPROVAL)

        with pytest.raises(ValidationError) as exc_info:
            OrderOrchestrator.dispute(order.id, client_user, "   ")

        assert exc_info.value.error_code == "DISPUTE_REASON_REQUIRED"

    def test_client_disputes(self, make_order, client_user):
        order = make_order(OrderStatus.AWAITING_CLIENT_APPROVAL)

        OrderOrchestrator.dispute(order.id, client_user, " Leak is back ")

        order = reload(order)
        assert order.status == OrderStatus.DISPUTED
        assert order.dispute_reason == "Leak is back"

    def test_pro_cannot_dispute(self, make_order, pro_user):
        with pytest.raises(IllegalTransition):
            OrderOrchestrator.dispute(make_order(OrderStatus.AWAITING_CLIENT_APPROVAL).id, pro_user, "no")

    def test_resolve_requires_admin(self, make_order, client_user):
        order = make_order(OrderStatus.DISPUTED)

        with pytest.raises(PermissionDeniedError) as exc_info:
            OrderOrchestrator.resolve_dispute(order.id, client_user, DisputeOutcome.CANCEL)

        assert exc_info.value.error_code == "ROLE_NOT_ALLOWED"

    def test_resolve_rejects_unknown_outcome(self, make_order, admin_user):
        order = make_order(OrderStatus.DISPUTED)

        with pytest.raises(ValidationError) as exc_info:
            OrderOrchestrator.resolve_dispute(order.id, admin_user, "split")

        assert exc_info.value.error_code == "INVALID_DISPUTE_OUTCOME"

    def test_resolve_only_disputed_orders(self, make_order, admin_user):
        order = make_order(OrderStatus.COMPLETED)

        with pytest.raises(ConflictError) as exc_info:
            OrderOrchestrator.resolve_dispute(order.id, admin_user, DisputeOutcome.COMPLETE)

        assert exc_info.value.error_code == "ORDER_NOT_DISPUTED"

    def test_resolve_for_pro_captures(
        self, make_paid_order, admin_user, queued, django_capture_on_commit_callbacks
    ):
        order, payment = make_paid_order(OrderStatus.DISPUTED, final_hours=Decimal("2"))

        with django_capture_on_commit_callbacks(execute=True):
            OrderOrchestrator.resolve_dispute(order.id, admin_user, DisputeOutcome.COMPLETE)

        assert reload(order).status == OrderStatus.COMPLETED
        queued.capture.delay.assert_called_once_with(str(payment.id), 10000)

    def test_resolve_for_client_releases_and_reverses(
        self, make_paid_order, admin_user, pro_profile, queued, django_capture_on_commit_callbacks
    ):
        order, payment = make_paid_order(OrderStatus.DISPUTED, final_hours=Decimal("2"))
        earning = EarningFactory(order=order, pro_profile=pro_profile, status=EarningStatus.PENDING)

        with django_capture_on_commit_callbacks(execute=True):
            OrderOrchestrator.resolve_dispute(order.id, admin_user, DisputeOutcome.CANCEL)

        order = reload(order)
        assert order.status == OrderStatus.CANCELED
        assert order.cancel_reason == "dispute_resolved_for_client"
        assert Earning.objects.get(id=earning.id).status == EarningStatus.REVERSED
        queued.release.delay.assert_called_once_with(str(payment.id), "dispute_resolved_for_client")


@pytest.mark.django_db
class TestCancel:
    def test_cancel_releases_payment(self, make_paid_order, client_user, queued, django_capture_on_commit_callbacks):
        order, payment = make_paid_order(OrderStatus.CONFIRMED)

        with django_capture_on_commit_callbacks(execute=True):
            OrderOrchestrator.cancel(order.id, client_user, "changed plans")

        order = reload(order)
        assert order.status == OrderStatus.CANCELED
        assert order.canceled_by_role == ActorRole.CLIENT
        queued.release.delay.assert_called_once_with(str(payment.id), "changed plans")

    def test_release_waits_for_commit(self, make_paid_order, client_user, queued, django_capture_on_commit_callbacks):
        order, _ = make_paid_order(OrderStatus.CONFIRMED)

        with django_capture_on_commit_callbacks() as callbacks:
            OrderOrchestrator.cancel(order.id, client_user)

        queued.release.delay.assert_not_called()
        assert callbacks

    def test_client_cannot_cancel_started_job(self, make_order, client_user):
        with pytest.raises(IllegalTransition):
            OrderOrchestrator.cancel(make_order(OrderStatus.IN_PROGRESS).id, client_user)

    def test_admin_cancels_started_job(self, make_order, admin_user, queued):
        order = OrderOrchestrator.cancel(make_order(OrderStatus.IN_PROGRESS).id, admin_user)

        assert order.canceled_by_role == ActorRole.ADMIN

    def test_system_cancel_skips_confirmed_orders(self, make_order):
        order = make_order(OrderStatus.CONFIRMED)

        assert OrderOrchestrator.system_cancel(order.id, "pro_confirmation_timeout") is None
        assert reload(order).status == OrderStatus.CONFIRMED

    def test_system_cancel(self, make_order, queued):
        order = make_order(OrderStatus.PENDING_PRO_CONFIRMATION)

        canceled = OrderOrchestrator.system_cancel(order.id, "pro_confirmation_timeout")

        assert canceled.status == OrderStatus.CANCELED
        assert canceled.canceled_by_role == ActorRole.SYSTEM
