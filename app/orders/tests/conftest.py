"""
Pytest fixtures for order and booking tests.

client_user, pro_profile, pro_user, admin_user and fake_provider come
from the root conftest.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from lifecycle import BookingStatus, OrderStatus, PaymentStatus
from orders.tests.factories import BookingFactory, OrderFactory
from payments.tests.factories import PaymentFactory


@pytest.fixture
def queued(mocker):
    """
    Replace the payment tasks the orchestrators queue on commit.

    Usage:
        with django_capture_on_commit_callbacks(execute=True):
            OrderOrchestrator.approve(order.id, client_user)
        queued.capture.delay.assert_called_once_with(payment_id, 10000)
    """
    return SimpleNamespace(
        capture=mocker.patch("orders.services.base.capture_payment"),
        release=mocker.patch("orders.services.base.release_payment"),
    )


@pytest.fixture
def make_order(db, client_user, pro_profile):
    """Order between client_user and pro_profile in any status."""

    def make(status=OrderStatus.DRAFT, **kwargs):
        kwargs.setdefault("estimated_hours", Decimal("2"))
        return OrderFactory(client=client_user, pro_profile=pro_profile, status=status, **kwargs)

    return make


@pytest.fixture
def make_paid_order(make_order):
    """Order in `status` with an AUTHORIZED payment for its 10000 estimate."""

    def make(status, payment_status=PaymentStatus.AUTHORIZED, **kwargs):
        order = make_order(status, **kwargs)
        payment = PaymentFactory(
            order=order,
            status=payment_status,
            provider_reference=f"pay_{order.id.hex[:8]}",
            amount_authorized=10000,
            amount_captured=10000 if payment_status == PaymentStatus.CAPTURED else 0,
        )
        return order, payment

    return make


@pytest.fixture
def make_booking(db, client_user, pro_profile):
    def make(status=BookingStatus.PENDING_PAYMENT, **kwargs):
        return BookingFactory(client=client_user, pro_profile=pro_profile, status=status, **kwargs)

    return make
