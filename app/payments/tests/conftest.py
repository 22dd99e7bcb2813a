"""
Pytest fixtures for payment tests.

Orders and payments are created directly in the state a test needs;
client_user, pro_profile, admin_user and fake_provider come from the
root conftest.

Usage:
    def test_capture(authorized_payment, fake_provider):
        PaymentService.capture(authorized_payment.id)
"""

from decimal import Decimal

import pytest

from lifecycle import OrderStatus, PaymentStatus
from orders.tests.factories import OrderFactory
from payments.tests.factories import (
    EarningFactory,
    PaymentFactory,
    ProPayoutProfileFactory,
)


# =============================================================================
# Order Fixtures
# =============================================================================


@pytest.fixture
def accepted_order(db, client_user, pro_profile):
    """Hourly order waiting for payment: 2h at 5000 = 10000 UYU."""
    return OrderFactory(
        client=client_user,
        pro_profile=pro_profile,
        status=OrderStatus.ACCEPTED,
        estimated_hours=Decimal("2"),
    )


@pytest.fixture
def completed_order(db, client_user, pro_profile):
    """Order approved by the client for 2h, payment not captured yet."""
    return OrderFactory(
        client=client_user,
        pro_profile=pro_profile,
        status=OrderStatus.COMPLETED,
        estimated_hours=Decimal("2"),
        final_hours=Decimal("2"),
        total_amount=10000,
    )


# =============================================================================
# Payment Fixtures
# =============================================================================


@pytest.fixture
def pending_payment(db, accepted_order):
    """Checkout started, client has not paid yet."""
    return PaymentFactory(
        order=accepted_order,
        provider_reference="pref_pending",
        status=PaymentStatus.REQUIRES_ACTION,
    )


@pytest.fixture
def authorized_payment(db, accepted_order):
    """Payment authorized for the full estimate."""
    return PaymentFactory(
        order=accepted_order,
        provider_reference="pay_authorized",
        status=PaymentStatus.AUTHORIZED,
        amount_authorized=10000,
    )


@pytest.fixture
def completed_order_payment(db, completed_order):
    """Authorized payment of a COMPLETED order, ready to capture."""
    return PaymentFactory(
        order=completed_order,
        provider_reference="pay_completed",
        status=PaymentStatus.AUTHORIZED,
        amount_authorized=10000,
    )


# =============================================================================
# Earning & Payout Fixtures
# =============================================================================


@pytest.fixture
def payout_profile(db, pro_profile):
    """Complete, verified bank destination for pro_profile."""
    return ProPayoutProfileFactory(pro_profile=pro_profile)


@pytest.fixture
def payable_earnings(db, pro_profile):
    """Two PAYABLE earnings of 9000 net each."""
    return [EarningFactory(pro_profile=pro_profile) for _ in range(2)]
