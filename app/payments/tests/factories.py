"""
Factory Boy factories for payment test data.

Usage:
    from payments.tests.factories import (
        EarningFactory,
        PaymentFactory,
        PayoutFactory,
        ProPayoutProfileFactory,
    )

    # Payment for a new order, waiting on the client
    payment = PaymentFactory()

    # Authorized payment for a specific order
    payment = PaymentFactory(
        order=order,
        status=PaymentStatus.AUTHORIZED,
        amount_authorized=order.estimated_amount,
    )

    # Earning ready for a payout
    earning = EarningFactory(pro_profile=pro_profile)
"""

import uuid

import factory
from django.utils import timezone

from authentication.tests.factories import ProProfileFactory
from lifecycle import EarningStatus, OrderStatus, PaymentStatus, PayoutStatus
from orders.tests.factories import OrderFactory
from payments.models import Earning, Payment, PaymentEvent, Payout, ProPayoutProfile
from payments.providers import ProviderName


class PaymentFactory(factory.django.DjangoModelFactory):
    """
    Factory for Payment model.

    Default creates a REQUIRES_ACTION Mercado Pago payment for a fresh
    ACCEPTED order, estimated at the order's estimate.
    """

    class Meta:
        model = Payment
        skip_postgeneration_save = True

    order = factory.SubFactory(OrderFactory, status=OrderStatus.ACCEPTED)
    booking = None
    provider = ProviderName.MERCADO_PAGO
    provider_reference = factory.Sequence(lambda n: f"pref_{n}_{uuid.uuid4().hex[:8]}")
    idempotency_key = factory.LazyFunction(lambda: f"checkout:{uuid.uuid4()}:1")
    status = PaymentStatus.REQUIRES_ACTION
    amount_estimated = factory.LazyAttribute(
        lambda o: o.order.estimated_amount if o.order else o.booking.estimated_amount
    )
    currency = "UYU"


class PaymentEventFactory(factory.django.DjangoModelFactory):
    """Factory for PaymentEvent ledger rows (insert-only)."""

    class Meta:
        model = PaymentEvent
        skip_postgeneration_save = True

    provider = ProviderName.MERCADO_PAGO
    provider_reference = factory.Sequence(lambda n: f"ref_{n}")
    event_type = "payment.authorized"
    payload_hash = factory.LazyFunction(lambda: uuid.uuid4().hex * 2)
    fingerprint = factory.LazyFunction(lambda: uuid.uuid4().hex * 2)
    payload = factory.LazyFunction(dict)


class EarningFactory(factory.django.DjangoModelFactory):
    """
    Factory for Earning model.

    Default creates a PAYABLE earning of 10000 gross, 1000 fee, 9000 net
    for a PAID order of the same pro.
    """

    class Meta:
        model = Earning
        skip_postgeneration_save = True

    pro_profile = factory.SubFactory(ProProfileFactory)
    order = factory.SubFactory(
        OrderFactory,
        pro_profile=factory.SelfAttribute("..pro_profile"),
        status=OrderStatus.PAID,
        total_amount=10000,
    )
    gross_amount = 10000
    platform_fee_amount = 1000
    net_amount = factory.LazyAttribute(lambda o: o.gross_amount - o.platform_fee_amount)
    currency = "UYU"
    status = EarningStatus.PAYABLE
    available_at = factory.LazyFunction(timezone.now)


class ProPayoutProfileFactory(factory.django.DjangoModelFactory):
    """
    Factory for ProPayoutProfile model.

    Default creates a complete, verified bank-transfer destination.
    Pass verified_at=None for an unverified profile.
    """

    class Meta:
        model = ProPayoutProfile
        skip_postgeneration_save = True

    pro_profile = factory.SubFactory(ProProfileFactory)
    full_name = factory.Sequence(lambda n: f"Pro Person {n}")
    document_id = factory.Sequence(lambda n: f"4.{n:03d}.123-4")
    bank_name = "BROU"
    bank_account_number = factory.Sequence(lambda n: f"001{n:09d}")
    currency = "UYU"
    verified_at = factory.LazyFunction(timezone.now)


class PayoutFactory(factory.django.DjangoModelFactory):
    """Factory for Payout model. Default creates a CREATED manual payout."""

    class Meta:
        model = Payout
        skip_postgeneration_save = True

    pro_profile = factory.SubFactory(ProProfileFactory)
    provider = ProviderName.MANUAL
    status = PayoutStatus.CREATED
    amount = 9000
    currency = "UYU"
