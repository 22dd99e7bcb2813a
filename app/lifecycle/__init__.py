"""
Lifecycle state machines for orders, bookings, payments, payouts and earnings.

A plain Python package (not a Django app): status enums, the role-gated
transition tables and the transition contract. Models in the orders and
payments apps attach django-fsm @transition methods for each edge;
apply_transition checks the table before calling them.

Usage:
    from lifecycle import ActorRole, OrderStatus, apply_transition

    apply_transition(order, OrderStatus.ACCEPTED, ActorRole.PRO)
    order.save()
"""

from lifecycle.exceptions import IllegalTransition
from lifecycle.states import (
    ActorRole,
    BookingStatus,
    EarningStatus,
    LifecycleEntity,
    OrderStatus,
    PaymentStatus,
    PayoutStatus,
)
from lifecycle.transitions import (
    allowed_targets,
    apply_transition,
    can_transition,
    edges,
    forward_path,
    is_terminal,
)

__all__ = [
    "ActorRole",
    "BookingStatus",
    "EarningStatus",
    "IllegalTransition",
    "LifecycleEntity",
    "OrderStatus",
    "PaymentStatus",
    "PayoutStatus",
    "allowed_targets",
    "apply_transition",
    "can_transition",
    "edges",
    "forward_path",
    "is_terminal",
]
