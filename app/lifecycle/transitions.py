"""
Transition tables and the transition contract.

Every edge of every lifecycle graph is listed here together with the
actor roles allowed to take it. The functions in this module are pure:
the same (entity type, from, to, role) always gives the same answer,
and nothing here looks at the clock. Time-based moves (auto-cancel,
auto-approve) are made by Celery beat tasks that call apply_transition
with ActorRole.SYSTEM like any other caller.

Usage:
    from lifecycle import ActorRole, OrderStatus, apply_transition, can_transition

    can_transition("order", OrderStatus.DRAFT, OrderStatus.PAID, ActorRole.CLIENT)
    # False

    apply_transition(order, OrderStatus.ACCEPTED, ActorRole.PRO)
    order.save()

Entities passed to apply_transition expose:
    lifecycle_entity: LifecycleEntity value
    status: current status (a django-fsm FSMField)
    TRANSITION_METHODS: mapping of target status to the name of the
        @transition method that performs the move
"""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from django_fsm import TransitionNotAllowed

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

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Any

logger = logging.getLogger(__name__)

Edge = tuple[str, str]
RoleTable = dict[Edge, frozenset[str]]

CLIENT = ActorRole.CLIENT
PRO = ActorRole.PRO
ADMIN = ActorRole.ADMIN
SYSTEM = ActorRole.SYSTEM


def _edges(sources: Iterable[str], target: str, roles: Iterable[str]) -> RoleTable:
    role_set = frozenset(str(role) for role in roles)
    return {(str(source), str(target)): role_set for source in sources}


# =============================================================================
# Order
# =============================================================================

ORDER_MAIN_LINE: tuple[str, ...] = (
    OrderStatus.DRAFT,
    OrderStatus.PENDING_PRO_CONFIRMATION,
    OrderStatus.ACCEPTED,
    OrderStatus.CONFIRMED,
    OrderStatus.IN_PROGRESS,
    OrderStatus.AWAITING_CLIENT_APPROVAL,
    OrderStatus.COMPLETED,
    OrderStatus.PAID,
)

# Before the job starts either party may walk away
_ORDER_EARLY = (
    OrderStatus.DRAFT,
    OrderStatus.PENDING_PRO_CONFIRMATION,
    OrderStatus.ACCEPTED,
    OrderStatus.CONFIRMED,
)
# Timeouts only cancel orders nobody has paid for yet
_ORDER_SYSTEM_CANCELABLE = (
    OrderStatus.DRAFT,
    OrderStatus.PENDING_PRO_CONFIRMATION,
    OrderStatus.ACCEPTED,
)

ORDER_TRANSITIONS: RoleTable = {
    **_edges([OrderStatus.DRAFT], OrderStatus.PENDING_PRO_CONFIRMATION, [CLIENT, ADMIN]),
    **_edges([OrderStatus.PENDING_PRO_CONFIRMATION], OrderStatus.ACCEPTED, [PRO, ADMIN]),
    **_edges([OrderStatus.ACCEPTED], OrderStatus.CONFIRMED, [CLIENT, ADMIN, SYSTEM]),
    **_edges([OrderStatus.CONFIRMED], OrderStatus.IN_PROGRESS, [PRO, ADMIN]),
    **_edges([OrderStatus.IN_PROGRESS], OrderStatus.AWAITING_CLIENT_APPROVAL, [PRO, ADMIN]),
    **_edges([OrderStatus.AWAITING_CLIENT_APPROVAL], OrderStatus.COMPLETED, [CLIENT, ADMIN, SYSTEM]),
    **_edges(
        [OrderStatus.AWAITING_CLIENT_APPROVAL, OrderStatus.COMPLETED],
        OrderStatus.DISPUTED,
        [CLIENT, ADMIN],
    ),
    **_edges([OrderStatus.DISPUTED], OrderStatus.COMPLETED, [ADMIN]),
    **_edges([OrderStatus.COMPLETED], OrderStatus.PAID, [SYSTEM, ADMIN]),
}


def _order_cancel_edges() -> RoleTable:
    table: RoleTable = {}
    for state in OrderStatus:
        if state in (OrderStatus.PAID, OrderStatus.CANCELED):
            continue
        roles = {ADMIN}
        if state in _ORDER_EARLY:
            roles |= {CLIENT, PRO}
        if state in _ORDER_SYSTEM_CANCELABLE:
            roles.add(SYSTEM)
        table.update(_edges([state], OrderStatus.CANCELED, roles))
    return table


ORDER_TRANSITIONS.update(_order_cancel_edges())


# =============================================================================
# Booking
# =============================================================================

BOOKING_MAIN_LINE: tuple[str, ...] = (
    BookingStatus.PENDING_PAYMENT,
    BookingStatus.PENDING,
    BookingStatus.ACCEPTED,
    BookingStatus.ON_MY_WAY,
    BookingStatus.ARRIVED,
    BookingStatus.COMPLETED,
)

_BOOKING_OPEN = BOOKING_MAIN_LINE[:-1]

BOOKING_TRANSITIONS: RoleTable = {
    **_edges([BookingStatus.PENDING_PAYMENT], BookingStatus.PENDING, [SYSTEM, ADMIN]),
    **_edges([BookingStatus.PENDING], BookingStatus.ACCEPTED, [PRO, ADMIN]),
    **_edges([BookingStatus.ACCEPTED], BookingStatus.ON_MY_WAY, [PRO]),
    **_edges([BookingStatus.ON_MY_WAY], BookingStatus.ARRIVED, [PRO]),
    **_edges([BookingStatus.ARRIVED], BookingStatus.COMPLETED, [PRO, ADMIN]),
    **_edges(_BOOKING_OPEN, BookingStatus.REJECTED, [PRO, ADMIN]),
    **_edges(_BOOKING_OPEN, BookingStatus.CANCELLED, [CLIENT, PRO, ADMIN, SYSTEM]),
}


# =============================================================================
# Payment
# =============================================================================

PAYMENT_MAIN_LINE: tuple[str, ...] = (
    PaymentStatus.CREATED,
    PaymentStatus.REQUIRES_ACTION,
    PaymentStatus.AUTHORIZED,
    PaymentStatus.CAPTURED,
)

# Payments are only moved by the provider (webhooks, sync) or an admin
PAYMENT_TRANSITIONS: RoleTable = {
    **_edges([PaymentStatus.CREATED], PaymentStatus.REQUIRES_ACTION, [SYSTEM, ADMIN]),
    **_edges([PaymentStatus.REQUIRES_ACTION], PaymentStatus.AUTHORIZED, [SYSTEM, ADMIN]),
    **_edges([PaymentStatus.AUTHORIZED], PaymentStatus.CAPTURED, [SYSTEM, ADMIN]),
    **_edges(
        [PaymentStatus.CREATED, PaymentStatus.REQUIRES_ACTION, PaymentStatus.AUTHORIZED],
        PaymentStatus.FAILED,
        [SYSTEM, ADMIN],
    ),
    **_edges(
        [PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED],
        PaymentStatus.REFUNDED,
        [SYSTEM, ADMIN],
    ),
    **_edges(
        [PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED],
        PaymentStatus.CANCELLED,
        [SYSTEM, ADMIN],
    ),
}


# =============================================================================
# Payout
# =============================================================================

PAYOUT_MAIN_LINE: tuple[str, ...] = (
    PayoutStatus.CREATED,
    PayoutStatus.SENT,
    PayoutStatus.SETTLED,
)

PAYOUT_TRANSITIONS: RoleTable = {
    **_edges([PayoutStatus.CREATED], PayoutStatus.SENT, [SYSTEM, ADMIN]),
    **_edges([PayoutStatus.SENT], PayoutStatus.SETTLED, [SYSTEM, ADMIN]),
    **_edges([PayoutStatus.CREATED, PayoutStatus.SENT], PayoutStatus.FAILED, [SYSTEM, ADMIN]),
    # ADMIN re-sends a failed payout; SYSTEM only when the provider confirms a
    # send whose outcome was unknown. Failed payouts are never re-sent automatically.
    **_edges([PayoutStatus.FAILED], PayoutStatus.SENT, [SYSTEM, ADMIN]),
}


# =============================================================================
# Earning
# =============================================================================

EARNING_MAIN_LINE: tuple[str, ...] = (
    EarningStatus.PENDING,
    EarningStatus.PAYABLE,
    EarningStatus.RESERVED,
    EarningStatus.PAID,
)

EARNING_TRANSITIONS: RoleTable = {
    **_edges([EarningStatus.PENDING], EarningStatus.PAYABLE, [SYSTEM, ADMIN]),
    **_edges([EarningStatus.PAYABLE], EarningStatus.RESERVED, [SYSTEM, ADMIN]),
    **_edges([EarningStatus.RESERVED], EarningStatus.PAID, [SYSTEM, ADMIN]),
    **_edges([EarningStatus.RESERVED], EarningStatus.PAYABLE, [SYSTEM, ADMIN]),
    **_edges([EarningStatus.PAID], EarningStatus.PAYABLE, [SYSTEM, ADMIN]),
    **_edges(
        [EarningStatus.PENDING, EarningStatus.PAYABLE],
        EarningStatus.REVERSED,
        [SYSTEM, ADMIN],
    ),
}


# =============================================================================
# Registry
# =============================================================================

TRANSITION_TABLES: dict[str, RoleTable] = {
    str(LifecycleEntity.ORDER): ORDER_TRANSITIONS,
    str(LifecycleEntity.BOOKING): BOOKING_TRANSITIONS,
    str(LifecycleEntity.PAYMENT): PAYMENT_TRANSITIONS,
    str(LifecycleEntity.PAYOUT): PAYOUT_TRANSITIONS,
    str(LifecycleEntity.EARNING): EARNING_TRANSITIONS,
}

MAIN_LINES: dict[str, tuple[str, ...]] = {
    str(LifecycleEntity.ORDER): ORDER_MAIN_LINE,
    str(LifecycleEntity.BOOKING): BOOKING_MAIN_LINE,
    str(LifecycleEntity.PAYMENT): PAYMENT_MAIN_LINE,
    str(LifecycleEntity.PAYOUT): PAYOUT_MAIN_LINE,
    str(LifecycleEntity.EARNING): EARNING_MAIN_LINE,
}

_STATUS_ENUMS = {
    str(LifecycleEntity.ORDER): OrderStatus,
    str(LifecycleEntity.BOOKING): BookingStatus,
    str(LifecycleEntity.PAYMENT): PaymentStatus,
    str(LifecycleEntity.PAYOUT): PayoutStatus,
    str(LifecycleEntity.EARNING): EarningStatus,
}


def _table(entity_type: str) -> RoleTable:
    try:
        return TRANSITION_TABLES[str(entity_type)]
    except KeyError:
        raise ValueError(f"Unknown lifecycle entity: {entity_type!r}") from None


def edges(entity_type: str) -> set[Edge]:
    """All (from, to) pairs of an entity's graph, regardless of role."""
    return set(_table(entity_type))


def can_transition(entity_type: str, from_state: str, to_state: str, actor_role: str) -> bool:
    """Whether `actor_role` may move an entity of `entity_type` from one status to another."""
    roles = _table(entity_type).get((str(from_state), str(to_state)))
    return roles is not None and str(actor_role) in roles


def allowed_targets(entity_type: str, from_state: str, actor_role: str) -> list[str]:
    """Statuses `actor_role` may move the entity to from `from_state`."""
    return [
        target
        for (source, target), roles in _table(entity_type).items()
        if source == str(from_state) and str(actor_role) in roles
    ]


def is_terminal(entity_type: str, state: str) -> bool:
    """A status with no outgoing edge for any role."""
    if str(state) not in _STATUS_ENUMS[str(entity_type)].values:
        raise ValueError(f"Unknown {entity_type} status: {state!r}")
    return not any(source == str(state) for source, _ in _table(entity_type))


def forward_path(
    entity_type: str,
    from_state: str,
    to_state: str,
    actor_role: str = ActorRole.SYSTEM,
) -> list[str] | None:
    """
    Shortest chain of statuses leading from `from_state` to `to_state`.

    Intermediate steps are restricted to the entity's main line, so a
    payment reported CAPTURED while still REQUIRES_ACTION catches up via
    AUTHORIZED, but never via a cancellation or failure status.

    Returns:
        Statuses to apply in order (excluding `from_state`), an empty list
        when already there, or None when `to_state` is unreachable.
    """
    table = _table(entity_type)
    start, goal = str(from_state), str(to_state)
    if start == goal:
        return []

    main_line = {str(state) for state in MAIN_LINES[str(entity_type)]}
    previous: dict[str, str] = {}
    queue = deque([start])
    seen = {start}
    while queue:
        current = queue.popleft()
        for (source, target), roles in table.items():
            if source != current or str(actor_role) not in roles or target in seen:
                continue
            previous[target] = current
            if target == goal:
                path = [target]
                while path[-1] in previous and previous[path[-1]] != start:
                    path.append(previous[path[-1]])
                return list(reversed(path))
            seen.add(target)
            if target in main_line:
                queue.append(target)
    return None


def apply_transition(
    entity: Any,
    to_state: str,
    actor_role: str,
    context: dict[str, Any] | None = None,
) -> Any:
    """
    Move `entity` to `to_state` on behalf of `actor_role`.

    Validates the edge with can_transition, then runs the entity's
    django-fsm @transition method for the target with `context` as
    keyword arguments (so the method can stamp timestamps and reasons).
    The entity is not saved.

    Raises:
        IllegalTransition: The edge is not in the table for this role,
            or the fsm method refused it.
    """
    entity_type = entity.lifecycle_entity
    from_state = str(entity.status)
    to_state = str(to_state)

    if not can_transition(entity_type, from_state, to_state, actor_role):
        raise IllegalTransition(entity_type, from_state, to_state, actor_role)

    method_names = {str(target): name for target, name in entity.TRANSITION_METHODS.items()}
    method = getattr(entity, method_names[to_state])
    try:
        method(**(context or {}))
    except TransitionNotAllowed as exc:
        raise IllegalTransition(entity_type, from_state, to_state, actor_role) from exc

    logger.debug(
        f"{entity_type} {entity.pk}: {from_state} -> {to_state}",
        extra={
            "entity_type": str(entity_type),
            "entity_id": str(entity.pk),
            "from_state": from_state,
            "to_state": to_state,
            "actor_role": str(actor_role),
        },
    )
    return entity
