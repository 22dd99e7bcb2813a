"""
Protocol definitions for infrastructure collaborators.

Protocols define the contracts the core depends on without tying it to
a concrete implementation:

Available Protocols:
    Notifier: Outbound notification delivery (push, email, in-app)

Usage:
    from core.protocols import Notifier

    class PushNotifier:
        def notify(self, user_id, event, payload): ...

    notifier: Notifier = PushNotifier()

Note:
    - Protocols are primarily for type checking
    - @runtime_checkable allows isinstance() checks
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from typing import Any


@runtime_checkable
class Notifier(Protocol):
    """
    Notification delivery collaborator.

    The core decides *when* something is worth telling a user
    (order accepted, payout sent); delivery is someone else's problem.
    Implementations must not raise for delivery failures.
    """

    def notify(self, user_id: Any, event: str, payload: dict[str, Any]) -> None: ...
