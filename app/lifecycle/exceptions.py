"""
Exceptions raised by the lifecycle module.
"""

from __future__ import annotations

from core.exceptions import ConflictError


class IllegalTransition(ConflictError):
    """
    Raised when a status change is not an edge of the entity's graph,
    or the edge exists but the actor role may not take it.

    Recoverable: the caller should re-fetch the entity's current state.

    Attributes:
        entity_type: LifecycleEntity value
        from_state: Status the entity was in
        to_state: Status that was requested
        actor_role: ActorRole value of the requester
    """

    default_error_code: str = "ILLEGAL_TRANSITION"

    def __init__(self, entity_type: str, from_state: str, to_state: str, actor_role: str):
        self.entity_type = str(entity_type)
        self.from_state = str(from_state)
        self.to_state = str(to_state)
        self.actor_role = str(actor_role)
        super().__init__(
            f"Cannot move {self.entity_type} from {self.from_state} to "
            f"{self.to_state} as {self.actor_role}",
            details={
                "entity_type": self.entity_type,
                "from_state": self.from_state,
                "to_state": self.to_state,
                "actor_role": self.actor_role,
            },
        )
