"""
Role-based permission classes for the marketplace API.

This module provides DRF permission classes keyed on User.role:
- IsClient: Client accounts (admins pass too)
- IsPro: Pro accounts with a ProProfile (admins pass too)
- IsMarketplaceAdmin: Admin accounts and superusers

Design Decisions:
    - These only gate who may call an endpoint; whether the caller may
      move a particular order is decided by the orchestrators, which
      check ownership and then the lifecycle role tables
    - Admins pass every role check so support can act on anyone's behalf
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from lifecycle import ActorRole

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


def _actor_role(request: Request) -> str | None:
    user = request.user
    if not user or not user.is_authenticated:
        return None
    return user.actor_role


class IsClient(permissions.BasePermission):
    """Allows access to clients and admins."""

    message = "Only clients can perform this action."

    def has_permission(self, request: Request, view: APIView) -> bool:
        return _actor_role(request) in (ActorRole.CLIENT, ActorRole.ADMIN)


class IsPro(permissions.BasePermission):
    """Allows access to pros that have a profile, and to admins."""

    message = "Only professionals can perform this action."

    def has_permission(self, request: Request, view: APIView) -> bool:
        role = _actor_role(request)
        if role == ActorRole.ADMIN:
            return True
        return role == ActorRole.PRO and hasattr(request.user, "pro_profile")


class IsMarketplaceAdmin(permissions.BasePermission):
    """Allows access to marketplace admins only."""

    message = "Only marketplace admins can perform this action."

    def has_permission(self, request: Request, view: APIView) -> bool:
        return _actor_role(request) == ActorRole.ADMIN
