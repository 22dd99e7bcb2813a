"""
Pro payout profile maintenance.

Usage:
    from payments.services import PayoutProfileService

    profile = PayoutProfileService.update_for_pro(pro_profile, {"full_name": "Leo Pérez"})
    PayoutProfileService.verify(profile, admin_user)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.utils import timezone

from core.services import BaseService
from payments.models import ProPayoutProfile

if TYPE_CHECKING:
    from typing import Any

    from authentication.models import ProProfile, User


DESTINATION_FIELDS = (
    "full_name",
    "document_id",
    "bank_name",
    "bank_account_number",
    "provider_destination",
    "currency",
)


class PayoutProfileService(BaseService):
    """Reads, edits and verifies where a pro gets paid."""

    @classmethod
    def get_or_create_for_pro(cls, pro_profile: ProProfile) -> ProPayoutProfile:
        profile, _ = ProPayoutProfile.objects.get_or_create(
            pro_profile=pro_profile,
            defaults={"currency": pro_profile.currency},
        )
        return profile

    @classmethod
    def update_for_pro(cls, pro_profile: ProProfile, data: dict[str, Any]) -> ProPayoutProfile:
        """
        Apply the pro's edits. Changing any destination detail clears
        the admin verification, so an unverified account is never paid.
        """
        with cls.atomic():
            profile = cls.get_or_create_for_pro(pro_profile)
            profile = ProPayoutProfile.objects.select_for_update().get(id=profile.id)

            changed = [
                name
                for name in DESTINATION_FIELDS
                if name in data and data[name] != getattr(profile, name)
            ]
            if not changed:
                return profile

            for name in changed:
                setattr(profile, name, data[name])
            if profile.verified_at is not None:
                profile.verified_at = None
                profile.verified_by = None
            profile.save()

        cls.get_logger().info(
            "Payout profile updated",
            extra={"pro_profile_id": str(pro_profile.id), "changed_fields": changed},
        )
        return profile

    @classmethod
    def verify(cls, profile: ProPayoutProfile, admin: User) -> ProPayoutProfile:
        """Mark the destination as checked by an admin."""
        profile.verified_at = timezone.now()
        profile.verified_by = admin
        profile.save(update_fields=["verified_at", "verified_by", "updated_at"])

        cls.get_logger().info(
            "Payout profile verified",
            extra={"pro_profile_id": str(profile.pro_profile_id), "admin_id": str(admin.pk)},
        )
        return profile
