"""
Pro payout destination details.

A pro can only be paid once their profile is complete and an admin has
verified it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

if TYPE_CHECKING:
    from typing import Any


class ProPayoutProfile(UUIDPrimaryKeyMixin, BaseModel):
    """
    Where a pro's payouts go.

    A destination is either a provider account (provider_destination,
    e.g. a Stripe connected account id) or a bank account
    (bank_name + bank_account_number) for manual transfers.
    """

    pro_profile = models.OneToOneField(
        "authentication.ProProfile",
        on_delete=models.CASCADE,
        related_name="payout_profile",
    )
    full_name = models.CharField(max_length=200, blank=True, default="")
    document_id = models.CharField(max_length=64, blank=True, default="")
    bank_name = models.CharField(max_length=120, blank=True, default="")
    bank_account_number = models.CharField(max_length=64, blank=True, default="")
    provider_destination = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Provider account id payouts are sent to",
    )
    currency = models.CharField(max_length=3, default="UYU")

    verified_at = models.DateTimeField(null=True, blank=True)
    verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="+",
        null=True,
        blank=True,
    )

    class Meta:
        verbose_name = "Pro payout profile"
        verbose_name_plural = "Pro payout profiles"

    def __str__(self) -> str:
        return f"ProPayoutProfile({self.pro_profile_id})"

    def missing_fields(self) -> list[str]:
        """Names of what still prevents this profile from being paid."""
        missing = []
        if not self.full_name:
            missing.append("full_name")
        if not self.document_id:
            missing.append("document_id")
        if not self.provider_destination and not (self.bank_name and self.bank_account_number):
            missing.append("destination")
        if self.verified_at is None:
            missing.append("verified_at")
        return missing

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()

    def destination_for(self, provider: str) -> dict[str, Any]:
        """Destination details handed to PaymentProvider.send()."""
        return {
            "provider": provider,
            "full_name": self.full_name,
            "document_id": self.document_id,
            "bank_name": self.bank_name,
            "bank_account_number": self.bank_account_number,
            "provider_destination": self.provider_destination,
            "currency": self.currency,
        }
