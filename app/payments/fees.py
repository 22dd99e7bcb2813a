"""
Platform fee schedules.

A FeeSchedule decides how much of an order's gross amount the platform
keeps. The default SettingsFeeSchedule charges PLATFORM_FEE_PERCENT,
with per-category and per-subcategory overrides from
PLATFORM_FEE_OVERRIDES:

    {
        "plumbing": {"kind": "flat", "amount": 500},
        "plumbing/emergency": {"kind": "percent", "rate": "15"},
        "cleaning": {"kind": "percent", "rate": "12.5"}
    }

A "category/subcategory" key wins over its "category" key. Percentages
round half-up to the minor unit; a flat fee never exceeds the gross.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from django.conf import settings

from core.exceptions import ValidationError
from core.money import Money

if TYPE_CHECKING:
    from typing import Any


@runtime_checkable
class FeeSchedule(Protocol):
    """Computes the platform fee for a paid order."""

    def fee_for(self, gross: Money, category_id: str, subcategory_id: str = "") -> Money: ...


class SettingsFeeSchedule:
    """Fee schedule configured through Django settings."""

    def __init__(
        self,
        default_percent: str | None = None,
        overrides: dict[str, dict[str, Any]] | None = None,
    ):
        self.default_percent = str(
            default_percent if default_percent is not None else settings.PLATFORM_FEE_PERCENT
        )
        self.overrides = overrides if overrides is not None else settings.PLATFORM_FEE_OVERRIDES

    def rule_for(self, category_id: str, subcategory_id: str = "") -> dict[str, Any]:
        if subcategory_id:
            rule = self.overrides.get(f"{category_id}/{subcategory_id}")
            if rule:
                return rule
        return self.overrides.get(category_id) or {
            "kind": "percent",
            "rate": self.default_percent,
        }

    def fee_for(self, gross: Money, category_id: str, subcategory_id: str = "") -> Money:
        rule = self.rule_for(category_id, subcategory_id)
        kind = rule.get("kind")

        if kind == "flat":
            fee = Money(int(rule["amount"]), gross.currency)
            return fee if fee <= gross else gross
        if kind == "percent":
            return gross.percentage(rule["rate"])

        raise ValidationError(
            f"Unknown fee rule kind: {kind!r}",
            error_code="INVALID_FEE_RULE",
            details={"category_id": category_id, "subcategory_id": subcategory_id},
        )
