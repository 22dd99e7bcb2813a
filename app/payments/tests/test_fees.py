"""
Tests for platform fee schedules.
"""

import pytest
from django.test import override_settings

from core.exceptions import ValidationError
from core.money import Money
from payments.fees import FeeSchedule, SettingsFeeSchedule

OVERRIDES = {
    "plumbing": {"kind": "flat", "amount": 500},
    "plumbing/emergency": {"kind": "percent", "rate": "15"},
    "cleaning": {"kind": "percent", "rate": "12.5"},
}


class TestSettingsFeeSchedule:
    def test_default_percent(self):
        schedule = SettingsFeeSchedule(default_percent="10", overrides={})

        assert schedule.fee_for(Money(10000, "UYU"), "gardening") == Money(1000, "UYU")

    def test_percent_rounds_half_up(self):
        schedule = SettingsFeeSchedule(default_percent="10", overrides={})

        assert schedule.fee_for(Money(1005, "UYU"), "gardening") == Money(101, "UYU")

    def test_fractional_percent(self):
        schedule = SettingsFeeSchedule(default_percent="10", overrides=OVERRIDES)

        assert schedule.fee_for(Money(10000, "UYU"), "cleaning") == Money(1250, "UYU")

    def test_flat_category_fee(self):
        schedule = SettingsFeeSchedule(default_percent="10", overrides=OVERRIDES)

        assert schedule.fee_for(Money(10000, "UYU"), "plumbing") == Money(500, "UYU")

    def test_subcategory_wins_over_category(self):
        schedule = SettingsFeeSchedule(default_percent="10", overrides=OVERRIDES)

        assert schedule.fee_for(Money(10000, "UYU"), "plumbing", "emergency") == Money(1500, "UYU")

    def test_unknown_subcategory_falls_back_to_category(self):
        schedule = SettingsFeeSchedule(default_percent="10", overrides=OVERRIDES)

        assert schedule.fee_for(Money(10000, "UYU"), "plumbing", "regular") == Money(500, "UYU")

    def test_flat_fee_never_exceeds_gross(self):
        schedule = SettingsFeeSchedule(default_percent="10", overrides=OVERRIDES)

        assert schedule.fee_for(Money(300, "UYU"), "plumbing") == Money(300, "UYU")

    def test_unknown_rule_kind(self):
        schedule = SettingsFeeSchedule(overrides={"plumbing": {"kind": "tiered"}})

        with pytest.raises(ValidationError) as exc_info:
            schedule.fee_for(Money(10000, "UYU"), "plumbing")

        assert exc_info.value.error_code == "INVALID_FEE_RULE"

    @override_settings(PLATFORM_FEE_PERCENT="20", PLATFORM_FEE_OVERRIDES={})
    def test_reads_settings(self):
        assert SettingsFeeSchedule().fee_for(Money(10000, "UYU"), "any") == Money(2000, "UYU")

    def test_is_a_fee_schedule(self):
        assert isinstance(SettingsFeeSchedule(), FeeSchedule)
