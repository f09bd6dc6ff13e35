"""Tests for how a captured amount splits between the platform and the payee."""

import pytest

from settlement.config import FeeSchedule
from settlement.errors import NegativePayoutError
from settlement.money import format_cents, round_half_up
from settlement.payout.fees import platform_fee_pct, settle_delivery_fee, settle_item, sms_cost_cents
from settlement.subscription.plan import SubscriptionPlan


class TestRounding:
    @pytest.mark.parametrize(
        "value, expected",
        [(0.5, 1), (1.5, 2), (2.5, 3), (2.4999, 2), (-0.5, -1), (-2.5, -3), (0, 0)],
    )
    def test_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_format_cents(self):
        assert format_cents(1234) == "€12.34"
        assert format_cents(5) == "€0.05"


class TestFeeSchedule:
    def test_sms_cost_includes_markup(self):
        assert FeeSchedule(sms_base_cost_cents=5, sms_markup_pct=20).sms_cost_cents == 6

    def test_sms_markup_rounds_half_up(self):
        # 25 % of 2 cents is 0.5
        assert FeeSchedule(sms_base_cost_cents=2, sms_markup_pct=25).sms_cost_cents == 3

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SETTLEMENT_DEFAULT_FEE_PCT", "9.5")
        monkeypatch.setenv("SETTLEMENT_COURIER_FEE_BPS", "1500")
        schedule = FeeSchedule.from_env()
        assert schedule.default_fee_pct == 9.5
        assert schedule.courier_fee_bps == 1500
        assert schedule.currency == "eur"


class TestPlatformFeePct:
    def test_default_without_plan(self):
        assert platform_fee_pct(FeeSchedule(default_fee_pct=12.0)) == 12.0

    def test_plan_rate_wins(self):
        plan = SubscriptionPlan(name="Pro", fee_bps=800)
        assert platform_fee_pct(FeeSchedule(default_fee_pct=12.0), plan) == 8.0


class TestSmsCost:
    def test_charged_when_opted_in_with_phone(self):
        assert sms_cost_cents(FeeSchedule(), opted_in=True, has_phone=True, already_charged=False) == 6

    @pytest.mark.parametrize(
        "opted_in, has_phone, already_charged",
        [(False, True, False), (True, False, False), (True, True, True)],
    )
    def test_not_charged(self, opted_in, has_phone, already_charged):
        assert sms_cost_cents(FeeSchedule(), opted_in, has_phone, already_charged) == 0


class TestSettleItem:
    def test_default_fee(self):
        result = settle_item(500, 2, 12.0)
        assert result.item_total_cents == 1000
        assert result.platform_fee_cents == 120
        assert result.sms_cost_cents == 0
        assert result.payout_cents == 880
        assert result.platform_fee_bps == 1200

    def test_parts_add_up_to_item_total(self):
        result = settle_item(1999, 3, 8.5, sms_cost=6)
        assert result.platform_fee_cents + result.payout_cents + result.sms_cost_cents == result.item_total_cents

    def test_fee_rounds_half_up(self):
        result = settle_item(5, 1, 10.0)
        assert result.platform_fee_cents == 1
        assert result.payout_cents == 4

    def test_sms_cost_is_deducted(self):
        result = settle_item(1000, 1, 12.0, sms_cost=6)
        assert result.payout_cents == 874

    def test_negative_payout_is_refused(self):
        with pytest.raises(NegativePayoutError) as exc:
            settle_item(5, 1, 10.0, sms_cost=6)
        assert exc.value.item_total_cents == 5
        assert exc.value.platform_fee_cents == 1
        assert exc.value.sms_cost_cents == 6


class TestSettleDeliveryFee:
    def test_flat_courier_rate(self):
        leg = settle_delivery_fee(300, FeeSchedule(courier_fee_bps=1200))
        assert leg.platform_fee_cents == 36
        assert leg.payout_cents == 264
        assert leg.platform_fee_bps == 1200

    def test_quoted_platform_cut_wins(self):
        leg = settle_delivery_fee(300, FeeSchedule(), platform_cut_cents=50)
        assert leg.platform_fee_cents == 50
        assert leg.payout_cents == 250

    def test_cut_larger_than_fee_is_refused(self):
        with pytest.raises(NegativePayoutError):
            settle_delivery_fee(300, FeeSchedule(), platform_cut_cents=400)
