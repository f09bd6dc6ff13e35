"""Settlement policies: fee schedule, affiliate shares, dispatch defaults.

Policies are plain frozen dataclasses handed to the calculator and the
commission engine by the caller. ``Policies.from_env()`` builds the runtime
bundle from ``SETTLEMENT_*`` environment variables; tests construct the
dataclasses directly.
"""

import os
from dataclasses import dataclass, field

from settlement.money import round_half_up


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


@dataclass(frozen=True)
class FeeSchedule:
    """Platform fees charged on captured payments."""

    default_fee_pct: float = 12.0
    sms_base_cost_cents: int = 5
    sms_markup_pct: int = 20
    courier_fee_bps: int = 1200
    currency: str = "eur"

    @property
    def sms_cost_cents(self) -> int:
        """Provider cost plus the platform markup, charged to the seller."""
        return self.sms_base_cost_cents + round_half_up(self.sms_base_cost_cents * self.sms_markup_pct / 100)

    @classmethod
    def from_env(cls) -> "FeeSchedule":
        return cls(
            default_fee_pct=_env_float("SETTLEMENT_DEFAULT_FEE_PCT", 12.0),
            sms_base_cost_cents=_env_int("SETTLEMENT_SMS_BASE_COST_CENTS", 5),
            sms_markup_pct=_env_int("SETTLEMENT_SMS_MARKUP_PCT", 20),
            courier_fee_bps=_env_int("SETTLEMENT_COURIER_FEE_BPS", 1200),
            currency=os.environ.get("SETTLEMENT_CURRENCY", "eur"),
        )


@dataclass(frozen=True)
class AffiliatePolicy:
    """Commission shares, expressed as fractions of the platform fee or plan price."""

    user_share: float = 0.25
    sub_user_share: float = 0.20
    parent_user_share: float = 0.05
    business_share: float = 0.50
    sub_business_share: float = 0.40
    parent_business_share: float = 0.10
    # Promo code discounts come out of the affiliate's own invoice share
    max_discount_pct: float = 80.0
    sub_max_discount_pct: float = 75.0
    min_commission_share: float = 0.20
    sub_min_commission_share: float = 0.20
    attribution_window_days: int = 365
    pending_days: int = 14

    @classmethod
    def from_env(cls) -> "AffiliatePolicy":
        return cls(
            user_share=_env_float("SETTLEMENT_AFFILIATE_USER_SHARE", 0.25),
            sub_user_share=_env_float("SETTLEMENT_AFFILIATE_SUB_USER_SHARE", 0.20),
            parent_user_share=_env_float("SETTLEMENT_AFFILIATE_PARENT_USER_SHARE", 0.05),
            business_share=_env_float("SETTLEMENT_AFFILIATE_BUSINESS_SHARE", 0.50),
            sub_business_share=_env_float("SETTLEMENT_AFFILIATE_SUB_BUSINESS_SHARE", 0.40),
            parent_business_share=_env_float("SETTLEMENT_AFFILIATE_PARENT_BUSINESS_SHARE", 0.10),
            max_discount_pct=_env_float("SETTLEMENT_AFFILIATE_MAX_DISCOUNT_PCT", 80.0),
            sub_max_discount_pct=_env_float("SETTLEMENT_AFFILIATE_SUB_MAX_DISCOUNT_PCT", 75.0),
            min_commission_share=_env_float("SETTLEMENT_AFFILIATE_MIN_COMMISSION_SHARE", 0.20),
            sub_min_commission_share=_env_float("SETTLEMENT_AFFILIATE_SUB_MIN_COMMISSION_SHARE", 0.20),
            attribution_window_days=_env_int("SETTLEMENT_ATTRIBUTION_WINDOW_DAYS", 365),
            pending_days=_env_int("SETTLEMENT_LEDGER_PENDING_DAYS", 14),
        )


@dataclass(frozen=True)
class DispatchPolicy:
    """Defaults for courier delivery orders."""

    default_delivery_fee_cents: int = 200
    default_estimated_minutes: int = 60

    @classmethod
    def from_env(cls) -> "DispatchPolicy":
        return cls(
            default_delivery_fee_cents=_env_int("SETTLEMENT_DEFAULT_DELIVERY_FEE_CENTS", 200),
            default_estimated_minutes=_env_int("SETTLEMENT_DEFAULT_ESTIMATED_MINUTES", 60),
        )


@dataclass(frozen=True)
class PlanPriceMap:
    """Processor price ids for each subscription plan key."""

    prices: dict[str, str] = field(default_factory=dict)

    def plan_for_price(self, price_id: str | None) -> str | None:
        if not price_id:
            return None
        return next((plan for plan, price in self.prices.items() if price == price_id), None)

    @classmethod
    def from_env(cls) -> "PlanPriceMap":
        prices = {}
        for plan in ("BASIC", "PRO", "PREMIUM"):
            price_id = os.environ.get(f"STRIPE_PRICE_{plan}")
            if price_id:
                prices[plan] = price_id
        return cls(prices=prices)


@dataclass(frozen=True)
class Policies:
    fees: FeeSchedule = field(default_factory=FeeSchedule)
    affiliate: AffiliatePolicy = field(default_factory=AffiliatePolicy)
    dispatch: DispatchPolicy = field(default_factory=DispatchPolicy)
    plan_prices: PlanPriceMap = field(default_factory=PlanPriceMap)

    @classmethod
    def from_env(cls) -> "Policies":
        return cls(
            fees=FeeSchedule.from_env(),
            affiliate=AffiliatePolicy.from_env(),
            dispatch=DispatchPolicy.from_env(),
            plan_prices=PlanPriceMap.from_env(),
        )
