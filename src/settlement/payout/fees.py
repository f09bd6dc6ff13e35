"""Settlement Calculator — how a captured amount splits between parties.

Pure functions over an explicit ``FeeSchedule``; nothing here touches the
repositories. For every settled line item::

    platform_fee_cents + payout_cents + sms_cost_cents == item_total_cents
"""

from dataclasses import dataclass

from settlement.config import FeeSchedule
from settlement.errors import NegativePayoutError
from settlement.money import round_half_up


@dataclass(frozen=True)
class ItemSettlement:
    item_total_cents: int
    platform_fee_pct: float
    platform_fee_cents: int
    sms_cost_cents: int
    payout_cents: int

    @property
    def platform_fee_bps(self) -> int:
        return round_half_up(self.platform_fee_pct * 100)


@dataclass(frozen=True)
class DeliverySettlement:
    delivery_fee_cents: int
    platform_fee_bps: int
    platform_fee_cents: int
    payout_cents: int


def platform_fee_pct(schedule: FeeSchedule, plan=None) -> float:
    """The seller's subscription fee when they have one, else the default rate."""
    if plan is not None:
        return plan.fee_pct
    return schedule.default_fee_pct


def sms_cost_cents(schedule: FeeSchedule, opted_in: bool, has_phone: bool, already_charged: bool) -> int:
    """SMS order updates are charged once per order and seller."""
    if opted_in and has_phone and not already_charged:
        return schedule.sms_cost_cents
    return 0


def settle_item(price_cents: int, quantity: int, fee_pct: float, sms_cost: int = 0) -> ItemSettlement:
    item_total = price_cents * quantity
    platform_fee = round_half_up(item_total * fee_pct / 100)
    payout = item_total - platform_fee - sms_cost
    if payout < 0:
        raise NegativePayoutError(item_total, platform_fee, sms_cost)

    return ItemSettlement(
        item_total_cents=item_total,
        platform_fee_pct=fee_pct,
        platform_fee_cents=platform_fee,
        sms_cost_cents=sms_cost,
        payout_cents=payout,
    )


def settle_delivery_fee(
    delivery_fee_cents: int,
    schedule: FeeSchedule,
    platform_cut_cents: int | None = None,
) -> DeliverySettlement:
    """Courier share of a delivery fee.

    The platform keeps the cut quoted at checkout when there is one, else a
    flat ``courier_fee_bps`` of the fee, independent of any seller tier.
    """
    if platform_cut_cents is not None:
        platform_fee = platform_cut_cents
    else:
        platform_fee = round_half_up(delivery_fee_cents * schedule.courier_fee_bps / 10000)

    payout = delivery_fee_cents - platform_fee
    if payout < 0:
        raise NegativePayoutError(delivery_fee_cents, platform_fee, 0)

    return DeliverySettlement(
        delivery_fee_cents=delivery_fee_cents,
        platform_fee_bps=schedule.courier_fee_bps,
        platform_fee_cents=platform_fee,
        payout_cents=payout,
    )
