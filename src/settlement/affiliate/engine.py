"""Affiliate Commission Engine.

Order commissions are a share of the platform fee on each settled item;
invoice commissions are a share of a business subscription payment inside
its revenue-share window. Refunds and chargebacks write negative entries
against the invoice commissions they undo.

Every public function here logs and swallows its own failures: commissions
are reconciled by hand, never by failing a webhook.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog
from protean.utils.globals import current_domain

from settlement.affiliate.affiliate import Affiliate, Attribution, active_user_attribution, discount_share_for
from settlement.affiliate.business_subscription import business_subscription_for
from settlement.affiliate.commission import (
    CommissionEntry,
    CommissionEventType,
    CommissionStatus,
    commission_for,
)
from settlement.config import AffiliatePolicy
from settlement.money import round_half_up

logger = structlog.get_logger(__name__)

PARENT_SUFFIX = "_parent"


@dataclass(frozen=True)
class CommissionSplit:
    direct_cents: int
    parent_cents: int
    direct_pct: float
    parent_pct: float
    discount_cents: int = 0


def _pct(custom, default: float) -> float:
    return custom if custom is not None else default


def order_commission_split(
    fee_cents: int,
    buyer_attributed: bool,
    seller_attributed: bool,
    affiliate: Affiliate,
    policy: AffiliatePolicy,
) -> CommissionSplit:
    """Shares are per attributed side and add up when both sides are attributed."""
    sides = int(buyer_attributed) + int(seller_attributed)
    default_share = policy.sub_user_share if affiliate.is_sub_affiliate else policy.user_share
    direct_pct = _pct(affiliate.custom_user_commission_pct, default_share) * sides
    parent_pct = 0.0
    if affiliate.is_sub_affiliate:
        parent_pct = _pct(affiliate.custom_parent_user_commission_pct, policy.parent_user_share) * sides

    return CommissionSplit(
        direct_cents=round_half_up(fee_cents * direct_pct),
        parent_cents=round_half_up(fee_cents * parent_pct),
        direct_pct=direct_pct,
        parent_pct=parent_pct,
    )


def apply_discount(commission_cents: int, discount_share_pct: float, min_share: float) -> tuple[int, int]:
    """Give ``discount_share_pct`` of a commission away, keeping at least ``min_share`` of it.

    Returns ``(discount_cents, kept_cents)``.
    """
    pct = min(max(discount_share_pct, 0.0), 100.0)
    discount_cents = round_half_up(commission_cents * pct / 100)
    floor_cents = round_half_up(commission_cents * min_share)
    if commission_cents - discount_cents < floor_cents:
        discount_cents = commission_cents - floor_cents
    return discount_cents, commission_cents - discount_cents


def invoice_commission_split(
    amount_paid_cents: int,
    affiliate: Affiliate,
    policy: AffiliatePolicy,
    discount_share_pct: float = 0.0,
) -> CommissionSplit:
    """Business share of a subscription payment, less any promo code discount.

    The discount is funded by the direct affiliate alone and capped per tier;
    the parent tier is always a share of the full payment.
    """
    sub = affiliate.is_sub_affiliate
    default_share = policy.sub_business_share if sub else policy.business_share
    direct_pct = _pct(affiliate.custom_business_commission_pct, default_share)
    parent_pct = 0.0
    if sub:
        parent_pct = _pct(affiliate.custom_parent_business_commission_pct, policy.parent_business_share)

    max_discount_pct = policy.sub_max_discount_pct if sub else policy.max_discount_pct
    discount_cents, direct_cents = apply_discount(
        round_half_up(amount_paid_cents * direct_pct),
        min(discount_share_pct, max_discount_pct),
        policy.sub_min_commission_share if sub else policy.min_commission_share,
    )

    return CommissionSplit(
        direct_cents=direct_cents,
        parent_cents=round_half_up(amount_paid_cents * parent_pct),
        direct_pct=direct_pct,
        parent_pct=parent_pct,
        discount_cents=discount_cents,
    )


def _write_entries(event_id, event_type, affiliate, split, base_amount_cents, policy, currency, meta, **extra):
    now = datetime.now(UTC)
    available_at = now + timedelta(days=policy.pending_days)
    repo = current_domain.repository_for(CommissionEntry)

    entries = []
    if split.direct_cents > 0:
        entries.append(
            CommissionEntry(
                event_id=event_id,
                event_type=event_type,
                affiliate_id=affiliate.id,
                amount_cents=split.direct_cents,
                base_amount_cents=base_amount_cents,
                currency=currency,
                available_at=available_at,
                meta=json.dumps({**meta, "commission_pct": split.direct_pct, "tier": "SUB" if affiliate.is_sub_affiliate else "DIRECT"}),
                **extra,
            )
        )
    if affiliate.is_sub_affiliate and split.parent_cents > 0:
        entries.append(
            CommissionEntry(
                event_id=f"{event_id}{PARENT_SUFFIX}",
                event_type=event_type,
                affiliate_id=affiliate.parent_affiliate_id,
                amount_cents=split.parent_cents,
                base_amount_cents=base_amount_cents,
                currency=currency,
                available_at=available_at,
                meta=json.dumps({**meta, "commission_pct": split.parent_pct, "tier": "PARENT", "sub_affiliate_id": str(affiliate.id)}),
                **extra,
            )
        )

    for entry in entries:
        repo.add(entry)
    return entries


def award_order_commission(
    order_id,
    product_id,
    platform_fee_cents: int,
    buyer_id,
    seller_id,
    policy: AffiliatePolicy,
    currency: str = "eur",
) -> list[CommissionEntry]:
    """Credit the referring affiliate for one settled order item."""
    event_id = f"{order_id}_{product_id}"
    try:
        if platform_fee_cents <= 0:
            return []
        if commission_for(event_id) is not None:
            logger.info("Order commission already recorded", event_id=event_id)
            return []

        now = datetime.now(UTC)
        buyer_attribution = active_user_attribution(buyer_id, now)
        seller_attribution = active_user_attribution(seller_id, now)
        if buyer_attribution is None and seller_attribution is None:
            return []

        attribution = buyer_attribution or seller_attribution
        affiliate = current_domain.repository_for(Affiliate).get(attribution.affiliate_id)
        split = order_commission_split(
            platform_fee_cents,
            buyer_attributed=buyer_attribution is not None,
            seller_attributed=seller_attribution is not None,
            affiliate=affiliate,
            policy=policy,
        )
        entries = _write_entries(
            event_id,
            CommissionEventType.ORDER_PAID.value,
            affiliate,
            split,
            base_amount_cents=platform_fee_cents,
            policy=policy,
            currency=currency,
            meta={
                "order_id": str(order_id),
                "product_id": str(product_id),
                "buyer_id": str(buyer_id),
                "seller_id": str(seller_id),
                "buyer_attributed": buyer_attribution is not None,
                "seller_attributed": seller_attribution is not None,
            },
        )
        logger.info(
            "Order commission recorded",
            event_id=event_id,
            affiliate_id=str(affiliate.id),
            direct_cents=split.direct_cents,
            parent_cents=split.parent_cents,
        )
        return entries
    except Exception as e:
        logger.error("Order commission failed", event_id=event_id, error=str(e))
        return []


def award_invoice_commission(
    invoice_id: str,
    processor_subscription_id: str,
    amount_paid_cents: int,
    policy: AffiliatePolicy,
    currency: str = "eur",
) -> list[CommissionEntry]:
    """Credit the affiliate who brought in a business subscription."""
    try:
        subscription = business_subscription_for(processor_subscription_id)
        if subscription is None:
            logger.warning("Business subscription not found", subscription_id=processor_subscription_id)
            return []

        if not subscription.revenue_share_open(datetime.now(UTC)):
            logger.info("Revenue share window closed", subscription_id=processor_subscription_id)
            return []

        if commission_for(invoice_id) is not None:
            logger.info("Invoice commission already recorded", invoice_id=invoice_id)
            return []

        if not subscription.attribution_id:
            logger.info("Business subscription has no attribution", subscription_id=processor_subscription_id)
            return []

        attribution = current_domain.repository_for(Attribution).get(subscription.attribution_id)
        affiliate = current_domain.repository_for(Affiliate).get(attribution.affiliate_id)
        promo_code_id = subscription.promo_code_id or attribution.promo_code_id
        split = invoice_commission_split(amount_paid_cents, affiliate, policy, discount_share_for(promo_code_id))
        entries = _write_entries(
            invoice_id,
            CommissionEventType.INVOICE_PAID.value,
            affiliate,
            split,
            base_amount_cents=amount_paid_cents,
            policy=policy,
            currency=currency,
            meta={
                "invoice_id": invoice_id,
                "subscription_id": processor_subscription_id,
                "affiliate_commission_cents": split.direct_cents + split.discount_cents,
                "discount_cents": split.discount_cents,
                "promo_code_id": str(promo_code_id) if promo_code_id else None,
            },
            business_subscription_id=subscription.id,
        )
        logger.info(
            "Invoice commission recorded",
            invoice_id=invoice_id,
            affiliate_id=str(affiliate.id),
            direct_cents=split.direct_cents,
            parent_cents=split.parent_cents,
            discount_cents=split.discount_cents,
        )
        return entries
    except Exception as e:
        logger.error("Invoice commission failed", invoice_id=invoice_id, error=str(e))
        return []


def reversal_amount(original_cents: int, refunded_cents: int, base_amount_cents: int | None) -> int:
    """Proportional share of the original commission that a refund undoes."""
    original = abs(original_cents)
    base = base_amount_cents or original
    return round_half_up(original * refunded_cents / base)


def reverse_commission(
    reversal_id: str,
    invoice_id: str,
    refunded_cents: int,
    event_type: CommissionEventType,
) -> list[CommissionEntry]:
    """Write negative entries for every open commission on ``invoice_id``.

    Idempotent on ``reversal_id``: each reversal entry is keyed by the
    reversal id and the entry it undoes, and undone entries are closed.
    """
    try:
        repo = current_domain.repository_for(CommissionEntry)
        originals = []
        for key in (invoice_id, f"{invoice_id}{PARENT_SUFFIX}"):
            entry = commission_for(key)
            if entry is not None and entry.is_reversible:
                originals.append(entry)

        reversals = []
        for original in originals:
            key = f"{reversal_id}_{original.id}"
            if commission_for(key) is not None:
                continue

            amount = reversal_amount(original.amount_cents, refunded_cents, original.base_amount_cents)
            reversal = CommissionEntry(
                event_id=key,
                event_type=event_type.value,
                affiliate_id=original.affiliate_id,
                amount_cents=-amount,
                base_amount_cents=original.base_amount_cents,
                currency=original.currency,
                status=CommissionStatus.REVERSED.value,
                business_subscription_id=original.business_subscription_id,
                reversal_of=original.id,
                meta=json.dumps({"invoice_id": invoice_id, "refunded_cents": refunded_cents}),
            )
            repo.add(reversal)
            original.mark_reversed()
            repo.add(original)
            reversals.append(reversal)

        logger.info(
            "Commission reversal processed",
            reversal_id=reversal_id,
            invoice_id=invoice_id,
            event_type=event_type.value,
            entries=len(reversals),
        )
        return reversals
    except Exception as e:
        logger.error("Commission reversal failed", reversal_id=reversal_id, invoice_id=invoice_id, error=str(e))
        return []
