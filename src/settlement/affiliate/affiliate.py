"""Affiliates and the attributions that tie members to them."""

from datetime import UTC, datetime, timedelta
from enum import Enum

from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from settlement.domain import settlement


class AttributionType(Enum):
    USER_SIGNUP = "USER_SIGNUP"
    BUSINESS_SIGNUP = "BUSINESS_SIGNUP"


@settlement.aggregate
class Affiliate:
    """A referrer. Sub-affiliates have a parent who earns a smaller tier.

    ``custom_*`` percentages are fractions (0.30 means 30 %) and replace the
    policy default for this affiliate when set.
    """

    user_id: Identifier(required=True)
    parent_affiliate_id: Identifier()
    custom_user_commission_pct: Float(min_value=0.0, max_value=1.0)
    custom_parent_user_commission_pct: Float(min_value=0.0, max_value=1.0)
    custom_business_commission_pct: Float(min_value=0.0, max_value=1.0)
    custom_parent_business_commission_pct: Float(min_value=0.0, max_value=1.0)

    @property
    def is_sub_affiliate(self) -> bool:
        return bool(self.parent_affiliate_id)


@settlement.aggregate
class PromoCode:
    """A code an affiliate hands out to discount a business subscription.

    ``discount_share_pct`` (0 to 100) is the part of the affiliate's own invoice
    commission given away as the discount.
    """

    code: String(required=True, max_length=50)
    affiliate_id: Identifier(required=True)
    discount_share_pct: Float(min_value=0.0, max_value=100.0, default=0.0)


@settlement.aggregate
class Attribution:
    user_id: Identifier(required=True)
    affiliate_id: Identifier(required=True)
    kind: String(max_length=30, choices=AttributionType, default=AttributionType.USER_SIGNUP.value)
    promo_code_id: Identifier()
    starts_at: DateTime(required=True)
    ends_at: DateTime(required=True)

    @classmethod
    def start(cls, user_id, affiliate_id, window_days: int, kind=AttributionType.USER_SIGNUP.value, starts_at=None):
        starts_at = starts_at or datetime.now(UTC)
        return cls(
            user_id=user_id,
            affiliate_id=affiliate_id,
            kind=kind,
            starts_at=starts_at,
            ends_at=starts_at + timedelta(days=window_days),
        )

    def is_active_at(self, at: datetime) -> bool:
        return self.starts_at <= at <= self.ends_at


def discount_share_for(promo_code_id) -> float:
    if not promo_code_id:
        return 0.0
    try:
        promo_code = current_domain.repository_for(PromoCode).get(promo_code_id)
    except ObjectNotFoundError:
        return 0.0
    return promo_code.discount_share_pct or 0.0


def active_user_attribution(user_id, at: datetime) -> Attribution | None:
    if not user_id:
        return None
    attributions = (
        current_domain.repository_for(Attribution)
        ._dao.query.filter(user_id=str(user_id), kind=AttributionType.USER_SIGNUP.value)
        .all()
        .items
    )
    return next((a for a in attributions if a.is_active_at(at)), None)
