"""BusinessSubscription — a seller's paid plan, tracked for revenue share."""

from datetime import UTC, datetime, timedelta

from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from settlement.domain import settlement


@settlement.aggregate
class BusinessSubscription:
    user_id: Identifier(required=True)
    plan_id: Identifier()
    processor_subscription_id: String(max_length=255)
    attribution_id: Identifier()
    promo_code_id: Identifier()
    final_price_cents: Integer(default=0, min_value=0)
    starts_at: DateTime(required=True)
    ends_at: DateTime(required=True)

    @classmethod
    def open(cls, user_id, plan_id, processor_subscription_id, window_days: int, **extra):
        starts_at = datetime.now(UTC)
        return cls(
            user_id=user_id,
            plan_id=plan_id,
            processor_subscription_id=processor_subscription_id,
            starts_at=starts_at,
            ends_at=starts_at + timedelta(days=window_days),
            **extra,
        )

    def revenue_share_open(self, at: datetime) -> bool:
        return at <= self.ends_at


def business_subscription_for(processor_subscription_id: str) -> BusinessSubscription | None:
    if not processor_subscription_id:
        return None
    return (
        current_domain.repository_for(BusinessSubscription)
        ._dao.query.filter(processor_subscription_id=processor_subscription_id)
        .all()
        .first
    )
