"""SellerProfile — the seller's fee tier and notification opt-ins."""

from protean.fields import Boolean, DateTime, Identifier, String
from protean.utils.globals import current_domain

from settlement.domain import settlement


@settlement.aggregate
class SellerProfile:
    user_id: Identifier(required=True, unique=True)
    subscription_id: String(max_length=100)
    subscription_valid_until: DateTime()
    processor_subscription_id: String(max_length=255)
    processor_customer_id: String(max_length=255)
    sms_order_updates: Boolean(default=False)

    def assign_subscription(
        self,
        subscription_id,
        valid_until,
        processor_subscription_id=None,
        processor_customer_id=None,
    ):
        self.subscription_id = subscription_id
        self.subscription_valid_until = valid_until
        if processor_subscription_id:
            self.processor_subscription_id = processor_subscription_id
        if processor_customer_id:
            self.processor_customer_id = processor_customer_id

    def clear_subscription(self):
        self.subscription_id = None
        self.subscription_valid_until = None
        self.processor_subscription_id = None


def seller_profile_for(user_id: str) -> SellerProfile | None:
    return current_domain.repository_for(SellerProfile)._dao.query.filter(user_id=user_id).all().first
