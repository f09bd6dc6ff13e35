"""ShippingLabel — at most one per order."""

from datetime import UTC, datetime

from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from settlement.domain import settlement


@settlement.aggregate
class ShippingLabel:
    order_id = Identifier(required=True, unique=True)
    carrier_label_id = String(max_length=255)
    pdf_url = String(max_length=1000)
    tracking_number = String(max_length=255)
    carrier = String(max_length=100)
    price_cents = Integer(default=0)
    status = String(max_length=30, default="generated")
    created_at = DateTime(default=lambda: datetime.now(UTC))


def label_for_order(order_id) -> ShippingLabel | None:
    return current_domain.repository_for(ShippingLabel)._dao.query.filter(order_id=str(order_id)).all().first
