"""CourierProfile — an independent courier who can take delivery orders."""

from protean.exceptions import ValidationError
from protean.fields import Boolean, Float, Identifier, Integer

from settlement.domain import settlement


@settlement.aggregate
class CourierProfile:
    user_id: Identifier(required=True, unique=True)
    is_active: Boolean(default=True)
    max_distance_km: Float(default=10.0, min_value=0.0)
    total_earnings_cents: Integer(default=0)

    def record_earnings(self, amount_cents: int) -> None:
        if amount_cents < 0:
            raise ValidationError({"amount_cents": ["Earnings cannot be negative"]})
        self.total_earnings_cents = (self.total_earnings_cents or 0) + amount_cents
