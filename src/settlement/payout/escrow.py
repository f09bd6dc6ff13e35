"""PaymentEscrow — a seller payout held until the order is delivered."""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from settlement.domain import settlement


class EscrowStatus(Enum):
    HELD = "held"
    RELEASED = "released"
    REVERSED = "reversed"


@settlement.aggregate
class PaymentEscrow:
    order_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    payout_id = Identifier()
    amount_cents = Integer(required=True, min_value=0)
    payout_trigger = String(max_length=20, default="DELIVERED")
    current_status = String(max_length=20, choices=EscrowStatus, default=EscrowStatus.HELD.value)
    released_at = DateTime()

    @property
    def is_held(self) -> bool:
        return self.current_status == EscrowStatus.HELD.value

    def release(self) -> None:
        if not self.is_held:
            raise ValidationError({"current_status": [f"Cannot release escrow in {self.current_status} state"]})
        self.current_status = EscrowStatus.RELEASED.value
        self.released_at = datetime.now(UTC)

    def reverse(self) -> None:
        if not self.is_held:
            raise ValidationError({"current_status": [f"Cannot reverse escrow in {self.current_status} state"]})
        self.current_status = EscrowStatus.REVERSED.value


def escrows_for_order(order_id) -> list[PaymentEscrow]:
    return current_domain.repository_for(PaymentEscrow)._dao.query.filter(order_id=str(order_id)).all().items
