"""Transaction — the captured amount of one line item or one delivery leg."""

from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from settlement.domain import settlement


class TransactionKind(Enum):
    SALE = "SALE"
    DELIVERY = "DELIVERY"


class TransactionStatus(Enum):
    CAPTURED = "CAPTURED"
    REVERSED = "REVERSED"


@settlement.aggregate
class Transaction:
    settlement_key = String(required=True, max_length=255, unique=True)
    kind = String(max_length=20, choices=TransactionKind, default=TransactionKind.SALE.value)
    order_id = Identifier(required=True)
    product_id = Identifier()
    delivery_order_id = Identifier()
    buyer_id = Identifier()
    seller_id = Identifier()
    amount_cents = Integer(required=True, min_value=0)
    platform_fee_bps = Integer(default=0)
    platform_fee_cents = Integer(default=0)
    sms_cost_cents = Integer(default=0)
    status = String(max_length=20, choices=TransactionStatus, default=TransactionStatus.CAPTURED.value)
    provider = String(max_length=50, default="STRIPE")
    provider_ref = String(max_length=255)

    @staticmethod
    def sale_key(order_id, item_id) -> str:
        return f"sale:{order_id}:{item_id}"

    @staticmethod
    def delivery_key(order_id, delivery_order_id) -> str:
        return f"delivery:{order_id}:{delivery_order_id}"

    def reverse(self) -> None:
        if self.status == TransactionStatus.REVERSED.value:
            raise ValidationError({"status": ["Transaction is already reversed"]})
        self.status = TransactionStatus.REVERSED.value


def transaction_for_key(settlement_key: str) -> Transaction | None:
    return current_domain.repository_for(Transaction)._dao.query.filter(settlement_key=settlement_key).all().first
