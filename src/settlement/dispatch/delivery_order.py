"""DeliveryOrder — a courier task for one product of a delivery-mode order.

Created unassigned (PENDING). Acceptance by a courier happens elsewhere;
the settlement pipeline only reads ``courier_id`` when paying couriers.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from settlement.domain import settlement


class DeliveryOrderStatus(Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    PICKED_UP = "PICKED_UP"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


_VALID_TRANSITIONS = {
    DeliveryOrderStatus.PENDING: {DeliveryOrderStatus.ACCEPTED, DeliveryOrderStatus.CANCELLED},
    DeliveryOrderStatus.ACCEPTED: {DeliveryOrderStatus.PICKED_UP, DeliveryOrderStatus.CANCELLED},
    DeliveryOrderStatus.PICKED_UP: {DeliveryOrderStatus.DELIVERED},
    DeliveryOrderStatus.DELIVERED: set(),
    DeliveryOrderStatus.CANCELLED: set(),
}


@settlement.aggregate
class DeliveryOrder:
    order_id: Identifier(required=True)
    product_id: Identifier()
    courier_id: Identifier()
    status: String(max_length=20, choices=DeliveryOrderStatus, default=DeliveryOrderStatus.PENDING.value)
    delivery_address: String(max_length=500)
    delivery_fee_cents: Integer(default=0, min_value=0)
    estimated_minutes: Integer()
    created_at: DateTime(default=lambda: datetime.now(UTC))

    def _transition_to(self, target: DeliveryOrderStatus) -> None:
        current = DeliveryOrderStatus(self.status)
        if target not in _VALID_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot move delivery order from {current.value} to {target.value}"]})
        self.status = target.value

    def accept(self, courier_id) -> None:
        self._transition_to(DeliveryOrderStatus.ACCEPTED)
        self.courier_id = courier_id

    def cancel(self) -> None:
        self._transition_to(DeliveryOrderStatus.CANCELLED)


def delivery_orders_for(order_id) -> list[DeliveryOrder]:
    return current_domain.repository_for(DeliveryOrder)._dao.query.filter(order_id=str(order_id)).all().items
