"""Order aggregate — one per paid checkout session.

State Machine (forward only):
    CONFIRMED → PROCESSING → SHIPPED → DELIVERED
    CONFIRMED/PROCESSING/SHIPPED → CANCELLED

SHIPPING orders are created with ``payment_held`` and a ``DELIVERED`` payout
trigger: the seller's money sits in escrow until delivery is recorded.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, Identifier, Integer, String, Text

from settlement.domain import settlement
from settlement.order.events import OrderPlaced, OrderStatusChanged, ShippingLabelAttached


class OrderStatus(Enum):
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class OrderKind(Enum):
    PRODUCT = "PRODUCT"
    SUBSCRIPTION = "SUBSCRIPTION"


class DeliveryMode(Enum):
    PICKUP = "PICKUP"
    DELIVERY = "DELIVERY"
    SHIPPING = "SHIPPING"


class PayoutTrigger(Enum):
    DELIVERED = "DELIVERED"


_VALID_TRANSITIONS = {
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


@settlement.entity(part_of="Order")
class OrderItem:
    """A purchased product at the price paid. Never changed after placement."""

    product_id = Identifier(required=True)
    seller_id = Identifier()
    quantity = Integer(required=True, min_value=1)
    price_cents = Integer(required=True, min_value=1)

    @property
    def total_cents(self) -> int:
        return self.price_cents * self.quantity


@settlement.aggregate
class Order:
    order_number = String(required=True, max_length=50, unique=True)
    buyer_id = Identifier(required=True)
    session_id = String(max_length=255, unique=True)
    kind = String(max_length=20, choices=OrderKind, default=OrderKind.PRODUCT.value)
    status = String(max_length=20, choices=OrderStatus, default=OrderStatus.CONFIRMED.value)
    total_amount_cents = Integer(default=0, min_value=0)
    delivery_mode = String(max_length=20, choices=DeliveryMode, default=DeliveryMode.PICKUP.value)
    payment_held = Boolean(default=False)
    payout_trigger = String(max_length=20, choices=PayoutTrigger)
    payment_reference = String(max_length=255)
    pickup_address = String(max_length=500)
    delivery_address = String(max_length=500)
    pickup_date = DateTime()
    delivery_date = DateTime()
    notes = Text()
    shipping_cost_cents = Integer()
    shipping_label_id = String(max_length=255)
    shipping_tracking_number = String(max_length=255)
    shipping_carrier = String(max_length=100)
    shipping_status = String(max_length=50)
    shipping_label_cost_cents = Integer()
    items = HasMany(OrderItem)
    placed_at = DateTime()
    delivered_at = DateTime()

    @classmethod
    def place(
        cls,
        order_number,
        buyer_id,
        session_id,
        delivery_mode,
        total_amount_cents,
        lines,
        address=None,
        pickup_date=None,
        delivery_date=None,
        notes=None,
        delivery_fee_cents=0,
        payment_reference=None,
    ):
        """Create a confirmed product order from decoded cart lines."""
        mode = DeliveryMode(delivery_mode)
        is_shipping = mode == DeliveryMode.SHIPPING
        now = datetime.now(UTC)

        order = cls(
            order_number=order_number,
            buyer_id=buyer_id,
            session_id=session_id,
            kind=OrderKind.PRODUCT.value,
            total_amount_cents=total_amount_cents,
            delivery_mode=mode.value,
            payment_held=is_shipping,
            payout_trigger=PayoutTrigger.DELIVERED.value if is_shipping else None,
            payment_reference=payment_reference,
            pickup_address=address if mode == DeliveryMode.PICKUP else None,
            delivery_address=address if mode != DeliveryMode.PICKUP else None,
            pickup_date=pickup_date,
            delivery_date=delivery_date,
            notes=notes,
            shipping_cost_cents=delivery_fee_cents if is_shipping and delivery_fee_cents else None,
            placed_at=now,
        )
        for line in lines:
            order.add_items(
                OrderItem(
                    product_id=line.product_id,
                    seller_id=line.seller_id,
                    quantity=line.quantity,
                    price_cents=line.price_cents,
                )
            )

        order.raise_(
            OrderPlaced(
                order_id=order.id,
                order_number=order_number,
                buyer_id=buyer_id,
                session_id=session_id,
                kind=OrderKind.PRODUCT.value,
                delivery_mode=mode.value,
                total_amount_cents=total_amount_cents,
                item_count=len(lines),
                placed_at=now,
            )
        )
        return order

    @classmethod
    def for_subscription(cls, order_number, buyer_id, session_id, total_amount_cents, notes=None):
        """Revenue record for a subscription checkout; it has no items."""
        now = datetime.now(UTC)
        order = cls(
            order_number=order_number,
            buyer_id=buyer_id,
            session_id=session_id,
            kind=OrderKind.SUBSCRIPTION.value,
            total_amount_cents=total_amount_cents,
            delivery_mode=DeliveryMode.PICKUP.value,
            notes=notes,
            placed_at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=order.id,
                order_number=order_number,
                buyer_id=buyer_id,
                session_id=session_id,
                kind=OrderKind.SUBSCRIPTION.value,
                delivery_mode=DeliveryMode.PICKUP.value,
                total_amount_cents=total_amount_cents,
                placed_at=now,
            )
        )
        return order

    @property
    def is_shipping(self) -> bool:
        return self.delivery_mode == DeliveryMode.SHIPPING.value

    def seller_ids(self) -> list[str]:
        """Distinct seller ids in item order."""
        seen = []
        for item in self.items:
            if item.seller_id and str(item.seller_id) not in seen:
                seen.append(str(item.seller_id))
        return seen

    def _transition_to(self, new_status: OrderStatus) -> None:
        current = OrderStatus(self.status)
        if new_status not in _VALID_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot move order from {current.value} to {new_status.value}"]})

        self.status = new_status.value
        self.raise_(
            OrderStatusChanged(
                order_id=self.id,
                previous_status=current.value,
                new_status=new_status.value,
                changed_at=datetime.now(UTC),
            )
        )

    def mark_processing(self) -> None:
        self._transition_to(OrderStatus.PROCESSING)

    def mark_shipped(self) -> None:
        self._transition_to(OrderStatus.SHIPPED)
        self.shipping_status = "shipped"

    def mark_delivered(self) -> None:
        self._transition_to(OrderStatus.DELIVERED)
        self.delivered_at = datetime.now(UTC)
        if self.is_shipping:
            self.shipping_status = "delivered"

    def cancel(self) -> None:
        self._transition_to(OrderStatus.CANCELLED)

    def attach_shipping_label(self, label_id, tracking_number, carrier, label_cost_cents) -> None:
        if not self.is_shipping:
            raise ValidationError({"delivery_mode": ["Only shipping orders carry a shipping label"]})

        self.shipping_label_id = label_id
        self.shipping_tracking_number = tracking_number
        self.shipping_carrier = carrier
        self.shipping_status = "label_created"
        self.shipping_label_cost_cents = label_cost_cents
        self.raise_(
            ShippingLabelAttached(
                order_id=self.id,
                label_id=label_id,
                tracking_number=tracking_number,
                carrier=carrier,
                label_cost_cents=label_cost_cents,
            )
        )
